"""
Preprocessing Layer

Estimate transformation parameters once (fit) and replay them against any
matrix (apply).
"""

from .options import PreprocessOptions
from .steps import FittedPreprocessor, load_preprocessor
from .estimator import (
    PRECEDENCE,
    resolve_operations,
    fit,
    fit_transform
)
from .applicator import apply

__all__ = [
    # Options
    'PreprocessOptions',

    # Fitted bundle
    'FittedPreprocessor',
    'load_preprocessor',

    # Estimation / application
    'PRECEDENCE',
    'resolve_operations',
    'fit',
    'fit_transform',
    'apply',
]
