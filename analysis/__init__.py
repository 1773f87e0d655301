"""
Analysis Layer

Filtering-only analyses usable on their own: near-zero-variance detection,
correlation pruning and linear dependency detection.
"""

from .column_stats import (
    detect_nzv,
    zero_variance_columns
)
from .correlation import (
    correlation_matrix,
    find_correlated
)
from .linear_combos import (
    LinearComboReport,
    find_linear_combos
)

__all__ = [
    # Column statistics
    'detect_nzv',
    'zero_variance_columns',

    # Correlation
    'correlation_matrix',
    'find_correlated',

    # Linear dependencies
    'LinearComboReport',
    'find_linear_combos',
]
