"""
Data Layer

Matrix coercion and validation, and the toolkit's error kinds.
"""

from .errors import (
    PreprocessingError,
    SchemaMismatch,
    InvalidOperation,
    NonPositiveData,
    SingularCovariance,
    InsufficientRank,
    DimensionMismatch,
    Diagnostic
)
from .matrix import as_frame, as_labels, select_columns

__all__ = [
    # Errors
    'PreprocessingError',
    'SchemaMismatch',
    'InvalidOperation',
    'NonPositiveData',
    'SingularCovariance',
    'InsufficientRank',
    'DimensionMismatch',
    'Diagnostic',

    # Matrices
    'as_frame',
    'as_labels',
    'select_columns',
]
