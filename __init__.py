"""
Tabular Preprocessing Toolkit

Inspect a numeric training matrix, estimate transformation parameters from
it, and apply those frozen parameters to any future matrix.

Main Components:
    - Near-zero-variance detection
    - Correlation-based column pruning
    - Linear dependency detection
    - Transformation pipeline (filters, imputation, power transforms,
      centering/scaling, PCA/ICA, spatial sign)
    - Class-centroid Mahalanobis distances
"""

__version__ = '0.1.0'

from .analysis import detect_nzv, find_correlated, find_linear_combos
from .preprocessing import PreprocessOptions, FittedPreprocessor, fit, apply
from .models import fit_class_distance, score

__all__ = [
    'detect_nzv',
    'find_correlated',
    'find_linear_combos',
    'PreprocessOptions',
    'FittedPreprocessor',
    'fit',
    'apply',
    'fit_class_distance',
    'score',
]
