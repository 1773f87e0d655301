"""
Preprocessing Options

Estimation options for the transformation pipeline, loadable from the
'preprocessing' section of a configuration dictionary or YAML file.
"""

from typing import Optional, Tuple, Dict, Any
from dataclasses import dataclass, fields, replace
import yaml


@dataclass(frozen=True)
class PreprocessOptions:
    """
    Options used while estimating a FittedPreprocessor.

    Attributes:
        freq_cut: nzv frequency-ratio cutoff
        unique_cut: nzv percent-unique cutoff
        corr_cutoff: Absolute correlation cutoff for 'corr'
        corr_use: 'pairwise' or 'complete' handling of missing values for 'corr'
        pca_thresh: Cumulative variance fraction retained by 'pca'
        pca_components: Fixed number of principal components (overrides pca_thresh)
        ica_components: Number of independent components for 'ica'
        k: Number of neighbours for 'knnImpute'
        impute_method: Imputation operation added to every fit
            ('knnImpute', 'bagImpute' or 'medianImpute')
        bag_trees: Number of bagged trees per column for 'bagImpute'
        range_bounds: Output interval of 'range'
        fudge: Tolerance snapping power-transform lambdas to 0 or 1
        num_unique: Minimum distinct values needed to estimate a power transform
        lambda_bounds: Lambda grid interval for BoxCox / YeoJohnson
        lambda_step: Lambda grid spacing
        expo_bounds: Search interval for the expoTrans lambda
        random_state: Seed for ICA and bagged trees
        n_jobs: Parallel jobs for per-column estimation (joblib semantics)
    """
    freq_cut: float = 95 / 5
    unique_cut: float = 10.0
    corr_cutoff: float = 0.9
    corr_use: str = 'pairwise'
    pca_thresh: float = 0.95
    pca_components: Optional[int] = None
    ica_components: int = 3
    k: int = 5
    impute_method: Optional[str] = None
    bag_trees: int = 25
    range_bounds: Tuple[float, float] = (0.0, 1.0)
    fudge: float = 0.2
    num_unique: int = 3
    lambda_bounds: Tuple[float, float] = (-2.0, 2.0)
    lambda_step: float = 0.1
    expo_bounds: Tuple[float, float] = (-4.0, 4.0)
    random_state: Optional[int] = 42
    n_jobs: int = 1

    def __post_init__(self):
        """Validate options."""
        if self.freq_cut < 1:
            raise ValueError(f"freq_cut must be >= 1, got {self.freq_cut}")
        if not 0 < self.unique_cut <= 100:
            raise ValueError(f"unique_cut must be in (0, 100], got {self.unique_cut}")
        if not 0 <= self.corr_cutoff <= 1:
            raise ValueError(f"corr_cutoff must be in [0, 1], got {self.corr_cutoff}")
        if self.corr_use not in ('pairwise', 'complete'):
            raise ValueError(f"corr_use must be 'pairwise' or 'complete', got {self.corr_use}")
        if not 0 < self.pca_thresh <= 1:
            raise ValueError(f"pca_thresh must be in (0, 1], got {self.pca_thresh}")
        if self.pca_components is not None and self.pca_components < 1:
            raise ValueError(f"pca_components must be positive, got {self.pca_components}")
        if self.ica_components < 1:
            raise ValueError(f"ica_components must be positive, got {self.ica_components}")
        if self.k < 1:
            raise ValueError(f"k must be positive, got {self.k}")
        if self.impute_method not in (None, 'knnImpute', 'bagImpute', 'medianImpute'):
            raise ValueError(f"Unknown imputation method: {self.impute_method}")
        if self.bag_trees < 1:
            raise ValueError(f"bag_trees must be positive, got {self.bag_trees}")
        if self.range_bounds[0] >= self.range_bounds[1]:
            raise ValueError(f"range_bounds must be increasing, got {self.range_bounds}")
        if self.lambda_bounds[0] >= self.lambda_bounds[1] or self.lambda_step <= 0:
            raise ValueError("lambda_bounds must be increasing and lambda_step positive")
        if self.expo_bounds[0] >= self.expo_bounds[1]:
            raise ValueError(f"expo_bounds must be increasing, got {self.expo_bounds}")

    def with_overrides(self, **overrides) -> 'PreprocessOptions':
        """Copy with some options replaced."""
        return replace(self, **overrides)

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> 'PreprocessOptions':
        """
        Build options from the 'preprocessing' section of a config dict.

        Args:
            config: Full configuration dictionary, e.g.
                {'preprocessing': {'options': {'corr_cutoff': 0.8}}}

        Returns:
            PreprocessOptions (defaults for anything not given)
        """
        config = config or {}
        section = config.get('preprocessing', {}).get('options', {}) or {}

        known = {f.name for f in fields(cls)}
        unknown = set(section) - known
        if unknown:
            raise ValueError(f"Unknown preprocessing options: {sorted(unknown)}")

        values = dict(section)
        for key in ('range_bounds', 'lambda_bounds', 'expo_bounds'):
            if key in values:
                values[key] = tuple(float(v) for v in values[key])
        return cls(**values)

    @classmethod
    def from_yaml(cls, filepath: str) -> 'PreprocessOptions':
        """Load options from a YAML configuration file."""
        with open(filepath, 'r') as f:
            return cls.from_config(yaml.safe_load(f))
