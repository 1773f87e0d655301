"""
Class Distance

Class-centroid Mahalanobis distances: fit per-class centroids and
covariances on labelled training data, then score any matrix with one
distance per class. The distances are typically added as new predictors.

Optionally each class is first projected onto its own principal
components, which keeps the covariance invertible when a class has fewer
samples than predictors.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple, Union
from dataclasses import dataclass, fields
import warnings
import numpy as np
import pandas as pd
from sklearn.decomposition import PCA

from data.errors import SingularCovariance
from data.matrix import MatrixLike, as_frame, as_labels, complete_rows, freeze, select_columns


@dataclass(frozen=True)
class ClassDistanceOptions:
    """
    Options for fit_class_distance.

    Attributes:
        pca: Project each class onto its own principal components first
        pca_thresh: Cumulative variance retained by the within-class PCA
        keep: Fixed number of components per class (overrides pca_thresh)
        groups: Number of quantile groups used when labels are continuous
        on_singular: 'raise' to raise SingularCovariance after estimating
            every class, 'skip' to keep the model and score NaN for
            singular classes
    """
    pca: bool = False
    pca_thresh: float = 0.95
    keep: Optional[int] = None
    groups: int = 5
    on_singular: str = 'raise'

    def __post_init__(self):
        """Validate options."""
        if not 0 < self.pca_thresh <= 1:
            raise ValueError(f"pca_thresh must be in (0, 1], got {self.pca_thresh}")
        if self.keep is not None and self.keep < 1:
            raise ValueError(f"keep must be positive, got {self.keep}")
        if self.groups < 2:
            raise ValueError(f"groups must be at least 2, got {self.groups}")
        if self.on_singular not in ('raise', 'skip'):
            raise ValueError(f"on_singular must be 'raise' or 'skip', got {self.on_singular}")

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> 'ClassDistanceOptions':
        """Build options from the 'class_distance' section of a config dict."""
        section = (config or {}).get('class_distance', {}) or {}
        known = {f.name for f in fields(cls)}
        unknown = set(section) - known - {'enabled'}
        if unknown:
            raise ValueError(f"Unknown class_distance options: {sorted(unknown)}")
        return cls(**{k: v for k, v in section.items() if k in known})


@dataclass(frozen=True, eq=False)
class ClassCentroid:
    """
    Fitted parameters of one class.

    Attributes:
        label: Class label
        n_samples: Training rows in the class
        status: 'ok' or 'singular'
        centroid: Class mean (in component space when PCA is used)
        inverse_covariance: Inverse covariance (None when singular)
        pca_center / pca_scale: Class standardisation before projection
        rotation: (n_components, n_columns) within-class PCA rotation
    """
    label: Any
    n_samples: int
    status: str
    centroid: Optional[np.ndarray]
    inverse_covariance: Optional[np.ndarray]
    pca_center: Optional[np.ndarray] = None
    pca_scale: Optional[np.ndarray] = None
    rotation: Optional[np.ndarray] = None

    @property
    def n_components(self) -> Optional[int]:
        return None if self.rotation is None else self.rotation.shape[0]

    def project(self, values: np.ndarray) -> np.ndarray:
        """Map rows into the space the centroid lives in."""
        if self.rotation is None:
            return values
        return ((values - self.pca_center) / self.pca_scale) @ self.rotation.T


@dataclass(frozen=True, eq=False)
class ClassCentroidModel:
    """
    Immutable class-distance model.

    Attributes:
        columns: Predictor columns the model was fitted on
        classes: Per-class parameters, in label order
        options: Options used for fitting
        bin_edges: Quantile edges when continuous labels were grouped
    """
    columns: Tuple[str, ...]
    classes: Tuple[ClassCentroid, ...]
    options: ClassDistanceOptions
    bin_edges: Optional[np.ndarray] = None

    @property
    def labels(self) -> List[Any]:
        return [c.label for c in self.classes]

    @property
    def status(self) -> Dict[Any, str]:
        """Per-class fit status."""
        return {c.label: c.status for c in self.classes}

    @property
    def distance_columns(self) -> List[str]:
        return [f"dist.{label}" for label in self.labels]


def _group_continuous(y: np.ndarray, groups: int) -> Tuple[np.ndarray, np.ndarray]:
    """Cut continuous labels into quantile groups."""
    edges = np.unique(np.quantile(y, np.linspace(0, 1, groups + 1)))
    if len(edges) < 2:
        raise ValueError(f"Cannot group continuous labels: all {len(y)} labels equal {y[0]}")
    binned = pd.cut(y, edges, include_lowest=True)
    return np.asarray(binned.astype(str)), edges


def _select_components(explained: np.ndarray, options: ClassDistanceOptions, limit: int) -> int:
    if options.keep is not None:
        n_components = options.keep
    else:
        cumulative = np.cumsum(explained)
        n_components = int(np.searchsorted(cumulative, options.pca_thresh - 1e-12)) + 1
    return min(n_components, limit)


def _invert(covariance: np.ndarray) -> Optional[np.ndarray]:
    """Inverse of a covariance matrix, or None when it is singular."""
    covariance = np.atleast_2d(covariance)
    if np.linalg.matrix_rank(covariance) < covariance.shape[0]:
        return None
    return np.linalg.inv(covariance)


def _fit_class(label: Any, rows: np.ndarray, options: ClassDistanceOptions) -> ClassCentroid:
    n_samples, n_columns = rows.shape
    singular = ClassCentroid(label, n_samples, 'singular', None, None)
    if n_samples < 2:
        return singular

    if not options.pca:
        inverse = _invert(np.cov(rows, rowvar=False))
        if inverse is None:
            return singular
        return ClassCentroid(label, n_samples, 'ok', freeze(rows.mean(axis=0)), freeze(inverse))

    center = rows.mean(axis=0)
    scale = rows.std(axis=0, ddof=1)
    scale = np.where(scale > 0, scale, 1.0)
    standardised = (rows - center) / scale

    pca = PCA(svd_solver='full').fit(standardised)

    # n rows span at most n - 1 directions around their mean
    variance_floor = np.finfo(np.float64).eps * max(pca.explained_variance_[0], 1.0) * n_columns
    informative = int(np.sum(pca.explained_variance_ > variance_floor))
    limit = min(n_samples - 1, n_columns, informative)
    if limit < 1:
        return singular

    n_components = _select_components(pca.explained_variance_ratio_, options, limit)
    rotation = pca.components_[:n_components]
    scores = standardised @ rotation.T

    inverse = _invert(np.cov(scores, rowvar=False))
    if inverse is None:
        return singular

    return ClassCentroid(
        label=label,
        n_samples=n_samples,
        status='ok',
        centroid=freeze(scores.mean(axis=0)),
        inverse_covariance=freeze(inverse),
        pca_center=freeze(center),
        pca_scale=freeze(scale),
        rotation=freeze(rotation)
    )


def fit_class_distance(
    matrix: MatrixLike,
    labels: Union[np.ndarray, pd.Series, List],
    options: Optional[ClassDistanceOptions] = None
) -> ClassCentroidModel:
    """
    Estimate per-class centroids and covariances.

    Args:
        matrix: Training predictors (rows = samples)
        labels: Class label per row. Float labels with more than
            options.groups distinct values are treated as a continuous
            outcome and cut into options.groups quantile groups; fewer
            distinct values are used as class levels directly.
        options: Fit options (defaults if None)

    Returns:
        ClassCentroidModel

    Raises:
        DimensionMismatch: If labels and rows differ in length
        SingularCovariance: If a class covariance is singular and
            options.on_singular is 'raise' (all classes are estimated first)
    """
    options = options or ClassDistanceOptions()
    df = as_frame(matrix)
    y = as_labels(labels, len(df))

    values = df.to_numpy()
    mask = complete_rows(values)
    if not mask.all():
        warnings.warn(f"{int((~mask).sum())} rows with missing values excluded from class distance fit")
        values, y = values[mask], y[mask]

    bin_edges = None
    # Few distinct float values are class codes (e.g. 0.0/1.0 read from CSV)
    if np.issubdtype(y.dtype, np.floating) and len(np.unique(y)) > options.groups:
        y, bin_edges = _group_continuous(y, options.groups)

    classes = tuple(_fit_class(level, values[y == level], options) for level in np.unique(y))

    model = ClassCentroidModel(
        columns=tuple(df.columns),
        classes=classes,
        options=options,
        bin_edges=freeze(bin_edges) if bin_edges is not None else None
    )

    singular = [c.label for c in classes if c.status != 'ok']
    if singular:
        if options.on_singular == 'raise':
            raise SingularCovariance(singular, model.status, model)
        warnings.warn(f"Singular covariance for classes {singular}; their distances will be NaN")

    return model


TRANSFORMS: Dict[str, Callable[[np.ndarray], np.ndarray]] = {
    'log1p': np.log1p,
    'log': np.log,
}


def score(
    model: ClassCentroidModel,
    matrix: MatrixLike,
    transform: Union[str, Callable[[np.ndarray], np.ndarray], None] = 'log1p'
) -> pd.DataFrame:
    """
    Squared Mahalanobis distance from each row to each class centroid.

    Args:
        model: Result of fit_class_distance
        matrix: Matrix containing the model's columns
        transform: 'log1p' (default), 'log', None for raw distances, or a
            callable applied to each distance column

    Returns:
        DataFrame (rows x classes) with columns 'dist.<label>'

    Raises:
        SchemaMismatch: If a model column is absent
    """
    df = select_columns(as_frame(matrix), model.columns)
    values = df.to_numpy()

    if transform is None:
        transform_fn = None
    elif callable(transform):
        transform_fn = transform
    elif transform in TRANSFORMS:
        transform_fn = TRANSFORMS[transform]
    else:
        raise ValueError(f"Unknown distance transform: {transform}")

    distances = {}
    for cls, name in zip(model.classes, model.distance_columns):
        if cls.status != 'ok':
            distances[name] = np.full(len(df), np.nan)
            continue
        diff = cls.project(values) - cls.centroid
        d = np.einsum('ij,jk,ik->i', diff, cls.inverse_covariance, diff)
        if transform_fn is not None:
            with np.errstate(divide='ignore'):
                d = transform_fn(d)
        distances[name] = d

    return pd.DataFrame(distances, index=df.index, columns=model.distance_columns)
