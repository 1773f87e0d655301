"""
Transformation Estimator

Estimates a FittedPreprocessor from a training matrix and an operation
list. Operations run in a fixed stage order, each estimated on the output
of the previous one:

    filters      zv, nzv, corr
    imputation   knnImpute, bagImpute, medianImpute
    power        BoxCox, YeoJohnson, expoTrans
    scaling      center, scale, range
    projection   pca, ica
    spatialSign

Prerequisites are added automatically (pca, ica and knnImpute imply center
and scale). A column that cannot be estimated for a step passes through
that step with a diagnostic; only the filters remove columns.
"""

from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union
import warnings
import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.decomposition import PCA, FastICA

from data.errors import Diagnostic, InvalidOperation, format_diagnostics
from data.matrix import MatrixLike, as_frame, complete_rows, freeze
from analysis.column_stats import detect_nzv, zero_variance_columns
from analysis.correlation import correlation_matrix, find_correlated
from .options import PreprocessOptions
from .power import POWER_METHODS, estimate_lambda
from .imputation import fit_knn_impute, fit_bag_impute, fit_median_impute
from .steps import (
    Step,
    FilterStep,
    PowerStep,
    CenterStep,
    ScaleStep,
    RangeStep,
    ProjectionStep,
    SpatialSignStep,
    FittedPreprocessor,
)
from .applicator import apply, apply_step


FILTERS = ('zv', 'nzv', 'corr')
IMPUTERS = ('knnImpute', 'bagImpute', 'medianImpute')
SCALERS = ('center', 'scale', 'range')
PROJECTIONS = ('pca', 'ica')
PRECEDENCE = FILTERS + IMPUTERS + POWER_METHODS + SCALERS + PROJECTIONS + ('spatialSign',)

# Operations that need centred and scaled input
IMPLIES_CENTER_SCALE = ('knnImpute', 'pca', 'ica')

StepResult = Tuple[Step, List[Diagnostic]]


def resolve_operations(
    operations: Union[str, Sequence[str]],
    impute_method: Optional[str] = None
) -> Tuple[str, ...]:
    """
    Normalise a requested operation list into execution order.

    Args:
        operations: Requested operation names (order matters only for
            resolving range vs center/scale)
        impute_method: Optional imputation operation to add

    Returns:
        Tuple of operation names in execution order

    Raises:
        InvalidOperation: For an unrecognised name
    """
    requested = [operations] if isinstance(operations, str) else list(operations)
    if impute_method:
        requested.append(impute_method)

    position: Dict[str, int] = {}
    for i, name in enumerate(requested):
        if name not in PRECEDENCE:
            raise InvalidOperation(name, PRECEDENCE)
        position.setdefault(name, i)

    if 'pca' in position and 'ica' in position:
        warnings.warn("ica whitens with its own PCA step, so the separate pca step is not used")
        del position['pca']

    implied = [name for name in IMPLIES_CENTER_SCALE if name in position]
    for name in implied:
        for required in ('center', 'scale'):
            position[required] = max(position.get(required, -1), position[name])

    if 'range' in position and ('center' in position or 'scale' in position):
        last_center_scale = max(position.get('center', -1), position.get('scale', -1))
        if implied:
            warnings.warn(f"{implied} require centering and scaling; range is not used")
            del position['range']
        elif position['range'] > last_center_scale:
            warnings.warn("range listed after center/scale; center and scale are not used")
            position.pop('center', None)
            position.pop('scale', None)
        else:
            warnings.warn("center/scale listed after range; range is not used")
            del position['range']

    for group in (IMPUTERS, POWER_METHODS):
        present = [name for name in group if name in position]
        for name in present[1:]:
            warnings.warn(f"Only one of {list(group)} can be used; {name} is dropped in favour of {present[0]}")
            del position[name]

    if 'spatialSign' in position and not {'center', 'scale'} & set(position):
        warnings.warn("spatialSign is usually applied to centred and scaled data")

    return tuple(name for name in PRECEDENCE if name in position)


# -----------------------------------------------------------------------------
# Filters
# -----------------------------------------------------------------------------

def _removal(method: str, columns: List[str]) -> StepResult:
    diagnostics = [Diagnostic(method, c, 'removed', f"removed by {method}") for c in columns]
    return FilterStep(method=method, columns=tuple(columns)), diagnostics


def _fit_zv(df: pd.DataFrame, options: PreprocessOptions) -> StepResult:
    return _removal('zv', zero_variance_columns(df))


def _fit_nzv(df: pd.DataFrame, options: PreprocessOptions) -> StepResult:
    flagged = detect_nzv(df, freq_cut=options.freq_cut, unique_cut=options.unique_cut, names=True)
    return _removal('nzv', flagged)


def _fit_corr(df: pd.DataFrame, options: PreprocessOptions) -> StepResult:
    if df.shape[1] < 2:
        return _removal('corr', [])
    corr = correlation_matrix(df, use=options.corr_use)
    return _removal('corr', find_correlated(corr, cutoff=options.corr_cutoff, names=True))


# -----------------------------------------------------------------------------
# Power transforms
# -----------------------------------------------------------------------------

def _fit_power(method: str) -> Callable[[pd.DataFrame, PreprocessOptions], StepResult]:
    def fit_power(df: pd.DataFrame, options: PreprocessOptions) -> StepResult:
        estimates = Parallel(n_jobs=options.n_jobs)(
            delayed(estimate_lambda)(df[column].to_numpy(), method, options) for column in df.columns
        )

        columns, lambdas, diagnostics = [], [], []
        for column, (lam, kind) in zip(df.columns, estimates):
            if lam is None:
                message = ("non-positive values, column passed through" if kind == 'NonPositiveData'
                           else "no transformation estimated")
                diagnostics.append(Diagnostic(method, column, kind, message))
            else:
                columns.append(column)
                lambdas.append(lam)

        step = PowerStep(method=method, columns=tuple(columns), lambdas=freeze(np.array(lambdas)))
        return step, diagnostics
    return fit_power


# -----------------------------------------------------------------------------
# Center / scale / range
# -----------------------------------------------------------------------------

def _fit_center(df: pd.DataFrame, options: PreprocessOptions) -> StepResult:
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        means = np.nanmean(df.to_numpy(), axis=0)

    diagnostics = [
        Diagnostic('center', c, 'notransform', "column has no observed values")
        for c, m in zip(df.columns, means) if np.isnan(m)
    ]
    step = CenterStep(method='center', columns=tuple(df.columns), means=freeze(np.nan_to_num(means, nan=0.0)))
    return step, diagnostics


def _fit_scale(df: pd.DataFrame, options: PreprocessOptions) -> StepResult:
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        sds = np.nanstd(df.to_numpy(), axis=0, ddof=1)

    usable = np.isfinite(sds) & (sds > 0)
    diagnostics = [
        Diagnostic('scale', c, 'zero_scale', "standard deviation is zero or undefined, column not scaled")
        for c, ok in zip(df.columns, usable) if not ok
    ]
    step = ScaleStep(method='scale', columns=tuple(df.columns), sds=freeze(np.where(usable, sds, 1.0)))
    return step, diagnostics


def _fit_range(df: pd.DataFrame, options: PreprocessOptions) -> StepResult:
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        mins = np.nanmin(df.to_numpy(), axis=0)
        maxs = np.nanmax(df.to_numpy(), axis=0)
    spans = maxs - mins

    usable = np.isfinite(spans) & (spans > 0)
    diagnostics = [
        Diagnostic('range', c, 'zero_scale', "column range is zero or undefined, column not rescaled")
        for c, ok in zip(df.columns, usable) if not ok
    ]

    # Unusable columns map onto themselves: (x - low) / (high - low) * (high - low) + low
    low, high = options.range_bounds
    step = RangeStep(
        method='range',
        columns=tuple(df.columns),
        mins=freeze(np.where(usable, mins, low)),
        spans=freeze(np.where(usable, spans, high - low)),
        bounds=(float(low), float(high))
    )
    return step, diagnostics


# -----------------------------------------------------------------------------
# Projections
# -----------------------------------------------------------------------------

def _training_rows(df: pd.DataFrame, method: str) -> np.ndarray:
    values = df.to_numpy()
    mask = complete_rows(values)
    if mask.sum() < 2:
        raise ValueError(f"{method} needs at least 2 complete training rows, got {int(mask.sum())}")
    if not mask.all():
        warnings.warn(f"{method}: {int((~mask).sum())} incomplete rows excluded from estimation")
    return values[mask]


def _fit_pca(df: pd.DataFrame, options: PreprocessOptions) -> StepResult:
    values = _training_rows(df, 'pca')
    pca = PCA(svd_solver='full').fit(values)

    if options.pca_components is not None:
        n_components = min(options.pca_components, len(pca.components_))
    else:
        cumulative = np.cumsum(pca.explained_variance_ratio_)
        n_components = int(np.searchsorted(cumulative, options.pca_thresh - 1e-12)) + 1
        n_components = min(n_components, len(cumulative))

    step = ProjectionStep(
        method='pca',
        columns=tuple(df.columns),
        mean=freeze(pca.mean_),
        rotation=freeze(pca.components_[:n_components]),
        component_names=tuple(f"PC{i + 1}" for i in range(n_components)),
        explained_variance=freeze(pca.explained_variance_ratio_[:n_components])
    )
    return step, []


def _fit_ica(df: pd.DataFrame, options: PreprocessOptions) -> StepResult:
    values = _training_rows(df, 'ica')
    n_components = min(options.ica_components, values.shape[1], values.shape[0])

    ica = FastICA(
        n_components=n_components,
        whiten='unit-variance',
        max_iter=1000,
        random_state=options.random_state
    ).fit(values)

    step = ProjectionStep(
        method='ica',
        columns=tuple(df.columns),
        mean=freeze(ica.mean_),
        rotation=freeze(ica.components_),
        component_names=tuple(f"ICA{i + 1}" for i in range(n_components))
    )
    return step, []


def _fit_spatial_sign(df: pd.DataFrame, options: PreprocessOptions) -> StepResult:
    return SpatialSignStep(method='spatialSign', columns=tuple(df.columns)), []


ESTIMATORS: Dict[str, Callable[[pd.DataFrame, PreprocessOptions], StepResult]] = {
    'zv': _fit_zv,
    'nzv': _fit_nzv,
    'corr': _fit_corr,
    'knnImpute': fit_knn_impute,
    'bagImpute': fit_bag_impute,
    'medianImpute': fit_median_impute,
    'BoxCox': _fit_power('BoxCox'),
    'YeoJohnson': _fit_power('YeoJohnson'),
    'expoTrans': _fit_power('expoTrans'),
    'center': _fit_center,
    'scale': _fit_scale,
    'range': _fit_range,
    'pca': _fit_pca,
    'ica': _fit_ica,
    'spatialSign': _fit_spatial_sign,
}


def fit(
    matrix: MatrixLike,
    operations: Union[str, Sequence[str]],
    options: Optional[PreprocessOptions] = None
) -> FittedPreprocessor:
    """
    Estimate transformation parameters from a training matrix.

    Args:
        matrix: Training matrix (rows = samples, named columns)
        operations: Requested operation names
        options: Estimation options (defaults if None)

    Returns:
        Immutable FittedPreprocessor

    Raises:
        InvalidOperation: For an unrecognised operation name
        ValueError: For an empty matrix, or if the filters remove every
            column while further operations are requested
    """
    options = options or PreprocessOptions()
    resolved = resolve_operations(operations, options.impute_method)

    df = as_frame(matrix)
    if df.shape[0] == 0 or df.shape[1] == 0:
        raise ValueError(f"Cannot fit on an empty matrix of shape {df.shape}")

    training_columns = tuple(df.columns)
    steps: List[Step] = []
    diagnostics: List[Diagnostic] = []

    for method in resolved:
        if method not in FILTERS and df.shape[1] == 0:
            raise ValueError(f"All columns were removed before '{method}'")
        step, step_diagnostics = ESTIMATORS[method](df, options)
        steps.append(step)
        diagnostics.extend(step_diagnostics)
        df = apply_step(step, df)

    removed = tuple(
        (column, step.method) for step in steps if isinstance(step, FilterStep) for column in step.columns
    )
    removed_names = {column for column, _ in removed}

    problems = [d for d in diagnostics if d.kind in ('NonPositiveData', 'zero_scale', 'no_model')]
    if problems:
        warnings.warn("Some columns passed through unchanged:\n" + format_diagnostics(problems))

    return FittedPreprocessor(
        operations=resolved,
        steps=tuple(steps),
        training_columns=training_columns,
        input_columns=tuple(c for c in training_columns if c not in removed_names),
        output_columns=tuple(df.columns),
        removed=removed,
        diagnostics=tuple(diagnostics),
        options=options,
        n_samples=len(df)
    )


def fit_transform(
    matrix: MatrixLike,
    operations: Union[str, Sequence[str]],
    options: Optional[PreprocessOptions] = None
) -> Tuple[FittedPreprocessor, pd.DataFrame]:
    """Fit and transform the training matrix in one call."""
    fitted = fit(matrix, operations, options)
    return fitted, apply(fitted, matrix)
