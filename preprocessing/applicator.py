"""
Transformation Applicator

Replays a FittedPreprocessor against any matrix carrying the fitted input
columns. Only stored parameters are used; nothing is re-estimated from the
matrix being transformed.
"""

from typing import Callable, Dict, Type
import warnings
import numpy as np
import pandas as pd

from data.matrix import MatrixLike, as_frame, select_columns
from .power import TRANSFORMS
from .steps import (
    Step,
    FilterStep,
    MedianImputeStep,
    KnnImputeStep,
    BagImputeStep,
    PowerStep,
    CenterStep,
    ScaleStep,
    RangeStep,
    ProjectionStep,
    SpatialSignStep,
    FittedPreprocessor,
)


def _replace(df: pd.DataFrame, step: Step, values: np.ndarray) -> pd.DataFrame:
    """Copy of df with the step's columns replaced by values."""
    out = df.copy()
    out.loc[:, list(step.columns)] = values
    return out


def _apply_filter(step: FilterStep, df: pd.DataFrame) -> pd.DataFrame:
    return df.drop(columns=[c for c in step.columns if c in df.columns])


def _apply_median_impute(step: MedianImputeStep, df: pd.DataFrame) -> pd.DataFrame:
    values = select_columns(df, step.columns).to_numpy(copy=True)
    missing = np.isnan(values)
    values[missing] = np.broadcast_to(step.medians, values.shape)[missing]
    return _replace(df, step, values)


def _apply_knn_impute(step: KnnImputeStep, df: pd.DataFrame) -> pd.DataFrame:
    values = select_columns(df, step.columns).to_numpy(copy=True)
    missing = np.isnan(values)
    if not missing.any():
        return df

    standardised = (values - step.center) / step.scale
    imputed = step.imputer.transform(standardised) * step.scale + step.center
    values[missing] = imputed[missing]
    return _replace(df, step, values)


def _apply_bag_impute(step: BagImputeStep, df: pd.DataFrame) -> pd.DataFrame:
    source = select_columns(df, step.columns)
    values = source.to_numpy(copy=True)
    medians = pd.Series(step.medians, index=list(step.columns))

    # Predictions use the incoming values, never values imputed earlier in this loop
    for j, column in enumerate(step.columns):
        rows = np.isnan(values[:, j])
        if not rows.any():
            continue
        bag = step.model_for(column)
        if bag is None:
            continue
        predictors = source.loc[rows, list(bag.predictors)]
        predictors = predictors.fillna(medians[list(bag.predictors)])
        values[rows, j] = bag.model.predict(predictors.to_numpy())

    return _replace(df, step, values)


def _apply_power(step: PowerStep, df: pd.DataFrame) -> pd.DataFrame:
    if not step.columns:
        return df
    transform = TRANSFORMS[step.method]
    values = select_columns(df, step.columns).to_numpy(copy=True)

    if step.method == 'BoxCox':
        bad = (values <= 0).any(axis=0)
        if bad.any():
            columns = [c for c, b in zip(step.columns, bad) if b]
            warnings.warn(f"Non-positive values in BoxCox columns {columns} are set to NaN")

    for j, lam in enumerate(step.lambdas):
        values[:, j] = transform(values[:, j], lam)
    return _replace(df, step, values)


def _apply_center(step: CenterStep, df: pd.DataFrame) -> pd.DataFrame:
    values = select_columns(df, step.columns).to_numpy()
    return _replace(df, step, values - step.means)


def _apply_scale(step: ScaleStep, df: pd.DataFrame) -> pd.DataFrame:
    values = select_columns(df, step.columns).to_numpy()
    return _replace(df, step, values / step.sds)


def _apply_range(step: RangeStep, df: pd.DataFrame) -> pd.DataFrame:
    low, high = step.bounds
    values = select_columns(df, step.columns).to_numpy()
    scaled = (values - step.mins) / step.spans * (high - low) + low
    return _replace(df, step, scaled)


def _apply_projection(step: ProjectionStep, df: pd.DataFrame) -> pd.DataFrame:
    values = select_columns(df, step.columns).to_numpy()
    scores = (values - step.mean) @ step.rotation.T
    kept = df.drop(columns=list(step.columns))
    projected = pd.DataFrame(scores, index=df.index, columns=list(step.component_names))
    return pd.concat([kept, projected], axis=1)


def _apply_spatial_sign(step: SpatialSignStep, df: pd.DataFrame) -> pd.DataFrame:
    values = select_columns(df, step.columns).to_numpy()
    norms = np.sqrt(np.sum(values ** 2, axis=1))
    # All-zero rows stay zero; rows with missing values become missing
    divisor = np.where(norms > 0, norms, np.where(np.isnan(norms), np.nan, 1.0))
    return _replace(df, step, values / divisor[:, None])


APPLIERS: Dict[Type[Step], Callable[[Step, pd.DataFrame], pd.DataFrame]] = {
    FilterStep: _apply_filter,
    MedianImputeStep: _apply_median_impute,
    KnnImputeStep: _apply_knn_impute,
    BagImputeStep: _apply_bag_impute,
    PowerStep: _apply_power,
    CenterStep: _apply_center,
    ScaleStep: _apply_scale,
    RangeStep: _apply_range,
    ProjectionStep: _apply_projection,
    SpatialSignStep: _apply_spatial_sign,
}


def apply_step(step: Step, df: pd.DataFrame) -> pd.DataFrame:
    """Replay a single fitted step."""
    return APPLIERS[type(step)](step, df)


def apply(fitted: FittedPreprocessor, matrix: MatrixLike) -> pd.DataFrame:
    """
    Transform a matrix with a fitted preprocessor.

    Args:
        fitted: Result of fit()
        matrix: Matrix containing (at least) fitted.input_columns; extra
            columns are ignored

    Returns:
        DataFrame with exactly fitted.output_columns, rows in input order

    Raises:
        SchemaMismatch: If a required input column is absent
    """
    df = select_columns(as_frame(matrix), fitted.input_columns)

    for step in fitted.steps:
        df = apply_step(step, df)

    return df.loc[:, list(fitted.output_columns)]
