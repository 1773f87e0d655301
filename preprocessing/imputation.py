"""
Missing Value Imputation

Estimation of the three imputation steps:

- knnImpute: mean of the k nearest training rows, distance measured on
  standardised values over the jointly non-missing columns
- bagImpute: one bagged regression-tree model per column, trained on
  complete training rows against all other columns
- medianImpute: training medians

All models are estimated from the training matrix only; the applicator
replays them against any matrix.
"""

from typing import List, Optional, Tuple
import warnings
import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.impute import KNNImputer
from sklearn.ensemble import BaggingRegressor
from sklearn.tree import DecisionTreeRegressor

from data.errors import Diagnostic
from data.matrix import freeze
from .options import PreprocessOptions
from .steps import KnnImputeStep, BagImputeStep, BagModel, MedianImputeStep


# Fewest complete training rows needed to fit a bagged model
MIN_BAG_ROWS = 2


def standardisation(values: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """NaN-aware column means and sample standard deviations (zero sd -> 1)."""
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        center = np.nanmean(values, axis=0)
        scale = np.nanstd(values, axis=0, ddof=1)
    center = np.nan_to_num(center, nan=0.0)
    scale = np.where(np.isfinite(scale) & (scale > 0), scale, 1.0)
    return center, scale


def fit_knn_impute(df: pd.DataFrame, options: PreprocessOptions) -> Tuple[KnnImputeStep, List[Diagnostic]]:
    """Fit nearest-neighbour imputation on standardised training rows."""
    values = df.to_numpy()
    center, scale = standardisation(values)

    imputer = KNNImputer(n_neighbors=options.k, weights='uniform', keep_empty_features=True)
    imputer.fit((values - center) / scale)

    step = KnnImputeStep(
        method='knnImpute',
        columns=tuple(df.columns),
        center=freeze(center),
        scale=freeze(scale),
        imputer=imputer
    )
    return step, []


def _fit_bag_model(
    complete: pd.DataFrame,
    column: str,
    options: PreprocessOptions
) -> Optional[BagModel]:
    predictors = tuple(c for c in complete.columns if c != column)
    if not predictors or len(complete) < MIN_BAG_ROWS:
        return None

    model = BaggingRegressor(
        estimator=DecisionTreeRegressor(),
        n_estimators=options.bag_trees,
        random_state=options.random_state
    )
    model.fit(complete.loc[:, list(predictors)].to_numpy(), complete[column].to_numpy())
    return BagModel(column=column, predictors=predictors, model=model)


def fit_bag_impute(df: pd.DataFrame, options: PreprocessOptions) -> Tuple[BagImputeStep, List[Diagnostic]]:
    """
    Fit one bagged-tree model per column.

    Models are fitted for every column, so gaps in any column of a later
    matrix can be imputed. Columns without enough complete training rows
    (or without any other column to learn from) pass through.
    """
    complete = df.dropna(axis=0, how='any')

    fitted = Parallel(n_jobs=options.n_jobs)(
        delayed(_fit_bag_model)(complete, column, options) for column in df.columns
    )

    diagnostics = [
        Diagnostic(
            step='bagImpute',
            column=column,
            kind='no_model',
            message=f"no imputation model ({len(complete)} complete training rows)"
        )
        for column, bag in zip(df.columns, fitted) if bag is None
    ]

    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        medians = np.nanmedian(df.to_numpy(), axis=0)

    step = BagImputeStep(
        method='bagImpute',
        columns=tuple(df.columns),
        medians=freeze(np.nan_to_num(medians, nan=0.0)),
        models=tuple(bag for bag in fitted if bag is not None)
    )
    return step, diagnostics


def fit_median_impute(df: pd.DataFrame, options: PreprocessOptions) -> Tuple[MedianImputeStep, List[Diagnostic]]:
    """Store training medians; all-missing columns pass through."""
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        medians = np.nanmedian(df.to_numpy(), axis=0)

    diagnostics = [
        Diagnostic('medianImpute', column, 'no_model', "column has no observed values")
        for column, median in zip(df.columns, medians) if np.isnan(median)
    ]
    step = MedianImputeStep(method='medianImpute', columns=tuple(df.columns), medians=freeze(medians))
    return step, diagnostics
