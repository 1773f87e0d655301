"""
Power Transformations

Per-column skewness-reducing transforms and their maximum-likelihood
lambda estimation:

- BoxCox: strictly positive data, lambda from a bounded grid
- YeoJohnson: signed data, lambda from the same grid
- expoTrans: Manly (1976) exponential transform, bounded Brent search

Lambdas within 'fudge' of 0 or 1 are snapped to those values. A column is
left untransformed when it has fewer than 'num_unique' distinct values,
when BoxCox meets non-positive values, or when the estimate lands on the
identity transform.
"""

from typing import Optional, Tuple
import numpy as np
from scipy import stats
from scipy.optimize import minimize_scalar

from .options import PreprocessOptions


POWER_METHODS = ('BoxCox', 'YeoJohnson', 'expoTrans')

# Objective value for lambdas that overflow the exponential transform
LARGE_PENALTY = 1e300


def box_cox(x: np.ndarray, lam: float) -> np.ndarray:
    """Box-Cox transform; non-positive inputs map to NaN."""
    x = np.asarray(x, dtype=float)
    out = np.full_like(x, np.nan)
    valid = x > 0
    if lam == 0:
        out[valid] = np.log(x[valid])
    else:
        out[valid] = (np.power(x[valid], lam) - 1) / lam
    return out


def yeo_johnson(x: np.ndarray, lam: float) -> np.ndarray:
    """Yeo-Johnson transform (defined for all real inputs)."""
    x = np.asarray(x, dtype=float)
    out = np.full_like(x, np.nan)
    pos = x >= 0
    neg = x < 0

    if abs(lam) < np.spacing(1.0):
        out[pos] = np.log1p(x[pos])
    else:
        out[pos] = (np.power(x[pos] + 1, lam) - 1) / lam

    if abs(lam - 2) < np.spacing(1.0):
        out[neg] = -np.log1p(-x[neg])
    else:
        out[neg] = -(np.power(-x[neg] + 1, 2 - lam) - 1) / (2 - lam)
    return out


def exp_trans(x: np.ndarray, lam: float) -> np.ndarray:
    """Manly exponential transform."""
    x = np.asarray(x, dtype=float)
    if lam == 0:
        return x.copy()
    with np.errstate(over='ignore'):
        return np.expm1(lam * x) / lam


TRANSFORMS = {
    'BoxCox': box_cox,
    'YeoJohnson': yeo_johnson,
    'expoTrans': exp_trans,
}


def _exp_trans_nllf(lam: float, x: np.ndarray) -> float:
    """Negative profile log-likelihood of the exponential transform."""
    y = exp_trans(x, lam)
    if not np.all(np.isfinite(y)):
        return LARGE_PENALTY
    variance = np.var(y)
    if not variance > 0:
        return LARGE_PENALTY
    return 0.5 * len(x) * np.log(variance) - lam * np.sum(x)


def _grid(options: PreprocessOptions) -> np.ndarray:
    low, high = options.lambda_bounds
    n_steps = int(round((high - low) / options.lambda_step))
    return np.round(np.linspace(low, high, n_steps + 1), 10)


def estimate_lambda(
    values: np.ndarray,
    method: str,
    options: PreprocessOptions
) -> Tuple[Optional[float], Optional[str]]:
    """
    Estimate the transform parameter of one column.

    Args:
        values: Column values (NaN ignored)
        method: 'BoxCox', 'YeoJohnson' or 'expoTrans'
        options: Estimation options

    Returns:
        (lambda, None) when the column is transformed, or
        (None, kind) with kind 'NonPositiveData' or 'notransform'
    """
    x = values[~np.isnan(values)]

    if len(np.unique(x)) < options.num_unique:
        return None, 'notransform'

    if method == 'BoxCox':
        if x.min() <= 0:
            return None, 'NonPositiveData'
        grid = _grid(options)
        llf = np.array([stats.boxcox_llf(lam, x) for lam in grid])
        lam = float(grid[int(np.nanargmax(llf))])

    elif method == 'YeoJohnson':
        grid = _grid(options)
        llf = np.array([stats.yeojohnson_llf(lam, x) for lam in grid])
        lam = float(grid[int(np.nanargmax(llf))])

    elif method == 'expoTrans':
        result = minimize_scalar(
            _exp_trans_nllf,
            args=(x,),
            bounds=options.expo_bounds,
            method='bounded'
        )
        lam = float(result.x)
        return (lam, None) if lam != 0 else (None, 'notransform')

    else:
        raise ValueError(f"Unknown power transform: {method}")

    if abs(lam) < options.fudge:
        lam = 0.0
    elif abs(lam - 1) < options.fudge:
        lam = 1.0

    # YeoJohnson with lambda 1 is the identity
    if method == 'YeoJohnson' and lam == 1.0:
        return None, 'notransform'
    return lam, None
