"""
Correlation Matrix & Pruning

Pairwise Pearson correlation and greedy removal of redundant columns.

Pruning repeatedly takes the most correlated remaining pair above the
cutoff and drops the member with the higher mean absolute correlation
against the other remaining columns, recomputing those means after every
removal. Removing every member of every over-threshold pair in one pass
drops more columns than necessary.
"""

from typing import List, Union
import warnings
import numpy as np
import pandas as pd

from data.matrix import MatrixLike, as_frame


def correlation_matrix(matrix: MatrixLike, use: str = 'pairwise') -> pd.DataFrame:
    """
    Compute the Pearson correlation matrix of a matrix's columns.

    Args:
        matrix: Numeric matrix
        use: 'pairwise' (each pair uses rows complete for that pair) or
            'complete' (only rows without any missing value)

    Returns:
        Symmetric DataFrame indexed and labelled by column name. The
        diagonal is 1; entries involving constant columns are NaN.
    """
    df = as_frame(matrix)

    if use == 'complete':
        df = df.dropna(axis=0, how='any')
    elif use != 'pairwise':
        raise ValueError(f"Unknown missing value handling: {use}")

    corr = df.corr(method='pearson')
    values = corr.to_numpy(copy=True)
    np.fill_diagonal(values, 1.0)
    return pd.DataFrame(values, index=corr.index, columns=corr.columns)


def _as_square(corr: Union[np.ndarray, pd.DataFrame]) -> np.ndarray:
    """Validate a correlation matrix and return its absolute values."""
    values = corr.to_numpy(dtype=float) if isinstance(corr, pd.DataFrame) else np.asarray(corr, dtype=float)

    if values.ndim != 2 or values.shape[0] != values.shape[1]:
        raise ValueError(f"Correlation matrix must be square, got shape {values.shape}")

    finite = ~np.isnan(values)
    if not np.allclose(values[finite], values.T[finite], atol=1e-8):
        raise ValueError("Correlation matrix must be symmetric")

    return np.abs(values)


def find_correlated(
    corr: Union[np.ndarray, pd.DataFrame],
    cutoff: float = 0.9,
    names: bool = False
) -> Union[List[int], List[str]]:
    """
    Determine which columns to remove to bring pairwise correlations to or
    below a cutoff.

    Args:
        corr: Square correlation matrix (DataFrame or array)
        cutoff: Absolute correlation cutoff
        names: Return column names instead of positions (requires a
            DataFrame input)

    Returns:
        Columns to remove, in the order they were selected. Removing any
        prefix of the list gives a valid intermediate state.
    """
    abs_corr = _as_square(corr)
    n = abs_corr.shape[0]

    # NaN entries never exceed the cutoff and are excluded from the means
    np.fill_diagonal(abs_corr, np.nan)
    active = np.ones(n, dtype=bool)
    removed: List[int] = []

    while active.sum() > 1:
        idx = np.flatnonzero(active)
        sub = abs_corr[np.ix_(idx, idx)]
        candidates = np.where(np.isnan(sub), -np.inf, sub)

        flat = int(np.argmax(candidates))
        i, j = divmod(flat, len(idx))
        if not candidates[i, j] > cutoff:
            break

        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            mean_abs = np.nanmean(sub, axis=1)
        mean_abs = np.nan_to_num(mean_abs, nan=0.0)

        a, b = sorted((idx[i], idx[j]))
        mean_a = mean_abs[np.searchsorted(idx, a)]
        mean_b = mean_abs[np.searchsorted(idx, b)]
        drop = a if mean_a > mean_b else b

        active[drop] = False
        removed.append(int(drop))

    if names:
        if not isinstance(corr, pd.DataFrame):
            raise ValueError("Column names require a DataFrame correlation matrix")
        return [str(corr.columns[i]) for i in removed]
    return removed
