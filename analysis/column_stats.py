"""
Column Statistics

Near-zero-variance detection from per-column frequency metrics.

A column is near-zero-variance when its value distribution is both highly
unbalanced (frequency ratio above the cutoff) and low-granularity (percent
of unique values below the cutoff). Both legs are required, so uniformly
distributed low-granularity columns (e.g. a balanced 0/1 flag) are kept.
Columns holding a single distinct value are always flagged.
"""

from typing import List, Union
import numpy as np
import pandas as pd

from data.matrix import MatrixLike, as_frame


DEFAULT_FREQ_CUT = 95 / 5
DEFAULT_UNIQUE_CUT = 10.0


def column_metrics(values: np.ndarray, n_rows: int) -> dict:
    """
    Frequency metrics of a single column.

    Args:
        values: Column values (NaN entries are ignored)
        n_rows: Total number of rows (denominator of percent_unique)

    Returns:
        Dict with 'freq_ratio', 'percent_unique', 'n_unique', 'zero_var'
    """
    present = values[~np.isnan(values)]
    counts = pd.Series(present).value_counts(sort=True)
    n_unique = len(counts)

    if n_unique >= 2:
        freq_ratio = counts.iloc[0] / counts.iloc[1]
    else:
        freq_ratio = np.inf

    return {
        'freq_ratio': float(freq_ratio),
        'percent_unique': 100.0 * n_unique / n_rows,
        'n_unique': n_unique,
        'zero_var': n_unique <= 1,
    }


def detect_nzv(
    matrix: MatrixLike,
    freq_cut: float = DEFAULT_FREQ_CUT,
    unique_cut: float = DEFAULT_UNIQUE_CUT,
    save_metrics: bool = False,
    names: bool = False
) -> Union[List[int], List[str], pd.DataFrame]:
    """
    Identify near-zero-variance columns.

    Args:
        matrix: Numeric matrix (rows = samples)
        freq_cut: Cutoff for the ratio of the most common value count to
            the second most common value count
        unique_cut: Cutoff for the percentage of distinct values out of
            the number of rows
        save_metrics: Return the full per-column metrics table instead of
            the flagged positions
        names: Return column names instead of positions

    Returns:
        Ascending list of flagged positions (or names), or a DataFrame
        indexed by column name with columns 'freq_ratio', 'percent_unique',
        'zero_var', 'nzv' when save_metrics is True
    """
    df = as_frame(matrix)
    n_rows = len(df)
    if n_rows == 0:
        raise ValueError("Cannot compute column statistics on a matrix with no rows")

    records = []
    for name in df.columns:
        metrics = column_metrics(df[name].to_numpy(), n_rows)
        nzv = (
            metrics['freq_ratio'] > freq_cut and metrics['percent_unique'] < unique_cut
        ) or metrics['zero_var']
        records.append({
            'column': name,
            'freq_ratio': metrics['freq_ratio'],
            'percent_unique': metrics['percent_unique'],
            'zero_var': bool(metrics['zero_var']),
            'nzv': bool(nzv),
        })

    metrics_df = pd.DataFrame(records).set_index('column')
    metrics_df.index.name = None

    if save_metrics:
        return metrics_df

    flagged = np.flatnonzero(metrics_df['nzv'].to_numpy())
    if names:
        return [df.columns[i] for i in flagged]
    return flagged.tolist()


def zero_variance_columns(matrix: MatrixLike) -> List[str]:
    """Names of columns with at most one distinct non-missing value."""
    df = as_frame(matrix)
    return [name for name in df.columns if df[name].nunique(dropna=True) <= 1]
