"""
Matrix Handling

Coercion and validation of the numeric matrices and label vectors consumed
by the analysis, preprocessing and class-distance layers.

A matrix is a pandas DataFrame with unique column names. Numpy arrays are
accepted and named X1..Xp. Missing values are NaN; infinite values are
rejected.
"""

from typing import List, Sequence, Union
import numpy as np
import pandas as pd

from .errors import SchemaMismatch, DimensionMismatch


MatrixLike = Union[np.ndarray, pd.DataFrame]


def default_column_names(n_columns: int) -> List[str]:
    """Names given to unnamed columns (X1, X2, ...)."""
    return [f"X{i + 1}" for i in range(n_columns)]


def as_frame(matrix: MatrixLike, copy: bool = True) -> pd.DataFrame:
    """
    Coerce input to a float DataFrame.

    Args:
        matrix: DataFrame or 2-D array
        copy: Return a copy even if the input is already a float DataFrame

    Returns:
        DataFrame with float64 columns and string column names

    Raises:
        ValueError: If the input is not 2-D, columns are duplicated,
            non-numeric, or contain infinite values
    """
    if isinstance(matrix, pd.DataFrame):
        df = matrix.copy() if copy else matrix
        df.columns = [str(c) for c in df.columns]
    else:
        array = np.asarray(matrix)
        if array.ndim == 1:
            array = array.reshape(-1, 1)
        if array.ndim != 2:
            raise ValueError(f"Matrix must be 2-D, got {array.ndim} dimensions")
        df = pd.DataFrame(array, columns=default_column_names(array.shape[1]))

    if df.columns.duplicated().any():
        duplicated = df.columns[df.columns.duplicated()].tolist()
        raise ValueError(f"Column names must be unique, duplicated: {duplicated}")

    non_numeric = [c for c in df.columns if not pd.api.types.is_numeric_dtype(df[c])]
    if non_numeric:
        raise ValueError(f"Non-numeric columns: {non_numeric}")

    df = df.astype(np.float64)

    values = df.to_numpy()
    if np.isinf(values).any():
        bad = df.columns[np.isinf(values).any(axis=0)].tolist()
        raise ValueError(f"Infinite values found in columns: {bad}")

    return df


def select_columns(df: pd.DataFrame, required: Sequence[str]) -> pd.DataFrame:
    """
    Restrict a matrix to the required columns, in the required order.

    Extra columns are ignored.

    Raises:
        SchemaMismatch: If any required column is absent
    """
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise SchemaMismatch(missing)
    return df.loc[:, list(required)]


def as_labels(labels: Union[Sequence, np.ndarray, pd.Series], n_rows: int) -> np.ndarray:
    """
    Coerce a class-label vector aligned to matrix rows.

    Raises:
        DimensionMismatch: If the label count differs from n_rows
        ValueError: If labels contain missing values
    """
    if isinstance(labels, pd.Series):
        y = labels.to_numpy()
    else:
        y = np.asarray(labels)
    if y.ndim != 1:
        y = y.ravel()
    if len(y) != n_rows:
        raise DimensionMismatch(n_rows, len(y))
    if pd.isna(y).any():
        raise ValueError("Labels contain missing values")
    return y


def complete_rows(values: np.ndarray) -> np.ndarray:
    """Boolean mask of rows without missing values."""
    return ~np.isnan(values).any(axis=1)


def freeze(array: np.ndarray) -> np.ndarray:
    """Return a read-only float copy of an array."""
    frozen = np.array(array, dtype=np.float64, copy=True)
    frozen.setflags(write=False)
    return frozen
