"""
Linear Dependency Detection

Find columns that are exact linear combinations of other columns using a
QR decomposition, and the minimal set of columns to remove so that the
remaining matrix has full column rank.

Columns are scanned left to right. Each candidate column is decomposed
together with the independent columns found so far; the last diagonal
element of R is the norm of the candidate's residual after projection onto
those columns. A residual below the rank tolerance marks the candidate as
dependent, and the triangular solve gives the coefficients that rebuild it.
The dependency group is the candidate plus the independent columns with a
non-negligible coefficient, and it is resolved by removing the candidate
(always the highest index in its group).

Example (two-way layout, column 1 = 2 + 3 = 4 + 5 + 6):
    groups = [(0, 1, 2), (0, 3, 4, 5)], remove = [2, 5]
"""

from typing import List, Optional, Sequence, Tuple
from dataclasses import dataclass
import warnings
import numpy as np
from scipy import linalg

from data.matrix import MatrixLike, as_frame, complete_rows
from data.errors import InsufficientRank


# Relative contribution below which a coefficient is treated as zero
COEFFICIENT_TOLERANCE = 1e-6


@dataclass(frozen=True)
class LinearComboReport:
    """
    Result of linear dependency detection.

    Attributes:
        groups: One tuple of column positions per dependency, ascending;
            the last position is the dependent column
        remove: Column positions to remove, one per group
        columns: Names of the analysed columns
    """
    groups: Tuple[Tuple[int, ...], ...]
    remove: Tuple[int, ...]
    columns: Tuple[str, ...]

    @property
    def is_full_rank(self) -> bool:
        return len(self.remove) == 0

    def group_names(self) -> List[List[str]]:
        """Dependency groups expressed as column names."""
        return [[self.columns[i] for i in group] for group in self.groups]

    def remove_names(self) -> List[str]:
        """Columns to remove, as names."""
        return [self.columns[i] for i in self.remove]


def rank_tolerance(values: np.ndarray, tolerance: Optional[float] = None) -> float:
    """
    Absolute residual tolerance, scaled by the matrix magnitude.

    Default: max(n, p) * machine epsilon * spectral norm, the same rule
    numpy uses for matrix_rank. A caller supplied tolerance is relative to
    the spectral norm.
    """
    norm = float(np.linalg.norm(values, 2)) if values.size else 0.0
    if tolerance is None:
        tolerance = max(values.shape) * np.finfo(np.float64).eps
    return tolerance * norm


def _dependency_group(
    values: np.ndarray,
    independent: Sequence[int],
    candidate: int,
    tol: float
) -> Optional[Tuple[int, ...]]:
    """
    Test one candidate column against the current independent set.

    Returns:
        The dependency group if the candidate is dependent, else None
    """
    column = values[:, candidate]
    k = len(independent)

    if k == 0:
        return (candidate,) if np.linalg.norm(column) <= tol else None

    _, r = linalg.qr(values[:, list(independent) + [candidate]], mode='economic')

    # With k >= n rows the independent columns already span the space
    residual = abs(r[k, k]) if k < values.shape[0] else 0.0
    if residual > tol:
        return None

    coefficients = linalg.solve_triangular(r[:k, :k], r[:k, k])
    contribution = np.abs(coefficients) * np.linalg.norm(values[:, list(independent)], axis=0)
    scale = max(np.linalg.norm(column), np.finfo(np.float64).tiny)
    used = [independent[i] for i in np.flatnonzero(contribution > COEFFICIENT_TOLERANCE * scale)]

    return tuple(sorted(used + [candidate]))


def find_linear_combos(
    matrix: MatrixLike,
    tolerance: Optional[float] = None,
    max_columns: int = 2000
) -> LinearComboReport:
    """
    Enumerate linear dependencies among columns and the columns to remove.

    Args:
        matrix: Numeric matrix; rows with missing values are dropped
        tolerance: Rank tolerance relative to the spectral norm (default
            max(n, p) * machine epsilon)
        max_columns: Refuse to decompose wider matrices

    Returns:
        LinearComboReport (empty for a full-rank matrix)

    Raises:
        InsufficientRank: If the matrix has no rows or no columns
        ValueError: If the matrix has more than max_columns columns
    """
    df = as_frame(matrix)
    n_rows, n_cols = df.shape
    if n_rows == 0 or n_cols == 0:
        raise InsufficientRank((n_rows, n_cols))
    if n_cols > max_columns:
        raise ValueError(
            f"Matrix has {n_cols} columns, more than max_columns={max_columns}"
        )

    values = df.to_numpy()
    mask = complete_rows(values)
    if not mask.all():
        warnings.warn(f"{int((~mask).sum())} rows with missing values excluded from rank analysis")
        values = values[mask]
        if len(values) == 0:
            raise InsufficientRank((0, n_cols))

    tol = rank_tolerance(values, tolerance)

    independent: List[int] = []
    groups: List[Tuple[int, ...]] = []
    for j in range(n_cols):
        group = _dependency_group(values, independent, j, tol)
        if group is None:
            independent.append(j)
        else:
            groups.append(group)

    return LinearComboReport(
        groups=tuple(groups),
        remove=tuple(group[-1] for group in groups),
        columns=tuple(df.columns)
    )
