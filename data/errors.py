"""
Error Kinds

Exceptions raised by the preprocessing toolkit and the diagnostic record
used for recoverable, per-column problems.

All errors derive from ValueError so callers that already guard numeric
code with ``except ValueError`` keep working.
"""

from typing import List, Optional, Sequence, Dict, Any, Tuple
from dataclasses import dataclass


class PreprocessingError(ValueError):
    """Base class for all toolkit errors."""


class SchemaMismatch(PreprocessingError):
    """A matrix does not carry the columns a fitted model was built on."""

    def __init__(self, columns: Sequence[str], message: Optional[str] = None):
        self.columns = list(columns)
        super().__init__(message or f"Missing required columns: {self.columns}")


class InvalidOperation(PreprocessingError):
    """An operation name is not recognised."""

    def __init__(self, name: str, valid: Optional[Sequence[str]] = None):
        self.name = name
        hint = f" Valid operations: {list(valid)}" if valid else ""
        super().__init__(f"Unknown operation: '{name}'.{hint}")


class NonPositiveData(PreprocessingError):
    """
    BoxCox requested on a column with non-positive values.

    Never raised by fit: the column passes through and a Diagnostic of this
    kind is recorded instead.
    """

    def __init__(self, column: str):
        self.column = column
        super().__init__(f"Column '{column}' has non-positive values; BoxCox not applied")


class SingularCovariance(PreprocessingError):
    """
    One or more classes have a singular covariance matrix.

    Attributes:
        classes: Labels of the offending classes
        status: Status of every class ('ok' or 'singular')
        model: The partially usable model (singular classes score NaN)
    """

    def __init__(self, classes: Sequence[Any], status: Dict[Any, str], model: Any = None):
        self.classes = list(classes)
        self.status = dict(status)
        self.model = model
        super().__init__(
            f"Singular covariance for classes {self.classes}. "
            f"Enable within-class PCA or collect more samples."
        )


class InsufficientRank(PreprocessingError):
    """Rank analysis was given a matrix with zero rows or zero columns."""

    def __init__(self, shape: Tuple[int, int]):
        self.shape = tuple(shape)
        super().__init__(f"Cannot analyse a degenerate matrix of shape {self.shape}")


class DimensionMismatch(PreprocessingError):
    """Label vector length does not match the number of matrix rows."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Expected {expected} labels (one per row), got {actual}")


@dataclass(frozen=True)
class Diagnostic:
    """
    Record of a recoverable problem found during estimation.

    Attributes:
        step: Operation that produced the diagnostic
        column: Affected column (None for step-wide notes)
        kind: 'NonPositiveData', 'notransform', 'zero_scale', 'no_model', 'removed'
        message: Human readable description
    """
    step: str
    column: Optional[str]
    kind: str
    message: str


def format_diagnostics(diagnostics: List[Diagnostic]) -> str:
    """One line per diagnostic, for reports and warnings."""
    return "\n".join(
        f"[{d.step}] {d.column if d.column is not None else '-'}: {d.kind} - {d.message}"
        for d in diagnostics
    )
