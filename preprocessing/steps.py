"""
Pipeline Steps

Immutable, tagged operation variants produced by estimation and replayed
by the applicator, and the FittedPreprocessor bundle that holds them.

Every numeric payload is a read-only array aligned with the step's
'columns' tuple. Steps never hold a reference to the training matrix
beyond what the operation needs to replay (e.g. the knn donor rows).
"""

from typing import Tuple, Optional, Dict, List, Any
from dataclasses import dataclass
from pathlib import Path
import numpy as np
import pandas as pd
import joblib

from data.errors import Diagnostic
from .options import PreprocessOptions


@dataclass(frozen=True, eq=False)
class Step:
    """
    Base class for a fitted operation.

    Attributes:
        method: Operation name (e.g. 'center', 'BoxCox')
        columns: Columns the step reads
    """
    method: str
    columns: Tuple[str, ...]

    def output_columns(self, incoming: Tuple[str, ...]) -> Tuple[str, ...]:
        """Column order after the step, given the incoming order."""
        return incoming


@dataclass(frozen=True, eq=False)
class FilterStep(Step):
    """Column removal (zv, nzv, corr). 'columns' are the removed columns."""

    def output_columns(self, incoming):
        removed = set(self.columns)
        return tuple(c for c in incoming if c not in removed)


@dataclass(frozen=True, eq=False)
class MedianImputeStep(Step):
    medians: np.ndarray


@dataclass(frozen=True, eq=False)
class KnnImputeStep(Step):
    """
    Nearest-neighbour imputation.

    Distances are computed in the space standardised by 'center' and
    'scale'; 'imputer' is a fitted sklearn KNNImputer holding the
    standardised training rows as donors.
    """
    center: np.ndarray
    scale: np.ndarray
    imputer: Any


@dataclass(frozen=True)
class BagModel:
    """Bagged regression model predicting one column from the others."""
    column: str
    predictors: Tuple[str, ...]
    model: Any


@dataclass(frozen=True, eq=False)
class BagImputeStep(Step):
    """
    Bagged-tree imputation.

    'medians' fill predictor gaps before prediction. Columns without a
    model pass through.
    """
    medians: np.ndarray
    models: Tuple[BagModel, ...]

    def model_for(self, column: str) -> Optional[BagModel]:
        for bag in self.models:
            if bag.column == column:
                return bag
        return None


@dataclass(frozen=True, eq=False)
class PowerStep(Step):
    """BoxCox / YeoJohnson / expoTrans with one lambda per transformed column."""
    lambdas: np.ndarray


@dataclass(frozen=True, eq=False)
class CenterStep(Step):
    means: np.ndarray


@dataclass(frozen=True, eq=False)
class ScaleStep(Step):
    sds: np.ndarray


@dataclass(frozen=True, eq=False)
class RangeStep(Step):
    mins: np.ndarray
    spans: np.ndarray
    bounds: Tuple[float, float]


@dataclass(frozen=True, eq=False)
class ProjectionStep(Step):
    """
    Linear projection (pca, ica): (X - mean) @ rotation.T

    Attributes:
        mean: Training mean of the projected columns
        rotation: (n_components, n_columns) projection matrix
        component_names: Output column names (PC1.. or ICA1..)
        explained_variance: Variance ratio per component (pca only)
    """
    mean: np.ndarray
    rotation: np.ndarray
    component_names: Tuple[str, ...]
    explained_variance: Optional[np.ndarray] = None

    def output_columns(self, incoming):
        projected = set(self.columns)
        kept = tuple(c for c in incoming if c not in projected)
        return kept + self.component_names


@dataclass(frozen=True, eq=False)
class SpatialSignStep(Step):
    pass


@dataclass(frozen=True, eq=False)
class FittedPreprocessor:
    """
    Immutable result of estimation.

    Attributes:
        operations: Resolved operation names, in execution order
        steps: Fitted steps, in execution order
        training_columns: Columns of the training matrix
        input_columns: Columns required at apply time (training columns
            surviving the filters)
        output_columns: Columns produced by apply, in order
        removed: (column, operation) pairs for every filtered column
        diagnostics: Recoverable problems found during estimation
        options: Options used for estimation
        n_samples: Number of training rows
    """
    operations: Tuple[str, ...]
    steps: Tuple[Step, ...]
    training_columns: Tuple[str, ...]
    input_columns: Tuple[str, ...]
    output_columns: Tuple[str, ...]
    removed: Tuple[Tuple[str, str], ...]
    diagnostics: Tuple[Diagnostic, ...]
    options: PreprocessOptions
    n_samples: int

    @property
    def removed_columns(self) -> Dict[str, str]:
        """Mapping of filtered column -> operation that removed it."""
        return dict(self.removed)

    def step(self, method: str) -> Optional[Step]:
        """Fitted step for an operation name, or None if not in the pipeline."""
        for step in self.steps:
            if step.method == method:
                return step
        return None

    def diagnostics_for(self, kind: str) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.kind == kind]

    def describe(self) -> pd.DataFrame:
        """
        Summary table: one row per step with the number of columns it
        touched and the columns left after it.
        """
        rows = []
        incoming = self.training_columns
        for step in self.steps:
            outgoing = step.output_columns(incoming)
            rows.append({
                'operation': step.method,
                'n_columns': len(step.columns),
                'columns': ', '.join(step.columns),
                'n_output': len(outgoing),
            })
            incoming = outgoing
        return pd.DataFrame(rows, columns=['operation', 'n_columns', 'columns', 'n_output'])

    def save(self, filepath: str) -> None:
        """Persist the bundle with joblib."""
        path = Path(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(self, path)


def load_preprocessor(filepath: str) -> FittedPreprocessor:
    """Load a bundle saved with FittedPreprocessor.save()."""
    fitted = joblib.load(filepath)
    if not isinstance(fitted, FittedPreprocessor):
        raise TypeError(f"{filepath} does not contain a FittedPreprocessor")
    return fitted
