"""
Pipeline Configuration

YAML-backed configuration for the command line driver.

Layout:

    data:
      train_file: train.csv
      apply_files: [test.csv]
      output_dir: results
      label_column: Class
    preprocessing:
      operations: [nzv, corr, center, scale, pca]
      options:
        corr_cutoff: 0.9
    class_distance:
      enabled: true
      pca: true
"""

from dataclasses import dataclass, field, asdict
from typing import List, Dict, Optional, Any
from pathlib import Path
import yaml

from preprocessing.options import PreprocessOptions
from preprocessing.estimator import resolve_operations
from models.class_distance import ClassDistanceOptions


@dataclass
class PipelineConfig:
    """Configuration for a fit-then-apply run."""

    # Data
    train_file: str
    apply_files: List[str] = field(default_factory=list)
    output_dir: str = "results"
    label_column: Optional[str] = None

    # Preprocessing
    operations: List[str] = field(default_factory=lambda: ['center', 'scale'])
    options: PreprocessOptions = field(default_factory=PreprocessOptions)

    # Class distance
    class_distance: bool = False
    class_distance_options: ClassDistanceOptions = field(default_factory=ClassDistanceOptions)

    def __post_init__(self):
        self.validate()

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'PipelineConfig':
        """Build from a nested configuration dictionary."""
        data_cfg = config.get('data', {}) or {}
        if 'train_file' not in data_cfg:
            raise ValueError("Configuration needs data.train_file")

        prep_cfg = config.get('preprocessing', {}) or {}
        dist_cfg = config.get('class_distance', {}) or {}

        return cls(
            train_file=str(data_cfg['train_file']),
            apply_files=[str(p) for p in data_cfg.get('apply_files', []) or []],
            output_dir=str(data_cfg.get('output_dir', 'results')),
            label_column=data_cfg.get('label_column'),
            operations=list(prep_cfg.get('operations', ['center', 'scale'])),
            options=PreprocessOptions.from_config(config),
            class_distance=bool(dist_cfg.get('enabled', False)),
            class_distance_options=ClassDistanceOptions.from_config(config),
        )

    @classmethod
    def from_yaml(cls, filepath: str) -> 'PipelineConfig':
        """Load configuration from YAML file."""
        with open(filepath, 'r') as f:
            return cls.from_dict(yaml.safe_load(f) or {})

    def to_dict(self) -> Dict[str, Any]:
        options = asdict(self.options)
        for key in ('range_bounds', 'lambda_bounds', 'expo_bounds'):
            options[key] = list(options[key])

        return {
            'data': {
                'train_file': self.train_file,
                'apply_files': list(self.apply_files),
                'output_dir': self.output_dir,
                'label_column': self.label_column,
            },
            'preprocessing': {
                'operations': list(self.operations),
                'options': options,
            },
            'class_distance': {
                'enabled': self.class_distance,
                **asdict(self.class_distance_options),
            },
        }

    def to_yaml(self, filepath: str) -> None:
        """Save configuration to YAML file."""
        path = Path(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            yaml.safe_dump(self.to_dict(), f, sort_keys=False)

    def validate(self) -> None:
        """Validate configuration parameters."""
        resolve_operations(self.operations, self.options.impute_method)
        if self.class_distance and not self.label_column:
            raise ValueError("class_distance requires data.label_column")
