import argparse
import traceback
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from tqdm import tqdm

from data.errors import format_diagnostics
from analysis.column_stats import detect_nzv
from preprocessing.estimator import fit
from preprocessing.applicator import apply
from models.class_distance import fit_class_distance, score
from pipeline.config import PipelineConfig


def load_config(config_name: str = "config.yaml") -> PipelineConfig:
    paths = [Path(config_name), Path(__file__).resolve().parent.parent / config_name]
    for p in paths:
        if p.exists():
            print(f"    Found config at: {p.absolute()}")
            return PipelineConfig.from_yaml(str(p))
    raise FileNotFoundError(f"Config not found: {config_name}")


def read_table(filepath: str) -> pd.DataFrame:
    """Read a CSV or Excel table."""
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {filepath}")
    if path.suffix.lower() == '.csv':
        return pd.read_csv(path)
    if path.suffix.lower() in ('.xlsx', '.xls'):
        return pd.read_excel(path, engine='openpyxl')
    raise ValueError(f"Unsupported file format: {path.suffix}")


def split_labels(df: pd.DataFrame, label_column: Optional[str]) -> Tuple[pd.DataFrame, Optional[pd.Series]]:
    """Separate the label column (if any) and keep numeric predictors."""
    labels = None
    if label_column is not None and label_column in df.columns:
        labels = df[label_column]
        df = df.drop(columns=[label_column])
    return df.select_dtypes(include=[np.number]), labels


def export_report(filepath: Path, fitted, nzv_metrics: Optional[pd.DataFrame] = None) -> None:
    """Write the fitted pipeline summary to an Excel workbook."""
    diagnostics = pd.DataFrame(
        [vars(d) for d in fitted.diagnostics],
        columns=['step', 'column', 'kind', 'message']
    )
    with pd.ExcelWriter(filepath, engine='openpyxl') as writer:
        fitted.describe().to_excel(writer, sheet_name='Steps', index=False)
        diagnostics.to_excel(writer, sheet_name='Diagnostics', index=False)
        if nzv_metrics is not None:
            nzv_metrics.to_excel(writer, sheet_name='Column_Statistics')


def run(config: PipelineConfig) -> Dict[str, Path]:
    """
    Fit on the training file, transform every file and write the results.

    Returns:
        Mapping of output name -> written path
    """
    out_dir = Path(config.output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    outputs: Dict[str, Path] = {}

    # --- PHASE 1: FIT ---
    print("\n[PHASE 1] Estimation")
    train_df = read_table(config.train_file)
    X_train, y_train = split_labels(train_df, config.label_column)
    print(f"    Training matrix: {X_train.shape[0]} rows x {X_train.shape[1]} columns")

    fitted = fit(X_train, config.operations, config.options)
    print(f"    Operations: {list(fitted.operations)}")
    if fitted.removed:
        print(f"    ⚠️  Removed {len(fitted.removed)} columns: {fitted.removed_columns}")
    if fitted.diagnostics:
        print(format_diagnostics(list(fitted.diagnostics)))

    outputs['preprocessor'] = out_dir / "preprocessor.joblib"
    fitted.save(str(outputs['preprocessor']))

    model = None
    if config.class_distance:
        if y_train is None:
            raise ValueError(f"Label column '{config.label_column}' not found in {config.train_file}")
        model = fit_class_distance(apply(fitted, X_train), y_train, config.class_distance_options)
        print(f"    Class distance fitted for {len(model.classes)} classes")

    # --- PHASE 2: APPLY ---
    print("\n[PHASE 2] Application")
    for filepath in tqdm([config.train_file] + list(config.apply_files), desc="Transforming"):
        name = Path(filepath).stem
        try:
            X, _ = split_labels(read_table(filepath), config.label_column)
            transformed = apply(fitted, X)
            if model is not None:
                transformed = pd.concat([transformed, score(model, transformed)], axis=1)

            outputs[name] = out_dir / f"{name}_transformed.csv"
            transformed.to_csv(outputs[name], index=False)
        except (ValueError, FileNotFoundError) as e:
            print(f"    ❌ FAILED {name}: {e}")
            traceback.print_exc()

    # --- PHASE 3: REPORT ---
    outputs['report'] = out_dir / "REPORT_preprocessing.xlsx"
    nzv_metrics = None
    if 'nzv' in fitted.operations:
        nzv_metrics = detect_nzv(
            X_train, fitted.options.freq_cut, fitted.options.unique_cut, save_metrics=True
        )
    export_report(outputs['report'], fitted, nzv_metrics)

    print("\n✅ Pipeline Finished.")
    return outputs


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fit a preprocessing pipeline and apply it to tables.")
    parser.add_argument('--config', default="config.yaml", help="YAML configuration file")
    parser.add_argument('--train', help="Training table (overrides data.train_file)")
    parser.add_argument('--apply', nargs='*', help="Tables to transform (overrides data.apply_files)")
    parser.add_argument('--operations', nargs='+', help="Operations (overrides preprocessing.operations)")
    parser.add_argument('--output-dir', help="Output directory (overrides data.output_dir)")
    parser.add_argument('--n-jobs', type=int, help="Parallel jobs for per-column estimation")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    print("🚀 Starting Pipeline...")
    args = parse_args(argv)
    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"❌ CONFIG ERROR: {e}")
        return 1

    if args.train:
        config.train_file = args.train
    if args.apply is not None:
        config.apply_files = args.apply
    if args.operations:
        config.operations = args.operations
    if args.output_dir:
        config.output_dir = args.output_dir
    if args.n_jobs is not None:
        config.options = config.options.with_overrides(n_jobs=args.n_jobs)

    try:
        config.validate()
        run(config)
    except (ValueError, FileNotFoundError) as e:
        print(f"❌ PIPELINE ERROR: {e}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
