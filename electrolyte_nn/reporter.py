"""Merges predictions with ground truth, scores them, and writes result tables."""
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Sequence

import numpy as np
import pandas as pd

from electrolyte_nn.data_loader import ElectrolyteDataset
from electrolyte_nn.errors import OutputError
from electrolyte_nn.utils import compute_regression_metrics, mean_squared_error

RESULTS_FILENAME = "Electrolyte NN Results - {label}.csv"


@dataclass
class SubsetReport:
    label: str
    mse: float
    table: pd.DataFrame
    path: str
    metrics: Dict[str, float] = field(default_factory=dict)


def predicted_column_name(target_col: str, label: str) -> str:
    return f"Predicted {target_col} ({label})"


def merge_predictions(dataset: ElectrolyteDataset, predictions: np.ndarray, label: str) -> pd.DataFrame:
    """Original columns plus one predicted-target column, indexed by source row."""
    predictions = np.asarray(predictions, dtype=np.float64).ravel()
    if len(predictions) != len(dataset):
        raise ValueError(f"{len(predictions)} predictions for {len(dataset)} {label} rows")
    table = dataset.frame[dataset.columns].copy()
    table[predicted_column_name(dataset.target_col, label)] = predictions
    return table


def report_subset(dataset: ElectrolyteDataset,
                  predictions: np.ndarray,
                  label: str,
                  output_dir: str = ".") -> SubsetReport:
    """
    Scores one subset and writes its merged table to
    ``Electrolyte NN Results - <label>.csv`` in ``output_dir``.

    Args:
        dataset: Unscaled subset (Training or Test)
        predictions: Unscaled predictions, one per row of ``dataset``
        label: Subset name used in the file name and the predicted column

    Returns:
        SubsetReport carrying the mean squared error and the merged table

    Raises:
        OutputError: the table cannot be written
    """
    table = merge_predictions(dataset, predictions, label)
    mse = mean_squared_error(dataset.target, predictions)
    metrics = compute_regression_metrics(dataset.target, predictions)

    path = os.path.join(output_dir, RESULTS_FILENAME.format(label=label))
    try:
        os.makedirs(output_dir, exist_ok=True)
        table.to_csv(path, index=True, index_label="row")
    except OSError as exc:
        logging.error(f"Could not write {label} results to {path}: {exc}")
        raise OutputError(f"Could not write {label} results to {path}: {exc}") from exc

    logging.info(f"{label} MSE: {mse:.6f} ({len(dataset)} rows) -> {path}")
    return SubsetReport(label=label, mse=mse, table=table, path=path, metrics=metrics)


def _json_value(value: Any) -> Any:
    """Plain float, or None where a metric is undefined (NaN is not valid JSON)."""
    value = float(value)
    return value if np.isfinite(value) else None


def write_metrics_summary(output_dir: str, reports: Sequence[SubsetReport]) -> Dict[str, str]:
    """Writes stats/metrics_summary.json and stats/metrics_summary.txt for all subsets."""
    stats_dir = os.path.join(output_dir, "stats")
    summary: Dict[str, Any] = {
        report.label: {
            "sample_count": len(report.table),
            "mse": _json_value(report.mse),
            "metrics": {key: _json_value(value) for key, value in report.metrics.items()},
        }
        for report in reports
    }
    json_path = os.path.join(stats_dir, "metrics_summary.json")
    txt_path = os.path.join(stats_dir, "metrics_summary.txt")
    try:
        os.makedirs(stats_dir, exist_ok=True)
        with open(json_path, "w") as f:
            json.dump(summary, f, indent=2, allow_nan=False)
        with open(txt_path, "w") as f:
            for report in reports:
                header = f"{report.label.upper()} METRICS (Original Units)"
                f.write("=" * len(header) + "\n")
                f.write(header + "\n")
                f.write("=" * len(header) + "\n")
                f.write(f"Samples: {len(report.table)}\n")
                for key, value in report.metrics.items():
                    f.write(f"  {key}: {value:.6f}\n")
                f.write("\n")
    except OSError as exc:
        raise OutputError(f"Could not write metrics summary to {stats_dir}: {exc}") from exc
    return {"json": json_path, "txt": txt_path}
