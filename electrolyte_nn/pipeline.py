"""
End-to-end pH prediction run: load, split, scale, train, predict, report.

Usage
-----
    electrolyte-nn --csv-file "Raman Dataset - GPR rev01.csv"
    electrolyte-nn --csv-file data.csv --features 1 2 --target 7 --rounds 5
"""
import logging
import os
import sys
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence

import numpy as np
from torchinfo import summary

from electrolyte_nn.config import build_config, config_from_args, make_rng, parse_args, set_seed
from electrolyte_nn.data_loader import load_dataset, split_dataset
from electrolyte_nn.errors import OutputError, PipelineError
from electrolyte_nn.predictor import predict
from electrolyte_nn.reporter import SubsetReport, report_subset, write_metrics_summary
from electrolyte_nn.scaling import ColumnScaler, ScaleParameters
from electrolyte_nn.trainer import (
    ProgressCallback,
    TensorBoardProgress,
    TrainedModel,
    log_progress,
    train_resampled,
)
from electrolyte_nn.utils import save_prediction_plots


@dataclass
class PipelineResult:
    training: SubsetReport
    test: SubsetReport
    model: TrainedModel
    scale_parameters: Dict[str, ScaleParameters]
    train_rows: np.ndarray
    test_rows: np.ndarray


def write_model_summary(output_dir: str, model: TrainedModel) -> str:
    """Writes the module structure and a torchinfo summary of the kept network."""
    network = model.build_network()
    path = os.path.join(output_dir, "model_summary.txt")
    try:
        with open(path, "w") as f:
            print(network, file=f)
            f.write(f"\nKept round: {model.round_index + 1}, loss: {model.loss:.6f}, steps: {model.steps}\n")
            try:
                summary_str = str(summary(network, input_size=(1, model.input_size), verbose=0))
                f.write("\n\n--- Torchinfo Summary ---\n")
                f.write(summary_str)
            except Exception as e:
                f.write(f"\n\n(Could not run torchinfo summary: {e})")
    except OSError as exc:
        raise OutputError(f"Could not write model summary to {path}: {exc}") from exc
    return path


def run_pipeline(config: Optional[Dict[str, Any]] = None,
                 rng: Optional[np.random.Generator] = None,
                 progress: Optional[ProgressCallback] = None,
                 should_stop: Optional[Callable[[], bool]] = None) -> PipelineResult:
    """
    Runs every stage in order and returns both subset reports.

    Args:
        config: Overrides for DEFAULT_CONFIG (validated)
        rng: Generator driving the split, the resampling draws and the weights;
            defaults to one seeded with ``config["seed"]``
        progress: Per-round observer; defaults to logging (plus TensorBoard
            when enabled in the config)
        should_stop: Cooperative cancellation check between rounds
    """
    config = build_config(config)
    if rng is None:
        rng = make_rng(config["seed"])
    output_dir = config["output_dir"]

    dataset = load_dataset(config["csv_file"], config["feature_cols"], config["target_col"])
    training, test = split_dataset(dataset, config["train_fraction"], rng)

    scaler = ColumnScaler.fit(training, scaler_type=config["scaler_type"])
    train_scaled = scaler.scale(training)
    test_scaled = scaler.scale(test)

    tb_progress = None
    if progress is None:
        progress = log_progress
        if config["tensorboard"]:
            log_dir = os.path.join(output_dir, "tensorboard_log")
            try:
                tb_progress = TensorBoardProgress(log_dir)
            except OSError as exc:
                raise OutputError(f"Could not create TensorBoard log directory {log_dir}: {exc}") from exc
            progress = tb_progress
    try:
        model = train_resampled(
            train_scaled,
            rng,
            hidden_sizes=config["hidden_sizes"],
            n_rounds=config["n_rounds"],
            sample_fraction=config["sample_fraction"],
            threshold=config["threshold"],
            max_steps=config["max_steps"],
            learning_rate=config["learning_rate"],
            activation_name=config["activation_name"],
            output_activation_name=config["output_activation_name"],
            round_retries=config["round_retries"],
            progress=progress,
            should_stop=should_stop
        )
    finally:
        if tb_progress is not None:
            tb_progress.close()

    reports = {}
    for label, subset, subset_scaled in [("Training", training, train_scaled), ("Test", test, test_scaled)]:
        predictions = predict(model, subset_scaled, scaler)
        reports[label] = report_subset(subset, predictions, label, output_dir)
        if config["plots"]:
            save_prediction_plots(output_dir, subset.target, predictions, label)

    write_metrics_summary(output_dir, list(reports.values()))
    write_model_summary(output_dir, model)

    return PipelineResult(
        training=reports["Training"],
        test=reports["Test"],
        model=model,
        scale_parameters=scaler.parameters,
        train_rows=training.row_ids,
        test_rows=test.row_ids
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    try:
        config = config_from_args(args)
        set_seed(config["seed"])
        result = run_pipeline(config)
    except PipelineError as exc:
        logging.error(f"{exc.stage} stage failed: {exc}")
        return 1

    for report in (result.training, result.test):
        print(f"{report.label} MSE: {report.mse:.6f}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
