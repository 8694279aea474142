import argparse
import logging
import numbers
import random
from typing import Any, Dict, Optional, Sequence, Union

import numpy as np
import torch

from electrolyte_nn.errors import ConfigurationError

# --- Defaults of the published analysis ---
SEED = 10
HIDDEN_SIZES = (6, 4)
N_ROUNDS = 10
SAMPLE_FRACTION = 0.6
TRAIN_FRACTION = 0.75
THRESHOLD = 0.01
MAX_STEPS = 100000

# Columns of the "Raman Dataset - GPR rev01" table used as inputs and target
FEATURE_COLUMN_NAMES = ["ZnBr2saltM", "ZnCl2saltM"]
TARGET_COLUMN_NAME = "pH"

SCALER_TYPES = ("minmax", "standard")

DEFAULT_CONFIG: Dict[str, Any] = {
    "csv_file": "Raman Dataset - GPR rev01.csv",
    "feature_cols": list(FEATURE_COLUMN_NAMES),
    "target_col": TARGET_COLUMN_NAME,
    "output_dir": ".",
    "seed": SEED,
    "train_fraction": TRAIN_FRACTION,
    "hidden_sizes": HIDDEN_SIZES,
    "n_rounds": N_ROUNDS,
    "sample_fraction": SAMPLE_FRACTION,
    "threshold": THRESHOLD,
    "max_steps": MAX_STEPS,
    "learning_rate": 0.01,
    "activation_name": "Tanh",
    "output_activation_name": "Tanh",
    "scaler_type": "minmax",
    "round_retries": 0,
    "plots": False,
    "tensorboard": False,
}


def set_seed(seed: int = SEED):
    """Sets the seed for reproducibility."""
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)
    if torch.cuda.is_available():
        torch.cuda.manual_seed(seed)
        torch.backends.cudnn.deterministic = True
        torch.backends.cudnn.benchmark = False


def make_rng(seed: int = SEED) -> np.random.Generator:
    """Returns the generator that drives the split and the resampling rounds."""
    return np.random.default_rng(seed)


def _fail(message: str):
    logging.error(message)
    raise ConfigurationError(message)


def _is_int(value: Any) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


def validate_config(config: Dict[str, Any]):
    """Validates hyperparameters, raising ConfigurationError on the first bad value."""
    train_fraction = config["train_fraction"]
    if not 0.0 < train_fraction < 1.0:
        _fail(f"train_fraction must lie in (0, 1), got {train_fraction}")

    sample_fraction = config["sample_fraction"]
    if not 0.0 < sample_fraction <= 1.0:
        _fail(f"sample_fraction must lie in (0, 1], got {sample_fraction}")

    hidden_sizes = tuple(config["hidden_sizes"])
    if len(hidden_sizes) != 2:
        _fail(f"Exactly two hidden layer sizes are required, got {list(hidden_sizes)}")
    if any(not _is_int(size) or size < 1 for size in hidden_sizes):
        _fail(f"Hidden layer sizes must be positive integers, got {list(hidden_sizes)}")

    for key in ("n_rounds", "max_steps"):
        if not _is_int(config[key]) or config[key] < 1:
            _fail(f"{key} must be a positive integer, got {config[key]}")

    if not _is_int(config["round_retries"]) or config["round_retries"] < 0:
        _fail(f"round_retries must be a non-negative integer, got {config['round_retries']}")

    for key in ("threshold", "learning_rate"):
        if not config[key] > 0:
            _fail(f"{key} must be positive, got {config[key]}")

    if config["scaler_type"] not in SCALER_TYPES:
        _fail(f"Unknown scaler_type '{config['scaler_type']}'. Valid choices are: {SCALER_TYPES}")

    if len(config["feature_cols"]) != 2:
        _fail(f"Exactly two feature columns are required, got {config['feature_cols']}")


def build_config(overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Merges overrides into DEFAULT_CONFIG and validates the result."""
    config = dict(DEFAULT_CONFIG)
    if overrides:
        unknown = set(overrides) - set(DEFAULT_CONFIG)
        if unknown:
            _fail(f"Unknown configuration keys: {sorted(unknown)}")
        config.update(overrides)
    config["hidden_sizes"] = tuple(config["hidden_sizes"])
    config["feature_cols"] = list(config["feature_cols"])
    validate_config(config)
    return config


def _column(value: str) -> Union[int, str]:
    """Column selector: a 0-based position if numeric, otherwise a header name."""
    return int(value) if value.isdigit() else value


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parses command-line arguments for a pipeline run."""
    parser = argparse.ArgumentParser(
        description="Predict electrolyte pH from ZnBr2/ZnCl2 molarities with a small neural network."
    )

    # --- Data Arguments ---
    parser.add_argument(
        '--csv-file',
        type=str,
        default=DEFAULT_CONFIG["csv_file"],
        help='Path to the input CSV data file.'
    )
    parser.add_argument(
        '--features',
        type=_column,
        nargs=2,
        default=list(FEATURE_COLUMN_NAMES),
        help='Two feature columns, by header name or 0-based position.'
    )
    parser.add_argument(
        '--target',
        type=_column,
        default=TARGET_COLUMN_NAME,
        help='Target column, by header name or 0-based position.'
    )
    parser.add_argument(
        '--output-dir',
        type=str,
        default=DEFAULT_CONFIG["output_dir"],
        help='Directory for result tables, metrics and plots.'
    )

    # --- Split & Resampling Arguments ---
    parser.add_argument(
        '--seed',
        type=int,
        default=SEED,
        help='Random seed for the split, the resampling draws and the weights.'
    )
    parser.add_argument(
        '--train-fraction',
        type=float,
        default=TRAIN_FRACTION,
        help='Fraction of rows used for training.'
    )
    parser.add_argument(
        '--rounds',
        type=int,
        default=N_ROUNDS,
        help='Number of resampling rounds. Only the model of the last round is kept.'
    )
    parser.add_argument(
        '--sample-fraction',
        type=float,
        default=SAMPLE_FRACTION,
        help='Fraction of training rows drawn in each round.'
    )

    # --- Network Arguments ---
    parser.add_argument(
        '--hidden-sizes',
        type=int,
        nargs=2,
        default=list(HIDDEN_SIZES),
        help='Neurons in the first and second hidden layer.'
    )
    parser.add_argument(
        '--threshold',
        type=float,
        default=THRESHOLD,
        help='Stop a round once the largest absolute gradient falls below this value.'
    )
    parser.add_argument(
        '--max-steps',
        type=int,
        default=MAX_STEPS,
        help='Maximum optimizer steps per round before it counts as not converged.'
    )
    parser.add_argument(
        '--learning-rate',
        type=float,
        default=DEFAULT_CONFIG["learning_rate"],
        help='Initial Rprop step size.'
    )
    parser.add_argument(
        '--scaler',
        type=str,
        default=DEFAULT_CONFIG["scaler_type"],
        choices=list(SCALER_TYPES),
        help='Column scaling: min-max to [0, 1] or standardization.'
    )
    parser.add_argument(
        '--round-retries',
        type=int,
        default=0,
        help='Refit a failed round with fresh weights this many times.'
    )

    # --- Output Arguments ---
    parser.add_argument(
        '--plots',
        action='store_true',
        help='Save regression, residual and Q-Q plots.'
    )
    parser.add_argument(
        '--tensorboard',
        action='store_true',
        help='Log per-round loss to TensorBoard.'
    )
    parser.add_argument(
        '--log-level',
        type=str,
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging verbosity.'
    )

    return parser.parse_args(argv)


def config_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    """Maps parsed arguments onto a validated configuration dictionary."""
    return build_config({
        "csv_file": args.csv_file,
        "feature_cols": list(args.features),
        "target_col": args.target,
        "output_dir": args.output_dir,
        "seed": args.seed,
        "train_fraction": args.train_fraction,
        "hidden_sizes": tuple(args.hidden_sizes),
        "n_rounds": args.rounds,
        "sample_fraction": args.sample_fraction,
        "threshold": args.threshold,
        "max_steps": args.max_steps,
        "learning_rate": args.learning_rate,
        "scaler_type": args.scaler,
        "round_retries": args.round_retries,
        "plots": args.plots,
        "tensorboard": args.tensorboard,
    })
