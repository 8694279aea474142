import logging
import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple, Union

import numpy as np
import pandas as pd
import torch
from sklearn.model_selection import train_test_split
from torch.utils.data import Dataset

from electrolyte_nn.errors import ConfigurationError, ParseError

ColumnSelector = Union[str, int]

# --- Dataset Classes ---

@dataclass(frozen=True)
class ElectrolyteDataset:
    """
    Ordered, immutable table of two salt concentrations and the measured target.

    The frame index is the row identity: the 0-based position of the record in
    the source file. Subsetting and scaling build new datasets.
    """
    frame: pd.DataFrame
    feature_cols: Tuple[str, str]
    target_col: str

    def __len__(self) -> int:
        return len(self.frame)

    @property
    def columns(self) -> List[str]:
        return [*self.feature_cols, self.target_col]

    @property
    def row_ids(self) -> np.ndarray:
        return self.frame.index.to_numpy()

    @property
    def features(self) -> np.ndarray:
        return self.frame[list(self.feature_cols)].to_numpy(dtype=np.float64)

    @property
    def target(self) -> np.ndarray:
        return self.frame[self.target_col].to_numpy(dtype=np.float64)

    def take(self, positions: Sequence[int]) -> "ElectrolyteDataset":
        """Returns the rows at the given positions, in the given order."""
        return ElectrolyteDataset(self.frame.iloc[list(positions)].copy(), self.feature_cols, self.target_col)

    def with_frame(self, frame: pd.DataFrame) -> "ElectrolyteDataset":
        return ElectrolyteDataset(frame, self.feature_cols, self.target_col)


class CSVDataset(Dataset):
    """
    PyTorch Dataset over feature/label arrays.
    Data is converted to tensors upon initialization.
    """
    def __init__(self, data: np.ndarray, labels: np.ndarray):
        self.data = torch.tensor(data, dtype=torch.float32)
        self.labels = torch.tensor(labels, dtype=torch.float32)
        if self.labels.ndim == 1:
            self.labels = self.labels.reshape(-1, 1)

    def __len__(self) -> int:
        return len(self.data)

    def __getitem__(self, idx: int) -> Tuple[torch.Tensor, torch.Tensor]:
        return self.data[idx], self.labels[idx]

# --- Data Loading ---

def _resolve_column(df: pd.DataFrame, column: ColumnSelector) -> str:
    if isinstance(column, int):
        if not 0 <= column < len(df.columns):
            raise ParseError(
                f"Column position {column} is out of range; file has {len(df.columns)} columns",
                column=str(column)
            )
        return df.columns[column]
    if column not in df.columns:
        logging.error(f"Available columns: {df.columns.tolist()}")
        raise ParseError(f"Column '{column}' not found in input file", column=column)
    return column


def _check_numeric(df: pd.DataFrame, column: str) -> pd.Series:
    raw = df[column]
    values = pd.to_numeric(raw, errors="coerce")
    bad = values.isna() | ~np.isfinite(values.to_numpy(dtype=np.float64))
    if bad.any():
        row = int(np.flatnonzero(bad.to_numpy())[0])
        value = raw.iloc[row]
        reason = "is missing" if pd.isna(value) else f"has non-numeric value {value!r}"
        raise ParseError(f"Column '{column}' {reason} at row {row}", column=column, row=row)
    return values.astype(np.float64)


def load_dataset(csv_file: str,
                 feature_cols: Sequence[ColumnSelector],
                 target_col: ColumnSelector) -> ElectrolyteDataset:
    """
    Loads the feature and target columns from a delimited file with a header row.

    Columns are selected by header name or by 0-based position.

    Args:
        csv_file: Path to the CSV file
        feature_cols: The two feature columns
        target_col: The target column

    Returns:
        ElectrolyteDataset with the selected columns, in file order

    Raises:
        ParseError: the file cannot be read, a column is missing, or a value
            is missing or non-numeric
    """
    try:
        df = pd.read_csv(csv_file)
    except FileNotFoundError as exc:
        logging.error(f"CSV file not found at: {csv_file}")
        raise ParseError(f"CSV file not found at: {csv_file}") from exc
    except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
        logging.error(f"Failed to read CSV file: {exc}")
        raise ParseError(f"Failed to read CSV file {csv_file}: {exc}") from exc

    if len(feature_cols) != 2:
        raise ParseError(f"Exactly two feature columns are required, got {list(feature_cols)}")

    features = [_resolve_column(df, col) for col in feature_cols]
    target = _resolve_column(df, target_col)
    if len({*features, target}) != 3:
        raise ParseError(f"Feature and target columns must be distinct, got {features + [target]}")
    if df.empty:
        raise ParseError(f"CSV file {csv_file} has no data rows")

    frame = pd.DataFrame({col: _check_numeric(df, col) for col in [*features, target]})
    frame.index = pd.RangeIndex(len(frame), name="row")
    logging.info(f"Loaded {len(frame)} records from {csv_file} (features={features}, target='{target}').")
    return ElectrolyteDataset(frame, tuple(features), target)

# --- Splitting ---

def split_dataset(dataset: ElectrolyteDataset,
                  train_fraction: float,
                  rng: np.random.Generator) -> Tuple[ElectrolyteDataset, ElectrolyteDataset]:
    """
    Splits into training and test subsets by uniform sampling without replacement.

    The training subset holds floor(train_fraction * N) rows in draw order; the
    test subset holds the remaining rows in source order.
    """
    if not 0.0 < train_fraction < 1.0:
        raise ConfigurationError(f"Split fraction must lie in (0, 1), got {train_fraction}", stage="split")

    n_rows = len(dataset)
    n_train = math.floor(n_rows * train_fraction)
    if n_train == 0 or n_train == n_rows:
        raise ConfigurationError(
            f"Degenerate split: fraction {train_fraction} of {n_rows} rows gives "
            f"{n_train} training and {n_rows - n_train} test rows",
            stage="split"
        )

    train_positions, test_positions = train_test_split(
        np.arange(n_rows),
        train_size=n_train,
        random_state=int(rng.integers(0, 2**31 - 1))
    )
    test_positions = np.sort(test_positions)

    logging.info(f"Split {n_rows} rows into {n_train} training and {len(test_positions)} test rows.")
    return dataset.take(train_positions), dataset.take(test_positions)
