"""
Per-column scaling fitted on the training subset only.

Two formulas are supported and each is its own exact inverse:

* ``minmax``:   scaled = (x - min) / (max - min), mapping training data to [0, 1]
* ``standard``: scaled = (x - mean) / std

Either way a column is described by ``ScaleParameters(offset, scale)`` with
``scaled = (x - offset) / scale``.
"""
import logging
from dataclasses import dataclass
from typing import Dict

import numpy as np
from sklearn.preprocessing import MinMaxScaler, StandardScaler

from electrolyte_nn.data_loader import ElectrolyteDataset
from electrolyte_nn.errors import ScalingError


@dataclass(frozen=True)
class ScaleParameters:
    offset: float
    scale: float


def _make_scaler(scaler_type: str):
    if scaler_type == "minmax":
        return MinMaxScaler(feature_range=(0, 1))
    if scaler_type == "standard":
        return StandardScaler()
    raise ScalingError(f"Unknown scaler type '{scaler_type}'")


def _parameters_of(scaler) -> ScaleParameters:
    if isinstance(scaler, MinMaxScaler):
        return ScaleParameters(float(scaler.data_min_[0]), float(scaler.data_range_[0]))
    return ScaleParameters(float(scaler.mean_[0]), float(np.sqrt(scaler.var_[0])))


class ColumnScaler:
    """Holds one fitted scikit-learn scaler per column of the training subset."""

    def __init__(self, scaler_type: str = "minmax"):
        self.scaler_type = scaler_type
        self._scalers: Dict[str, object] = {}

    @classmethod
    def fit(cls, training: ElectrolyteDataset, scaler_type: str = "minmax") -> "ColumnScaler":
        """Computes scale parameters for both features and the target of ``training``."""
        instance = cls(scaler_type)
        for column in training.columns:
            values = training.frame[column].to_numpy(dtype=np.float64).reshape(-1, 1)
            if not np.all(np.isfinite(values)):
                raise ScalingError(f"Column '{column}' contains non-finite values")
            scaler = _make_scaler(scaler_type).fit(values)
            params = _parameters_of(scaler)
            if params.scale == 0.0:
                raise ScalingError(
                    f"Column '{column}' is constant ({params.offset}) in the training subset; "
                    f"cannot scale by zero"
                )
            instance._scalers[column] = scaler
            logging.debug(f"Scale parameters for '{column}': offset={params.offset:.6g}, scale={params.scale:.6g}")
        logging.info(f"Fitted {scaler_type} scaling on {len(training)} training rows.")
        return instance

    @property
    def parameters(self) -> Dict[str, ScaleParameters]:
        return {column: _parameters_of(scaler) for column, scaler in self._scalers.items()}

    def _scaler_for(self, column: str):
        try:
            return self._scalers[column]
        except KeyError:
            raise ScalingError(
                f"No scale parameters for column '{column}'; fitted columns are {list(self._scalers)}"
            ) from None

    def scale(self, dataset: ElectrolyteDataset) -> ElectrolyteDataset:
        """Returns a new dataset with every column mapped to scaled space."""
        frame = dataset.frame.copy()
        for column in dataset.columns:
            values = frame[column].to_numpy(dtype=np.float64).reshape(-1, 1)
            frame[column] = self._scaler_for(column).transform(values).ravel()
        return dataset.with_frame(frame)

    def scale_values(self, values: np.ndarray, column: str) -> np.ndarray:
        values = np.asarray(values, dtype=np.float64).reshape(-1, 1)
        return self._scaler_for(column).transform(values).ravel()

    def unscale(self, values: np.ndarray, column: str) -> np.ndarray:
        """Maps scaled values of ``column`` back to original units."""
        values = np.asarray(values, dtype=np.float64).reshape(-1, 1)
        return self._scaler_for(column).inverse_transform(values).ravel()
