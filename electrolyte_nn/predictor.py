import numpy as np
import torch

from electrolyte_nn.data_loader import ElectrolyteDataset
from electrolyte_nn.scaling import ColumnScaler
from electrolyte_nn.trainer import TrainedModel


def predict_scaled(model: TrainedModel, features: np.ndarray) -> np.ndarray:
    """Runs the network over scaled features and returns scaled predictions (1D)."""
    network = model.build_network()
    X_tensor = torch.tensor(np.asarray(features, dtype=np.float32))
    with torch.no_grad():
        predictions = network(X_tensor).numpy()
    return predictions.ravel().astype(np.float64)


def predict(model: TrainedModel, dataset: ElectrolyteDataset, scaler: ColumnScaler) -> np.ndarray:
    """
    Predicts the target for a scaled dataset, in original units.

    Args:
        model: Trained network
        dataset: Dataset already scaled with ``scaler``; only the feature
            columns are read
        scaler: Scaler fitted on the training subset

    Returns:
        Predictions in original units
    """
    return scaler.unscale(predict_scaled(model, dataset.features), dataset.target_col)
