import matplotlib.pyplot as plt
import numpy as np
import os
import logging
from typing import List, Tuple, Dict
from matplotlib.figure import Figure
from scipy.stats import skew, kurtosis
import statsmodels.api as sm

from electrolyte_nn.errors import OutputError

# --- Import scikit-learn metrics ---
from sklearn.metrics import (
    r2_score,
    explained_variance_score
)

# --- Metrics ---

def mean_squared_error(actual: np.ndarray, predicted: np.ndarray) -> float:
    """(1/N) * sum((actual - predicted)^2) over paired values."""
    actual = np.asarray(actual, dtype=np.float64).ravel()
    predicted = np.asarray(predicted, dtype=np.float64).ravel()
    if actual.shape != predicted.shape:
        raise ValueError(f"Length mismatch: {actual.size} actual vs {predicted.size} predicted values")
    if actual.size == 0:
        raise ValueError("Cannot compute mean squared error of zero values")
    return float(np.sum((actual - predicted) ** 2) / actual.size)


def compute_regression_metrics(y_true: np.ndarray,
                               y_pred: np.ndarray) -> Dict[str, float]:
    """
    Calculates a dictionary of regression metrics on unscaled data.

    Args:
        y_true: Ground truth target values
        y_pred: Predicted target values

    Returns:
        Dictionary containing various regression metrics
    """
    metrics = {}

    y_true_flat = np.asarray(y_true, dtype=np.float64).flatten()
    y_pred_flat = np.asarray(y_pred, dtype=np.float64).flatten()
    residuals = y_pred_flat - y_true_flat

    metrics["mae"] = float(np.mean(np.abs(residuals)))
    metrics["mse"] = mean_squared_error(y_true_flat, y_pred_flat)
    metrics["rmse"] = float(np.sqrt(metrics["mse"]))
    metrics["medae"] = float(np.median(np.abs(residuals)))
    metrics["max_error"] = float(np.max(np.abs(residuals)))

    # R² needs at least two samples
    if y_true_flat.size >= 2:
        metrics["r2"] = float(r2_score(y_true_flat, y_pred_flat))
        metrics["explained_variance"] = float(explained_variance_score(y_true_flat, y_pred_flat))
    else:
        metrics["r2"] = float('nan')
        metrics["explained_variance"] = float('nan')

    # MAPE (mean absolute percentage error); pH of exactly zero is skipped
    mask = y_true_flat != 0
    if np.any(mask):
        metrics["mape"] = float(np.mean(np.abs(residuals[mask] / y_true_flat[mask])))
    else:
        logging.warning("Could not calculate MAPE: all true values are zero")
        metrics["mape"] = float('nan')

    # Residual statistics
    metrics["residual_mean"] = float(np.mean(residuals))
    metrics["residual_std"] = float(np.std(residuals))
    if y_true_flat.size >= 3 and np.std(residuals) > 0:
        metrics["residual_skew"] = float(skew(residuals))
        metrics["residual_kurtosis"] = float(kurtosis(residuals))
    else:
        metrics["residual_skew"] = float('nan')
        metrics["residual_kurtosis"] = float('nan')

    return metrics

# --- Plotting ---

def create_scatter_plot(true_values: np.ndarray,
                        predictions: np.ndarray,
                        label: str) -> Tuple[str, Figure]:
    fig = plt.figure(figsize=(6, 6))
    ax = fig.add_subplot(1, 1, 1)
    ax.scatter(true_values, predictions, alpha=0.7, s=15)
    min_val = min(true_values.min(), predictions.min())
    max_val = max(true_values.max(), predictions.max())
    pad = 0.05 * (max_val - min_val or 1.0)
    lims = [min_val - pad, max_val + pad]
    ax.plot(lims, lims, 'r--', label="Ideal (y=x)")
    rmse = np.sqrt(mean_squared_error(true_values, predictions))
    ax.set_xlabel("True Values")
    ax.set_ylabel("Predicted Values")
    ax.set_title(f"True vs. Predicted ({label})\nRMSE = {rmse:.4f}")
    ax.legend()
    ax.grid(True, alpha=0.3)
    ax.set_xlim(lims)
    ax.set_ylim(lims)
    ax.set_aspect('equal', adjustable='box')
    return f"True_vs_Predicted/{label}", fig


def create_residual_plot(true_values: np.ndarray,
                         predictions: np.ndarray,
                         label: str) -> Tuple[str, Figure]:
    """Residuals vs. true values."""
    fig = plt.figure()
    ax = fig.add_subplot(1, 1, 1)
    residuals = predictions - true_values
    ax.scatter(true_values, residuals, alpha=0.7, s=15)
    ax.axhline(y=0, color='r', linestyle='--')
    ax.set_xlabel("True Values")
    ax.set_ylabel("Residuals (Predicted - True)")
    ax.set_title(f"Residuals vs. True Values ({label})")
    ax.grid(True)
    return f"Residuals_vs_True/{label}", fig


def create_qq_plot(true_values: np.ndarray,
                   predictions: np.ndarray,
                   label: str) -> Tuple[str, Figure]:
    """Q-Q plot of residuals to check for normality."""
    residuals = predictions - true_values
    fig = sm.qqplot(residuals, line='45', fit=True, markersize=3)
    ax = fig.axes[0]
    ax.grid(True, alpha=0.3)
    ax.set_title(f"Q-Q Plot of Residuals ({label})")
    return f"QQ_Plot/{label}", fig


def save_prediction_plots(output_dir: str,
                          true_values: np.ndarray,
                          predictions: np.ndarray,
                          label: str) -> List[str]:
    """Saves scatter, residual and Q-Q plots for one subset; returns the file paths."""
    plot_dir = os.path.join(output_dir, "plots")
    true_values = np.asarray(true_values, dtype=np.float64).ravel()
    predictions = np.asarray(predictions, dtype=np.float64).ravel()

    all_plots = [
        create_scatter_plot(true_values, predictions, label),
        create_residual_plot(true_values, predictions, label),
    ]
    # statsmodels needs a spread of residuals to fit the reference line
    if true_values.size >= 3 and np.std(predictions - true_values) > 0:
        all_plots.append(create_qq_plot(true_values, predictions, label))

    paths = []
    try:
        os.makedirs(plot_dir, exist_ok=True)
        for plot_name, fig in all_plots:
            path = os.path.join(plot_dir, plot_name.replace("/", "_") + ".png")
            fig.savefig(path, dpi=150, bbox_inches='tight')
            paths.append(path)
    except OSError as exc:
        raise OutputError(f"Could not save {label} plots to {plot_dir}: {exc}") from exc
    finally:
        for _, fig in all_plots:
            plt.close(fig)
    logging.info(f"Saved {len(paths)} plots for {label} to {plot_dir}")
    return paths
