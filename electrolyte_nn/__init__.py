"""Neural network prediction of zinc/bromine electrolyte pH from salt molarities."""

from .errors import (
    PipelineError,
    ParseError,
    ConfigurationError,
    ScalingError,
    TrainingError,
    OutputError,
)
from .model import NeuralNetwork, get_activation
from .data_loader import CSVDataset, ElectrolyteDataset, load_dataset, split_dataset
from .scaling import ColumnScaler, ScaleParameters
from .trainer import (
    RoundReport,
    TensorBoardProgress,
    TrainedModel,
    fit_network,
    log_progress,
    train_resampled,
)
from .predictor import predict, predict_scaled
from .reporter import SubsetReport, report_subset, write_metrics_summary
from .utils import compute_regression_metrics, mean_squared_error, save_prediction_plots
from .pipeline import PipelineResult, run_pipeline

__all__ = [
    'PipelineError', 'ParseError', 'ConfigurationError', 'ScalingError',
    'TrainingError', 'OutputError',
    'NeuralNetwork', 'get_activation',
    'CSVDataset', 'ElectrolyteDataset', 'load_dataset', 'split_dataset',
    'ColumnScaler', 'ScaleParameters',
    'RoundReport', 'TensorBoardProgress', 'TrainedModel', 'fit_network',
    'log_progress', 'train_resampled',
    'predict', 'predict_scaled',
    'SubsetReport', 'report_subset', 'write_metrics_summary',
    'compute_regression_metrics', 'mean_squared_error', 'save_prediction_plots',
    'PipelineResult', 'run_pipeline',
]
