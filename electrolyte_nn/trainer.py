import torch
import torch.nn as nn
import torch.optim as optim
from torch.utils.tensorboard import SummaryWriter
import numpy as np
import logging
import math
import os
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence, Tuple

from electrolyte_nn.model import NeuralNetwork
from electrolyte_nn.data_loader import CSVDataset, ElectrolyteDataset
from electrolyte_nn.errors import ConfigurationError, TrainingError

# --- Value Objects ---

@dataclass(frozen=True)
class TrainedModel:
    """
    Structure and weights of a fitted network, plus diagnostics of the round
    that produced it. Rebuild a runnable module with ``build_network``.
    """
    input_size: int
    hidden_sizes: Tuple[int, int]
    activation_name: str
    output_activation_name: str
    state_dict: Dict[str, torch.Tensor]
    round_index: int
    loss: float
    steps: int

    @classmethod
    def from_network(cls, model: NeuralNetwork, activation_name: str, output_activation_name: str,
                     round_index: int, loss: float, steps: int) -> "TrainedModel":
        state = {key: value.detach().clone() for key, value in model.state_dict().items()}
        return cls(model.input_size, model.hidden_sizes, activation_name, output_activation_name,
                   state, round_index, loss, steps)

    def build_network(self) -> NeuralNetwork:
        model = NeuralNetwork(
            input_size=self.input_size,
            hidden_sizes=self.hidden_sizes,
            activation_name=self.activation_name,
            output_activation_name=self.output_activation_name
        )
        model.load_state_dict(self.state_dict)
        model.eval()
        return model


@dataclass(frozen=True)
class RoundReport:
    round_index: int
    n_rounds: int
    n_samples: int
    loss: float
    steps: int
    attempts: int


ProgressCallback = Callable[[RoundReport], None]

# --- Progress Observers ---

def log_progress(report: RoundReport):
    logging.info(
        f"Round [{report.round_index + 1}/{report.n_rounds}], Samples: {report.n_samples}, "
        f"Loss: {report.loss:.6f}, Steps: {report.steps}"
    )


class TensorBoardProgress:
    """Writes the loss and step count of every round to TensorBoard."""

    def __init__(self, log_dir: str):
        os.makedirs(log_dir, exist_ok=True)
        self.writer = SummaryWriter(log_dir=log_dir)

    def __call__(self, report: RoundReport):
        log_progress(report)
        self.writer.add_scalar("Training/Loss", report.loss, report.round_index)
        self.writer.add_scalar("Training/Steps", report.steps, report.round_index)
        self.writer.add_scalar("Training/Attempts", report.attempts, report.round_index)

    def close(self):
        self.writer.close()

# --- Fitting ---

def compute_gradients(model: nn.Module,
                      features: torch.Tensor,
                      labels: torch.Tensor,
                      criterion: nn.Module,
                      optimizer: optim.Optimizer) -> Tuple[float, float]:
    """
    Full-batch forward and backward pass.

    Returns the loss (half the sum of squared errors) and the largest absolute
    partial derivative, which decides convergence.
    """
    model.train()
    optimizer.zero_grad()
    outputs = model(features)
    loss = 0.5 * criterion(outputs, labels)
    loss.backward()
    max_grad = max(param.grad.abs().max().item() for param in model.parameters())
    return loss.item(), max_grad


def fit_network(features: np.ndarray,
                target: np.ndarray,
                hidden_sizes: Sequence[int],
                generator: torch.Generator,
                threshold: float = 0.01,
                max_steps: int = 100000,
                learning_rate: float = 0.01,
                activation_name: str = 'Tanh',
                output_activation_name: str = 'Tanh') -> Tuple[NeuralNetwork, float, int]:
    """
    Fits one network by resilient backpropagation until every partial
    derivative of the loss is below ``threshold``.

    Returns:
        Tuple of (model, final loss, optimizer steps taken)

    Raises:
        TrainingError: the loss became non-finite, or ``max_steps`` steps were
            taken without reaching the threshold
    """
    dataset = CSVDataset(features, target)
    model = NeuralNetwork(
        input_size=dataset.data.shape[1],
        hidden_sizes=hidden_sizes,
        activation_name=activation_name,
        output_activation_name=output_activation_name
    )
    model.reset_parameters(generator)

    criterion = nn.MSELoss(reduction='sum')
    optimizer = optim.Rprop(model.parameters(), lr=learning_rate)

    for step in range(max_steps + 1):
        loss, max_grad = compute_gradients(model, dataset.data, dataset.labels, criterion, optimizer)
        if not (math.isfinite(loss) and math.isfinite(max_grad)):
            raise TrainingError(f"Training diverged after {step} steps (loss={loss}, max gradient={max_grad})")
        if max_grad < threshold:
            return model, loss, step
        if step < max_steps:
            optimizer.step()

    raise TrainingError(
        f"Training did not converge within {max_steps} steps "
        f"(max gradient {max_grad:.6g} >= threshold {threshold})"
    )

# --- Resampling Loop ---

def train_resampled(training: ElectrolyteDataset,
                    rng: np.random.Generator,
                    hidden_sizes: Sequence[int] = (6, 4),
                    n_rounds: int = 10,
                    sample_fraction: float = 0.6,
                    threshold: float = 0.01,
                    max_steps: int = 100000,
                    learning_rate: float = 0.01,
                    activation_name: str = 'Tanh',
                    output_activation_name: str = 'Tanh',
                    round_retries: int = 0,
                    progress: Optional[ProgressCallback] = log_progress,
                    should_stop: Optional[Callable[[], bool]] = None) -> TrainedModel:
    """
    Fits a fresh network on a random subsample of ``training`` in each of
    ``n_rounds`` rounds and returns the model of the final round.

    Earlier models are discarded: the result is neither an ensemble nor a
    cross-validation average.

    Args:
        training: Scaled training subset
        rng: Generator for the subsample draws and the weight seeds
        hidden_sizes: Neurons per hidden layer, first closer to the input
        n_rounds: Number of resampling rounds
        sample_fraction: Fraction of training rows drawn (without replacement) per round
        round_retries: Refits of a failed round with fresh weights before giving up
        progress: Called with a RoundReport after every round
        should_stop: Checked between rounds; when it returns True the last
            completed model is returned

    Raises:
        ConfigurationError: invalid round count or sample fraction
        TrainingError: a round failed on every attempt, or training was
            cancelled before any round completed
    """
    if n_rounds < 1:
        raise ConfigurationError(f"n_rounds must be positive, got {n_rounds}", stage="train")
    if not 0.0 < sample_fraction <= 1.0:
        raise ConfigurationError(f"sample_fraction must lie in (0, 1], got {sample_fraction}", stage="train")
    if round_retries < 0:
        raise ConfigurationError(f"round_retries must not be negative, got {round_retries}", stage="train")

    n_rows = len(training)
    n_samples = int(round(sample_fraction * n_rows))
    if n_samples < 1:
        raise ConfigurationError(
            f"sample_fraction {sample_fraction} of {n_rows} training rows selects no rows", stage="train"
        )

    if n_rounds > 1:
        logging.warning(
            f"Only the model from round {n_rounds} of {n_rounds} is kept; earlier rounds are discarded, "
            f"not averaged. This is not k-fold cross-validation."
        )

    features = training.features
    target = training.target
    last_model: Optional[TrainedModel] = None

    logging.info(f"Starting {n_rounds} resampling rounds on {n_samples} of {n_rows} training rows...")
    for round_index in range(n_rounds):
        if should_stop is not None and should_stop():
            if last_model is None:
                raise TrainingError("Training cancelled before the first round completed")
            logging.warning(f"Training cancelled after {round_index} rounds; keeping the model of round {round_index}.")
            break

        index = rng.choice(n_rows, size=n_samples, replace=False)
        for attempt in range(round_retries + 1):
            generator = torch.Generator().manual_seed(int(rng.integers(0, 2**31 - 1)))
            try:
                model, loss, steps = fit_network(
                    features[index], target[index], hidden_sizes, generator,
                    threshold=threshold,
                    max_steps=max_steps,
                    learning_rate=learning_rate,
                    activation_name=activation_name,
                    output_activation_name=output_activation_name
                )
                break
            except TrainingError as exc:
                if attempt == round_retries:
                    raise TrainingError(f"Round {round_index + 1}/{n_rounds} failed: {exc}") from exc
                logging.warning(f"Round {round_index + 1} attempt {attempt + 1} failed ({exc}); retrying.")

        last_model = TrainedModel.from_network(
            model, activation_name, output_activation_name, round_index, loss, steps
        )
        if progress is not None:
            progress(RoundReport(round_index, n_rounds, n_samples, loss, steps, attempt + 1))

    logging.info(f"Resampling complete. Kept model of round {last_model.round_index + 1} (loss {last_model.loss:.6f}).")
    return last_model
