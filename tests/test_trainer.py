"""
Integration tests for trainer.py
"""
import logging

import pytest
import torch
import torch.nn as nn
import numpy as np
import pandas as pd

from electrolyte_nn import trainer
from electrolyte_nn.data_loader import ElectrolyteDataset
from electrolyte_nn.errors import ConfigurationError, TrainingError
from electrolyte_nn.model import NeuralNetwork
from electrolyte_nn.trainer import (
    RoundReport,
    TrainedModel,
    compute_gradients,
    fit_network,
    train_resampled,
)


@pytest.fixture
def scaled_training():
    """Fifteen rows already in [0, 1], with a smooth target."""
    a = np.linspace(0.0, 1.0, 15)
    b = np.tile([0.0, 0.25, 0.5, 0.75, 1.0], 3)
    y = 0.2 + 0.5 * a * (1.0 - 0.3 * b)
    frame = pd.DataFrame({"ZnBr2saltM": a, "ZnCl2saltM": b, "pH": y})
    return ElectrolyteDataset(frame, ("ZnBr2saltM", "ZnCl2saltM"), "pH")


class TestComputeGradients:
    """Tests for compute_gradients function."""

    def test_returns_half_sum_of_squares(self):
        model = NeuralNetwork()
        model.reset_parameters(torch.Generator().manual_seed(0))
        features = torch.rand(6, 2)
        labels = torch.rand(6, 1)
        optimizer = torch.optim.Rprop(model.parameters())

        loss, max_grad = compute_gradients(model, features, labels, nn.MSELoss(reduction='sum'), optimizer)

        with torch.no_grad():
            expected = 0.5 * ((model(features) - labels) ** 2).sum().item()
        assert loss == pytest.approx(expected, rel=1e-5)
        assert max_grad >= 0
        assert all(param.grad is not None for param in model.parameters())


class TestFitNetwork:
    """Tests for fit_network function."""

    def test_converges_below_threshold(self, scaled_training):
        model, loss, steps = fit_network(
            scaled_training.features, scaled_training.target, (6, 4),
            torch.Generator().manual_seed(3), threshold=0.5, max_steps=20000
        )

        assert isinstance(model, NeuralNetwork)
        assert np.isfinite(loss)
        assert 0 <= steps <= 20000

    def test_training_reduces_loss(self, scaled_training):
        """Test that fitting lowers the loss of the initial weights."""
        generator_seed = 5
        initial = NeuralNetwork()
        initial.reset_parameters(torch.Generator().manual_seed(generator_seed))
        with torch.no_grad():
            X = torch.tensor(scaled_training.features, dtype=torch.float32)
            y = torch.tensor(scaled_training.target, dtype=torch.float32).reshape(-1, 1)
            initial_loss = 0.5 * ((initial(X) - y) ** 2).sum().item()

        _, loss, _ = fit_network(
            scaled_training.features, scaled_training.target, (6, 4),
            torch.Generator().manual_seed(generator_seed), threshold=0.5, max_steps=20000
        )

        assert loss <= initial_loss

    def test_not_converged_raises(self, scaled_training):
        """Test that running out of steps is a TrainingError."""
        with pytest.raises(TrainingError) as excinfo:
            fit_network(
                scaled_training.features, scaled_training.target, (6, 4),
                torch.Generator().manual_seed(0), threshold=1e-12, max_steps=1
            )

        assert "did not converge" in str(excinfo.value)
        assert excinfo.value.stage == "train"

    def test_divergence_raises(self, scaled_training):
        features = scaled_training.features.copy()
        features[2, 0] = np.nan

        with pytest.raises(TrainingError) as excinfo:
            fit_network(features, scaled_training.target, (6, 4), torch.Generator().manual_seed(0))

        assert "diverged" in str(excinfo.value)


class TestTrainResampled:
    """Tests for train_resampled function."""

    def test_progress_called_once_per_round(self, scaled_training):
        reports = []

        model = train_resampled(
            scaled_training, np.random.default_rng(10), n_rounds=3,
            threshold=0.5, max_steps=20000, progress=reports.append
        )

        assert [report.round_index for report in reports] == [0, 1, 2]
        assert all(isinstance(report, RoundReport) for report in reports)
        assert all(report.n_rounds == 3 for report in reports)
        assert all(report.n_samples == 9 for report in reports)
        assert isinstance(model, TrainedModel)

    def test_keeps_only_final_round(self, scaled_training):
        """Test that the returned model is the one fitted in the last round."""
        reports = []

        model = train_resampled(
            scaled_training, np.random.default_rng(10), n_rounds=3,
            threshold=0.5, max_steps=20000, progress=reports.append
        )

        assert model.round_index == 2
        assert model.loss == reports[-1].loss
        assert model.steps == reports[-1].steps

    def test_warns_that_rounds_are_not_averaged(self, scaled_training, caplog):
        with caplog.at_level(logging.WARNING):
            train_resampled(
                scaled_training, np.random.default_rng(10), n_rounds=2,
                threshold=0.5, max_steps=20000, progress=None
            )

        assert "not k-fold cross-validation" in caplog.text

    def test_same_seed_same_model(self, scaled_training):
        """Test that identical generators give identical weights."""
        kwargs = dict(n_rounds=2, threshold=0.5, max_steps=20000, progress=None)
        first = train_resampled(scaled_training, np.random.default_rng(7), **kwargs)
        second = train_resampled(scaled_training, np.random.default_rng(7), **kwargs)

        for key, value in first.state_dict.items():
            assert torch.equal(value, second.state_dict[key])

    def test_trained_model_rebuilds_network(self, scaled_training):
        model = train_resampled(
            scaled_training, np.random.default_rng(1), n_rounds=1,
            threshold=0.5, max_steps=20000, progress=None
        )

        network = model.build_network()

        assert not network.training
        assert network.hidden_sizes == (6, 4)
        output = network(torch.tensor(scaled_training.features, dtype=torch.float32))
        assert output.shape == (15, 1)

    def test_state_dict_is_detached_copy(self, scaled_training):
        model = train_resampled(
            scaled_training, np.random.default_rng(1), n_rounds=1,
            threshold=0.5, max_steps=20000, progress=None
        )

        network = model.build_network()
        with torch.no_grad():
            network.layers[0].weight.add_(1.0)

        assert not torch.equal(network.layers[0].weight, model.state_dict["layers.0.weight"])

    def test_failed_round_raises(self, scaled_training):
        with pytest.raises(TrainingError) as excinfo:
            train_resampled(
                scaled_training, np.random.default_rng(10), n_rounds=2,
                threshold=1e-12, max_steps=1, progress=None
            )

        assert "Round 1/2" in str(excinfo.value)

    def test_round_retries(self, scaled_training, monkeypatch):
        """Test that a failing round is refitted before the error propagates."""
        calls = []
        real_fit = trainer.fit_network

        def flaky_fit(*args, **kwargs):
            calls.append(1)
            if len(calls) == 1:
                raise TrainingError("simulated divergence")
            return real_fit(*args, **kwargs)

        monkeypatch.setattr(trainer, "fit_network", flaky_fit)
        reports = []

        train_resampled(
            scaled_training, np.random.default_rng(10), n_rounds=2,
            threshold=0.5, max_steps=20000, round_retries=1, progress=reports.append
        )

        assert len(calls) == 3
        assert [report.attempts for report in reports] == [2, 1]

    def test_retries_exhausted(self, scaled_training, monkeypatch):
        def failing_fit(*args, **kwargs):
            raise TrainingError("simulated divergence")

        monkeypatch.setattr(trainer, "fit_network", failing_fit)

        with pytest.raises(TrainingError):
            train_resampled(scaled_training, np.random.default_rng(10), n_rounds=2, round_retries=2, progress=None)

    def test_cancellation_between_rounds(self, scaled_training):
        """Test that should_stop ends training with the last completed round."""
        checks = []

        def should_stop():
            checks.append(1)
            return len(checks) > 1

        model = train_resampled(
            scaled_training, np.random.default_rng(10), n_rounds=5,
            threshold=0.5, max_steps=20000, progress=None, should_stop=should_stop
        )

        assert model.round_index == 0
        assert len(checks) == 2

    def test_cancellation_before_first_round(self, scaled_training):
        with pytest.raises(TrainingError):
            train_resampled(scaled_training, np.random.default_rng(10), progress=None, should_stop=lambda: True)

    @pytest.mark.parametrize("kwargs", [
        {"n_rounds": 0},
        {"sample_fraction": 0.0},
        {"sample_fraction": 1.5},
        {"sample_fraction": 0.01},
        {"round_retries": -1},
    ])
    def test_invalid_configuration(self, scaled_training, kwargs):
        with pytest.raises(ConfigurationError):
            train_resampled(scaled_training, np.random.default_rng(10), progress=None, **kwargs)
