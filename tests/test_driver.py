"""Tests for training driver.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

import numpy as np
import pytest

from mlstudio_core.data.extractor import DataKind, TrainingData
from mlstudio_core.errors import ErrorCategory, TrainingRuntimeError
from mlstudio_core.model.families import parse_family
from mlstudio_core.model.registry import TrainingConfig
from mlstudio_core.runtime.tensor import TensorRuntime
from mlstudio_core.training.driver import TrainingDriver, predict, split_indices

torch = pytest.importorskip("torch")


def regression_data(n=40):
    rng = np.random.default_rng(0)
    x = rng.normal(size=(n, 2)).astype(np.float32)
    y = (2 * x[:, 0] - x[:, 1] + 0.5).astype(np.float32)
    return TrainingData(features=x, labels=y, feature_names=["a", "b"], label_name="y")


def binary_data(n=60):
    rng = np.random.default_rng(1)
    x = rng.normal(size=(n, 2)).astype(np.float32)
    y = (x[:, 0] > 0).astype(np.float32)
    return TrainingData(features=x, labels=y, feature_names=["a", "b"], label_name="y")


def multiclass_data(n=60):
    rng = np.random.default_rng(2)
    y = np.arange(n) % 3
    x = (rng.normal(size=(n, 2)) + y[:, None] * 3).astype(np.float32)
    return TrainingData(features=x, labels=y.astype(np.float32), feature_names=["a", "b"], label_name="k")


class TestSplitIndices:
    """Test split_indices."""

    def test_sizes(self):
        """Test floor sizes for test and validation, rest to train."""
        split = split_indices(11, 0.2, 0.2, 42)

        assert split.sizes() == {"train": 7, "validation": 2, "test": 2}
        combined = np.concatenate([split.train, split.validation, split.test])
        assert sorted(combined.tolist()) == list(range(11))

    def test_deterministic(self):
        """Test the same seed gives the same partitions."""
        a = split_indices(50, 0.2, 0.1, 7)
        b = split_indices(50, 0.2, 0.1, 7)

        assert a.test.tolist() == b.test.tolist()
        assert a.validation.tolist() == b.validation.tolist()

    def test_pipeline_tags(self):
        """Test rows tagged by a split step keep their partitions."""
        split = split_indices(4, 0.5, 0.5, 1, ["test", "train", "validation", "train"])

        assert split.train.tolist() == [1, 3]
        assert split.validation.tolist() == [2]
        assert split.test.tolist() == [0]

    def test_invalid_fractions(self):
        """Test fractions leaving nothing for training are rejected."""
        with pytest.raises(TrainingRuntimeError):
            split_indices(10, 0.6, 0.4, 1)

    def test_empty_train(self):
        """Test an empty training partition raises."""
        with pytest.raises(TrainingRuntimeError) as exc:
            split_indices(2, 0.0, 0.0, 1, ["test", "test"])
        assert exc.value.category == ErrorCategory.INSUFFICIENT_FEATURES


class TestTrainingDriver:
    """Test TrainingDriver class."""

    def test_linear_regression_learns(self):
        """Test the loss falls and history has one record per epoch."""
        spec = parse_family("linear_regression", {"epochs": 30, "learningRate": 0.05})
        result = TrainingDriver(TensorRuntime()).train(regression_data(), spec)

        assert len(result.history) == 30
        assert result.history[-1].loss < result.history[0].loss
        assert result.metrics.epochs == 30
        assert result.metrics.accuracy is None
        assert result.metrics.test_loss is not None
        assert result.metrics.training_time > 0
        assert not result.cancelled

        meta = result.model_data["trainingMetadata"]
        assert meta["featureNames"] == ["a", "b"]
        assert meta["task"] == "regression"
        assert meta["split"] == {"train": 24, "validation": 8, "test": 8}
        assert len(result.model_data["trainingHistory"]) == 30

    def test_reproducible(self):
        """Test two runs with the same seed give identical weights."""
        spec = parse_family("linear_regression", {"epochs": 5})
        config = TrainingConfig(random_state=3)

        first = TrainingDriver(TensorRuntime()).train(regression_data(), spec, config)
        second = TrainingDriver(TensorRuntime()).train(regression_data(), spec, config)

        assert first.metrics.loss == second.metrics.loss
        assert first.model_data["weights"] == second.model_data["weights"]

    def test_binary_classification(self):
        """Test logistic regression reports accuracy and a class report."""
        spec = parse_family("logistic_regression", {"epochs": 40, "learningRate": 0.1})
        data = binary_data()
        result = TrainingDriver(TensorRuntime()).train(data, spec)

        assert result.metrics.accuracy is not None
        assert 0.0 <= result.metrics.accuracy <= 1.0
        assert result.class_report["labels"] == [0, 1]
        assert result.model_data["trainingMetadata"]["numClasses"] == 2

        probabilities = predict(result.model_data, data.features[:5], TensorRuntime())
        assert probabilities.shape == (5,)
        assert np.all((probabilities >= 0) & (probabilities <= 1))

    def test_binary_labels_validated(self):
        """Test labels above 1 are rejected for binary models."""
        data = binary_data()
        data.labels[0] = 2.0

        with pytest.raises(TrainingRuntimeError):
            TrainingDriver(TensorRuntime()).train(data, parse_family("logistic_regression"))

    def test_multiclass(self):
        """Test softmax probabilities for a categorical network."""
        spec = parse_family("neural_network", {
            "hiddenLayers": [8],
            "dropout": 0.0,
            "epochs": 5,
            "loss": "categorical_crossentropy",
        })
        data = multiclass_data()
        result = TrainingDriver(TensorRuntime()).train(data, spec)

        assert result.model_data["trainingMetadata"]["outputUnits"] == 3
        probabilities = predict(result.model_data, data.features[:4], TensorRuntime())
        assert probabilities.shape == (4, 3)
        assert probabilities.sum(axis=1) == pytest.approx([1.0] * 4, rel=1e-5)

    def test_cnn_on_images(self):
        """Test convolution networks train on [N, H, W, C] tensors."""
        rng = np.random.default_rng(4)
        data = TrainingData(
            features=rng.random((12, 8, 8, 1)).astype(np.float32),
            labels=(np.arange(12) % 2).astype(np.float32),
            feature_names=["image_pixels"],
            label_name="label",
            kind=DataKind.IMAGE,
        )
        spec = parse_family("cnn", {"filters": [4], "denseUnits": 8, "epochs": 2, "batchSize": 4})

        result = TrainingDriver(TensorRuntime()).train(data, spec)

        assert result.model_data["architecture"]["input_layout"] == "NCHW"
        probabilities = predict(result.model_data, data.features[:3], TensorRuntime())
        assert probabilities.shape == (3, 2)

    def test_stop_before_first_epoch(self):
        """Test an immediate stop request cancels with empty history."""
        spec = parse_family("linear_regression", {"epochs": 10})
        result = TrainingDriver(TensorRuntime()).train(
            regression_data(), spec, should_stop=lambda: True
        )

        assert result.cancelled
        assert result.history == []
        assert result.metrics.epochs == 0

    def test_stop_at_epoch_boundary(self):
        """Test a stop request ends the run after the current epoch."""
        seen = []
        spec = parse_family("linear_regression", {"epochs": 10})
        result = TrainingDriver(TensorRuntime()).train(
            regression_data(),
            spec,
            on_epoch=seen.append,
            should_stop=lambda: len(seen) >= 2,
        )

        assert result.cancelled
        assert [r.epoch for r in result.history] == [1, 2]

    def test_diverging_loss(self):
        """Test a non-finite loss raises NUMERIC_OVERFLOW."""
        data = regression_data()
        data.labels[:] = np.inf

        with pytest.raises(TrainingRuntimeError) as exc:
            TrainingDriver(TensorRuntime()).train(data, parse_family("linear_regression", {"epochs": 2}))
        assert exc.value.category == ErrorCategory.NUMERIC_OVERFLOW

    def test_unsupported_family(self):
        """Test declared but untrainable types are refused."""
        with pytest.raises(TrainingRuntimeError) as exc:
            TrainingDriver(TensorRuntime()).train(regression_data(), parse_family("svm"))
        assert exc.value.category == ErrorCategory.UNSUPPORTED_ARCHITECTURE

    def test_unknown_optimizer(self):
        """Test unknown optimizers are reported as unsupported."""
        spec = parse_family("linear_regression", {"optimizer": "nadamax"})

        with pytest.raises(TrainingRuntimeError) as exc:
            TrainingDriver(TensorRuntime()).train(regression_data(), spec)
        assert exc.value.category == ErrorCategory.UNSUPPORTED_ARCHITECTURE
