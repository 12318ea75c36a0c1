"""Tests for model families, network building and the tensor runtime.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

import sys

import numpy as np
import pytest

from mlstudio_core.errors import DependencyUnavailable, ErrorCategory, TrainingRuntimeError
from mlstudio_core.model.families import (
    ConvNetParams,
    LinearRegressionParams,
    LogisticRegressionParams,
    ModelFamily,
    NeuralNetworkParams,
    Task,
    UnsupportedFamily,
    model_templates,
    parse_family,
)
from mlstudio_core.runtime.tensor import TensorRuntime


class TestParseFamily:
    """Test parse_family."""

    def test_camel_case_params(self):
        """Test stored camelCase keys map onto fields."""
        spec = parse_family("neural_network", {
            "hiddenLayers": [8, 4],
            "learningRate": "0.1",
            "batchSize": 16,
            "epochs": "5",
            "loss": "binary_crossentropy",
        })

        assert isinstance(spec, NeuralNetworkParams)
        assert spec.hidden_layers == [8, 4]
        assert spec.learning_rate == 0.1
        assert spec.batch_size == 16
        assert spec.epochs == 5
        assert spec.task == Task.BINARY

    def test_numbered_filters(self):
        """Test filters1, filters2 keys become a filter list."""
        spec = parse_family("cnn", {"filters2": 16, "filters1": 8, "kernelSize": 5})

        assert isinstance(spec, ConvNetParams)
        assert spec.filters == [8, 16]
        assert spec.kernel_size == 5
        assert spec.task == Task.MULTICLASS

    def test_hyphenated_type(self):
        """Test hyphenated model type names."""
        assert isinstance(parse_family("linear-regression"), LinearRegressionParams)
        assert parse_family("logistic_regression").task == Task.BINARY

    def test_unknown_type(self):
        """Test unknown types raise UNSUPPORTED_ARCHITECTURE."""
        with pytest.raises(TrainingRuntimeError) as exc:
            parse_family("quantum_annealer")
        assert exc.value.category == ErrorCategory.UNSUPPORTED_ARCHITECTURE

    def test_declared_but_unsupported(self):
        """Test declared types parse but refuse validation."""
        spec = parse_family("random_forest", {"trees": 10})

        assert isinstance(spec, UnsupportedFamily)
        assert spec.family == ModelFamily.RANDOM_FOREST
        assert spec.to_dict() == {"trees": 10, "modelType": "random_forest"}
        with pytest.raises(TrainingRuntimeError) as exc:
            spec.validate()
        assert exc.value.category == ErrorCategory.UNSUPPORTED_ARCHITECTURE

    def test_invalid_values(self):
        """Test out-of-range hyperparameters."""
        with pytest.raises(TrainingRuntimeError):
            parse_family("linear_regression", {"learningRate": 0})
        with pytest.raises(TrainingRuntimeError):
            parse_family("neural_network", {"dropout": 1.5})

    def test_unknown_keys_ignored(self):
        """Test extra keys do not break parsing."""
        spec = parse_family("linear_regression", {"epochs": 3, "colour": "blue"})
        assert spec.epochs == 3

    def test_to_dict(self):
        """Test params serialize with their model type."""
        data = LogisticRegressionParams(epochs=2).to_dict()
        assert data["modelType"] == "logistic_regression"
        assert data["epochs"] == 2


class TestTemplates:
    """Test model_templates."""

    def test_every_family_listed(self):
        """Test one template per family, with support flags."""
        templates = {t.family: t for t in model_templates()}

        assert set(templates) == set(ModelFamily)
        assert templates[ModelFamily.CNN].supported
        assert not templates[ModelFamily.XGBOOST].supported
        assert templates[ModelFamily.NEURAL_NETWORK].default_params["hidden_layers"] == [64, 32]


class TestTensorRuntime:
    """Test TensorRuntime class."""

    def test_missing_torch(self, monkeypatch):
        """Test a failed import surfaces as DependencyUnavailable and is remembered."""
        monkeypatch.setitem(sys.modules, "torch", None)
        runtime = TensorRuntime()

        with pytest.raises(DependencyUnavailable) as exc:
            runtime.ensure()
        assert exc.value.category == ErrorCategory.RUNTIME_UNAVAILABLE
        assert not runtime.available
        with pytest.raises(DependencyUnavailable):
            runtime.ensure()

    def test_lazy(self):
        """Test nothing loads at construction."""
        assert "unloaded" in repr(TensorRuntime())

    def test_unknown_optimizer(self):
        """Test unknown optimizers raise ValueError."""
        pytest.importorskip("torch")
        runtime = TensorRuntime()
        layer = runtime.nn.Linear(2, 1)

        with pytest.raises(ValueError):
            runtime.optimizer("lbfgs-ish", layer.parameters(), 0.1)

    def test_weight_lists_roundtrip(self):
        """Test weights survive conversion to plain lists."""
        pytest.importorskip("torch")
        runtime = TensorRuntime(seed=1)
        runtime.seed_all()
        source = runtime.sequential([runtime.nn.Linear(3, 2)])
        target = runtime.sequential([runtime.nn.Linear(3, 2)])

        runtime.load_lists(target, runtime.state_to_lists(source))

        x = runtime.tensor(np.ones((1, 3)))
        assert runtime.to_numpy(target(x)).tolist() == runtime.to_numpy(source(x)).tolist()


class TestBuildNetwork:
    """Test build_network."""

    def test_dense_architecture(self):
        """Test dense layers and the recorded architecture."""
        pytest.importorskip("torch")
        from mlstudio_core.model.builder import build_network

        spec = NeuralNetworkParams(hidden_layers=[4], dropout=0.0)
        module, architecture = build_network(spec, (3,), 1, TensorRuntime())

        layers = architecture["config"]["layers"]
        assert architecture["input_layout"] == "NF"
        assert [l["class_name"] for l in layers] == ["Dense", "Dense"]
        assert layers[0]["config"]["batch_input_shape"] == [None, 3]
        assert layers[-1]["config"]["activation"] == "linear"
        assert sum(p.numel() for p in module.parameters()) == 3 * 4 + 4 + 4 + 1

    def test_cnn_architecture(self):
        """Test convolution stacks on image shapes."""
        pytest.importorskip("torch")
        from mlstudio_core.model.builder import build_network

        spec = ConvNetParams(filters=[4], dense_units=8)
        module, architecture = build_network(spec, (8, 8, 1), 3, TensorRuntime())

        names = [l["class_name"] for l in architecture["config"]["layers"]]
        assert architecture["input_layout"] == "NCHW"
        assert names[0] == "Conv2D"
        assert "MaxPooling2D" in names
        assert architecture["config"]["layers"][-1]["config"]["activation"] == "softmax"

    def test_cnn_rejects_tabular(self):
        """Test convolution on flat features is refused."""
        pytest.importorskip("torch")
        from mlstudio_core.model.builder import build_network

        with pytest.raises(TrainingRuntimeError):
            build_network(ConvNetParams(), (5,), 2, TensorRuntime())

    def test_unsupported_family(self):
        """Test unsupported families never build."""
        from mlstudio_core.model.builder import build_network

        with pytest.raises(TrainingRuntimeError):
            build_network(parse_family("svm"), (3,), 1, TensorRuntime())
