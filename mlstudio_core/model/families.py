"""MLStudio Model Families - Hyperparameter Schemas per Model Type.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

Every model type maps to exactly one params dataclass. Types that are
declared but not trainable map to ``UnsupportedFamily`` so callers can list
them and the driver can reject them by type instead of by string.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Type

from mlstudio_core.errors import ErrorCategory, TrainingRuntimeError

logger = logging.getLogger(__name__)


class ModelFamily(Enum):
    """Model types known to the engine."""

    LINEAR_REGRESSION = "linear_regression"
    LOGISTIC_REGRESSION = "logistic_regression"
    NEURAL_NETWORK = "neural_network"
    CNN = "cnn"
    DECISION_TREE = "decision_tree"
    RANDOM_FOREST = "random_forest"
    SVM = "svm"
    KMEANS = "kmeans"
    XGBOOST = "xgboost"
    NAIVE_BAYES = "naive_bayes"
    KNN = "knn"
    LSTM = "lstm"
    RESNET = "resnet"

    @property
    def supported(self) -> bool:
        return self in _PARAMS


class Task(Enum):
    """What the output layer predicts."""

    REGRESSION = "regression"
    BINARY = "binary"
    MULTICLASS = "multiclass"

    @property
    def is_classification(self) -> bool:
        return self != Task.REGRESSION


# Stored parameter documents use camelCase keys.
_ALIASES = {
    "learningRate": "learning_rate",
    "batchSize": "batch_size",
    "hiddenLayers": "hidden_layers",
    "kernelSize": "kernel_size",
    "denseUnits": "dense_units",
    "numClasses": "num_classes",
}


@dataclass
class FamilyParams:
    """Hyperparameters shared by every trainable family."""

    family: ClassVar[ModelFamily]

    learning_rate: float = 0.01
    epochs: int = 100
    batch_size: int = 32
    optimizer: str = "adam"

    @property
    def task(self) -> Task:
        return Task.REGRESSION

    def validate(self) -> None:
        """Raise ``TrainingRuntimeError`` for out-of-range values."""
        problems = []
        if self.learning_rate <= 0:
            problems.append(f"learning_rate must be positive, got {self.learning_rate}")
        if self.epochs < 1:
            problems.append(f"epochs must be at least 1, got {self.epochs}")
        if self.batch_size < 1:
            problems.append(f"batch_size must be at least 1, got {self.batch_size}")
        dropout = getattr(self, "dropout", 0.0)
        if not 0.0 <= dropout < 1.0:
            problems.append(f"dropout must be in [0, 1), got {dropout}")
        if problems:
            raise TrainingRuntimeError(
                ErrorCategory.UNKNOWN,
                "Invalid hyperparameters: " + "; ".join(problems),
                {"modelType": self.family.value},
            )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["modelType"] = self.family.value
        return data


@dataclass
class LinearRegressionParams(FamilyParams):
    """Single dense unit with mean squared error."""

    family: ClassVar[ModelFamily] = ModelFamily.LINEAR_REGRESSION


@dataclass
class LogisticRegressionParams(FamilyParams):
    """Single sigmoid unit with binary cross-entropy."""

    family: ClassVar[ModelFamily] = ModelFamily.LOGISTIC_REGRESSION

    @property
    def task(self) -> Task:
        return Task.BINARY


@dataclass
class NeuralNetworkParams(FamilyParams):
    """Fully connected network; the loss decides the task."""

    family: ClassVar[ModelFamily] = ModelFamily.NEURAL_NETWORK

    hidden_layers: List[int] = field(default_factory=lambda: [64, 32])
    activation: str = "relu"
    dropout: float = 0.2
    loss: str = "mse"

    @property
    def task(self) -> Task:
        loss = self.loss.lower()
        if loss in ("binary_crossentropy", "bce"):
            return Task.BINARY
        if loss in ("categorical_crossentropy", "sparse_categorical_crossentropy", "cross_entropy"):
            return Task.MULTICLASS
        return Task.REGRESSION


@dataclass
class ConvNetParams(FamilyParams):
    """Convolution blocks followed by one dense layer; classifies images."""

    family: ClassVar[ModelFamily] = ModelFamily.CNN

    filters: List[int] = field(default_factory=lambda: [32, 64])
    kernel_size: int = 3
    dense_units: int = 128
    activation: str = "relu"
    dropout: float = 0.25
    num_classes: Optional[int] = None

    @property
    def task(self) -> Task:
        return Task.MULTICLASS


@dataclass
class UnsupportedFamily(FamilyParams):
    """A declared model type the engine cannot train."""

    name: ModelFamily = ModelFamily.SVM
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def family(self) -> ModelFamily:  # type: ignore[override]
        return self.name

    def validate(self) -> None:
        raise TrainingRuntimeError(
            ErrorCategory.UNSUPPORTED_ARCHITECTURE,
            f"Model type '{self.name.value}' is not supported yet",
            {"modelType": self.name.value},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {**self.raw, "modelType": self.name.value}


_PARAMS: Dict[ModelFamily, Type[FamilyParams]] = {
    ModelFamily.LINEAR_REGRESSION: LinearRegressionParams,
    ModelFamily.LOGISTIC_REGRESSION: LogisticRegressionParams,
    ModelFamily.NEURAL_NETWORK: NeuralNetworkParams,
    ModelFamily.CNN: ConvNetParams,
}


def _normalise_keys(params: Dict[str, Any]) -> Dict[str, Any]:
    out = {}
    filters = []
    for key, value in params.items():
        if key.startswith("filters") and key[len("filters"):].isdigit():
            filters.append((int(key[len("filters"):]), value))
            continue
        out[_ALIASES.get(key, key)] = value
    if filters and "filters" not in out:
        out["filters"] = [v for _, v in sorted(filters)]
    return out


def parse_family(model_type: str, params: Optional[Dict[str, Any]] = None) -> FamilyParams:
    """Resolve a model type name and raw parameters into a params object.

    Args:
        model_type: Model type name, e.g. "neural_network"
        params: Raw hyperparameters (snake_case or camelCase keys)

    Returns:
        FamilyParams subclass instance

    Raises:
        TrainingRuntimeError: Unknown model type or invalid values
    """
    params = dict(params or {})
    key = str(model_type).strip().lower().replace("-", "_")
    try:
        family = ModelFamily(key)
    except ValueError:
        raise TrainingRuntimeError(
            ErrorCategory.UNSUPPORTED_ARCHITECTURE,
            f"Unknown model type '{model_type}'",
            {"modelType": model_type},
        ) from None

    if not family.supported:
        logger.warning(f"Model type '{family.value}' is declared but not trainable")
        return UnsupportedFamily(name=family, raw=params)

    cls = _PARAMS[family]
    known = {f.name for f in fields(cls)}
    normalised = _normalise_keys(params)
    ignored = sorted(k for k in normalised if k not in known)
    if ignored:
        logger.debug(f"Ignoring parameters for {family.value}: {ignored}")

    kwargs = {k: v for k, v in normalised.items() if k in known}
    for name in ("epochs", "batch_size", "kernel_size", "dense_units"):
        if name in kwargs:
            kwargs[name] = int(kwargs[name])
    for name in ("learning_rate", "dropout"):
        if name in kwargs:
            kwargs[name] = float(kwargs[name])

    spec = cls(**kwargs)
    spec.validate()
    return spec


@dataclass
class ModelTemplate:
    """Catalogue entry for a model type."""

    family: ModelFamily
    name: str
    description: str
    default_params: Dict[str, Any]
    supported: bool


_DESCRIPTIONS = {
    ModelFamily.LINEAR_REGRESSION: ("Linear Regression", "Predicts a continuous value with a single linear unit"),
    ModelFamily.LOGISTIC_REGRESSION: ("Logistic Regression", "Binary classification with a sigmoid output"),
    ModelFamily.NEURAL_NETWORK: ("Neural Network", "Fully connected network for regression or classification"),
    ModelFamily.CNN: ("Convolutional Network", "Image classification with convolution blocks"),
    ModelFamily.DECISION_TREE: ("Decision Tree", "Tree-based classification and regression"),
    ModelFamily.RANDOM_FOREST: ("Random Forest", "Ensemble of decision trees"),
    ModelFamily.SVM: ("Support Vector Machine", "Maximum-margin classifier"),
    ModelFamily.KMEANS: ("K-Means", "Centroid clustering"),
    ModelFamily.XGBOOST: ("XGBoost", "Gradient boosted trees"),
    ModelFamily.NAIVE_BAYES: ("Naive Bayes", "Probabilistic classifier"),
    ModelFamily.KNN: ("K-Nearest Neighbours", "Instance-based classifier"),
    ModelFamily.LSTM: ("LSTM", "Recurrent network for sequences"),
    ModelFamily.RESNET: ("ResNet", "Residual convolutional network"),
}


def model_templates() -> List[ModelTemplate]:
    """Every model type with its defaults and whether it can be trained."""
    templates = []
    for family in ModelFamily:
        title, description = _DESCRIPTIONS[family]
        defaults = _PARAMS[family]().to_dict() if family.supported else {"modelType": family.value}
        templates.append(ModelTemplate(
            family=family,
            name=title,
            description=description,
            default_params=defaults,
            supported=family.supported,
        ))
    return templates


__all__ = [
    "ModelFamily",
    "Task",
    "FamilyParams",
    "LinearRegressionParams",
    "LogisticRegressionParams",
    "NeuralNetworkParams",
    "ConvNetParams",
    "UnsupportedFamily",
    "ModelTemplate",
    "parse_family",
    "model_templates",
]
