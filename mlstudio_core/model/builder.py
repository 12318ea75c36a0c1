"""MLStudio Builder - Network Construction per Model Family.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np

from mlstudio_core.errors import ErrorCategory, TrainingRuntimeError
from mlstudio_core.model.families import (
    ConvNetParams,
    FamilyParams,
    NeuralNetworkParams,
    Task,
    UnsupportedFamily,
)
from mlstudio_core.runtime.tensor import TensorRuntime

logger = logging.getLogger(__name__)

ACTIVATIONS = {
    "relu": "ReLU",
    "tanh": "Tanh",
    "sigmoid": "Sigmoid",
    "gelu": "GELU",
    "elu": "ELU",
    "selu": "SELU",
    "leaky_relu": "LeakyReLU",
    "linear": "Identity",
}


def _activation(nn: Any, name: str) -> Any:
    key = name.lower()
    if key not in ACTIVATIONS:
        raise TrainingRuntimeError(
            ErrorCategory.UNSUPPORTED_ARCHITECTURE,
            f"Unknown activation '{name}'",
            {"activation": name},
        )
    return getattr(nn, ACTIVATIONS[key])()


def output_units(spec: FamilyParams, num_classes: int) -> int:
    return num_classes if spec.task == Task.MULTICLASS else 1


def output_activation(task: Task) -> str:
    if task == Task.BINARY:
        return "sigmoid"
    if task == Task.MULTICLASS:
        return "softmax"
    return "linear"


def _dense(units: int, activation: str, input_dim: int) -> Dict[str, Any]:
    return {
        "class_name": "Dense",
        "config": {"units": units, "activation": activation, "input_dim": input_dim},
    }


def _build_dense(
    spec: FamilyParams,
    input_shape: Sequence[int],
    units_out: int,
    runtime: TensorRuntime,
) -> Tuple[List[Any], List[Dict[str, Any]]]:
    nn = runtime.nn
    layers: List[Any] = []
    described: List[Dict[str, Any]] = []

    if len(input_shape) > 1:
        layers.append(nn.Flatten())
        described.append({"class_name": "Flatten", "config": {}})

    prev = int(np.prod(input_shape))
    hidden = spec.hidden_layers if isinstance(spec, NeuralNetworkParams) else []
    for units in hidden:
        layers.append(nn.Linear(prev, int(units)))
        layers.append(_activation(nn, spec.activation))
        described.append(_dense(int(units), spec.activation, prev))
        if spec.dropout > 0:
            layers.append(nn.Dropout(spec.dropout))
            described.append({"class_name": "Dropout", "config": {"rate": spec.dropout}})
        prev = int(units)

    layers.append(nn.Linear(prev, units_out))
    described.append(_dense(units_out, output_activation(spec.task), prev))
    return layers, described


def _build_cnn(
    spec: ConvNetParams,
    input_shape: Sequence[int],
    units_out: int,
    runtime: TensorRuntime,
) -> Tuple[List[Any], List[Dict[str, Any]]]:
    if len(input_shape) != 3:
        raise TrainingRuntimeError(
            ErrorCategory.UNSUPPORTED_ARCHITECTURE,
            "Convolutional networks need image data shaped [H, W, C]",
            {"inputShape": list(input_shape)},
        )

    nn = runtime.nn
    height, width, channels = (int(d) for d in input_shape)
    kernel = spec.kernel_size
    padding = kernel // 2
    layers: List[Any] = []
    described: List[Dict[str, Any]] = []

    prev = channels
    for filters in spec.filters:
        layers.append(nn.Conv2d(prev, int(filters), kernel, padding=padding))
        layers.append(_activation(nn, spec.activation))
        described.append({
            "class_name": "Conv2D",
            "config": {"filters": int(filters), "kernel_size": kernel, "activation": spec.activation},
        })
        height = height + 2 * padding - kernel + 1
        width = width + 2 * padding - kernel + 1
        if height >= 2 and width >= 2:
            layers.append(nn.MaxPool2d(2))
            described.append({"class_name": "MaxPooling2D", "config": {"pool_size": 2}})
            height, width = height // 2, width // 2
        prev = int(filters)

    if height < 1 or width < 1:
        raise TrainingRuntimeError(
            ErrorCategory.UNSUPPORTED_ARCHITECTURE,
            "Image is too small for the requested convolution stack",
            {"inputShape": list(input_shape), "filters": list(spec.filters)},
        )

    flat = prev * height * width
    layers.append(nn.Flatten())
    layers.append(nn.Linear(flat, spec.dense_units))
    layers.append(_activation(nn, spec.activation))
    described.append({"class_name": "Flatten", "config": {}})
    described.append(_dense(spec.dense_units, spec.activation, flat))
    if spec.dropout > 0:
        layers.append(nn.Dropout(spec.dropout))
        described.append({"class_name": "Dropout", "config": {"rate": spec.dropout}})
    layers.append(nn.Linear(spec.dense_units, units_out))
    described.append(_dense(units_out, output_activation(spec.task), spec.dense_units))
    return layers, described


def build_network(
    spec: FamilyParams,
    input_shape: Sequence[int],
    units_out: int,
    runtime: TensorRuntime,
) -> Tuple[Any, Dict[str, Any]]:
    """Build a torch module and its architecture description.

    The network emits logits; the output activation recorded in the
    architecture is applied by the loss during training and at prediction.

    Args:
        spec: Family hyperparameters
        input_shape: Per-row input shape, (F,) or (H, W, C)
        units_out: Output width
        runtime: Tensor runtime

    Returns:
        (module, architecture)

    Raises:
        TrainingRuntimeError: Unsupported family or impossible architecture
    """
    if isinstance(spec, UnsupportedFamily):
        spec.validate()

    if isinstance(spec, ConvNetParams):
        layers, described = _build_cnn(spec, input_shape, units_out, runtime)
        layout = "NCHW"
    else:
        layers, described = _build_dense(spec, input_shape, units_out, runtime)
        layout = "NF"

    described[0]["config"]["batch_input_shape"] = [None, *[int(d) for d in input_shape]]
    architecture = {
        "class_name": "Sequential",
        "config": {"name": spec.family.value, "layers": described},
        "input_layout": layout,
        "output": "logits",
    }

    module = runtime.sequential(layers)
    n_params = sum(p.numel() for p in module.parameters())
    logger.info(f"Built {spec.family.value} with {len(described)} layers, {n_params} parameters")
    return module, architecture


__all__ = ["build_network", "output_units", "output_activation", "ACTIVATIONS"]
