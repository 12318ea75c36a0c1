"""MLStudio Model Artifact - Serialized Trained Models.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from mlstudio_core.model.builder import build_network
from mlstudio_core.model.families import parse_family
from mlstudio_core.runtime.tensor import TensorRuntime
from mlstudio_core.utils.hashing import compute_hash

logger = logging.getLogger(__name__)

PLACEHOLDER_LABEL = "target"


class ArtifactFormat(Enum):
    """Export formats."""

    JSON = "json"
    NATIVE = "native"


@dataclass
class ModelArtifact:
    """A trained model as stored in ``ModelVersion.model_data``.

    Attributes:
        model_type: Model type name
        architecture: Layer description produced by the builder
        weights: One record per tensor: name, shape, dtype, flat data
        training_history: Per-epoch records
        training_metadata: featureNames, labelName, inputShape, family params, ...
    """

    model_type: str
    architecture: Dict[str, Any]
    weights: List[Dict[str, Any]] = field(default_factory=list)
    training_history: List[Dict[str, Any]] = field(default_factory=list)
    training_metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def checksum(self) -> str:
        return compute_hash({"architecture": self.architecture, "weights": self.weights})[:16]

    @property
    def size_params(self) -> int:
        return sum(int(np.prod(w["shape"])) for w in self.weights)

    def to_model_data(self) -> Dict[str, Any]:
        metadata = dict(self.training_metadata)
        metadata["checksum"] = self.checksum
        return {
            "modelType": self.model_type,
            "architecture": self.architecture,
            "weights": self.weights,
            "trainingHistory": self.training_history,
            "trainingMetadata": metadata,
        }

    @classmethod
    def from_model_data(cls, model_data: Dict[str, Any]) -> "ModelArtifact":
        """Inverse of ``to_model_data``.

        Raises:
            ValueError: If the document has no architecture
        """
        if not model_data or "architecture" not in model_data:
            raise ValueError("Model data has no architecture")
        return cls(
            model_type=model_data.get("modelType", ""),
            architecture=model_data["architecture"],
            weights=list(model_data.get("weights") or []),
            training_history=list(model_data.get("trainingHistory") or []),
            training_metadata=dict(model_data.get("trainingMetadata") or {}),
        )


def resolve_feature_names(model_data: Dict[str, Any]) -> Tuple[List[str], str, bool]:
    """Feature names and label name a model was trained with.

    Uses ``trainingMetadata`` when present. Otherwise the names are rebuilt
    as ``feature_<i>`` from the first layer's declared input width and the
    label becomes "target".

    Returns:
        (feature_names, label_name, degraded)

    Raises:
        ValueError: If neither metadata nor an input width is available
    """
    metadata = (model_data or {}).get("trainingMetadata") or {}
    names = metadata.get("featureNames")
    if names:
        return list(names), metadata.get("labelName") or PLACEHOLDER_LABEL, False

    try:
        first = model_data["architecture"]["config"]["layers"][0]["config"]
        shape = first["batch_input_shape"]
        width = int(np.prod(shape[1:]))
    except (KeyError, IndexError, TypeError) as e:
        raise ValueError("Cannot determine input width from model architecture") from e

    logger.warning(f"Feature names missing from model data; rebuilt {width} placeholder names")
    return [f"feature_{i}" for i in range(width)], PLACEHOLDER_LABEL, True


def _layout_from_architecture(architecture: Dict[str, Any]) -> Tuple[Dict[str, Any], int]:
    """Recover family parameters and output width from the layer description."""
    layers = architecture["config"]["layers"]
    dense = [layer["config"] for layer in layers if layer["class_name"] == "Dense"]
    convs = [layer["config"] for layer in layers if layer["class_name"] == "Conv2D"]
    dropouts = [layer["config"]["rate"] for layer in layers if layer["class_name"] == "Dropout"]
    if not dense:
        raise ValueError("Model architecture has no dense output layer")

    params: Dict[str, Any] = {"dropout": dropouts[0] if dropouts else 0.0}
    if convs:
        params.update(
            filters=[c["filters"] for c in convs],
            kernel_size=convs[0]["kernel_size"],
            activation=convs[0]["activation"],
            dense_units=dense[0]["units"],
        )
    else:
        params["hidden_layers"] = [d["units"] for d in dense[:-1]]
        if len(dense) > 1:
            params["activation"] = dense[0]["activation"]
    return params, int(dense[-1]["units"])


def restore_model(model_data: Dict[str, Any], runtime: TensorRuntime) -> Any:
    """Rebuild the trained torch module from an artifact document.

    Layer widths come from ``trainingMetadata`` when it is present and from
    the architecture description otherwise.
    """
    artifact = ModelArtifact.from_model_data(model_data)
    meta = artifact.training_metadata
    family_params = meta.get("familyParams")
    units_out = meta.get("outputUnits")
    if family_params is None or units_out is None:
        family_params, units_out = _layout_from_architecture(artifact.architecture)
    spec = parse_family(artifact.model_type, family_params)
    input_shape = meta.get("inputShape")
    if not input_shape:
        first = artifact.architecture["config"]["layers"][0]["config"]
        input_shape = first["batch_input_shape"][1:]

    module, _ = build_network(spec, input_shape, int(units_out), runtime)
    runtime.load_lists(module, artifact.weights)
    module.eval()
    return module


def export_native(model_data: Dict[str, Any], runtime: TensorRuntime) -> bytes:
    """Serialize with ``torch.save``: architecture, state dict and metadata."""
    torch = runtime.ensure()
    artifact = ModelArtifact.from_model_data(model_data)
    state = {}
    for record in artifact.weights:
        arr = np.asarray(record["data"], dtype=record.get("dtype", "float32"))
        state[record["name"]] = torch.as_tensor(arr.reshape(record["shape"]))

    buffer = io.BytesIO()
    torch.save(
        {
            "modelType": artifact.model_type,
            "architecture": artifact.architecture,
            "state_dict": state,
            "trainingMetadata": artifact.training_metadata,
        },
        buffer,
    )
    return buffer.getvalue()


def load_native(raw: bytes, runtime: TensorRuntime) -> Dict[str, Any]:
    """Read bytes written by ``export_native``."""
    torch = runtime.ensure()
    return torch.load(io.BytesIO(raw), map_location="cpu", weights_only=False)


__all__ = [
    "ArtifactFormat",
    "ModelArtifact",
    "resolve_feature_names",
    "restore_model",
    "export_native",
    "load_native",
]
