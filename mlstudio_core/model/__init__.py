"""Model module - Model families, networks, artifacts and versions."""

from mlstudio_core.model.families import (
    ModelFamily,
    Task,
    FamilyParams,
    UnsupportedFamily,
    ModelTemplate,
    parse_family,
    model_templates,
)
from mlstudio_core.model.builder import build_network
from mlstudio_core.model.artifact import (
    ArtifactFormat,
    ModelArtifact,
    resolve_feature_names,
    restore_model,
)
from mlstudio_core.model.registry import (
    ModelStatus,
    ModelVersion,
    ModelVersionStore,
    ModelComparison,
    ModelStatistics,
    TrainingConfig,
)

__all__ = [
    "ModelFamily", "Task", "FamilyParams", "UnsupportedFamily", "ModelTemplate",
    "parse_family", "model_templates", "build_network",
    "ArtifactFormat", "ModelArtifact", "resolve_feature_names", "restore_model",
    "ModelStatus", "ModelVersion", "ModelVersionStore", "ModelComparison",
    "ModelStatistics", "TrainingConfig",
]
