"""MLStudio Model Registry - Model Version Store.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import copy
import logging
import re
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from mlstudio_core.errors import ModelNotFoundError, PersistenceError
from mlstudio_core.metrics.records import EpochRecord, ModelMetrics, parse_timestamp
from mlstudio_core.model.artifact import (
    ArtifactFormat,
    export_native,
    resolve_feature_names,
)
from mlstudio_core.runtime.tensor import TensorRuntime
from mlstudio_core.stores.base import ModelStore

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"

_VERSION_RE = re.compile(r"^v(\d+)$")


class ModelStatus(Enum):
    """Model version lifecycle status."""

    TRAINING = "training"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self != ModelStatus.TRAINING


@dataclass
class TrainingConfig:
    """Data split settings a model was trained with."""

    test_size: float = 0.2
    validation_size: float = 0.2
    random_state: int = 42

    def to_record(self) -> Dict[str, Any]:
        return {
            "testSize": self.test_size,
            "validationSize": self.validation_size,
            "randomState": self.random_state,
        }

    @classmethod
    def from_record(cls, record: Optional[Dict[str, Any]]) -> "TrainingConfig":
        record = record or {}
        return cls(
            test_size=float(record.get("testSize", 0.2)),
            validation_size=float(record.get("validationSize", 0.2)),
            random_state=int(record.get("randomState", 42)),
        )


def version_number(tag: str) -> int:
    match = _VERSION_RE.match(tag or "")
    return int(match.group(1)) if match else 0


@dataclass
class ModelVersion:
    """One training run's configuration, metrics and artifact.

    Attributes:
        id: Model identifier (external store id when one is configured)
        name: Display name
        version: "v<N>", strictly increasing within a process
        model_type: Model type name
        dataset_id: Dataset the model was trained on
        status: Lifecycle status
        metrics: Final metrics
        parameters: Hyperparameters as supplied
        training_config: Split settings
        preprocessing_steps: Snapshot of applied steps with resolved statistics
        model_data: Serialized artifact
        parent_model_id: Source model for clones
        is_latest_version: Latest member of its lineage
        training_history: Per-epoch records
    """

    id: str
    name: str
    version: str
    model_type: str
    dataset_id: str
    status: ModelStatus = ModelStatus.TRAINING
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    metrics: ModelMetrics = field(default_factory=ModelMetrics)
    parameters: Dict[str, Any] = field(default_factory=dict)
    training_config: TrainingConfig = field(default_factory=TrainingConfig)
    preprocessing_steps: List[Dict[str, Any]] = field(default_factory=list)
    model_data: Optional[Dict[str, Any]] = None
    pipeline_id: Optional[str] = None
    training_job_id: Optional[str] = None
    parent_model_id: Optional[str] = None
    is_latest_version: bool = True
    training_history: List[EpochRecord] = field(default_factory=list)
    description: str = ""
    error_message: Optional[str] = None
    error_details: Optional[Dict[str, Any]] = None

    @property
    def version_number(self) -> int:
        return version_number(self.version)

    def to_record(self, include_id: bool = True) -> Dict[str, Any]:
        """camelCase document for the external store."""
        record = {
            "name": self.name,
            "version": self.version,
            "modelType": self.model_type,
            "datasetId": self.dataset_id,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
            "metrics": self.metrics.to_record(),
            "parameters": copy.deepcopy(self.parameters),
            "trainingConfig": self.training_config.to_record(),
            "preprocessingSteps": copy.deepcopy(self.preprocessing_steps),
            "modelData": copy.deepcopy(self.model_data),
            "pipelineId": self.pipeline_id,
            "trainingJobId": self.training_job_id,
            "parentModelId": self.parent_model_id,
            "isLatestVersion": self.is_latest_version,
            "trainingHistory": [h.to_record() for h in self.training_history],
            "description": self.description,
            "errorMessage": self.error_message,
            "errorDetails": copy.deepcopy(self.error_details),
        }
        if include_id:
            record["_id"] = self.id
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "ModelVersion":
        return cls(
            id=str(record.get("_id") or record.get("id")),
            name=record.get("name", ""),
            version=record.get("version", "v0"),
            model_type=record.get("modelType", ""),
            dataset_id=record.get("datasetId", ""),
            status=ModelStatus(record.get("status", "training")),
            created_at=parse_timestamp(record.get("createdAt")),
            updated_at=parse_timestamp(record.get("updatedAt")),
            metrics=ModelMetrics.from_record(record.get("metrics")),
            parameters=dict(record.get("parameters") or {}),
            training_config=TrainingConfig.from_record(record.get("trainingConfig")),
            preprocessing_steps=list(record.get("preprocessingSteps") or []),
            model_data=record.get("modelData"),
            pipeline_id=record.get("pipelineId"),
            training_job_id=record.get("trainingJobId"),
            parent_model_id=record.get("parentModelId"),
            is_latest_version=bool(record.get("isLatestVersion", True)),
            training_history=[
                EpochRecord.from_record(h) for h in record.get("trainingHistory") or []
            ],
            description=record.get("description") or "",
            error_message=record.get("errorMessage"),
            error_details=record.get("errorDetails"),
        )


@dataclass
class ModelComparison:
    """Best models among a compared set; None when no candidate qualifies."""

    models: List[ModelVersion] = field(default_factory=list)
    best_accuracy: Optional[ModelVersion] = None
    best_loss: Optional[ModelVersion] = None
    fastest_training: Optional[ModelVersion] = None

    def to_dict(self) -> Dict[str, Any]:
        def ident(m: Optional[ModelVersion]) -> Optional[str]:
            return m.id if m else None

        return {
            "models": [m.id for m in self.models],
            "bestAccuracy": ident(self.best_accuracy),
            "bestLoss": ident(self.best_loss),
            "fastestTraining": ident(self.fastest_training),
        }


@dataclass
class ModelStatistics:
    """Aggregates over the cached model versions."""

    total_models: int = 0
    models_by_type: Dict[str, int] = field(default_factory=dict)
    models_by_status: Dict[str, int] = field(default_factory=dict)
    average_accuracy: float = 0.0
    average_loss: float = 0.0
    average_training_time: float = 0.0
    best_model: Optional[ModelVersion] = None


class ModelVersionStore:
    """Model versions with lineage, cached locally and mirrored to a store.

    Features:
    - Monotonic "v<N>" version tags
    - Two-phase persistence (shell record, then final update)
    - Clone for retraining with parent linkage
    - Latest-version flag maintained per lineage
    - Comparison and statistics over cached versions
    - Full refresh from the external store

    Example:
        store = ModelVersionStore(model_store=InMemoryModelStore())
        model = store.create(model_data, metrics, {"epochs": 10}, [], "ds_1")
        clone = store.clone(model.id, "retrain")
        store.compare([model.id, clone.id])
    """

    def __init__(self, model_store: Optional[ModelStore] = None):
        """Initialize store.

        Args:
            model_store: Durable store to mirror to; None keeps models in memory only
        """
        self.model_store = model_store
        self._models: Dict[str, ModelVersion] = {}
        self._counter = 0
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _next_version(self) -> str:
        with self._lock:
            self._counter += 1
            return f"v{self._counter}"

    def _observe_version(self, tag: str) -> None:
        with self._lock:
            self._counter = max(self._counter, version_number(tag))

    def _remote(self, action: str, call: Callable[[], Any]) -> Any:
        """Run a store call, wrapping failures in ``PersistenceError``."""
        try:
            return call()
        except Exception as e:
            logger.error(f"Model store failed to {action}: {e}")
            raise PersistenceError(f"Failed to {action}: {e}") from e

    def _mirror(self, model_id: str, updates: Dict[str, Any]) -> None:
        """Best-effort remote update used on paths that are already failing."""
        if self.model_store is None:
            return
        try:
            self.model_store.update_model(model_id, updates)
        except Exception as e:
            logger.warning(f"Could not mirror update of model {model_id}: {e}")

    def _root(self, model: ModelVersion) -> str:
        seen = set()
        current = model
        while current.parent_model_id and current.parent_model_id in self._models:
            if current.id in seen:
                break
            seen.add(current.id)
            current = self._models[current.parent_model_id]
        return current.parent_model_id if current.parent_model_id else current.id

    def _lineage_members(self, model: ModelVersion) -> List[ModelVersion]:
        root = self._root(model)
        return [m for m in self._models.values() if self._root(m) == root]

    def _mark_latest(self, model: ModelVersion) -> None:
        """Set the flag on ``model`` and clear it on the rest of its lineage."""
        with self._lock:
            demoted = []
            for other in self._lineage_members(model):
                if other.id != model.id and other.is_latest_version:
                    other.is_latest_version = False
                    demoted.append(other.id)
            model.is_latest_version = True

        for other_id in demoted:
            self._mirror(other_id, {"isLatestVersion": False})
        if demoted:
            logger.info(f"Model {model.id} supersedes {demoted} as latest version")

    def _apply(self, model: ModelVersion, updates: Dict[str, Any]) -> None:
        with self._lock:
            for key, value in updates.items():
                setattr(model, key, value)
            model.updated_at = datetime.now()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def begin(
        self,
        name: str,
        model_type: str,
        dataset_id: str,
        parameters: Optional[Dict[str, Any]] = None,
        training_config: Optional[TrainingConfig] = None,
        preprocessing_steps: Optional[List[Dict[str, Any]]] = None,
        pipeline_id: Optional[str] = None,
        training_job_id: Optional[str] = None,
        parent_model_id: Optional[str] = None,
        description: str = "",
    ) -> ModelVersion:
        """Create the shell record of a run in ``training`` status.

        Raises:
            PersistenceError: If the external store rejects the record
        """
        model = ModelVersion(
            id="",
            name=name,
            version=self._next_version(),
            model_type=model_type,
            dataset_id=dataset_id,
            parameters=copy.deepcopy(parameters or {}),
            training_config=training_config or TrainingConfig(),
            preprocessing_steps=copy.deepcopy(preprocessing_steps or []),
            pipeline_id=pipeline_id,
            training_job_id=training_job_id,
            parent_model_id=parent_model_id,
            description=description,
        )

        if self.model_store is not None:
            model.id = self._remote(
                "create model record",
                lambda: self.model_store.create_model(model.to_record(include_id=False)),
            )
        else:
            model.id = f"model_{uuid.uuid4().hex[:12]}"

        with self._lock:
            self._models[model.id] = model
        self._mark_latest(model)

        logger.info(f"Created model {model.id} ({name} {model.version}, {model_type})")
        return model

    def complete(
        self,
        model_id: str,
        metrics: ModelMetrics,
        training_history: Sequence[EpochRecord],
        model_data: Dict[str, Any],
        preprocessing_steps: Optional[List[Dict[str, Any]]] = None,
    ) -> ModelVersion:
        """Finalize a run as ``completed``.

        The external store is updated first; the cache only changes once the
        store accepted the update.

        Raises:
            ModelNotFoundError: Unknown model id
            PersistenceError: If the external store rejects the update
        """
        model = self.require(model_id)
        updates: Dict[str, Any] = {
            "status": ModelStatus.COMPLETED,
            "metrics": metrics,
            "training_history": list(training_history),
            "model_data": model_data,
            "error_message": None,
            "error_details": None,
        }
        if preprocessing_steps is not None:
            updates["preprocessing_steps"] = copy.deepcopy(preprocessing_steps)

        if self.model_store is not None:
            remote = {
                "status": ModelStatus.COMPLETED.value,
                "metrics": metrics.to_record(),
                "trainingHistory": [h.to_record() for h in training_history],
                "modelData": model_data,
                "updatedAt": datetime.now().isoformat(),
            }
            if preprocessing_steps is not None:
                remote["preprocessingSteps"] = preprocessing_steps
            self._remote(
                f"save model {model_id}",
                lambda: self.model_store.update_model(model_id, remote),
            )

        self._apply(model, updates)
        logger.info(f"Model {model_id} completed (loss={metrics.loss:.6f})")
        return model

    def fail(
        self,
        model_id: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        metrics: Optional[ModelMetrics] = None,
        training_history: Optional[Sequence[EpochRecord]] = None,
    ) -> ModelVersion:
        """Mark a run ``failed``. The cache always changes; the store is best effort."""
        model = self.require(model_id)
        updates: Dict[str, Any] = {
            "status": ModelStatus.FAILED,
            "error_message": message,
            "error_details": details or {},
        }
        remote: Dict[str, Any] = {
            "status": ModelStatus.FAILED.value,
            "errorMessage": message,
            "errorDetails": details or {},
        }
        if metrics is not None:
            updates["metrics"] = metrics
            remote["metrics"] = metrics.to_record()
        if training_history is not None:
            updates["training_history"] = list(training_history)
            remote["trainingHistory"] = [h.to_record() for h in training_history]

        self._apply(model, updates)
        self._mirror(model_id, remote)
        logger.error(f"Model {model_id} failed: {message}")
        return model

    def cancel(
        self,
        model_id: str,
        metrics: Optional[ModelMetrics] = None,
        training_history: Optional[Sequence[EpochRecord]] = None,
    ) -> ModelVersion:
        """Mark a run ``cancelled``, keeping whatever history exists."""
        model = self.require(model_id)
        updates: Dict[str, Any] = {"status": ModelStatus.CANCELLED}
        remote: Dict[str, Any] = {"status": ModelStatus.CANCELLED.value}
        if metrics is not None:
            updates["metrics"] = metrics
            remote["metrics"] = metrics.to_record()
        if training_history is not None:
            updates["training_history"] = list(training_history)
            remote["trainingHistory"] = [h.to_record() for h in training_history]

        self._apply(model, updates)
        self._mirror(model_id, remote)
        logger.info(f"Model {model_id} cancelled after {len(model.training_history)} epochs")
        return model

    def create(
        self,
        model_data: Dict[str, Any],
        metrics: ModelMetrics,
        parameters: Dict[str, Any],
        preprocessing_steps: List[Dict[str, Any]],
        dataset_id: str,
        pipeline_id: Optional[str] = None,
        job_id: Optional[str] = None,
        name: Optional[str] = None,
        model_type: Optional[str] = None,
        training_history: Optional[Sequence[EpochRecord]] = None,
        training_config: Optional[TrainingConfig] = None,
    ) -> ModelVersion:
        """Register a finished run in one call (shell record, then final update).

        Returns:
            The completed ModelVersion
        """
        model_type = model_type or model_data.get("modelType", "unknown")
        model = self.begin(
            name=name or f"{model_type} model",
            model_type=model_type,
            dataset_id=dataset_id,
            parameters=parameters,
            training_config=training_config,
            preprocessing_steps=preprocessing_steps,
            pipeline_id=pipeline_id,
            training_job_id=job_id,
        )
        return self.complete(model.id, metrics, list(training_history or []), model_data)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, model_id: str) -> Optional[ModelVersion]:
        return self._models.get(model_id)

    def require(self, model_id: str) -> ModelVersion:
        """Get a model or raise ``ModelNotFoundError``."""
        model = self._models.get(model_id)
        if model is None:
            raise ModelNotFoundError(model_id)
        return model

    def get_by_name(self, name: str) -> Optional[ModelVersion]:
        """Newest version with the given name."""
        matches = [m for m in self._models.values() if m.name == name]
        return max(matches, key=lambda m: m.version_number) if matches else None

    def list_models(self) -> List[ModelVersion]:
        """All cached versions, newest first."""
        with self._lock:
            return sorted(
                self._models.values(),
                key=lambda m: (m.created_at, m.version_number),
                reverse=True,
            )

    def by_type(self, model_type: str) -> List[ModelVersion]:
        return [m for m in self.list_models() if m.model_type == model_type]

    def by_dataset(self, dataset_id: str) -> List[ModelVersion]:
        return [m for m in self.list_models() if m.dataset_id == dataset_id]

    def by_status(self, status: Union[ModelStatus, str]) -> List[ModelVersion]:
        status = ModelStatus(status) if isinstance(status, str) else status
        return [m for m in self.list_models() if m.status == status]

    def lineage(self, model_id: str) -> List[ModelVersion]:
        """Ancestors of a model, oldest first, ending with the model itself."""
        chain = [self.require(model_id)]
        seen = {model_id}
        while chain[0].parent_model_id and chain[0].parent_model_id in self._models:
            parent_id = chain[0].parent_model_id
            if parent_id in seen:
                break
            seen.add(parent_id)
            chain.insert(0, self._models[parent_id])
        return chain

    def latest_in_lineage(self, model_id: str) -> ModelVersion:
        """The flagged latest member of a model's lineage."""
        with self._lock:
            members = self._lineage_members(self.require(model_id))
            flagged = [m for m in members if m.is_latest_version]
            pool = flagged or members
            return max(pool, key=lambda m: (m.created_at, m.version_number))

    def resolve_feature_names(self, model_id: str) -> tuple:
        """Feature and label names a model expects; see ``resolve_feature_names``."""
        model = self.require(model_id)
        if not model.model_data:
            raise ValueError(f"Model {model_id} has no trained artifact")
        return resolve_feature_names(model.model_data)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def update_parameters(self, model_id: str, parameters: Dict[str, Any]) -> ModelVersion:
        model = self.require(model_id)
        if self.model_store is not None:
            self._remote(
                f"update parameters of {model_id}",
                lambda: self.model_store.update_model(model_id, {"parameters": parameters}),
            )
        self._apply(model, {"parameters": copy.deepcopy(parameters)})
        return model

    def update_metadata(
        self,
        model_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> ModelVersion:
        model = self.require(model_id)
        local: Dict[str, Any] = {}
        if name is not None:
            local["name"] = name
        if description is not None:
            local["description"] = description
        if not local:
            return model

        if self.model_store is not None:
            self._remote(
                f"update metadata of {model_id}",
                lambda: self.model_store.update_model(model_id, dict(local)),
            )
        self._apply(model, local)
        return model

    def clone(
        self,
        model_id: str,
        new_name: str,
        new_parameters: Optional[Dict[str, Any]] = None,
    ) -> ModelVersion:
        """Copy a model for retraining.

        The clone gets a new id and version, ``parent_model_id`` pointing at
        the source, ``training`` status, and empty metrics and history.

        Raises:
            ModelNotFoundError: Unknown source id
            PersistenceError: If the external store rejects the clone
        """
        source = self.require(model_id)
        parameters = new_parameters if new_parameters is not None else source.parameters

        clone = self.begin(
            name=new_name,
            model_type=source.model_type,
            dataset_id=source.dataset_id,
            parameters=parameters,
            training_config=copy.deepcopy(source.training_config),
            preprocessing_steps=source.preprocessing_steps,
            pipeline_id=source.pipeline_id,
            parent_model_id=source.id,
            description=source.description,
        )
        if source.model_data is not None:
            self._apply(clone, {"model_data": copy.deepcopy(source.model_data)})
            self._mirror(clone.id, {"modelData": clone.model_data})

        logger.info(f"Cloned model {model_id} as {clone.id} ({clone.version})")
        return clone

    def delete(self, model_id: str) -> None:
        """Delete from the external store, then from the cache.

        Raises:
            ModelNotFoundError: Unknown model id
            PersistenceError: If the external store refuses; the cache is untouched
        """
        model = self.require(model_id)
        if self.model_store is not None:
            self._remote(
                f"delete model {model_id}",
                lambda: self.model_store.delete_model(model_id),
            )

        with self._lock:
            members = [m for m in self._lineage_members(model) if m.id != model_id]
            del self._models[model_id]
            heir = None
            if model.is_latest_version and members:
                heir = max(members, key=lambda m: (m.created_at, m.version_number))

        if heir is not None:
            self._mark_latest(heir)
            self._mirror(heir.id, {"isLatestVersion": True})

        logger.info(f"Deleted model {model_id}")

    def clear(self) -> None:
        """Drop the local cache."""
        with self._lock:
            self._models.clear()

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def compare(self, model_ids: Sequence[str]) -> ModelComparison:
        """Pick the best accuracy, lowest loss and fastest training.

        Every provided model competes whatever its status; models without
        accuracy are not candidates for best accuracy. Unknown ids are skipped.
        """
        models = [self._models[i] for i in model_ids if i in self._models]
        with_accuracy = [m for m in models if m.metrics.accuracy is not None]

        return ModelComparison(
            models=models,
            best_accuracy=max(with_accuracy, key=lambda m: m.metrics.accuracy, default=None),
            best_loss=min(models, key=lambda m: m.metrics.loss, default=None),
            fastest_training=min(models, key=lambda m: m.metrics.training_time, default=None),
        )

    def statistics(self) -> ModelStatistics:
        """Counts by type and status; averages over completed models only."""
        with self._lock:
            models = list(self._models.values())

        stats = ModelStatistics(total_models=len(models))
        for m in models:
            stats.models_by_type[m.model_type] = stats.models_by_type.get(m.model_type, 0) + 1
            key = m.status.value
            stats.models_by_status[key] = stats.models_by_status.get(key, 0) + 1

        completed = [m for m in models if m.status == ModelStatus.COMPLETED]
        if completed:
            accuracies = [m.metrics.accuracy for m in completed if m.metrics.accuracy is not None]
            stats.average_accuracy = sum(accuracies) / len(accuracies) if accuracies else 0.0
            stats.average_loss = sum(m.metrics.loss for m in completed) / len(completed)
            stats.average_training_time = (
                sum(m.metrics.training_time for m in completed) / len(completed)
            )
            stats.best_model = min(completed, key=lambda m: m.metrics.loss)

        return stats

    def sync(self) -> int:
        """Replace the cache with the external store's records.

        Returns:
            Number of models loaded

        Raises:
            PersistenceError: If the store cannot be read; the cache is untouched
        """
        if self.model_store is None:
            logger.debug("No model store configured; nothing to sync")
            return len(self._models)

        documents = self._remote("list models", self.model_store.get_my_models)
        models = [ModelVersion.from_record(doc) for doc in documents]

        with self._lock:
            self._models = {m.id: m for m in models}
            for m in models:
                self._observe_version(m.version)

        logger.info(f"Synced {len(models)} models from store")
        return len(models)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export(
        self,
        model_id: str,
        format: Union[ArtifactFormat, str] = ArtifactFormat.JSON,
        runtime: Optional[TensorRuntime] = None,
    ) -> Union[Dict[str, Any], bytes]:
        """Export a model.

        Args:
            model_id: Model to export
            format: JSON returns the full record as a dict; NATIVE returns
                ``torch.save`` bytes of the trained network
            runtime: Tensor runtime, required for NATIVE

        Raises:
            ModelNotFoundError: Unknown model id
            ValueError: NATIVE export of a model with no artifact
        """
        model = self.require(model_id)
        format = ArtifactFormat(format) if isinstance(format, str) else format

        if format == ArtifactFormat.JSON:
            record = model.to_record()
            record["exportedAt"] = datetime.now().isoformat()
            record["exportVersion"] = EXPORT_VERSION
            return record

        if not model.model_data:
            raise ValueError(f"Model {model_id} has no trained artifact to export")
        return export_native(model.model_data, runtime or TensorRuntime())

    def __len__(self) -> int:
        return len(self._models)

    def __repr__(self) -> str:
        return f"ModelVersionStore(models={len(self._models)}, next=v{self._counter + 1})"


__all__ = [
    "ModelStatus",
    "ModelVersion",
    "ModelComparison",
    "ModelStatistics",
    "ModelVersionStore",
    "TrainingConfig",
]
