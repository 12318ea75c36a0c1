"""MLStudio Training Engine - Job Orchestration.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

Runs one training job end to end: fetch the dataset, replay the pipeline,
extract tensors, train, and record the model version. Every path ends with
the job and its model version in a terminal status.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from mlstudio_core.config import EngineConfig, Phase
from mlstudio_core.data.extractor import FeatureLabelExtractor, TrainingData, extract_images
from mlstudio_core.data.images import labels_from_directories
from mlstudio_core.data.loader import DatasetLoader, ImageSet, LoadedDataset
from mlstudio_core.errors import (
    PersistenceError,
    PipelineStepError,
    classify_error,
    error_details,
)
from mlstudio_core.model.artifact import ArtifactFormat
from mlstudio_core.model.families import parse_family
from mlstudio_core.model.registry import (
    ModelComparison,
    ModelStatistics,
    ModelStatus,
    ModelVersion,
    ModelVersionStore,
    TrainingConfig,
)
from mlstudio_core.pipeline.interpreter import TransformInterpreter
from mlstudio_core.pipeline.step import Step, StepType
from mlstudio_core.runtime.tensor import TensorRuntime
from mlstudio_core.stores.base import DatasetStore, JobStore, ModelStore, PipelineStore
from mlstudio_core.stores.memory import InMemoryJobStore
from mlstudio_core.training.driver import TrainingDriver, TrainingResult, predict
from mlstudio_core.training.progress import (
    JobProgressReporter,
    PhaseTracker,
    ProgressChannel,
    ProgressEvent,
)

logger = logging.getLogger(__name__)

PERSISTENCE_FAILURE = "Training completed but failed to save model"

_REQUEST_ALIASES = {
    "datasetId": "dataset_id",
    "modelType": "model_type",
    "modelParameters": "model_parameters",
    "pipelineId": "pipeline_id",
    "testSize": "test_size",
    "validationSize": "validation_size",
    "randomState": "random_state",
    "labelColumn": "label_column",
    "imageLabels": "image_labels",
}


@dataclass
class TrainingRequest:
    """What to train.

    Attributes:
        dataset_id: Dataset to train on
        model_type: Model type name
        model_parameters: Hyperparameters
        pipeline_id: Transform pipeline to replay first
        test_size: Test fraction; engine default when None
        validation_size: Validation fraction; engine default when None
        random_state: Seed for splits and initialisation; engine default when None
        name: Model name; derived from the model type when None
        label_column: Label column override for tabular data
        image_labels: Class index per image; directory names are used when None
    """

    dataset_id: str
    model_type: str
    model_parameters: Dict[str, Any] = field(default_factory=dict)
    pipeline_id: Optional[str] = None
    test_size: Optional[float] = None
    validation_size: Optional[float] = None
    random_state: Optional[int] = None
    name: Optional[str] = None
    description: str = ""
    label_column: Optional[str] = None
    image_labels: Optional[Sequence[int]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrainingRequest":
        return cls(**{_REQUEST_ALIASES.get(k, k): v for k, v in data.items()})

    def to_job_spec(self) -> Dict[str, Any]:
        return {
            "datasetId": self.dataset_id,
            "pipelineId": self.pipeline_id,
            "modelType": self.model_type,
            "modelParameters": dict(self.model_parameters),
            "testSize": self.test_size,
            "validationSize": self.validation_size,
            "randomState": self.random_state,
        }


ProgressListener = Callable[[ProgressEvent], None]


class TrainingEngine:
    """Training orchestration and model version management.

    Features:
    - Dataset fetch through an injected dataset store
    - Pipeline replay and feature/label extraction
    - Training with per-epoch progress on a shared channel
    - Two-phase model version persistence
    - Retrain, clone, compare, delete, export and predict

    Example:
        engine = TrainingEngine(dataset_store, model_store=InMemoryModelStore())
        model = engine.start_training(
            {"datasetId": "ds_1", "modelType": "neural_network",
             "modelParameters": {"epochs": 20}},
            on_progress=lambda e: print(e.percent, e.message),
        )
    """

    def __init__(
        self,
        dataset_store: DatasetStore,
        pipeline_store: Optional[PipelineStore] = None,
        job_store: Optional[JobStore] = None,
        model_store: Optional[ModelStore] = None,
        config: Optional[EngineConfig] = None,
        runtime: Optional[TensorRuntime] = None,
        versions: Optional[ModelVersionStore] = None,
    ):
        self.config = config or EngineConfig()
        self.runtime = runtime or TensorRuntime(
            device=self.config.device, seed=self.config.random_state
        )
        self.dataset_store = dataset_store
        self.pipeline_store = pipeline_store
        self.job_store = job_store or InMemoryJobStore()
        self.versions = versions or ModelVersionStore(model_store)

        self.loader = DatasetLoader(
            dataset_store,
            max_bytes=self.config.max_dataset_bytes,
            timeout=self.config.download_timeout,
        )
        self.driver = TrainingDriver(self.runtime, self.config)
        self.channel = ProgressChannel()
        self.channel.subscribe(JobProgressReporter(self.job_store))

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def _training_config(self, request: TrainingRequest) -> TrainingConfig:
        return TrainingConfig(
            test_size=(
                self.config.default_test_size if request.test_size is None else float(request.test_size)
            ),
            validation_size=(
                self.config.default_validation_size
                if request.validation_size is None
                else float(request.validation_size)
            ),
            random_state=(
                self.config.random_state if request.random_state is None else int(request.random_state)
            ),
        )

    def start_training(
        self,
        request: Union[TrainingRequest, Dict[str, Any]],
        on_progress: Optional[ProgressListener] = None,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> ModelVersion:
        """Run a training job on the calling thread.

        Args:
            request: TrainingRequest or its camelCase dict form
            on_progress: Receives this job's progress events
            should_stop: Polled between epochs; True cancels the job

        Returns:
            The model version, completed or cancelled

        Raises:
            EngineError: Any failure, after the job and model are marked failed
            PersistenceError: Training finished but the model could not be
                saved; ``result`` carries the metrics and history
        """
        if isinstance(request, dict):
            request = TrainingRequest.from_dict(request)
        return self._start(request, on_progress, should_stop)

    def retrain(
        self,
        model_id: str,
        new_name: Optional[str] = None,
        new_parameters: Optional[Dict[str, Any]] = None,
        on_progress: Optional[ProgressListener] = None,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> ModelVersion:
        """Clone a model and train the clone with the source's settings."""
        source = self.versions.require(model_id)
        clone = self.versions.clone(
            model_id,
            new_name or f"{source.name} (retrain)",
            new_parameters,
        )
        label_column = None
        if source.model_data:
            meta = source.model_data.get("trainingMetadata") or {}
            if meta.get("dataKind") != "image":
                label_column = meta.get("labelName")

        request = TrainingRequest(
            dataset_id=clone.dataset_id,
            model_type=clone.model_type,
            model_parameters=dict(clone.parameters),
            pipeline_id=clone.pipeline_id,
            test_size=clone.training_config.test_size,
            validation_size=clone.training_config.validation_size,
            random_state=clone.training_config.random_state,
            name=clone.name,
            description=clone.description,
            label_column=label_column,
        )
        return self._start(request, on_progress, should_stop, target=clone)

    def _start(
        self,
        request: TrainingRequest,
        on_progress: Optional[ProgressListener],
        should_stop: Optional[Callable[[], bool]],
        target: Optional[ModelVersion] = None,
    ) -> ModelVersion:
        training_config = self._training_config(request)
        job_id = self.job_store.create_training_job(request.to_job_spec())
        logger.info(f"Created training job {job_id} for dataset {request.dataset_id}")

        unsubscribe = None
        if on_progress is not None:
            unsubscribe = self.channel.subscribe(
                lambda event: on_progress(event) if event.job_id == job_id else None
            )
        try:
            return self._run(job_id, request, training_config, should_stop, target)
        finally:
            if unsubscribe is not None:
                unsubscribe()

    def _run(
        self,
        job_id: str,
        request: TrainingRequest,
        training_config: TrainingConfig,
        should_stop: Optional[Callable[[], bool]],
        target: Optional[ModelVersion],
    ) -> ModelVersion:
        tracker = PhaseTracker(self.channel, job_id, self.config.phases)
        model: Optional[ModelVersion] = target
        result: Optional[TrainingResult] = None
        self._update_job(job_id, status="running", progress=0)

        try:
            if model is None:
                model = self.versions.begin(
                    name=request.name or f"{request.model_type} model",
                    model_type=request.model_type,
                    dataset_id=request.dataset_id,
                    parameters=request.model_parameters,
                    training_config=training_config,
                    pipeline_id=request.pipeline_id,
                    training_job_id=job_id,
                    description=request.description,
                )

            tracker.advance(Phase.FETCH, 0.0, "Loading tensor runtime")
            self.runtime.ensure()
            spec = parse_family(request.model_type, request.model_parameters)
            spec.validate()

            tracker.advance(Phase.FETCH, 0.3, "Downloading dataset")
            loaded = self.loader.load(request.dataset_id)
            tracker.advance(Phase.FETCH, 1.0, f"Loaded {loaded.record.name}")

            data, steps = self._prepare(loaded, request, training_config, tracker, target)
            tracker.advance(Phase.PREPROCESS, 1.0, f"Prepared {data.row_count} rows")

            tracker.advance(Phase.TRAIN, 0.0, f"Training {spec.family.value}")
            result = self.driver.train(
                data,
                spec,
                training_config,
                on_epoch=tracker.epoch_listener(spec.epochs),
                should_stop=should_stop,
            )
        except Exception as exc:
            self._fail(job_id, model, exc, result)
            raise

        if result.cancelled:
            model = self.versions.cancel(model.id, result.metrics, result.history)
            self._update_job(job_id, status="cancelled", metrics=result.metrics.to_record())
            logger.info(f"Job {job_id} cancelled after {len(result.history)} epochs")
            return model

        tracker.advance(Phase.PERSIST, 0.0, "Saving model")
        try:
            model = self.versions.complete(
                model.id,
                result.metrics,
                result.history,
                result.model_data,
                preprocessing_steps=steps,
            )
        except PersistenceError as exc:
            details = error_details(exc)
            self.versions.fail(
                model.id,
                PERSISTENCE_FAILURE,
                details,
                metrics=result.metrics,
                training_history=result.history,
            )
            self._update_job(
                job_id,
                status="failed",
                metrics=result.metrics.to_record(),
                error=PERSISTENCE_FAILURE,
            )
            raise PersistenceError(PERSISTENCE_FAILURE, result=result) from exc

        tracker.advance(Phase.PERSIST, 1.0, "Model saved")
        self._update_job(
            job_id,
            status="completed",
            progress=100,
            metrics=result.metrics.to_record(),
        )
        logger.info(f"Job {job_id} completed: model {model.id} {model.version}")
        return model

    def _prepare(
        self,
        loaded: LoadedDataset,
        request: TrainingRequest,
        training_config: TrainingConfig,
        tracker: PhaseTracker,
        target: Optional[ModelVersion] = None,
    ) -> Tuple[TrainingData, List[Dict[str, Any]]]:
        """Turn loaded content into tensors plus the applied-step snapshot.

        A retrain target replays the steps recorded on it, statistics
        included, instead of re-reading the pipeline.
        """
        if isinstance(loaded.content, ImageSet):
            images = loaded.content
            if request.image_labels is not None:
                labels, class_names = list(request.image_labels), {}
            else:
                labels, class_names = labels_from_directories(images.names)
            tracker.advance(Phase.PREPROCESS, 0.5, f"Preprocessing {len(images)} images")
            data = extract_images(images.images, labels, self.config.image, class_names)
            step = Step(type=StepType.CONVERT_TO_TENSOR.value, parameters=asdict(self.config.image))
            return data, [step.to_record()]

        if target is not None and target.preprocessing_steps:
            steps = [Step.from_record(r, order=i) for i, r in enumerate(target.preprocessing_steps)]
        else:
            steps = self._pipeline_steps(request.pipeline_id)
        interpreter = TransformInterpreter(
            random_state=training_config.random_state,
            split_tolerance=self.config.split_tolerance,
            on_step=lambda step, index, total: tracker.advance(
                Phase.PREPROCESS, (index + 1) / total, f"Applied {step.type}"
            ),
        )
        transformed = interpreter.apply(loaded.content, steps)
        extractor = FeatureLabelExtractor(request.label_column or self.config.label_column)
        return extractor.extract(transformed.data), transformed.preprocessing_steps

    def _pipeline_steps(self, pipeline_id: Optional[str]) -> List[Step]:
        if not pipeline_id:
            return []
        if self.pipeline_store is None:
            raise PipelineStepError("load", None, f"no pipeline store to resolve {pipeline_id}")
        record = self.pipeline_store.get_pipeline_by_id(pipeline_id)
        if record is None:
            raise PipelineStepError("load", None, f"pipeline {pipeline_id} not found")
        return list(record.steps)

    def _fail(
        self,
        job_id: str,
        model: Optional[ModelVersion],
        exc: Exception,
        result: Optional[TrainingResult],
    ) -> None:
        category, message = classify_error(exc)
        details = error_details(exc)
        details["category"] = category.value
        logger.error(f"Job {job_id} failed ({category.value}): {exc}")

        if model is not None and model.status == ModelStatus.TRAINING:
            self.versions.fail(
                model.id,
                message,
                details,
                metrics=result.metrics if result else None,
                training_history=result.history if result else None,
            )
        self._update_job(job_id, status="failed", error=message)

    def _update_job(self, job_id: str, **fields: Any) -> None:
        try:
            self.job_store.update_training_job(job_id, **fields)
        except Exception as e:
            logger.warning(f"Could not update job {job_id} with {sorted(fields)}: {e}")

    # ------------------------------------------------------------------
    # Model management
    # ------------------------------------------------------------------

    def list_models(self) -> List[ModelVersion]:
        return self.versions.list_models()

    def get_model(self, model_id: str) -> ModelVersion:
        return self.versions.require(model_id)

    def compare_models(self, model_ids: Sequence[str]) -> ModelComparison:
        return self.versions.compare(model_ids)

    def clone_model(
        self,
        model_id: str,
        new_name: str,
        new_parameters: Optional[Dict[str, Any]] = None,
    ) -> ModelVersion:
        return self.versions.clone(model_id, new_name, new_parameters)

    def delete_model(self, model_id: str) -> None:
        self.versions.delete(model_id)

    def export_model(
        self,
        model_id: str,
        format: Union[ArtifactFormat, str] = ArtifactFormat.JSON,
    ) -> Union[Dict[str, Any], bytes]:
        return self.versions.export(model_id, format, runtime=self.runtime)

    def model_statistics(self) -> ModelStatistics:
        return self.versions.statistics()

    def sync_models(self) -> int:
        return self.versions.sync()

    def predict(
        self,
        model_id: str,
        rows: Sequence[Union[Dict[str, Any], Sequence[float]]],
    ) -> List[Dict[str, Any]]:
        """Predict with a completed tabular model.

        Args:
            model_id: Model to use
            rows: Feature dicts keyed by feature name, or ordered vectors

        Returns:
            One dict per row: ``value`` for regression; ``label`` and
            ``probability`` (binary) or ``probabilities`` (multiclass)

        Raises:
            ModelNotFoundError: Unknown model id
            ValueError: Model has no artifact, or a row is missing a feature
        """
        model = self.versions.require(model_id)
        if model.status != ModelStatus.COMPLETED or not model.model_data:
            raise ValueError(f"Model {model_id} is not trained (status={model.status.value})")

        meta = model.model_data.get("trainingMetadata") or {}
        if meta.get("dataKind") == "image":
            raise ValueError(f"Model {model_id} takes images; use training.driver.predict")

        feature_names, _, degraded = self.versions.resolve_feature_names(model_id)
        if degraded:
            logger.warning(f"Predicting with placeholder feature names for model {model_id}")

        matrix = np.zeros((len(rows), len(feature_names)), dtype=np.float32)
        for r, row in enumerate(rows):
            if isinstance(row, dict):
                missing = [n for n in feature_names if n not in row]
                if missing:
                    raise ValueError(f"Row {r} is missing features {missing}")
                matrix[r] = [float(row[n]) for n in feature_names]
            else:
                if len(row) != len(feature_names):
                    raise ValueError(
                        f"Row {r} has {len(row)} values, expected {len(feature_names)}"
                    )
                matrix[r] = [float(v) for v in row]

        outputs = predict(model.model_data, matrix, self.runtime)
        task = meta.get("task", "regression")

        predictions = []
        for out in outputs:
            if task == "binary":
                predictions.append({"label": int(out >= 0.5), "probability": float(out)})
            elif task == "multiclass":
                predictions.append({
                    "label": int(np.argmax(out)),
                    "probabilities": [float(p) for p in out],
                })
            else:
                predictions.append({"value": float(out)})
        return predictions


__all__ = ["TrainingEngine", "TrainingRequest", "PERSISTENCE_FAILURE"]
