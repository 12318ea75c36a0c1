"""MLStudio Core - Model Training Orchestration and Versioning Engine.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

A training engine with:
- Deterministic replay of data transform pipelines
- Feature/label extraction for tabular and image datasets
- Training of model families over a lazily loaded tensor runtime
- Per-epoch progress reporting onto a 0-100% projection
- Lineage-tracked model versions mirrored to an external store
- Model comparison, statistics, export and prediction

Architecture:
    ┌─────────────────────────────────────────────────────────────────┐
    │                      MLStudio Core Engine                        │
    ├─────────────────────────────────────────────────────────────────┤
    │  ┌─────────────┐  ┌─────────────┐  ┌─────────────┐             │
    │  │  Dataset    │  │  Transform  │  │  Feature /  │    DATA     │
    │  │   Loader    │  │ Interpreter │  │   Label     │    LAYER    │
    │  └──────┬──────┘  └──────┬──────┘  └──────┬──────┘             │
    │         │                │                │                     │
    │  ┌──────┴────────────────┴────────────────┴──────┐             │
    │  │              Training Engine                   │             │
    │  │   ┌────────┐  ┌────────┐  ┌────────┐         │  TRAINING   │
    │  │   │ Driver │  │Progress│  │  Job   │         │    LAYER    │
    │  │   └────────┘  └────────┘  └────────┘         │             │
    │  └──────────────────────┬────────────────────────┘             │
    │                         │                                       │
    │  ┌──────────────────────┴────────────────────────┐             │
    │  │            Model Version Store                 │             │
    │  │   ┌────────┐  ┌────────┐  ┌────────┐         │   MODEL     │
    │  │   │Version │  │Lineage │  │ Export │         │   LAYER     │
    │  │   └────────┘  └────────┘  └────────┘         │             │
    │  └──────────────────────┬────────────────────────┘             │
    │                         │                                       │
    │  ┌──────────────────────┴────────────────────────┐             │
    │  │              External Stores                   │             │
    │  │   ┌────────┐  ┌────────┐  ┌────────┐         │   STORE     │
    │  │   │Dataset │  │  Job   │  │ Model  │         │   LAYER     │
    │  │   └────────┘  └────────┘  └────────┘         │             │
    │  └──────────────────────────────────────────────┘             │
    └─────────────────────────────────────────────────────────────────┘

Example Usage:
    from mlstudio_core import TrainingEngine, InMemoryDatasetStore, InMemoryModelStore

    datasets = InMemoryDatasetStore()
    dataset_id = datasets.add_dataset("houses.csv", csv_bytes, {"format": "csv"})

    engine = TrainingEngine(datasets, model_store=InMemoryModelStore())
    model = engine.start_training(
        {"datasetId": dataset_id, "modelType": "neural_network",
         "modelParameters": {"hiddenLayers": [16, 8], "epochs": 50}},
        on_progress=lambda e: print(e.percent, e.message),
    )

    clone = engine.clone_model(model.id, "houses-wide", {"hiddenLayers": [64, 32]})
    engine.compare_models([model.id, clone.id])
"""

__version__ = "1.0.0"
__author__ = "BlackRoad OS"

from mlstudio_core.config import EngineConfig, ImageConfig, Phase, ProgressPhases
from mlstudio_core.errors import (
    EngineError,
    ErrorCategory,
    DependencyUnavailable,
    DatasetAccessError,
    PipelineStepError,
    InsufficientFeaturesError,
    TrainingRuntimeError,
    PersistenceError,
    ModelNotFoundError,
)
from mlstudio_core.data.dataset import TabularData, DatasetRecord, parse_csv, parse_json
from mlstudio_core.data.extractor import FeatureLabelExtractor, TrainingData
from mlstudio_core.pipeline.step import Step, StepType
from mlstudio_core.pipeline.interpreter import TransformInterpreter, TransformedData
from mlstudio_core.runtime.tensor import TensorRuntime
from mlstudio_core.metrics.records import EpochRecord, ModelMetrics
from mlstudio_core.model.families import ModelFamily, parse_family, model_templates
from mlstudio_core.model.registry import (
    ModelStatus,
    ModelVersion,
    ModelVersionStore,
    TrainingConfig,
)
from mlstudio_core.stores.base import DatasetStore, PipelineStore, JobStore, ModelStore
from mlstudio_core.stores.memory import (
    InMemoryDatasetStore,
    InMemoryPipelineStore,
    InMemoryJobStore,
    InMemoryModelStore,
)
from mlstudio_core.training.driver import TrainingDriver, TrainingResult
from mlstudio_core.training.progress import ProgressChannel, ProgressEvent
from mlstudio_core.training.engine import TrainingEngine, TrainingRequest
from mlstudio_core.training.job import TrainingJob, JobStatus

__all__ = [
    # Config
    "EngineConfig",
    "ImageConfig",
    "Phase",
    "ProgressPhases",
    # Errors
    "EngineError",
    "ErrorCategory",
    "DependencyUnavailable",
    "DatasetAccessError",
    "PipelineStepError",
    "InsufficientFeaturesError",
    "TrainingRuntimeError",
    "PersistenceError",
    "ModelNotFoundError",
    # Data
    "TabularData",
    "DatasetRecord",
    "parse_csv",
    "parse_json",
    "FeatureLabelExtractor",
    "TrainingData",
    # Pipeline
    "Step",
    "StepType",
    "TransformInterpreter",
    "TransformedData",
    # Runtime
    "TensorRuntime",
    # Model
    "EpochRecord",
    "ModelMetrics",
    "ModelFamily",
    "parse_family",
    "model_templates",
    "ModelStatus",
    "ModelVersion",
    "ModelVersionStore",
    "TrainingConfig",
    # Stores
    "DatasetStore",
    "PipelineStore",
    "JobStore",
    "ModelStore",
    "InMemoryDatasetStore",
    "InMemoryPipelineStore",
    "InMemoryJobStore",
    "InMemoryModelStore",
    # Training
    "TrainingDriver",
    "TrainingResult",
    "ProgressChannel",
    "ProgressEvent",
    "TrainingEngine",
    "TrainingRequest",
    "TrainingJob",
    "JobStatus",
]
