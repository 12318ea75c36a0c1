"""Stores module - External store interfaces and local implementations."""

from mlstudio_core.stores.base import (
    DatasetStore,
    JobStore,
    ModelStore,
    PipelineRecord,
    PipelineStore,
)
from mlstudio_core.stores.memory import (
    InMemoryDatasetStore,
    InMemoryJobStore,
    InMemoryModelStore,
    InMemoryPipelineStore,
)
from mlstudio_core.stores.local import FileModelStore, LocalDatasetStore

__all__ = [
    "DatasetStore",
    "JobStore",
    "ModelStore",
    "PipelineRecord",
    "PipelineStore",
    "InMemoryDatasetStore",
    "InMemoryJobStore",
    "InMemoryModelStore",
    "InMemoryPipelineStore",
    "FileModelStore",
    "LocalDatasetStore",
]
