"""MLStudio Memory Stores - In-Process Store Implementations.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Union

from mlstudio_core.data.dataset import DatasetRecord
from mlstudio_core.pipeline.step import Step
from mlstudio_core.stores.base import (
    DatasetStore,
    JobStore,
    ModelStore,
    PipelineRecord,
    PipelineStore,
)

logger = logging.getLogger(__name__)

MEMORY_SCHEME = "memory://"


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class InMemoryDatasetStore(DatasetStore):
    """Datasets held as bytes; ``memory://`` URLs resolve locally."""

    def __init__(self):
        self._records: Dict[str, DatasetRecord] = {}
        self._blobs: Dict[str, bytes] = {}

    def add_dataset(
        self,
        name: str,
        raw: Union[bytes, str],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Register dataset bytes and return the dataset id."""
        dataset_id = _new_id("ds")
        storage_id = _new_id("blob")
        self._blobs[storage_id] = raw.encode("utf-8") if isinstance(raw, str) else raw
        self._records[dataset_id] = DatasetRecord(
            dataset_id=dataset_id,
            name=name,
            file_storage_id=storage_id,
            metadata=dict(metadata or {}),
        )
        return dataset_id

    def get_dataset_by_id(self, dataset_id: str) -> Optional[DatasetRecord]:
        return self._records.get(dataset_id)

    def get_download_url(self, storage_id: str) -> Optional[str]:
        if storage_id not in self._blobs:
            return None
        return f"{MEMORY_SCHEME}{storage_id}"

    def fetch_bytes(self, url: str, timeout: Optional[float] = None) -> bytes:
        if url.startswith(MEMORY_SCHEME):
            return self._blobs[url[len(MEMORY_SCHEME):]]
        return super().fetch_bytes(url, timeout)


class InMemoryPipelineStore(PipelineStore):
    """Pipelines kept in a dict."""

    def __init__(self):
        self._pipelines: Dict[str, PipelineRecord] = {}

    def add_pipeline(self, name: str, steps: Sequence[Union[Step, Dict[str, Any]]]) -> str:
        pipeline_id = _new_id("pl")
        parsed = [
            s if isinstance(s, Step) else Step.from_record(s, order=i)
            for i, s in enumerate(steps)
        ]
        self._pipelines[pipeline_id] = PipelineRecord(pipeline_id, name, parsed)
        return pipeline_id

    def get_pipeline_by_id(self, pipeline_id: str) -> Optional[PipelineRecord]:
        record = self._pipelines.get(pipeline_id)
        if record is None:
            return None
        steps = sorted(record.steps, key=lambda s: s.order)
        return PipelineRecord(record.pipeline_id, record.name, copy.deepcopy(steps))


class InMemoryJobStore(JobStore):
    """Training jobs kept in a dict, with every update retained."""

    def __init__(self):
        self.jobs: Dict[str, Dict[str, Any]] = {}
        self.updates: Dict[str, List[Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def create_training_job(self, spec: Dict[str, Any]) -> str:
        job_id = _new_id("job")
        with self._lock:
            self.jobs[job_id] = {
                **copy.deepcopy(spec),
                "status": "pending",
                "progress": 0,
                "createdAt": datetime.now().isoformat(),
            }
            self.updates[job_id] = []
        return job_id

    def update_training_job(
        self,
        job_id: str,
        status: Optional[str] = None,
        progress: Optional[int] = None,
        metrics: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        fields = {
            k: v
            for k, v in (("status", status), ("progress", progress), ("metrics", metrics), ("error", error))
            if v is not None
        }
        with self._lock:
            if job_id not in self.jobs:
                raise KeyError(f"Job {job_id} not found")
            self.jobs[job_id].update(copy.deepcopy(fields))
            self.updates[job_id].append(fields)


class InMemoryModelStore(ModelStore):
    """Model documents kept in a dict."""

    def __init__(self):
        self.documents: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def create_model(self, spec: Dict[str, Any]) -> str:
        model_id = _new_id("model")
        with self._lock:
            document = copy.deepcopy(spec)
            document["_id"] = model_id
            self.documents[model_id] = document
        return model_id

    def update_model(self, model_id: str, updates: Dict[str, Any]) -> None:
        with self._lock:
            if model_id not in self.documents:
                raise KeyError(f"Model {model_id} not found")
            self.documents[model_id].update(copy.deepcopy(updates))

    def delete_model(self, model_id: str) -> None:
        with self._lock:
            if model_id not in self.documents:
                raise KeyError(f"Model {model_id} not found")
            del self.documents[model_id]

    def get_my_models(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(d) for d in self.documents.values()]


__all__ = [
    "InMemoryDatasetStore",
    "InMemoryPipelineStore",
    "InMemoryJobStore",
    "InMemoryModelStore",
]
