"""MLStudio Stores - External Collaborator Interfaces.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

The engine reads datasets and pipelines from, and mirrors jobs and model
versions to, a document store it does not own. These interfaces are the
only coupling to that store.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from mlstudio_core.data.dataset import DatasetRecord
from mlstudio_core.pipeline.step import Step

logger = logging.getLogger(__name__)


@dataclass
class PipelineRecord:
    """A stored transform pipeline."""

    pipeline_id: str
    name: str = ""
    steps: List[Step] = field(default_factory=list)


class DatasetStore(ABC):
    """Dataset metadata and raw bytes."""

    timeout: float = 30.0

    @abstractmethod
    def get_dataset_by_id(self, dataset_id: str) -> Optional[DatasetRecord]:
        pass

    @abstractmethod
    def get_download_url(self, storage_id: str) -> Optional[str]:
        pass

    def fetch_bytes(self, url: str, timeout: Optional[float] = None) -> bytes:
        """Download raw bytes over HTTP(S).

        Args:
            url: Download URL
            timeout: Seconds before giving up, defaults to ``self.timeout``

        Raises:
            requests.RequestException: On network or HTTP status errors
        """
        response = requests.get(url, timeout=self.timeout if timeout is None else timeout)
        response.raise_for_status()
        logger.debug(f"Fetched {len(response.content)} bytes from {url}")
        return response.content


class PipelineStore(ABC):
    """Stored transform pipelines."""

    @abstractmethod
    def get_pipeline_by_id(self, pipeline_id: str) -> Optional[PipelineRecord]:
        pass


class JobStore(ABC):
    """Training job records."""

    @abstractmethod
    def create_training_job(self, spec: Dict[str, Any]) -> str:
        pass

    @abstractmethod
    def update_training_job(
        self,
        job_id: str,
        status: Optional[str] = None,
        progress: Optional[int] = None,
        metrics: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        pass


class ModelStore(ABC):
    """Durable mirror of model version records (camelCase documents)."""

    @abstractmethod
    def create_model(self, spec: Dict[str, Any]) -> str:
        pass

    @abstractmethod
    def update_model(self, model_id: str, updates: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def delete_model(self, model_id: str) -> None:
        pass

    @abstractmethod
    def get_my_models(self) -> List[Dict[str, Any]]:
        pass


__all__ = [
    "PipelineRecord",
    "DatasetStore",
    "PipelineStore",
    "JobStore",
    "ModelStore",
]
