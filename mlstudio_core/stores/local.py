"""MLStudio Local Stores - Filesystem-Backed Stores for the CLI.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import threading
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from urllib.parse import unquote, urlparse

from mlstudio_core.data.dataset import DatasetRecord
from mlstudio_core.stores.base import DatasetStore, ModelStore
from mlstudio_core.utils.serialization import JSONSerializer

logger = logging.getLogger(__name__)


class LocalDatasetStore(DatasetStore):
    """Datasets that are plain files; URLs are ``file://`` URIs."""

    def __init__(self):
        self._records: Dict[str, DatasetRecord] = {}

    def add_file(self, path: Union[str, Path], metadata: Optional[Dict[str, Any]] = None) -> str:
        path = Path(path).resolve()
        dataset_id = f"file_{uuid.uuid4().hex[:12]}"
        self._records[dataset_id] = DatasetRecord(
            dataset_id=dataset_id,
            name=path.name,
            file_storage_id=str(path),
            metadata=dict(metadata or {}),
        )
        return dataset_id

    def get_dataset_by_id(self, dataset_id: str) -> Optional[DatasetRecord]:
        return self._records.get(dataset_id)

    def get_download_url(self, storage_id: str) -> Optional[str]:
        path = Path(storage_id)
        return path.as_uri() if path.exists() else None

    def fetch_bytes(self, url: str, timeout: Optional[float] = None) -> bytes:
        parsed = urlparse(url)
        if parsed.scheme == "file":
            return Path(unquote(parsed.path)).read_bytes()
        return super().fetch_bytes(url, timeout)


class FileModelStore(ModelStore):
    """Model documents persisted to ``models.json`` in a directory."""

    FILENAME = "models.json"

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.path = self.directory / self.FILENAME
        self._serializer = JSONSerializer(indent=2)
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.exists():
            return {}
        return self._serializer.from_file(self.path)

    def _save(self, documents: Dict[str, Dict[str, Any]]) -> None:
        self._serializer.to_file(documents, self.path)

    def create_model(self, spec: Dict[str, Any]) -> str:
        model_id = f"model_{uuid.uuid4().hex[:12]}"
        with self._lock:
            documents = self._load()
            documents[model_id] = {**spec, "_id": model_id}
            self._save(documents)
        logger.debug(f"Stored model {model_id} in {self.path}")
        return model_id

    def update_model(self, model_id: str, updates: Dict[str, Any]) -> None:
        with self._lock:
            documents = self._load()
            if model_id not in documents:
                raise KeyError(f"Model {model_id} not found")
            documents[model_id].update(updates)
            self._save(documents)

    def delete_model(self, model_id: str) -> None:
        with self._lock:
            documents = self._load()
            if model_id not in documents:
                raise KeyError(f"Model {model_id} not found")
            del documents[model_id]
            self._save(documents)

    def get_my_models(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._load().values())


__all__ = ["LocalDatasetStore", "FileModelStore"]
