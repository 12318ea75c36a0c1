"""MLStudio DatasetLoader - Dataset Resolution and Parsing.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import zipfile
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple, Union

import numpy as np
import requests

from mlstudio_core.data.dataset import (
    DatasetFormat,
    DatasetRecord,
    TabularData,
    parse_csv,
    parse_json,
)
from mlstudio_core.data.images import decode_image, load_image_archive
from mlstudio_core.errors import DatasetAccessError, ErrorCategory, TrainingRuntimeError

if TYPE_CHECKING:
    from mlstudio_core.stores.base import DatasetStore

logger = logging.getLogger(__name__)


@dataclass
class ImageSet:
    """Decoded images with their archive names."""

    names: List[str]
    images: List[np.ndarray]
    class_names: Dict[str, int] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.images)


@dataclass
class LoadedDataset:
    """A fetched and parsed dataset."""

    record: DatasetRecord
    content: Union[TabularData, ImageSet]
    size_bytes: int

    @property
    def is_image(self) -> bool:
        return isinstance(self.content, ImageSet)


class DatasetLoader:
    """Resolves a dataset id to parsed content through a ``DatasetStore``.

    Example:
        loader = DatasetLoader(store)
        loaded = loader.load("ds_123")
        table = loaded.content
    """

    def __init__(
        self,
        store: DatasetStore,
        max_bytes: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        self.store = store
        self.max_bytes = max_bytes
        self.timeout = timeout

    def fetch(self, dataset_id: str) -> Tuple[DatasetRecord, bytes]:
        """Return (record, raw bytes).

        Raises:
            DatasetAccessError: Unknown dataset, missing URL or failed download
            TrainingRuntimeError: Dataset exceeds ``max_bytes``
        """
        record = self.store.get_dataset_by_id(dataset_id)
        if record is None:
            raise DatasetAccessError(dataset_id, "dataset not found")

        url = self.store.get_download_url(record.file_storage_id)
        if not url:
            raise DatasetAccessError(dataset_id, "no download URL for dataset file")

        try:
            raw = self.store.fetch_bytes(url, timeout=self.timeout)
        except (requests.RequestException, OSError, KeyError) as e:
            raise DatasetAccessError(dataset_id, f"download failed: {e}") from e

        if self.max_bytes is not None and len(raw) > self.max_bytes:
            raise TrainingRuntimeError(
                ErrorCategory.DATASET_TOO_LARGE,
                f"Dataset is {len(raw)} bytes, limit is {self.max_bytes}",
                {"size_bytes": len(raw), "max_bytes": self.max_bytes},
            )

        logger.info(f"Fetched dataset {record.name} ({len(raw)} bytes)")
        return record, raw

    def parse(self, record: DatasetRecord, raw: bytes) -> Union[TabularData, ImageSet]:
        """Parse raw bytes according to the record's format.

        Raises:
            DatasetAccessError: If the bytes cannot be parsed
        """
        fmt = record.format
        try:
            if fmt == DatasetFormat.CSV:
                content: Union[TabularData, ImageSet] = parse_csv(raw)
            elif fmt == DatasetFormat.JSON:
                content = parse_json(raw)
            elif fmt == DatasetFormat.IMAGE:
                content = ImageSet(names=[record.name], images=[decode_image(raw)])
            else:
                names, images = load_image_archive(raw)
                content = ImageSet(names=names, images=images)
        except (ValueError, UnicodeDecodeError, zipfile.BadZipFile) as e:
            raise DatasetAccessError(record.dataset_id, f"cannot parse {fmt.value}: {e}") from e

        if isinstance(content, TabularData) and content.row_count == 0:
            raise DatasetAccessError(record.dataset_id, "dataset has no rows")
        if isinstance(content, ImageSet) and len(content) == 0:
            raise DatasetAccessError(record.dataset_id, "archive contains no images")

        return content

    def load(self, dataset_id: str) -> LoadedDataset:
        record, raw = self.fetch(dataset_id)
        return LoadedDataset(record=record, content=self.parse(record, raw), size_bytes=len(raw))


__all__ = ["DatasetLoader", "LoadedDataset", "ImageSet"]
