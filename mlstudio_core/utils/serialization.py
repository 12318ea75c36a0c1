"""Serialization utilities.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

import numpy as np

logger = logging.getLogger(__name__)


class JSONSerializer:
    """JSON serializer with extended type support.

    Datetimes become ISO strings, enums their values, dataclasses dicts and
    numpy values plain Python numbers or lists, so model documents and
    exports are readable by any JSON consumer.
    """

    def __init__(self, indent: Optional[int] = None, sort_keys: bool = False):
        self.indent = indent
        self.sort_keys = sort_keys

    def serialize(self, obj: Any) -> bytes:
        """Serialize to JSON bytes."""
        return json.dumps(
            obj,
            default=self._default_encoder,
            indent=self.indent,
            sort_keys=self.sort_keys,
        ).encode("utf-8")

    def deserialize(self, data: bytes) -> Any:
        return json.loads(data.decode("utf-8"))

    def to_file(self, obj: Any, path: Union[str, Path]) -> Path:
        """Serialize to file, written through a temporary sibling."""
        path = Path(path)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_bytes(self.serialize(obj))
        tmp.replace(path)
        logger.debug(f"Serialized to {path}")
        return path

    def from_file(self, path: Union[str, Path]) -> Any:
        return self.deserialize(Path(path).read_bytes())

    def _default_encoder(self, obj: Any) -> Any:
        """Handle non-JSON-serializable types."""
        if isinstance(obj, datetime):
            return obj.isoformat()
        elif isinstance(obj, Enum):
            return obj.value
        elif is_dataclass(obj):
            return asdict(obj)
        elif isinstance(obj, np.ndarray):
            return obj.tolist()
        elif isinstance(obj, (np.integer, np.floating, np.bool_)):
            return obj.item()
        elif isinstance(obj, (set, tuple)):
            return list(obj)
        elif isinstance(obj, Path):
            return str(obj)

        raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


__all__ = ["JSONSerializer"]
