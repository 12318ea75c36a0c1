"""Hashing utilities.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Dict, List, Union

import numpy as np


def compute_hash(data: Union[str, bytes, Dict, List, np.ndarray, Any]) -> str:
    """SHA-256 of data.

    Dicts and lists hash by their key-sorted JSON form, so key order does
    not change the digest. Arrays hash by dtype, shape and content.

    Args:
        data: Data to hash (string, bytes, numpy array, or JSON-serializable)

    Returns:
        Hex-encoded hash string
    """
    hasher = hashlib.sha256()

    if isinstance(data, bytes):
        hasher.update(data)
    elif isinstance(data, str):
        hasher.update(data.encode("utf-8"))
    elif isinstance(data, np.ndarray):
        hasher.update(str(data.dtype).encode("utf-8"))
        hasher.update(str(data.shape).encode("utf-8"))
        hasher.update(np.ascontiguousarray(data).tobytes())
    elif isinstance(data, (dict, list)):
        hasher.update(json.dumps(data, sort_keys=True, default=str).encode("utf-8"))
    else:
        hasher.update(str(data).encode("utf-8"))

    return hasher.hexdigest()


__all__ = ["compute_hash"]
