"""Utilities module."""

from mlstudio_core.utils.serialization import JSONSerializer
from mlstudio_core.utils.hashing import compute_hash
from mlstudio_core.utils.timing import Timer

__all__ = ["JSONSerializer", "compute_hash", "Timer"]
