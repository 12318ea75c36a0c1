"""MLStudio Errors - Engine Exception Hierarchy.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class ErrorCategory(Enum):
    """User-facing failure categories."""

    RUNTIME_UNAVAILABLE = "runtime_unavailable"
    NON_NUMERIC_DATA = "non_numeric_data"
    INSUFFICIENT_FEATURES = "insufficient_features"
    DATASET_TOO_LARGE = "dataset_too_large"
    NUMERIC_OVERFLOW = "numeric_overflow"
    UNSUPPORTED_ARCHITECTURE = "unsupported_architecture"
    DATASET_ACCESS = "dataset_access"
    PIPELINE_STEP = "pipeline_step"
    PERSISTENCE = "persistence"
    UNKNOWN = "unknown"


USER_MESSAGES: Dict[ErrorCategory, str] = {
    ErrorCategory.RUNTIME_UNAVAILABLE: (
        "Failed to load the tensor runtime. Check that it is installed."
    ),
    ErrorCategory.NON_NUMERIC_DATA: (
        "Dataset contains non-numeric values. Add an encoding step to the pipeline."
    ),
    ErrorCategory.INSUFFICIENT_FEATURES: (
        "Dataset needs at least 2 numeric columns (features and label)."
    ),
    ErrorCategory.DATASET_TOO_LARGE: (
        "Dataset is too large to train in memory. Try a smaller dataset."
    ),
    ErrorCategory.NUMERIC_OVERFLOW: (
        "Training diverged (loss became NaN or infinite). "
        "Lower the learning rate or normalize the data."
    ),
    ErrorCategory.UNSUPPORTED_ARCHITECTURE: "Model type is not supported yet.",
}


class EngineError(Exception):
    """Base exception for all engine errors."""

    category = ErrorCategory.UNKNOWN


class DependencyUnavailable(EngineError):
    """A required library could not be loaded."""

    category = ErrorCategory.RUNTIME_UNAVAILABLE

    def __init__(self, library: str, reason: str) -> None:
        self.library = library
        self.reason = reason
        super().__init__(f"{library} is unavailable: {reason}")


class DatasetAccessError(EngineError):
    """Dataset bytes could not be downloaded or parsed."""

    category = ErrorCategory.DATASET_ACCESS

    def __init__(self, dataset_id: Optional[str], reason: str) -> None:
        self.dataset_id = dataset_id
        self.reason = reason
        target = f"dataset {dataset_id}" if dataset_id else "dataset"
        super().__init__(f"Failed to access {target}: {reason}")


class PipelineStepError(EngineError):
    """A transform step could not be applied."""

    category = ErrorCategory.PIPELINE_STEP

    def __init__(self, step_type: str, column: Optional[str], reason: str) -> None:
        self.step_type = step_type
        self.column = column
        self.reason = reason
        where = f" on column '{column}'" if column else ""
        super().__init__(f"Step '{step_type}' failed{where}: {reason}")


class InsufficientFeaturesError(EngineError):
    """Fewer than two numeric columns are available."""

    category = ErrorCategory.INSUFFICIENT_FEATURES

    def __init__(self, numeric_columns: int) -> None:
        self.numeric_columns = numeric_columns
        super().__init__(
            f"Need at least 2 numeric columns, found {numeric_columns}"
        )


class TrainingRuntimeError(EngineError):
    """Training failed inside the tensor runtime."""

    def __init__(
        self,
        category: ErrorCategory,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.category = category
        self.details = details or {}
        super().__init__(message)


class PersistenceError(EngineError):
    """A trained model could not be saved.

    The training result is attached so callers still receive the metrics.
    """

    category = ErrorCategory.PERSISTENCE

    def __init__(self, message: str, result: Any = None) -> None:
        self.result = result
        super().__init__(message)


class ModelNotFoundError(EngineError, KeyError):
    """No model version with the given id."""

    def __init__(self, model_id: str) -> None:
        self.model_id = model_id
        super().__init__(f"Model {model_id} not found")

    def __str__(self) -> str:
        return f"Model {self.model_id} not found"


def classify_error(exc: BaseException) -> Tuple[ErrorCategory, str]:
    """Map an exception onto a category and a user-facing message.

    Args:
        exc: Exception raised anywhere in a training job

    Returns:
        Tuple of (category, message)
    """
    if isinstance(exc, (PipelineStepError, DatasetAccessError, PersistenceError)):
        return exc.category, str(exc)

    if isinstance(exc, EngineError):
        category = exc.category
    elif isinstance(exc, MemoryError):
        category = ErrorCategory.DATASET_TOO_LARGE
    else:
        text = str(exc).lower()
        if "out of memory" in text or ("memory" in text and "alloc" in text):
            category = ErrorCategory.DATASET_TOO_LARGE
        elif "could not convert" in text or "numeric" in text:
            category = ErrorCategory.NON_NUMERIC_DATA
        else:
            category = ErrorCategory.UNKNOWN

    if category in USER_MESSAGES:
        return category, USER_MESSAGES[category]
    return category, f"Training failed: {exc}"


def error_details(exc: BaseException) -> Dict[str, Any]:
    """Opaque diagnostics blob stored alongside a failed job."""
    details: Dict[str, Any] = {
        "type": type(exc).__name__,
        "message": str(exc),
    }
    for attr in ("step_type", "column", "library", "dataset_id", "numeric_columns"):
        value = getattr(exc, attr, None)
        if value is not None:
            details[attr] = value
    extra = getattr(exc, "details", None)
    if extra:
        details["details"] = extra
    cause = exc.__cause__
    if cause is not None:
        details["cause"] = f"{type(cause).__name__}: {cause}"
    return details


__all__ = [
    "ErrorCategory",
    "EngineError",
    "DependencyUnavailable",
    "DatasetAccessError",
    "PipelineStepError",
    "InsufficientFeaturesError",
    "TrainingRuntimeError",
    "PersistenceError",
    "ModelNotFoundError",
    "classify_error",
    "error_details",
]
