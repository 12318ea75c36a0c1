"""MLStudio Step - Transform Step Records.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import copy
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class StepType(Enum):
    """Transform step vocabulary."""

    LOAD = "load"
    RESHAPE = "reshape"
    HANDLE_MISSING = "handle_missing"
    NORMALIZE = "normalize"
    SCALE = "scale"
    ENCODE_CATEGORICAL = "encode_categorical"
    SPLIT = "split"
    CLIP_OUTLIERS = "clip_outliers"
    FEATURE_ENGINEERING = "feature_engineering"
    CONVERT_TO_TENSOR = "convert_to_tensor"

    @classmethod
    def parse(cls, value: Any) -> "StepType":
        """Accept enum members, snake_case or hyphenated names.

        Raises:
            ValueError: If the name is not in the vocabulary
        """
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("-", "_")
        if key == "split_data":
            key = "split"
        return cls(key)


@dataclass
class Step:
    """One recorded transform step.

    Attributes:
        type: Step type name as recorded (hyphenated or snake_case)
        parameters: Parameters supplied by the pipeline author
        id: Step identifier
        order: Position in the pipeline
        applied_at: When the step was applied
        resolved: Statistics the step actually used (means, bounds, codes, seed)
    """

    type: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: f"step_{uuid.uuid4().hex[:8]}")
    order: int = 0
    applied_at: Optional[datetime] = None
    resolved: Optional[Dict[str, Any]] = None

    @property
    def step_type(self) -> StepType:
        return StepType.parse(self.type)

    @classmethod
    def from_record(cls, record: Dict[str, Any], order: int = 0) -> "Step":
        """Build from a store document (camelCase keys)."""
        applied_at = record.get("appliedAt") or record.get("applied_at")
        if isinstance(applied_at, (int, float)):
            applied_at = datetime.fromtimestamp(applied_at / 1000.0)
        elif isinstance(applied_at, str):
            applied_at = datetime.fromisoformat(applied_at)

        return cls(
            type=record["type"],
            parameters=dict(record.get("parameters") or {}),
            id=str(record.get("id") or record.get("_id") or f"step_{uuid.uuid4().hex[:8]}"),
            order=int(record.get("order", order)),
            applied_at=applied_at,
            resolved=copy.deepcopy(record.get("resolved")),
        )

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "parameters": copy.deepcopy(self.parameters),
            "order": self.order,
            "appliedAt": self.applied_at.isoformat() if self.applied_at else None,
        }
        if self.resolved is not None:
            record["resolved"] = copy.deepcopy(self.resolved)
        return record

    def applied(self, resolved: Dict[str, Any], order: int) -> "Step":
        """Copy of this step stamped with what it resolved to."""
        return Step(
            type=self.type,
            parameters=copy.deepcopy(self.parameters),
            id=self.id,
            order=order,
            applied_at=datetime.now(),
            resolved=resolved,
        )


__all__ = ["Step", "StepType"]
