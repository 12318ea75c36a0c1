"""MLStudio Metric Records - Per-Epoch History and Final Metrics.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


def parse_timestamp(value: Any) -> datetime:
    """Accept datetimes, ISO strings or epoch milliseconds."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000.0)
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return datetime.now()


def _optional_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)


@dataclass
class EpochRecord:
    """Metrics reported at the end of one epoch."""

    epoch: int
    loss: float
    accuracy: Optional[float] = None
    validation_loss: Optional[float] = None
    validation_accuracy: Optional[float] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_record(self) -> Dict[str, Any]:
        return {
            "epoch": self.epoch,
            "loss": self.loss,
            "accuracy": self.accuracy,
            "validationLoss": self.validation_loss,
            "validationAccuracy": self.validation_accuracy,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "EpochRecord":
        return cls(
            epoch=int(record["epoch"]),
            loss=float(record["loss"]),
            accuracy=_optional_float(record.get("accuracy")),
            validation_loss=_optional_float(record.get("validationLoss", record.get("val_loss"))),
            validation_accuracy=_optional_float(
                record.get("validationAccuracy", record.get("val_accuracy"))
            ),
            timestamp=parse_timestamp(record.get("timestamp")),
        )


@dataclass
class ModelMetrics:
    """Final metrics of a training run.

    Attributes:
        loss: Final training loss
        accuracy: Final training accuracy, classification only
        validation_loss: Loss on the validation partition
        validation_accuracy: Accuracy on the validation partition
        test_loss: Loss on the held-out test partition
        test_accuracy: Accuracy on the held-out test partition
        training_time: Wall-clock seconds spent fitting
        epochs: Epochs actually run
    """

    loss: float = 0.0
    accuracy: Optional[float] = None
    validation_loss: Optional[float] = None
    validation_accuracy: Optional[float] = None
    test_loss: Optional[float] = None
    test_accuracy: Optional[float] = None
    training_time: float = 0.0
    epochs: Optional[int] = None

    def to_record(self) -> Dict[str, Any]:
        return {
            "loss": self.loss,
            "accuracy": self.accuracy,
            "validationLoss": self.validation_loss,
            "validationAccuracy": self.validation_accuracy,
            "testLoss": self.test_loss,
            "testAccuracy": self.test_accuracy,
            "trainingTime": self.training_time,
            "epochs": self.epochs,
        }

    @classmethod
    def from_record(cls, record: Optional[Dict[str, Any]]) -> "ModelMetrics":
        record = record or {}
        epochs = record.get("epochs")
        return cls(
            loss=float(record.get("loss") or 0.0),
            accuracy=_optional_float(record.get("accuracy")),
            validation_loss=_optional_float(record.get("validationLoss")),
            validation_accuracy=_optional_float(record.get("validationAccuracy")),
            test_loss=_optional_float(record.get("testLoss")),
            test_accuracy=_optional_float(record.get("testAccuracy")),
            training_time=float(record.get("trainingTime") or 0.0),
            epochs=None if epochs is None else int(epochs),
        )


__all__ = ["EpochRecord", "ModelMetrics", "parse_timestamp"]
