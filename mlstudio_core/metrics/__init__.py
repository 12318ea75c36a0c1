"""Metrics module - Training history, final metrics and evaluation scores."""

from mlstudio_core.metrics.records import EpochRecord, ModelMetrics
from mlstudio_core.metrics.scores import Scores

__all__ = ["EpochRecord", "ModelMetrics", "Scores"]
