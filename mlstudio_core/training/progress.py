"""MLStudio Progress - Job Progress Channel and Reporter.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from mlstudio_core.config import Phase, ProgressPhases
from mlstudio_core.metrics.records import EpochRecord
from mlstudio_core.stores.base import JobStore

logger = logging.getLogger(__name__)


@dataclass
class ProgressEvent:
    """One progress update of a training job."""

    job_id: str
    phase: Phase
    percent: int
    message: str = ""
    epoch: Optional[EpochRecord] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "jobId": self.job_id,
            "phase": self.phase.value,
            "progress": self.percent,
            "message": self.message,
        }
        if self.epoch is not None:
            data["epoch"] = self.epoch.to_record()
        return data


Listener = Callable[[ProgressEvent], None]


class ProgressChannel:
    """Fan-out of progress events to subscribed listeners.

    A listener that raises is logged and skipped; it never aborts the job.

    Example:
        channel = ProgressChannel()
        unsubscribe = channel.subscribe(lambda e: print(e.percent))
        channel.publish(ProgressEvent("job_1", Phase.TRAIN, 42))
        unsubscribe()
    """

    def __init__(self):
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: ProgressEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Progress listener failed for job {event.job_id}: {e}")

    def __len__(self) -> int:
        return len(self._listeners)


class PhaseTracker:
    """Projects phase-local progress onto 0-100 and publishes it.

    The published percentage never decreases.
    """

    def __init__(
        self,
        channel: ProgressChannel,
        job_id: str,
        phases: Optional[ProgressPhases] = None,
    ):
        self.channel = channel
        self.job_id = job_id
        self.phases = phases or ProgressPhases()
        self.percent = 0
        self.phase = Phase.FETCH

    def advance(
        self,
        phase: Phase,
        fraction: float = 0.0,
        message: str = "",
        epoch: Optional[EpochRecord] = None,
    ) -> int:
        """Publish progress within ``phase``.

        Args:
            phase: Current phase
            fraction: Progress within the phase, 0 to 1
            message: Human-readable status
            epoch: Epoch record when reporting training progress

        Returns:
            The published percentage
        """
        self.phase = phase
        self.percent = max(self.percent, self.phases.project(phase, fraction))
        self.channel.publish(ProgressEvent(
            job_id=self.job_id,
            phase=phase,
            percent=self.percent,
            message=message,
            epoch=epoch,
        ))
        return self.percent

    def epoch_listener(self, total_epochs: int) -> Callable[[EpochRecord], None]:
        """Callback for the driver mapping epochs onto the training window."""

        def on_epoch(record: EpochRecord) -> None:
            self.advance(
                Phase.TRAIN,
                record.epoch / max(total_epochs, 1),
                f"Epoch {record.epoch}/{total_epochs}",
                epoch=record,
            )

        return on_epoch


class JobProgressReporter:
    """Listener that mirrors progress into the job store."""

    def __init__(self, job_store: JobStore):
        self.job_store = job_store

    def __call__(self, event: ProgressEvent) -> None:
        metrics = event.epoch.to_record() if event.epoch is not None else None
        self.job_store.update_training_job(
            event.job_id,
            progress=event.percent,
            metrics=metrics,
        )
        logger.debug(f"Job {event.job_id}: {event.percent}% {event.message}")


__all__ = [
    "ProgressEvent",
    "ProgressChannel",
    "PhaseTracker",
    "JobProgressReporter",
]
