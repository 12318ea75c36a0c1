"""MLStudio Training Job - Background Training Jobs.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime
from enum import Enum, auto
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Union

from mlstudio_core.errors import PersistenceError
from mlstudio_core.model.registry import ModelStatus, ModelVersion
from mlstudio_core.training.progress import ProgressEvent

if TYPE_CHECKING:
    from mlstudio_core.training.driver import TrainingResult
    from mlstudio_core.training.engine import TrainingEngine, TrainingRequest

logger = logging.getLogger(__name__)


class JobStatus(Enum):
    """Training job status."""

    PENDING = auto()
    RUNNING = auto()
    COMPLETED = auto()
    FAILED = auto()
    CANCELLED = auto()


class TrainingJob:
    """Runs ``TrainingEngine.start_training`` on a background thread.

    Features:
    - Progress tracking
    - Cancellation at epoch boundaries
    - Access to the model version or the failure

    Example:
        job = TrainingJob(engine, {"datasetId": "ds_1", "modelType": "linear_regression"})
        job.start()
        job.cancel()
        job.wait()  # JobStatus.CANCELLED
    """

    def __init__(
        self,
        engine: "TrainingEngine",
        request: Union["TrainingRequest", Dict[str, Any]],
        on_progress: Optional[Callable[[ProgressEvent], None]] = None,
    ):
        self.engine = engine
        self.request = request
        self.on_progress = on_progress
        self.job_id = str(uuid.uuid4())[:8]
        # Id the engine's job store assigns; known once the first event arrives
        self.store_job_id: Optional[str] = None

        self.status = JobStatus.PENDING
        self.progress = 0
        self.events: List[ProgressEvent] = []
        self.model: Optional[ModelVersion] = None
        self.error: Optional[Exception] = None
        self.started_at: Optional[datetime] = None
        self.completed_at: Optional[datetime] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    def start(self) -> str:
        """Start training job."""
        if self._stop_event.is_set():
            self.status = JobStatus.CANCELLED
            logger.info(f"Job {self.job_id} cancelled before start")
            return self.job_id

        self.status = JobStatus.RUNNING
        self.started_at = datetime.now()

        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

        logger.info(f"Started training job {self.job_id}")
        return self.job_id

    def _on_progress(self, event: ProgressEvent) -> None:
        if self.store_job_id is None:
            self.store_job_id = event.job_id
            logger.debug(f"Job {self.job_id} tracked as {event.job_id}")
        self.progress = event.percent
        self.events.append(event)
        if self.on_progress is not None:
            self.on_progress(event)

    def _run(self) -> None:
        """Execute training."""
        try:
            self.model = self.engine.start_training(
                self.request,
                on_progress=self._on_progress,
                should_stop=self._stop_event.is_set,
            )
            if self.model.status == ModelStatus.CANCELLED:
                self.status = JobStatus.CANCELLED
            else:
                self.status = JobStatus.COMPLETED
        except Exception as e:
            self.error = e
            self.status = JobStatus.FAILED
            logger.error(f"Job {self.job_id} failed: {e}")
        finally:
            self.completed_at = datetime.now()

    def cancel(self) -> None:
        """Request cancellation; honoured at the next epoch boundary."""
        self._stop_event.set()
        if self.status == JobStatus.PENDING:
            self.status = JobStatus.CANCELLED

    def wait(self, timeout: Optional[float] = None) -> JobStatus:
        """Wait for job completion."""
        if self._thread:
            self._thread.join(timeout=timeout)
        return self.status

    @property
    def should_stop(self) -> bool:
        """Check if job should stop."""
        return self._stop_event.is_set()

    @property
    def result(self) -> Optional["TrainingResult"]:
        """Trained result of a job whose model could not be saved."""
        if isinstance(self.error, PersistenceError):
            return self.error.result
        return None


__all__ = ["TrainingJob", "JobStatus"]
