"""Training module - Driver, progress reporting, jobs and the engine."""

from mlstudio_core.training.progress import (
    ProgressEvent,
    ProgressChannel,
    PhaseTracker,
    JobProgressReporter,
)
from mlstudio_core.training.driver import TrainingDriver, TrainingResult, split_indices
from mlstudio_core.training.engine import TrainingEngine, TrainingRequest
from mlstudio_core.training.job import TrainingJob, JobStatus

__all__ = [
    "ProgressEvent", "ProgressChannel", "PhaseTracker", "JobProgressReporter",
    "TrainingDriver", "TrainingResult", "split_indices",
    "TrainingEngine", "TrainingRequest",
    "TrainingJob", "JobStatus",
]
