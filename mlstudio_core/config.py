"""MLStudio Config - Engine Configuration.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

logger = logging.getLogger(__name__)


class Phase(Enum):
    """Coarse phases of a training job."""

    FETCH = "fetch"
    PREPROCESS = "preprocess"
    TRAIN = "train"
    PERSIST = "persist"


@dataclass
class ProgressPhases:
    """Percentage window each phase occupies in the 0-100 projection."""

    fetch: Tuple[int, int] = (0, 15)
    preprocess: Tuple[int, int] = (15, 30)
    train: Tuple[int, int] = (30, 90)
    persist: Tuple[int, int] = (90, 100)

    def window(self, phase: Phase) -> Tuple[int, int]:
        return getattr(self, phase.value)

    def project(self, phase: Phase, fraction: float) -> int:
        """Map a phase-local fraction onto the 0-100 scale.

        Args:
            phase: Current phase
            fraction: Progress within the phase, clamped to [0, 1]

        Returns:
            Integer percentage
        """
        start, end = self.window(phase)
        fraction = min(max(fraction, 0.0), 1.0)
        return int(round(start + (end - start) * fraction))


@dataclass
class ImageConfig:
    """Image preprocessing options."""

    target_height: int = 28
    target_width: int = 28
    grayscale: bool = True
    normalize: bool = True

    @property
    def channels(self) -> int:
        return 1 if self.grayscale else 3


@dataclass
class EngineConfig:
    """Engine configuration.

    Attributes:
        phases: Progress projection windows
        image: Image preprocessing options
        default_test_size: Test fraction when a request omits it
        default_validation_size: Validation fraction when a request omits it
        random_state: Seed for splits and weight initialisation
        device: Torch device ("cpu", "cuda" or "auto")
        max_dataset_bytes: Downloads larger than this are rejected
        download_timeout: Seconds before a dataset download gives up
        split_tolerance: Allowed deviation of split fractions from 1.0
        label_column: Label column override; None selects the last numeric column
    """

    phases: ProgressPhases = field(default_factory=ProgressPhases)
    image: ImageConfig = field(default_factory=ImageConfig)
    default_test_size: float = 0.2
    default_validation_size: float = 0.2
    random_state: int = 42
    device: str = "cpu"
    max_dataset_bytes: int = 100 * 1024 * 1024
    download_timeout: float = 30.0
    split_tolerance: float = 1e-3
    label_column: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        """Build a config from a plain dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}

        if isinstance(kwargs.get("phases"), dict):
            kwargs["phases"] = ProgressPhases(
                **{k: tuple(v) for k, v in kwargs["phases"].items()}
            )
        if isinstance(kwargs.get("image"), dict):
            kwargs["image"] = ImageConfig(**kwargs["image"])

        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {sorted(unknown)}")

        return cls(**kwargs)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "EngineConfig":
        """Load a JSON config file."""
        path = Path(path)
        data = json.loads(path.read_text(encoding="utf-8"))
        logger.info(f"Loaded engine config from {path}")
        return cls.from_dict(data)


__all__ = ["Phase", "ProgressPhases", "ImageConfig", "EngineConfig"]
