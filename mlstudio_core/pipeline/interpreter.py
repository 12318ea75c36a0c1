"""MLStudio Interpreter - Deterministic Transform Replay.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from mlstudio_core.data.dataset import TabularData
from mlstudio_core.errors import PipelineStepError
from mlstudio_core.pipeline import transforms
from mlstudio_core.pipeline.step import Step, StepType
from mlstudio_core.utils.hashing import compute_hash

logger = logging.getLogger(__name__)

StepLike = Union[Step, Dict[str, Any]]

# Steps in the vocabulary that leave the table untouched.
PASSTHROUGH = {StepType.LOAD, StepType.RESHAPE, StepType.CONVERT_TO_TENSOR}


@dataclass
class TransformedData:
    """Result of replaying a pipeline.

    Attributes:
        data: Transformed table
        applied_steps: Steps as applied, each with its resolved statistics
        fingerprint: sha256 over columns, cells and partitions
    """

    data: TabularData
    applied_steps: List[Step] = field(default_factory=list)
    fingerprint: str = ""

    @property
    def preprocessing_steps(self) -> List[Dict[str, Any]]:
        """Serializable snapshot for the model version record."""
        return [step.to_record() for step in self.applied_steps]


def fingerprint(data: TabularData) -> str:
    return compute_hash({
        "columns": data.columns,
        "rows": data.rows,
        "partitions": data.partitions,
    })


class TransformInterpreter:
    """Applies an ordered list of transform steps to a table.

    Each step runs against a copy of the working table; the copy replaces the
    working table only if the step succeeds. The first failing step aborts
    the rest with a ``PipelineStepError``.

    Example:
        interpreter = TransformInterpreter(random_state=7)
        result = interpreter.apply(table, [
            {"type": "handle-missing", "parameters": {"strategy": "mean"}},
            {"type": "normalize", "parameters": {"method": "minmax"}},
        ])
        result.preprocessing_steps  # replayable snapshot
    """

    def __init__(
        self,
        random_state: int = 42,
        split_tolerance: float = 1e-3,
        on_step: Optional[Callable[[Step, int, int], None]] = None,
    ):
        """Initialize interpreter.

        Args:
            random_state: Seed used by split steps that do not carry one
            split_tolerance: Allowed deviation of split fractions from 1.0
            on_step: Called as on_step(step, index, total) after each step
        """
        self.random_state = random_state
        self.split_tolerance = split_tolerance
        self.on_step = on_step

    def apply(self, data: TabularData, steps: Sequence[StepLike]) -> TransformedData:
        """Replay steps in list order.

        Args:
            data: Parsed dataset; never mutated
            steps: Step objects or store records

        Returns:
            TransformedData

        Raises:
            PipelineStepError: On the first step that cannot be applied
        """
        parsed = [s if isinstance(s, Step) else Step.from_record(s, order=i) for i, s in enumerate(steps)]
        working = data.copy()
        applied: List[Step] = []
        total = len(parsed)

        for index, step in enumerate(parsed):
            candidate = working.copy()
            resolved = self._apply_step(candidate, step)
            working = candidate
            applied.append(step.applied(resolved, order=index))

            logger.info(
                f"Applied step {index + 1}/{total} '{step.type}' "
                f"({working.row_count} rows, {len(working.columns)} columns)"
            )
            if self.on_step:
                self.on_step(step, index, total)

        return TransformedData(
            data=working,
            applied_steps=applied,
            fingerprint=fingerprint(working),
        )

    def _apply_step(self, table: TabularData, step: Step) -> Dict[str, Any]:
        try:
            step_type = step.step_type
        except ValueError:
            raise PipelineStepError(step.type, None, "unknown step type") from None

        params = step.parameters
        resolved = step.resolved

        if step_type in PASSTHROUGH:
            logger.debug(f"Step '{step.type}' does not change tabular data")
            return {}
        if step_type == StepType.HANDLE_MISSING:
            return transforms.handle_missing(table, params, resolved, step.type)
        if step_type in (StepType.NORMALIZE, StepType.SCALE):
            return transforms.normalize(table, params, resolved, step.type)
        if step_type == StepType.ENCODE_CATEGORICAL:
            return transforms.encode_categorical(table, params, resolved, step.type)
        if step_type == StepType.CLIP_OUTLIERS:
            return transforms.clip_outliers(table, params, resolved, step.type)
        if step_type == StepType.SPLIT:
            return transforms.split(
                table,
                params,
                resolved,
                step.type,
                default_seed=self.random_state,
                tolerance=self.split_tolerance,
            )
        if step_type == StepType.FEATURE_ENGINEERING:
            action = str(params.get("action", "")).lower().replace("-", "_")
            if action == "clip_outliers":
                return transforms.clip_outliers(table, params, resolved, step.type)
            raise PipelineStepError(step.type, None, f"unsupported action '{action}'")

        raise PipelineStepError(step.type, None, "unknown step type")


__all__ = ["TransformInterpreter", "TransformedData", "fingerprint"]
