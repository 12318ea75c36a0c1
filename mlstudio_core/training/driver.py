"""MLStudio Training Driver - Epoch Loop over the Tensor Runtime.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from mlstudio_core.config import EngineConfig
from mlstudio_core.data.extractor import TrainingData
from mlstudio_core.errors import ErrorCategory, TrainingRuntimeError
from mlstudio_core.metrics.records import EpochRecord, ModelMetrics
from mlstudio_core.metrics.scores import Scores
from mlstudio_core.model.artifact import ModelArtifact, restore_model
from mlstudio_core.model.builder import build_network, output_units
from mlstudio_core.model.families import (
    ConvNetParams,
    FamilyParams,
    NeuralNetworkParams,
    Task,
    parse_family,
)
from mlstudio_core.model.registry import TrainingConfig
from mlstudio_core.runtime.tensor import TensorRuntime
from mlstudio_core.utils.timing import Timer

logger = logging.getLogger(__name__)

EpochCallback = Callable[[EpochRecord], None]
StopCheck = Callable[[], bool]


@dataclass
class SplitIndices:
    """Row indices of each partition."""

    train: np.ndarray
    validation: np.ndarray
    test: np.ndarray

    def sizes(self) -> Dict[str, int]:
        return {
            "train": int(len(self.train)),
            "validation": int(len(self.validation)),
            "test": int(len(self.test)),
        }


def split_indices(
    n_rows: int,
    test_size: float,
    validation_size: float,
    random_state: int,
    partitions: Optional[Sequence[str]] = None,
) -> SplitIndices:
    """Partition row indices for training.

    Rows tagged by a pipeline split step keep their tags. Otherwise rows are
    permuted with ``random_state``; the first ``floor(n * test_size)`` go to
    test, the next ``floor(n * validation_size)`` to validation and the rest
    to train.

    Raises:
        TrainingRuntimeError: Invalid fractions or an empty training partition
    """
    if partitions is not None:
        tags = np.asarray(partitions)
        split = SplitIndices(
            train=np.flatnonzero(tags == "train"),
            validation=np.flatnonzero(tags == "validation"),
            test=np.flatnonzero(tags == "test"),
        )
    else:
        if test_size < 0 or validation_size < 0 or test_size + validation_size >= 1:
            raise TrainingRuntimeError(
                ErrorCategory.UNKNOWN,
                f"Invalid split: test_size={test_size}, validation_size={validation_size}",
                {"testSize": test_size, "validationSize": validation_size},
            )
        order = np.random.default_rng(random_state).permutation(n_rows)
        n_test = int(math.floor(n_rows * test_size))
        n_val = int(math.floor(n_rows * validation_size))
        split = SplitIndices(
            train=np.sort(order[n_test + n_val:]),
            validation=np.sort(order[n_test:n_test + n_val]),
            test=np.sort(order[:n_test]),
        )

    if len(split.train) == 0:
        raise TrainingRuntimeError(
            ErrorCategory.INSUFFICIENT_FEATURES,
            f"No rows left for training out of {n_rows}",
            split.sizes(),
        )
    return split


def to_layout(features: np.ndarray, layout: str) -> np.ndarray:
    """Reorder [N, H, W, C] image features for a channels-first network."""
    if layout == "NCHW" and features.ndim == 4:
        return np.ascontiguousarray(features.transpose(0, 3, 1, 2))
    return features


@dataclass
class TrainingResult:
    """Outcome of one driver run.

    Attributes:
        metrics: Final metrics
        history: One record per completed epoch
        model_data: Serialized artifact
        cancelled: True if a stop request ended the run early
        class_report: Confusion matrix and per-class scores for classifiers
    """

    metrics: ModelMetrics
    history: List[EpochRecord] = field(default_factory=list)
    model_data: Optional[Dict[str, Any]] = None
    cancelled: bool = False
    class_report: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metrics": self.metrics.to_record(),
            "history": [h.to_record() for h in self.history],
            "cancelled": self.cancelled,
            "classReport": self.class_report,
        }


class TrainingDriver:
    """Fits one model family on extracted tensors.

    Example:
        driver = TrainingDriver(TensorRuntime())
        spec = parse_family("neural_network", {"epochs": 20})
        result = driver.train(data, spec, TrainingConfig(), on_epoch=print)
    """

    def __init__(self, runtime: TensorRuntime, config: Optional[EngineConfig] = None):
        self.runtime = runtime
        self.config = config or EngineConfig()

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def _num_classes(self, spec: FamilyParams, labels: np.ndarray) -> int:
        task = spec.task
        if not task.is_classification:
            return 1

        if labels.size and (
            not np.all(np.isfinite(labels))
            or not np.all(labels == np.round(labels))
            or labels.min() < 0
        ):
            raise TrainingRuntimeError(
                ErrorCategory.UNKNOWN,
                "Classification labels must be non-negative integer class indices",
                {"task": task.value},
            )

        if task == Task.BINARY:
            if labels.size and labels.max() > 1:
                raise TrainingRuntimeError(
                    ErrorCategory.UNKNOWN,
                    "Binary classification labels must be 0 or 1",
                    {"maxLabel": float(labels.max())},
                )
            return 2

        observed = int(labels.max()) + 1 if labels.size else 1
        declared = spec.num_classes if isinstance(spec, ConvNetParams) else None
        if declared is not None and declared < observed:
            raise TrainingRuntimeError(
                ErrorCategory.UNKNOWN,
                f"num_classes={declared} but labels go up to {observed - 1}",
                {"numClasses": declared},
            )
        return max(declared or observed, 2)

    def _loss(self, spec: FamilyParams) -> Any:
        nn = self.runtime.nn
        if spec.task == Task.BINARY:
            return nn.BCEWithLogitsLoss()
        if spec.task == Task.MULTICLASS:
            return nn.CrossEntropyLoss()
        if isinstance(spec, NeuralNetworkParams):
            loss = spec.loss.lower()
            if loss in ("mae", "mean_absolute_error"):
                return nn.L1Loss()
            if loss == "huber":
                return nn.HuberLoss()
        return nn.MSELoss()

    def _targets(self, labels: np.ndarray, task: Task) -> Any:
        if task == Task.MULTICLASS:
            return self.runtime.tensor(labels.astype(np.int64), dtype="int64")
        return self.runtime.tensor(labels.reshape(-1, 1), dtype="float32")

    # ------------------------------------------------------------------
    # Epoch work
    # ------------------------------------------------------------------

    def _fit_epoch(
        self,
        module: Any,
        optimizer: Any,
        loss_fn: Any,
        x: Any,
        y: Any,
        train_idx: Any,
        batch_size: int,
        generator: Any,
        epoch: int,
    ) -> float:
        torch = self.runtime.torch
        order = train_idx[torch.randperm(len(train_idx), generator=generator).to(train_idx.device)]

        total = 0.0
        for start in range(0, len(order), batch_size):
            batch = order[start:start + batch_size]
            batch_loss = self.runtime.train_step(module, optimizer, loss_fn, x[batch], y[batch])
            if not math.isfinite(batch_loss):
                raise TrainingRuntimeError(
                    ErrorCategory.NUMERIC_OVERFLOW,
                    f"Loss became {batch_loss} in epoch {epoch}",
                    {"epoch": epoch},
                )
            total += batch_loss * len(batch)
        return total / len(order)

    def _evaluate(
        self,
        module: Any,
        loss_fn: Any,
        x: Any,
        y: Any,
        idx: Any,
        task: Task,
    ) -> Tuple[Optional[float], Optional[float], Optional[np.ndarray]]:
        """Loss, accuracy and predicted classes on a subset; Nones if empty."""
        if len(idx) == 0:
            return None, None, None

        torch = self.runtime.torch
        module.eval()
        with torch.no_grad():
            out = module(x[idx])
            loss = float(loss_fn(out, y[idx]).item())
            if task == Task.REGRESSION:
                return loss, None, None
            if task == Task.BINARY:
                predicted = (out > 0).long().reshape(-1)
                truth = y[idx].long().reshape(-1)
            else:
                predicted = out.argmax(dim=1)
                truth = y[idx]
            accuracy = float((predicted == truth).float().mean().item())
        return loss, accuracy, self.runtime.to_numpy(predicted)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def train(
        self,
        data: TrainingData,
        spec: FamilyParams,
        training_config: Optional[TrainingConfig] = None,
        on_epoch: Optional[EpochCallback] = None,
        should_stop: Optional[StopCheck] = None,
    ) -> TrainingResult:
        """Train ``spec`` on ``data``.

        Args:
            data: Extracted features and labels
            spec: Family hyperparameters
            training_config: Split fractions and seed
            on_epoch: Called with each epoch's record
            should_stop: Polled before every epoch; True ends the run as cancelled

        Returns:
            TrainingResult with metrics, history and the serialized model

        Raises:
            TrainingRuntimeError: Unsupported family, invalid labels or diverging loss
            DependencyUnavailable: If torch cannot be loaded
        """
        spec.validate()
        training_config = training_config or TrainingConfig()
        self.runtime.ensure()
        self.runtime.seed_all(training_config.random_state)

        split = split_indices(
            data.row_count,
            training_config.test_size,
            training_config.validation_size,
            training_config.random_state,
            data.partitions,
        )
        task = spec.task
        num_classes = self._num_classes(spec, data.labels)
        units = output_units(spec, num_classes)

        module, architecture = build_network(spec, data.input_shape, units, self.runtime)
        x = self.runtime.tensor(to_layout(data.features, architecture["input_layout"]))
        y = self._targets(data.labels, task)
        train_idx = self.runtime.tensor(split.train, dtype="int64")
        val_idx = self.runtime.tensor(split.validation, dtype="int64")
        test_idx = self.runtime.tensor(split.test, dtype="int64")

        loss_fn = self._loss(spec)
        try:
            optimizer = self.runtime.optimizer(spec.optimizer, module.parameters(), spec.learning_rate)
        except ValueError as e:
            raise TrainingRuntimeError(
                ErrorCategory.UNSUPPORTED_ARCHITECTURE, str(e), {"optimizer": spec.optimizer}
            ) from e
        generator = self.runtime.generator(training_config.random_state)

        logger.info(
            f"Training {spec.family.value} on {split.sizes()} rows "
            f"for {spec.epochs} epochs (task={task.value})"
        )

        history: List[EpochRecord] = []
        cancelled = False
        with Timer(f"Training {spec.family.value}") as timer:
            for epoch in range(1, spec.epochs + 1):
                if should_stop is not None and should_stop():
                    cancelled = True
                    logger.info(f"Stop requested; ending after {len(history)} epochs")
                    break

                loss = self._fit_epoch(
                    module, optimizer, loss_fn, x, y, train_idx, spec.batch_size, generator, epoch
                )
                accuracy = None
                if task.is_classification:
                    _, accuracy, _ = self._evaluate(module, loss_fn, x, y, train_idx, task)
                val_loss, val_accuracy, _ = self._evaluate(module, loss_fn, x, y, val_idx, task)

                record = EpochRecord(
                    epoch=epoch,
                    loss=loss,
                    accuracy=accuracy,
                    validation_loss=val_loss,
                    validation_accuracy=val_accuracy,
                )
                history.append(record)
                logger.debug(f"Epoch {epoch}/{spec.epochs} - loss={loss:.6f} val_loss={val_loss}")
                if on_epoch is not None:
                    on_epoch(record)

        test_loss, test_accuracy, test_pred = self._evaluate(module, loss_fn, x, y, test_idx, task)
        last = history[-1] if history else None
        metrics = ModelMetrics(
            loss=last.loss if last else 0.0,
            accuracy=last.accuracy if last else None,
            validation_loss=last.validation_loss if last else None,
            validation_accuracy=last.validation_accuracy if last else None,
            test_loss=test_loss,
            test_accuracy=test_accuracy,
            training_time=timer.elapsed,
            epochs=len(history),
        )

        class_report = None
        if task.is_classification and history:
            report_idx, report_rows = (test_idx, split.test) if len(split.test) else (train_idx, split.train)
            _, _, predicted = self._evaluate(module, loss_fn, x, y, report_idx, task)
            class_report = Scores.class_report(
                data.labels[report_rows].astype(int).tolist(),
                predicted.astype(int).tolist(),
                labels=list(range(num_classes)),
            )

        metadata = data.metadata()
        metadata.update({
            "familyParams": spec.to_dict(),
            "outputUnits": units,
            "outputShape": units,
            "task": task.value,
            "numClasses": num_classes if task.is_classification else None,
            "split": split.sizes(),
            "randomState": training_config.random_state,
        })
        if class_report is not None:
            metadata["classReport"] = class_report

        artifact = ModelArtifact(
            model_type=spec.family.value,
            architecture=architecture,
            weights=self.runtime.state_to_lists(module),
            training_history=[h.to_record() for h in history],
            training_metadata=metadata,
        )

        return TrainingResult(
            metrics=metrics,
            history=history,
            model_data=artifact.to_model_data(),
            cancelled=cancelled,
            class_report=class_report,
        )


def predict(model_data: Dict[str, Any], features: np.ndarray, runtime: TensorRuntime) -> np.ndarray:
    """Run a stored model on a feature array.

    Returns:
        (N,) values for regression, (N,) probabilities for binary models,
        (N, K) class probabilities for multiclass models
    """
    torch = runtime.ensure()
    module = restore_model(model_data, runtime)
    meta = model_data.get("trainingMetadata") or {}
    if meta.get("task"):
        task = Task(meta["task"])
    else:
        task = parse_family(model_data["modelType"], meta.get("familyParams")).task

    layout = model_data["architecture"].get("input_layout", "NF")
    x = runtime.tensor(to_layout(np.asarray(features, dtype=np.float32), layout))
    with torch.no_grad():
        out = module(x)
        if task == Task.BINARY:
            out = torch.sigmoid(out).reshape(-1)
        elif task == Task.MULTICLASS:
            out = torch.softmax(out, dim=1)
        else:
            out = out.reshape(-1)
    return runtime.to_numpy(out)


__all__ = ["TrainingDriver", "TrainingResult", "SplitIndices", "split_indices", "predict", "to_layout"]
