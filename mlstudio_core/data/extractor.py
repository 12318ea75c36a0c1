"""MLStudio Extractor - Feature/Label Tensor Derivation.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from mlstudio_core.config import ImageConfig
from mlstudio_core.data.dataset import ColumnType, TabularData, is_missing
from mlstudio_core.data.images import images_to_tensor
from mlstudio_core.errors import (
    ErrorCategory,
    InsufficientFeaturesError,
    TrainingRuntimeError,
)

logger = logging.getLogger(__name__)


class DataKind(Enum):
    """Shape family of extracted features."""

    TABULAR = "tabular"
    IMAGE = "image"


@dataclass
class TrainingData:
    """Extracted tensor pair.

    For tabular data ``features`` is (rows, len(feature_names)); for images it
    is (rows, H, W, C) with ``feature_names == ["image_pixels"]``.

    Attributes:
        features: float32 feature array, row-major
        labels: float32 label array, one per row
        feature_names: Ordered feature names
        label_name: Label name
        kind: Tabular or image
        partitions: Per-row split labels when a split step ran
        substituted_missing: Missing cells replaced by 0.0 during extraction
    """

    features: np.ndarray
    labels: np.ndarray
    feature_names: List[str]
    label_name: str
    kind: DataKind = DataKind.TABULAR
    partitions: Optional[List[str]] = None
    substituted_missing: int = 0
    class_names: Dict[str, int] = field(default_factory=dict)

    @property
    def row_count(self) -> int:
        return int(self.labels.shape[0])

    @property
    def input_shape(self) -> Tuple[int, ...]:
        return tuple(int(d) for d in self.features.shape[1:])

    def metadata(self) -> Dict[str, Any]:
        """Training metadata recorded into the model artifact."""
        meta: Dict[str, Any] = {
            "featureNames": list(self.feature_names),
            "labelName": self.label_name,
            "inputShape": list(self.input_shape),
            "outputShape": 1,
            "dataKind": self.kind.value,
            "rowCount": self.row_count,
        }
        if self.class_names:
            meta["classNames"] = dict(self.class_names)
        return meta


class FeatureLabelExtractor:
    """Selects feature and label columns from a transformed table.

    By default the label is the last numeric column and the features are the
    other numeric columns, in table order. ``label_column`` overrides the
    label; the features are then every other numeric column.

    Example:
        extractor = FeatureLabelExtractor()
        data = extractor.extract(transformed.data)
        data.feature_names, data.label_name
    """

    def __init__(self, label_column: Optional[str] = None):
        self.label_column = label_column

    def select_columns(self, table: TabularData) -> Tuple[List[str], str]:
        """Feature names and label name for a table.

        Raises:
            InsufficientFeaturesError: Fewer than 2 numeric columns
            TrainingRuntimeError: Label override missing or not numeric
        """
        numeric = table.numeric_columns()
        skipped = [c for c in table.columns if c not in numeric]
        if skipped:
            logger.info(f"Excluding non-numeric columns from features: {skipped}")

        if len(numeric) < 2:
            raise InsufficientFeaturesError(len(numeric))

        if self.label_column is None:
            return numeric[:-1], numeric[-1]

        if not table.has_column(self.label_column):
            raise TrainingRuntimeError(
                ErrorCategory.NON_NUMERIC_DATA,
                f"Label column '{self.label_column}' does not exist",
                {"label_column": self.label_column},
            )
        if table.column_type(self.label_column) != ColumnType.NUMERIC:
            raise TrainingRuntimeError(
                ErrorCategory.NON_NUMERIC_DATA,
                f"Label column '{self.label_column}' is not numeric",
                {"label_column": self.label_column},
            )
        features = [c for c in numeric if c != self.label_column]
        return features, self.label_column

    def extract(self, table: TabularData) -> TrainingData:
        """Build the feature matrix and label vector.

        Missing cells in selected columns are replaced by 0.0.
        """
        feature_names, label_name = self.select_columns(table)
        feature_idx = [table.column_index(c) for c in feature_names]
        label_idx = table.column_index(label_name)

        features = np.zeros((table.row_count, len(feature_idx)), dtype=np.float32)
        labels = np.zeros(table.row_count, dtype=np.float32)
        substituted = 0

        for r, row in enumerate(table.rows):
            for c, idx in enumerate(feature_idx):
                value = row[idx]
                if is_missing(value):
                    substituted += 1
                else:
                    features[r, c] = value
            if is_missing(row[label_idx]):
                substituted += 1
            else:
                labels[r] = row[label_idx]

        if substituted:
            logger.warning(f"Replaced {substituted} missing cells with 0.0 during extraction")

        logger.info(
            f"Extracted {table.row_count} rows: features={feature_names}, label={label_name}"
        )
        return TrainingData(
            features=features,
            labels=labels,
            feature_names=feature_names,
            label_name=label_name,
            partitions=list(table.partitions) if table.partitions is not None else None,
            substituted_missing=substituted,
        )


def extract_images(
    images: Sequence[np.ndarray],
    labels: Sequence[int],
    config: Optional[ImageConfig] = None,
    class_names: Optional[Dict[str, int]] = None,
) -> TrainingData:
    """Preprocess decoded images into a [N, H, W, C] tensor pair.

    Raises:
        TrainingRuntimeError: If label and image counts differ or no images exist
    """
    config = config or ImageConfig()
    if len(images) != len(labels):
        raise TrainingRuntimeError(
            ErrorCategory.UNKNOWN,
            f"Got {len(labels)} labels for {len(images)} images",
        )
    if not images:
        raise InsufficientFeaturesError(0)

    tensor = images_to_tensor(images, config)
    logger.info(f"Prepared image tensor with shape {tensor.shape}")
    return TrainingData(
        features=tensor,
        labels=np.asarray(labels, dtype=np.float32),
        feature_names=["image_pixels"],
        label_name="label",
        kind=DataKind.IMAGE,
        class_names=dict(class_names or {}),
    )


__all__ = ["DataKind", "TrainingData", "FeatureLabelExtractor", "extract_images"]
