"""MLStudio Scores - Evaluation Metrics.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)


class Scores:
    """Compute evaluation scores from true and predicted values.

    Supports:
    - Classification (accuracy, per-class precision/recall/F1, confusion matrix)
    - Regression (MSE, MAE, R2)
    """

    @staticmethod
    def accuracy(y_true: Sequence[Any], y_pred: Sequence[Any]) -> float:
        """Compute accuracy score."""
        if len(y_true) != len(y_pred):
            raise ValueError("Length mismatch")
        if len(y_true) == 0:
            return 0.0

        return float(np.mean(np.asarray(y_true) == np.asarray(y_pred)))

    @staticmethod
    def confusion_matrix(
        y_true: Sequence[int],
        y_pred: Sequence[int],
        labels: Optional[List[int]] = None,
    ) -> List[List[int]]:
        """Compute confusion matrix; rows are true labels, columns predictions."""
        if labels is None:
            labels = sorted(set(int(v) for v in y_true) | set(int(v) for v in y_pred))

        label_to_idx = {label: idx for idx, label in enumerate(labels)}
        matrix = np.zeros((len(labels), len(labels)), dtype=np.int64)

        for t, p in zip(y_true, y_pred):
            t, p = int(t), int(p)
            if t in label_to_idx and p in label_to_idx:
                matrix[label_to_idx[t], label_to_idx[p]] += 1

        return matrix.tolist()

    @staticmethod
    def class_report(
        y_true: Sequence[int],
        y_pred: Sequence[int],
        labels: Optional[List[int]] = None,
    ) -> Dict[str, Any]:
        """Per-class precision, recall, F1 and support plus the confusion matrix."""
        if labels is None:
            labels = sorted(set(int(v) for v in y_true) | set(int(v) for v in y_pred))
        matrix = np.asarray(Scores.confusion_matrix(y_true, y_pred, labels))

        per_class = {}
        for i, label in enumerate(labels):
            tp = int(matrix[i, i])
            predicted = int(matrix[:, i].sum())
            actual = int(matrix[i, :].sum())
            precision = tp / predicted if predicted else 0.0
            recall = tp / actual if actual else 0.0
            f1 = 2 * precision * recall / (precision + recall) if precision + recall else 0.0
            per_class[str(label)] = {
                "precision": precision,
                "recall": recall,
                "f1": f1,
                "support": actual,
            }

        return {
            "labels": list(labels),
            "confusionMatrix": matrix.tolist(),
            "perClass": per_class,
        }

    @staticmethod
    def mse(y_true: Sequence[float], y_pred: Sequence[float]) -> float:
        """Compute Mean Squared Error."""
        if len(y_true) != len(y_pred) or len(y_true) == 0:
            return 0.0

        diff = np.asarray(y_true, dtype=np.float64) - np.asarray(y_pred, dtype=np.float64)
        return float(np.mean(diff ** 2))

    @staticmethod
    def mae(y_true: Sequence[float], y_pred: Sequence[float]) -> float:
        """Compute Mean Absolute Error."""
        if len(y_true) != len(y_pred) or len(y_true) == 0:
            return 0.0

        diff = np.asarray(y_true, dtype=np.float64) - np.asarray(y_pred, dtype=np.float64)
        return float(np.mean(np.abs(diff)))

    @staticmethod
    def r2_score(y_true: Sequence[float], y_pred: Sequence[float]) -> float:
        """Compute R-squared (coefficient of determination)."""
        if len(y_true) != len(y_pred) or len(y_true) < 2:
            return 0.0

        t = np.asarray(y_true, dtype=np.float64)
        p = np.asarray(y_pred, dtype=np.float64)
        ss_tot = float(np.sum((t - t.mean()) ** 2))
        ss_res = float(np.sum((t - p) ** 2))

        if ss_tot == 0:
            return 0.0

        return 1 - (ss_res / ss_tot)


__all__ = ["Scores"]
