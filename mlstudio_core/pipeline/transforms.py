"""MLStudio Transforms - Column Operations Behind Each Step Type.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

Every transform takes the working table, the step parameters and the
statistics resolved by an earlier run of the same step (or None), mutates the
table in place and returns the statistics it used. Passing those statistics
back in reproduces the transformation without recomputing anything.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from mlstudio_core.data.dataset import Cell, ColumnType, TabularData, is_missing
from mlstudio_core.errors import PipelineStepError

logger = logging.getLogger(__name__)

Resolved = Dict[str, Any]

PARTITIONS = ("train", "validation", "test")


def quantile(sorted_values: Sequence[float], p: float) -> float:
    """Nearest-lower-rank quantile: sorted[floor(p * (n - 1))]."""
    idx = int(math.floor(p * (len(sorted_values) - 1)))
    return float(sorted_values[idx])


def category_key(value: Cell) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _param(params: Dict[str, Any], *names: str, default: Any = None) -> Any:
    for name in names:
        if name in params and params[name] is not None:
            return params[name]
    return default


def _target_columns(
    data: TabularData,
    params: Dict[str, Any],
    step_type: str,
) -> Tuple[List[str], bool]:
    """Columns a step acts on and whether the author named them explicitly."""
    names = _param(params, "targetColumns", "target_columns", "columns")
    if not names:
        return list(data.columns), False
    if isinstance(names, str):
        names = [names]
    for name in names:
        if not data.has_column(name):
            raise PipelineStepError(step_type, name, "column does not exist")
    return list(names), True


def _numeric_targets(data: TabularData, params: Dict[str, Any], step_type: str) -> List[str]:
    """Numeric columns a numeric step should touch.

    Explicitly named columns must be numeric; without names, non-numeric
    columns are left alone.
    """
    columns, explicit = _target_columns(data, params, step_type)
    selected = []
    for name in columns:
        ctype = data.column_type(name)
        if ctype == ColumnType.NUMERIC:
            selected.append(name)
        elif explicit and ctype != ColumnType.EMPTY:
            raise PipelineStepError(
                step_type, name, "requires numeric data; encode the column first"
            )
    return selected


def _present(data: TabularData, column: str) -> np.ndarray:
    values = [v for v in data.column_values(column) if not is_missing(v)]
    return np.asarray(values, dtype=np.float64)


def _map_column(data: TabularData, column: str, fn: Callable[[Any], Cell]) -> None:
    idx = data.column_index(column)
    for row in data.rows:
        if not is_missing(row[idx]):
            row[idx] = fn(row[idx])


def _keep_rows(data: TabularData, keep: List[bool]) -> int:
    before = data.row_count
    data.rows = [row for row, k in zip(data.rows, keep) if k]
    if data.partitions is not None:
        data.partitions = [p for p, k in zip(data.partitions, keep) if k]
    return before - data.row_count


def _mode(values: Sequence[Cell]) -> Cell:
    """Most frequent value; ties go to the first seen."""
    counts = Counter(values)
    best = max(counts.values())
    return next(v for v in values if counts[v] == best)


# ---------------------------------------------------------------------------
# handle_missing
# ---------------------------------------------------------------------------

def handle_missing(
    data: TabularData,
    params: Dict[str, Any],
    resolved: Optional[Resolved],
    step_type: str = "handle_missing",
) -> Resolved:
    """Drop or impute missing cells.

    Strategies: drop (alias drop_rows), drop_columns, mean, median, mode,
    forward_fill, backward_fill.
    """
    strategy = str(_param(params, "strategy", "method", default="drop")).lower()
    if strategy == "drop_rows":
        strategy = "drop"
    columns, explicit = _target_columns(data, params, step_type)

    if strategy == "drop":
        indices = [data.column_index(c) for c in columns]
        keep = [not any(is_missing(row[i]) for i in indices) for row in data.rows]
        removed = _keep_rows(data, keep)
        logger.debug(f"handle_missing dropped {removed} rows")
        return {"strategy": "drop", "columns": columns, "rowsRemoved": removed}

    if strategy == "drop_columns":
        dropped = [c for c in columns if any(is_missing(v) for v in data.column_values(c))]
        keep_idx = [i for i, c in enumerate(data.columns) if c not in dropped]
        data.columns = [data.columns[i] for i in keep_idx]
        data.rows = [[row[i] for i in keep_idx] for row in data.rows]
        return {"strategy": "drop_columns", "dropped": dropped}

    if strategy in ("forward_fill", "backward_fill"):
        for column in columns:
            idx = data.column_index(column)
            order = data.rows if strategy == "forward_fill" else list(reversed(data.rows))
            last: Cell = None
            for row in order:
                if is_missing(row[idx]):
                    if last is not None:
                        row[idx] = last
                else:
                    last = row[idx]
        return {"strategy": strategy, "columns": columns}

    if strategy not in ("mean", "median", "mode"):
        raise PipelineStepError(step_type, None, f"unknown strategy '{strategy}'")

    previous = (resolved or {}).get("fills", {})
    fills: Dict[str, Cell] = {}
    for column in columns:
        if column in previous:
            fills[column] = previous[column]
            continue

        ctype = data.column_type(column)
        if ctype == ColumnType.EMPTY:
            continue

        present = [v for v in data.column_values(column) if not is_missing(v)]
        if strategy == "mode" or ctype != ColumnType.NUMERIC:
            if strategy != "mode" and explicit:
                raise PipelineStepError(
                    step_type, column, f"strategy '{strategy}' requires numeric data"
                )
            fills[column] = _mode(present)
        elif strategy == "mean":
            fills[column] = float(np.mean(np.asarray(present, dtype=np.float64)))
        else:
            fills[column] = float(np.median(np.asarray(present, dtype=np.float64)))

    for column, fill in fills.items():
        idx = data.column_index(column)
        for row in data.rows:
            if is_missing(row[idx]):
                row[idx] = fill

    return {"strategy": strategy, "fills": fills}


# ---------------------------------------------------------------------------
# normalize / scale
# ---------------------------------------------------------------------------

def _column_scale_stats(method: str, values: np.ndarray) -> Dict[str, float]:
    if method == "minmax":
        return {"min": float(values.min()), "max": float(values.max())}
    if method == "zscore":
        return {"mean": float(values.mean()), "std": float(values.std())}
    ordered = np.sort(values)
    q1 = quantile(ordered, 0.25)
    q3 = quantile(ordered, 0.75)
    return {"median": float(np.median(ordered)), "iqr": q3 - q1}


def _scaler(method: str, stats: Dict[str, float]) -> Callable[[float], float]:
    if method == "minmax":
        low, span = stats["min"], stats["max"] - stats["min"]
    elif method == "zscore":
        low, span = stats["mean"], stats["std"]
    else:
        low, span = stats["median"], stats["iqr"]

    if span == 0 or not math.isfinite(span):
        return lambda v: 0.0
    return lambda v: (v - low) / span


def normalize(
    data: TabularData,
    params: Dict[str, Any],
    resolved: Optional[Resolved],
    step_type: str = "normalize",
) -> Resolved:
    """Rescale numeric columns with minmax, zscore or robust scaling.

    Zero range (or zero spread) maps every value to 0.
    """
    method = str(_param(params, "method", default="minmax")).lower()
    if method == "standard":
        method = "zscore"
    if method not in ("minmax", "zscore", "robust"):
        raise PipelineStepError(step_type, None, f"unknown method '{method}'")

    previous = (resolved or {}).get("stats", {})
    stats: Dict[str, Dict[str, float]] = {}
    for column in _numeric_targets(data, params, step_type):
        if column in previous:
            stats[column] = previous[column]
        else:
            values = _present(data, column)
            if values.size == 0:
                continue
            stats[column] = _column_scale_stats(method, values)
        _map_column(data, column, _scaler(method, stats[column]))

    return {"method": method, "stats": stats}


# ---------------------------------------------------------------------------
# clip_outliers
# ---------------------------------------------------------------------------

def _clip_bounds(method: str, values: np.ndarray, params: Dict[str, Any], step_type: str) -> Tuple[float, float]:
    ordered = np.sort(values)
    if method == "iqr":
        factor = float(_param(params, "multiplier", "factor", default=1.5))
        q1 = quantile(ordered, 0.25)
        q3 = quantile(ordered, 0.75)
        iqr = q3 - q1
        return q1 - factor * iqr, q3 + factor * iqr
    if method == "percentile":
        lower = float(_param(params, "lowerPercentile", "lower_percentile", default=1))
        upper = float(_param(params, "upperPercentile", "upper_percentile", default=99))
        if not 0 <= lower < upper <= 100:
            raise PipelineStepError(
                step_type, None, f"invalid percentile bounds {lower}/{upper}"
            )
        return quantile(ordered, lower / 100.0), quantile(ordered, upper / 100.0)
    threshold = float(_param(params, "threshold", default=3.0))
    mean, std = float(values.mean()), float(values.std())
    return mean - threshold * std, mean + threshold * std


def clip_outliers(
    data: TabularData,
    params: Dict[str, Any],
    resolved: Optional[Resolved],
    step_type: str = "clip_outliers",
) -> Resolved:
    """Clamp numeric columns to iqr, percentile or zscore bounds."""
    method = str(_param(params, "method", default="iqr")).lower()
    if method not in ("iqr", "percentile", "zscore"):
        raise PipelineStepError(step_type, None, f"unknown method '{method}'")

    previous = (resolved or {}).get("bounds", {})
    bounds: Dict[str, List[float]] = {}
    for column in _numeric_targets(data, params, step_type):
        if column in previous:
            low, high = previous[column]
        else:
            values = _present(data, column)
            if values.size == 0:
                continue
            low, high = _clip_bounds(method, values, params, step_type)
        bounds[column] = [low, high]
        _map_column(data, column, lambda v, lo=low, hi=high: min(max(v, lo), hi))

    return {"method": method, "bounds": bounds}


# ---------------------------------------------------------------------------
# encode_categorical
# ---------------------------------------------------------------------------

def _categorical_targets(data: TabularData, params: Dict[str, Any], step_type: str) -> List[str]:
    columns, explicit = _target_columns(data, params, step_type)
    selected = []
    for name in columns:
        ctype = data.column_type(name)
        if ctype in (ColumnType.CATEGORICAL, ColumnType.MIXED):
            selected.append(name)
        elif explicit:
            logger.info(f"{step_type}: column '{name}' is already numeric, leaving it")
    return selected


def _first_seen(values: Sequence[Cell]) -> List[Cell]:
    seen: List[Cell] = []
    lookup = set()
    for v in values:
        if is_missing(v) or v in lookup:
            continue
        lookup.add(v)
        seen.append(v)
    return seen


def _one_hot(data: TabularData, column: str, categories: List[Cell]) -> None:
    idx = data.column_index(column)
    new_names = [f"{column}_{category_key(c)}" for c in categories]
    positions = {c: i for i, c in enumerate(categories)}

    rows = []
    for row in data.rows:
        hot = [0.0] * len(categories)
        value = row[idx]
        if not is_missing(value) and value in positions:
            hot[positions[value]] = 1.0
        rows.append(row[:idx] + hot + row[idx + 1:])

    data.columns = data.columns[:idx] + new_names + data.columns[idx + 1:]
    data.rows = rows


def _target_means(
    data: TabularData,
    column: str,
    target: str,
    smoothing: float,
) -> Tuple[Dict[str, float], float]:
    """Per-category target means, from the training partition when one exists."""
    rows = range(data.row_count)
    if data.partitions is not None:
        rows = data.partition_indices("train")

    col_idx = data.column_index(column)
    tgt_idx = data.column_index(target)
    sums: Dict[str, float] = {}
    counts: Dict[str, int] = {}
    targets = []
    for i in rows:
        value, y = data.rows[i][col_idx], data.rows[i][tgt_idx]
        if is_missing(y):
            continue
        targets.append(float(y))
        if is_missing(value):
            continue
        key = category_key(value)
        sums[key] = sums.get(key, 0.0) + float(y)
        counts[key] = counts.get(key, 0) + 1

    global_mean = float(np.mean(targets)) if targets else 0.0
    mapping = {}
    for key, n in counts.items():
        mapping[key] = (sums[key] + smoothing * global_mean) / (n + smoothing)
    return mapping, global_mean


def encode_categorical(
    data: TabularData,
    params: Dict[str, Any],
    resolved: Optional[Resolved],
    step_type: str = "encode_categorical",
) -> Resolved:
    """Encode categorical columns with onehot, label or target encoding."""
    method = str(_param(params, "method", default="onehot")).lower()
    if method in ("one_hot", "one-hot"):
        method = "onehot"
    if method not in ("onehot", "label", "target"):
        raise PipelineStepError(step_type, None, f"unknown method '{method}'")

    previous = resolved or {}

    if method == "target":
        target = _param(params, "targetColumn", "target_column")
        if not target:
            raise PipelineStepError(step_type, None, "target encoding requires targetColumn")
        if not data.has_column(target):
            raise PipelineStepError(step_type, target, "target column does not exist")
        if data.column_type(target) != ColumnType.NUMERIC:
            raise PipelineStepError(step_type, target, "target column must be numeric")

        smoothing = float(_param(params, "smoothing", default=0.0))
        mappings = dict(previous.get("mappings", {}))
        fallbacks = dict(previous.get("globalMeans", {}))
        for column in _categorical_targets(data, params, step_type):
            if column == target:
                continue
            if column not in mappings:
                mappings[column], fallbacks[column] = _target_means(
                    data, column, target, smoothing
                )
            mapping, fallback = mappings[column], fallbacks.get(column, 0.0)
            _map_column(data, column, lambda v, m=mapping, f=fallback: m.get(category_key(v), f))

        return {
            "method": method,
            "targetColumn": target,
            "smoothing": smoothing,
            "trainingPartitionOnly": data.partitions is not None,
            "mappings": mappings,
            "globalMeans": fallbacks,
        }

    categories = dict(previous.get("categories", {}))
    for column in _categorical_targets(data, params, step_type):
        if column not in categories:
            categories[column] = _first_seen(data.column_values(column))
        if method == "onehot":
            _one_hot(data, column, categories[column])
        else:
            codes = {c: float(i) for i, c in enumerate(categories[column])}
            _map_column(data, column, lambda v, m=codes: m.get(v))

    return {"method": method, "categories": categories}


# ---------------------------------------------------------------------------
# split
# ---------------------------------------------------------------------------

def partition_sizes(n: int, fractions: Sequence[float]) -> List[int]:
    """Largest-remainder sizes; each is within one row of n * fraction."""
    exact = [n * f for f in fractions]
    sizes = [int(math.floor(x)) for x in exact]
    leftover = n - sum(sizes)
    order = sorted(range(len(exact)), key=lambda i: (-(exact[i] - sizes[i]), i))
    for i in order[:leftover]:
        sizes[i] += 1
    return sizes


def split(
    data: TabularData,
    params: Dict[str, Any],
    resolved: Optional[Resolved],
    step_type: str = "split",
    default_seed: int = 42,
    tolerance: float = 1e-3,
) -> Resolved:
    """Assign every row to train, validation or test with a seeded shuffle."""
    fractions = [
        float(_param(params, "train", "trainSize", "train_size", default=0.7)),
        float(_param(params, "validation", "validationSize", "validation_size", default=0.15)),
        float(_param(params, "test", "testSize", "test_size", default=0.15)),
    ]
    if any(f < 0 for f in fractions):
        raise PipelineStepError(step_type, None, f"fractions must be non-negative, got {fractions}")
    total = sum(fractions)
    if abs(total - 1.0) > tolerance:
        raise PipelineStepError(step_type, None, f"fractions must sum to 1.0, got {total:g}")

    if resolved and "seed" in resolved:
        seed = int(resolved["seed"])
    else:
        seed = int(_param(params, "seed", "randomState", "random_state", default=default_seed))

    n = data.row_count
    sizes = partition_sizes(n, fractions)
    order = np.random.default_rng(seed).permutation(n)

    labels = [""] * n
    start = 0
    for name, size in zip(PARTITIONS, sizes):
        for i in order[start:start + size]:
            labels[int(i)] = name
        start += size
    data.partitions = labels

    return {
        "fractions": dict(zip(PARTITIONS, fractions)),
        "seed": seed,
        "sizes": dict(zip(PARTITIONS, sizes)),
    }


__all__ = [
    "quantile",
    "category_key",
    "partition_sizes",
    "handle_missing",
    "normalize",
    "clip_outliers",
    "encode_categorical",
    "split",
]
