"""MLStudio Dataset - Tabular Data Model.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import csv
import io
import json
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import numpy as np

logger = logging.getLogger(__name__)

Cell = Union[float, str, None]

MISSING_TOKENS = {"", "null", "nan", "undefined", "none", "na", "n/a"}


class ColumnType(Enum):
    """Inferred column type."""

    NUMERIC = "numeric"
    CATEGORICAL = "categorical"
    MIXED = "mixed"
    EMPTY = "empty"


class DatasetFormat(Enum):
    """Declared dataset formats."""

    CSV = "csv"
    JSON = "json"
    IMAGE = "image"
    ZIP = "zip"


_EXTENSIONS = {
    ".csv": DatasetFormat.CSV,
    ".tsv": DatasetFormat.CSV,
    ".txt": DatasetFormat.CSV,
    ".json": DatasetFormat.JSON,
    ".png": DatasetFormat.IMAGE,
    ".jpg": DatasetFormat.IMAGE,
    ".jpeg": DatasetFormat.IMAGE,
    ".gif": DatasetFormat.IMAGE,
    ".bmp": DatasetFormat.IMAGE,
    ".webp": DatasetFormat.IMAGE,
    ".zip": DatasetFormat.ZIP,
}


def parse_cell(raw: Any) -> Cell:
    """Coerce a raw cell into a float, a string, or None for missing."""
    if raw is None:
        return None
    if isinstance(raw, bool):
        return float(raw)
    if isinstance(raw, (int, float, np.integer, np.floating)):
        value = float(raw)
        return None if math.isnan(value) else value

    text = str(raw).strip()
    if text.lower() in MISSING_TOKENS:
        return None
    try:
        return float(text)
    except ValueError:
        return text


def is_missing(cell: Cell) -> bool:
    return cell is None or (isinstance(cell, float) and math.isnan(cell))


@dataclass
class DatasetRecord:
    """A dataset as described by the dataset store.

    Attributes:
        dataset_id: Store identifier
        name: File or display name
        file_storage_id: Handle used to obtain a download URL
        metadata: Free-form metadata, ``format`` is honoured when present
    """

    dataset_id: str
    name: str
    file_storage_id: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def format(self) -> DatasetFormat:
        declared = self.metadata.get("format")
        if declared:
            try:
                return DatasetFormat(str(declared).lower())
            except ValueError:
                logger.warning(f"Unknown declared format '{declared}' for {self.name}")

        suffix = PurePosixPath(self.name).suffix.lower()
        return _EXTENSIONS.get(suffix, DatasetFormat.CSV)


@dataclass
class TabularData:
    """Header plus a 2-D grid of cells.

    ``partitions`` holds one of "train", "validation" or "test" per row once a
    split step has run, and moves with the rows through later steps.
    """

    columns: List[str]
    rows: List[List[Cell]]
    partitions: Optional[List[str]] = None

    @classmethod
    def from_rows(cls, columns: Sequence[str], rows: Iterable[Sequence[Any]]) -> "TabularData":
        """Build from raw header and cells, normalising every cell."""
        columns = [str(c).strip() for c in columns]
        width = len(columns)
        parsed = []
        for raw in rows:
            cells = [parse_cell(v) for v in list(raw)[:width]]
            if len(cells) < width:
                cells.extend([None] * (width - len(cells)))
            parsed.append(cells)
        return cls(columns=columns, rows=parsed)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def copy(self) -> "TabularData":
        return TabularData(
            columns=list(self.columns),
            rows=[list(r) for r in self.rows],
            partitions=list(self.partitions) if self.partitions is not None else None,
        )

    def column_index(self, name: str) -> int:
        """Position of a column.

        Raises:
            KeyError: If the column does not exist
        """
        try:
            return self.columns.index(name)
        except ValueError:
            raise KeyError(name) from None

    def has_column(self, name: str) -> bool:
        return name in self.columns

    def column_values(self, name: str) -> List[Cell]:
        idx = self.column_index(name)
        return [row[idx] for row in self.rows]

    def column_type(self, name: str) -> ColumnType:
        """Numeric when every non-missing cell is a number."""
        present = [v for v in self.column_values(name) if not is_missing(v)]
        if not present:
            return ColumnType.EMPTY
        numeric = sum(1 for v in present if isinstance(v, float))
        if numeric == len(present):
            return ColumnType.NUMERIC
        if numeric == 0:
            return ColumnType.CATEGORICAL
        return ColumnType.MIXED

    def numeric_columns(self) -> List[str]:
        return [c for c in self.columns if self.column_type(c) == ColumnType.NUMERIC]

    def partition_indices(self, partition: str) -> List[int]:
        if self.partitions is None:
            return []
        return [i for i, p in enumerate(self.partitions) if p == partition]

    def to_records(self) -> List[Dict[str, Cell]]:
        return [dict(zip(self.columns, row)) for row in self.rows]

    def export_csv(self) -> str:
        """Render as CSV text; missing cells become empty fields."""
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(self.columns)
        for row in self.rows:
            writer.writerow(["" if is_missing(v) else _format_cell(v) for v in row])
        return buffer.getvalue()

    def export_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_records(), indent=indent)

    def __deepcopy__(self, memo: Dict[int, Any]) -> "TabularData":
        return self.copy()

    def __repr__(self) -> str:
        return f"TabularData(columns={len(self.columns)}, rows={self.row_count})"


def _format_cell(value: Cell) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass
class ColumnStats:
    """Summary statistics for one column."""

    name: str
    dtype: ColumnType
    count: int
    missing: int
    unique: int
    min: Optional[float] = None
    max: Optional[float] = None
    mean: Optional[float] = None
    std: Optional[float] = None


def column_statistics(data: TabularData) -> Dict[str, ColumnStats]:
    """Per-column counts and, for numeric columns, min/max/mean/std."""
    stats = {}
    for name in data.columns:
        values = data.column_values(name)
        present = [v for v in values if not is_missing(v)]
        dtype = data.column_type(name)
        entry = ColumnStats(
            name=name,
            dtype=dtype,
            count=len(values),
            missing=len(values) - len(present),
            unique=len(set(present)),
        )
        if dtype == ColumnType.NUMERIC:
            arr = np.asarray(present, dtype=np.float64)
            entry.min = float(arr.min())
            entry.max = float(arr.max())
            entry.mean = float(arr.mean())
            entry.std = float(arr.std())
        stats[name] = entry
    return stats


def parse_csv(raw: Union[bytes, str], delimiter: Optional[str] = None) -> TabularData:
    """Parse CSV text into ``TabularData``.

    Args:
        raw: File bytes (UTF-8, BOM tolerated) or text
        delimiter: Field delimiter, sniffed from the header when omitted

    Returns:
        TabularData

    Raises:
        ValueError: If the file has no header row
    """
    text = raw.decode("utf-8-sig") if isinstance(raw, bytes) else raw
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        raise ValueError("CSV file is empty")

    if delimiter is None:
        header_line = lines[0]
        delimiter = "\t" if header_line.count("\t") > header_line.count(",") else ","

    reader = csv.reader(lines, delimiter=delimiter)
    header = next(reader)
    return TabularData.from_rows(header, reader)


def parse_json(raw: Union[bytes, str]) -> TabularData:
    """Parse a JSON array of objects (or ``{"columns", "rows"}``)."""
    text = raw.decode("utf-8-sig") if isinstance(raw, bytes) else raw
    payload = json.loads(text)

    if isinstance(payload, dict) and "columns" in payload and "rows" in payload:
        return TabularData.from_rows(payload["columns"], payload["rows"])

    if isinstance(payload, dict) and isinstance(payload.get("data"), list):
        payload = payload["data"]

    if not isinstance(payload, list) or not all(isinstance(r, dict) for r in payload):
        raise ValueError("JSON dataset must be an array of objects")

    columns: List[str] = []
    for record in payload:
        for key in record:
            if key not in columns:
                columns.append(key)

    rows = [[record.get(c) for c in columns] for record in payload]
    return TabularData.from_rows(columns, rows)


__all__ = [
    "Cell",
    "ColumnType",
    "ColumnStats",
    "DatasetFormat",
    "DatasetRecord",
    "TabularData",
    "column_statistics",
    "is_missing",
    "parse_cell",
    "parse_csv",
    "parse_json",
]
