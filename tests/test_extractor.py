"""Tests for data module.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

import json

import numpy as np
import pytest

from mlstudio_core.config import ImageConfig
from mlstudio_core.data.dataset import (
    ColumnType,
    DatasetFormat,
    DatasetRecord,
    TabularData,
    column_statistics,
    parse_csv,
    parse_json,
)
from mlstudio_core.data.extractor import DataKind, FeatureLabelExtractor, extract_images
from mlstudio_core.errors import (
    ErrorCategory,
    InsufficientFeaturesError,
    TrainingRuntimeError,
)


class TestParsing:
    """Test dataset parsing."""

    def test_parse_csv(self):
        """Test CSV cells become floats, strings or None."""
        data = parse_csv(b"name,age,score\nann,31,4.5\nbob,,3\n")

        assert data.columns == ["name", "age", "score"]
        assert data.rows[0] == ["ann", 31.0, 4.5]
        assert data.rows[1][1] is None
        assert data.column_type("name") == ColumnType.CATEGORICAL
        assert data.numeric_columns() == ["age", "score"]

    def test_parse_csv_bom_and_tabs(self):
        """Test UTF-8 BOM and tab delimiters are handled."""
        data = parse_csv("\ufeffa\tb\n1\t2\n".encode("utf-8"))
        assert data.columns == ["a", "b"]
        assert data.rows == [[1.0, 2.0]]

    def test_parse_csv_empty(self):
        """Test an empty file is rejected."""
        with pytest.raises(ValueError):
            parse_csv(b"\n\n")

    def test_parse_json_records(self):
        """Test JSON arrays of objects keep first-seen key order."""
        data = parse_json(b'[{"x": 1, "y": "a"}, {"y": "b", "z": null}]')

        assert data.columns == ["x", "y", "z"]
        assert data.rows[1] == [None, "b", None]

    def test_parse_json_rejects_scalars(self):
        """Test non-tabular JSON is rejected."""
        with pytest.raises(ValueError):
            parse_json(b"42")

    def test_export_csv(self):
        """Test export writes integers without a decimal point."""
        data = TabularData.from_rows(["a", "b"], [[1, None], [2.5, "x"]])
        assert data.export_csv() == "a,b\n1,\n2.5,x\n"

    def test_export_json(self):
        """Test export writes one object per row and reads back through parse_json."""
        data = TabularData.from_rows(["a", "b"], [[1, None], [2.5, "x"]])
        exported = data.export_json()

        assert json.loads(exported) == [{"a": 1.0, "b": None}, {"a": 2.5, "b": "x"}]
        assert parse_json(exported.encode("utf-8")).rows == data.rows

    def test_column_statistics(self):
        """Test per-column statistics."""
        data = TabularData.from_rows(["v"], [[1], [3], [None]])
        stats = column_statistics(data)["v"]

        assert stats.count == 3
        assert stats.missing == 1
        assert stats.mean == 2.0

    def test_record_format(self):
        """Test declared format wins over the file extension."""
        assert DatasetRecord("d", "x.zip", "s").format == DatasetFormat.ZIP
        assert DatasetRecord("d", "x.png", "s").format == DatasetFormat.IMAGE
        assert DatasetRecord("d", "x.bin", "s", {"format": "json"}).format == DatasetFormat.JSON
        assert DatasetRecord("d", "noext", "s").format == DatasetFormat.CSV


class TestFeatureLabelExtractor:
    """Test FeatureLabelExtractor class."""

    def test_last_numeric_is_label(self):
        """Test default selection uses the last numeric column as label."""
        data = TabularData.from_rows(
            ["x1", "city", "x2", "y"],
            [[1, "a", 2, 10], [2, "b", 3, 20], [3, "c", 4, 30]],
        )
        extracted = FeatureLabelExtractor().extract(data)

        assert extracted.feature_names == ["x1", "x2"]
        assert extracted.label_name == "y"
        assert extracted.features.size == len(extracted.feature_names) * extracted.row_count
        assert extracted.labels.tolist() == [10.0, 20.0, 30.0]
        assert extracted.features.dtype == np.float32

    def test_label_override(self):
        """Test an explicit label column."""
        data = TabularData.from_rows(["a", "b", "c"], [[1, 2, 3], [4, 5, 6]])
        extracted = FeatureLabelExtractor(label_column="a").extract(data)

        assert extracted.feature_names == ["b", "c"]
        assert extracted.label_name == "a"
        assert extracted.labels.tolist() == [1.0, 4.0]

    def test_label_override_must_be_numeric(self):
        """Test a text label column is rejected."""
        data = TabularData.from_rows(["a", "b", "c"], [[1, 2, "x"], [4, 5, "y"]])

        with pytest.raises(TrainingRuntimeError) as exc:
            FeatureLabelExtractor(label_column="c").extract(data)

        assert exc.value.category == ErrorCategory.NON_NUMERIC_DATA

    def test_insufficient_features(self):
        """Test fewer than two numeric columns raises."""
        data = TabularData.from_rows(["name", "v"], [["a", 1], ["b", 2]])

        with pytest.raises(InsufficientFeaturesError) as exc:
            FeatureLabelExtractor().extract(data)

        assert exc.value.numeric_columns == 1
        assert exc.value.category == ErrorCategory.INSUFFICIENT_FEATURES

    def test_missing_becomes_zero(self):
        """Test missing cells are replaced by 0.0 and counted."""
        data = TabularData.from_rows(["a", "b"], [[1, None], [None, 2], [3, 4]])
        extracted = FeatureLabelExtractor().extract(data)

        assert extracted.features[:, 0].tolist() == [1.0, 0.0, 3.0]
        assert extracted.labels.tolist() == [0.0, 2.0, 4.0]
        assert extracted.substituted_missing == 2

    def test_partitions_carried(self):
        """Test split partitions travel with the extracted rows."""
        data = TabularData.from_rows(["a", "b"], [[1, 2], [3, 4]])
        data.partitions = ["train", "test"]

        extracted = FeatureLabelExtractor().extract(data)
        assert extracted.partitions == ["train", "test"]

    def test_metadata(self):
        """Test artifact metadata."""
        data = TabularData.from_rows(["a", "b", "c"], [[1, 2, 3]])
        meta = FeatureLabelExtractor().extract(data).metadata()

        assert meta["featureNames"] == ["a", "b"]
        assert meta["labelName"] == "c"
        assert meta["inputShape"] == [2]
        assert meta["dataKind"] == "tabular"


class TestExtractImages:
    """Test image extraction."""

    def test_tensor_shape(self):
        """Test images become an [N, H, W, C] tensor with a pixel feature."""
        images = [np.full((10, 12, 3), 255, dtype=np.uint8), np.zeros((4, 4, 3), dtype=np.uint8)]
        config = ImageConfig(target_height=8, target_width=8, grayscale=True)

        extracted = extract_images(images, [0, 1], config, {"cats": 0, "dogs": 1})

        assert extracted.features.shape == (2, 8, 8, 1)
        assert extracted.feature_names == ["image_pixels"]
        assert extracted.kind == DataKind.IMAGE
        assert extracted.input_shape == (8, 8, 1)
        assert extracted.metadata()["classNames"] == {"cats": 0, "dogs": 1}
        assert extracted.features.max() == pytest.approx(1.0)

    def test_label_count_mismatch(self):
        """Test label and image counts must agree."""
        with pytest.raises(TrainingRuntimeError):
            extract_images([np.zeros((2, 2, 3), dtype=np.uint8)], [0, 1])

    def test_no_images(self):
        """Test an empty image list raises."""
        with pytest.raises(InsufficientFeaturesError):
            extract_images([], [])
