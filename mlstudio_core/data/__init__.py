"""Data module - Tabular data, images, extraction and loading."""

from mlstudio_core.data.dataset import (
    ColumnType,
    DatasetFormat,
    DatasetRecord,
    TabularData,
    column_statistics,
    parse_csv,
    parse_json,
)
from mlstudio_core.data.images import images_to_tensor, preprocess_image
from mlstudio_core.data.extractor import (
    DataKind,
    FeatureLabelExtractor,
    TrainingData,
    extract_images,
)
from mlstudio_core.data.loader import DatasetLoader, ImageSet, LoadedDataset

__all__ = [
    "ColumnType",
    "DatasetFormat",
    "DatasetRecord",
    "TabularData",
    "column_statistics",
    "parse_csv",
    "parse_json",
    "images_to_tensor",
    "preprocess_image",
    "DataKind",
    "FeatureLabelExtractor",
    "TrainingData",
    "extract_images",
    "DatasetLoader",
    "ImageSet",
    "LoadedDataset",
]
