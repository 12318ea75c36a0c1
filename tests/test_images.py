"""Tests for image preprocessing and dataset loading.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

import io
import zipfile

import numpy as np
import pytest
from unittest.mock import Mock
from PIL import Image

from mlstudio_core.config import ImageConfig
from mlstudio_core.data.dataset import TabularData
from mlstudio_core.data.images import (
    augment,
    decode_image,
    flip_horizontal,
    images_to_tensor,
    labels_from_directories,
    load_image_archive,
    preprocess_image,
    resize_nearest,
    rotate_90,
    to_grayscale,
)
from mlstudio_core.data.loader import DatasetLoader, ImageSet
from mlstudio_core.errors import DatasetAccessError, ErrorCategory, TrainingRuntimeError
from mlstudio_core.stores.memory import InMemoryDatasetStore


def png_bytes(color, size=(6, 4), mode="RGB"):
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def archive(entries):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, data in entries:
            zf.writestr(name, data)
    return buffer.getvalue()


class TestImageOps:
    """Test image primitives."""

    def test_decode_rgb(self):
        """Test decoding yields an (H, W, 3) uint8 array."""
        image = decode_image(png_bytes((255, 0, 0), size=(6, 4)))

        assert image.shape == (4, 6, 3)
        assert image.dtype == np.uint8
        assert image[0, 0].tolist() == [255, 0, 0]

    def test_decode_rgba_drops_alpha(self):
        """Test RGBA inputs are converted to RGB."""
        image = decode_image(png_bytes((0, 0, 255, 128), mode="RGBA"))
        assert image.shape[2] == 3

    def test_decode_garbage(self):
        """Test unreadable bytes raise ValueError."""
        with pytest.raises(ValueError):
            decode_image(b"not an image")

    def test_resize_nearest(self):
        """Test nearest-neighbour index mapping."""
        image = np.arange(16).reshape(4, 4, 1)
        resized = resize_nearest(image, 2, 2)

        assert resized.shape == (2, 2, 1)
        assert resized[:, :, 0].tolist() == [[0, 2], [8, 10]]

    def test_grayscale_weights(self):
        """Test luminance weights."""
        image = np.array([[[100, 0, 0], [0, 100, 0], [0, 0, 100]]], dtype=np.uint8)
        gray = to_grayscale(image)

        assert gray.shape == (1, 3, 1)
        assert gray[0, :, 0] == pytest.approx([29.9, 58.7, 11.4], rel=1e-5)

    def test_preprocess_color(self):
        """Test colour preprocessing keeps three channels in [0, 1]."""
        config = ImageConfig(target_height=3, target_width=5, grayscale=False)
        out = preprocess_image(np.full((9, 9, 3), 51, dtype=np.uint8), config)

        assert out.shape == (3, 5, 3)
        assert out.dtype == np.float32
        assert out.max() == pytest.approx(0.2)

    def test_images_to_tensor_empty(self):
        """Test an empty batch keeps the configured trailing shape."""
        tensor = images_to_tensor([], ImageConfig(target_height=4, target_width=4))
        assert tensor.shape == (0, 4, 4, 1)

    def test_flip_and_rotate(self):
        """Test flip mirrors columns and rotation turns clockwise."""
        image = np.array([[[1], [2]], [[3], [4]]])

        assert flip_horizontal(image)[:, :, 0].tolist() == [[2, 1], [4, 3]]
        assert rotate_90(image)[:, :, 0].tolist() == [[3, 1], [4, 2]]

    def test_augment_triples(self):
        """Test augmentation appends two variants per image."""
        images, labels = augment([np.zeros((2, 2, 1)), np.ones((2, 2, 1))], [0, 1])

        assert len(images) == 6
        assert labels == [0, 0, 0, 1, 1, 1]


class TestArchive:
    """Test zip archive loading."""

    def test_sorted_and_filtered(self):
        """Test entries are read in name order and non-images are skipped."""
        raw = archive([
            ("dogs/b.png", png_bytes((0, 0, 0))),
            ("cats/a.png", png_bytes((255, 255, 255))),
            ("readme.txt", b"hello"),
            ("__MACOSX/cats/._a.png", b"junk"),
            ("cats/broken.png", b"junk"),
        ])
        names, images = load_image_archive(raw)

        assert names == ["cats/a.png", "dogs/b.png"]
        assert len(images) == 2

    def test_labels_from_directories(self):
        """Test class codes follow sorted directory names."""
        labels, mapping = labels_from_directories(["zebra/1.png", "ant/2.png", "zebra/3.png", "top.png"])

        assert mapping == {"ant": 0, "default": 1, "zebra": 2}
        assert labels == [2, 0, 2, 1]


class TestDatasetLoader:
    """Test DatasetLoader class."""

    def test_load_csv(self):
        """Test CSV datasets parse into tables."""
        store = InMemoryDatasetStore()
        dataset_id = store.add_dataset("d.csv", "a,b\n1,2\n3,4\n")

        loaded = DatasetLoader(store).load(dataset_id)

        assert isinstance(loaded.content, TabularData)
        assert not loaded.is_image
        assert loaded.content.row_count == 2

    def test_load_archive(self):
        """Test zip datasets decode into an image set."""
        store = InMemoryDatasetStore()
        dataset_id = store.add_dataset(
            "imgs.zip", archive([("x/a.png", png_bytes((1, 2, 3)))])
        )

        loaded = DatasetLoader(store).load(dataset_id)

        assert loaded.is_image
        assert isinstance(loaded.content, ImageSet)
        assert loaded.content.names == ["x/a.png"]

    def test_unknown_dataset(self):
        """Test an unknown id raises DatasetAccessError."""
        with pytest.raises(DatasetAccessError):
            DatasetLoader(InMemoryDatasetStore()).load("missing")

    def test_unparseable(self):
        """Test bad content raises DatasetAccessError."""
        store = InMemoryDatasetStore()
        dataset_id = store.add_dataset("bad.zip", b"not a zip")

        with pytest.raises(DatasetAccessError):
            DatasetLoader(store).load(dataset_id)

    def test_empty_table(self):
        """Test a header-only CSV is rejected."""
        store = InMemoryDatasetStore()
        dataset_id = store.add_dataset("empty.csv", "a,b\n")

        with pytest.raises(DatasetAccessError):
            DatasetLoader(store).load(dataset_id)

    def test_size_limit(self):
        """Test oversized datasets are rejected before parsing."""
        store = InMemoryDatasetStore()
        dataset_id = store.add_dataset("d.csv", "a,b\n" + "1,2\n" * 100)

        with pytest.raises(TrainingRuntimeError) as exc:
            DatasetLoader(store, max_bytes=64).load(dataset_id)

        assert exc.value.category == ErrorCategory.DATASET_TOO_LARGE

    def test_download_timeout_forwarded(self):
        """Test the loader's timeout reaches the store without changing it."""
        store = InMemoryDatasetStore()
        dataset_id = store.add_dataset("d.csv", "a,b\n1,2\n")
        store.fetch_bytes = Mock(return_value=b"a,b\n1,2\n")

        DatasetLoader(store, timeout=5.0).load(dataset_id)

        assert store.fetch_bytes.call_args.kwargs["timeout"] == 5.0
        assert store.timeout == 30.0
