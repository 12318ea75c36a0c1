"""MLStudio Images - Image Preprocessing Primitives.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

All operations work on numpy arrays shaped (H, W, C). Decoding goes through
Pillow; everything after that is plain array arithmetic so the result does
not depend on Pillow's resampling filters.
"""

from __future__ import annotations

import io
import logging
import zipfile
from pathlib import PurePosixPath
from typing import Dict, List, Sequence, Tuple

import numpy as np
from PIL import Image, UnidentifiedImageError

from mlstudio_core.config import ImageConfig

logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".gif", ".bmp", ".webp"}

LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float32)


def decode_image(raw: bytes) -> np.ndarray:
    """Decode image bytes into an RGB uint8 array.

    Raises:
        ValueError: If the bytes are not a readable image
    """
    try:
        with Image.open(io.BytesIO(raw)) as img:
            rgb = img.convert("RGB")
            return np.asarray(rgb, dtype=np.uint8)
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"Cannot decode image: {e}") from e


def resize_nearest(image: np.ndarray, height: int, width: int) -> np.ndarray:
    """Nearest-neighbour resize; source index is floor(dst * src / dst_size)."""
    src_h, src_w = image.shape[:2]
    rows = (np.arange(height) * src_h // height).astype(np.intp)
    cols = (np.arange(width) * src_w // width).astype(np.intp)
    return image[rows[:, None], cols[None, :]]


def to_grayscale(image: np.ndarray) -> np.ndarray:
    """Luminance 0.299R + 0.587G + 0.114B, returned as (H, W, 1)."""
    if image.ndim == 2:
        return image[:, :, None].astype(np.float32)
    if image.shape[2] == 1:
        return image.astype(np.float32)
    gray = image[:, :, :3].astype(np.float32) @ LUMA_WEIGHTS
    return gray[:, :, None]


def normalize_pixels(image: np.ndarray) -> np.ndarray:
    return image.astype(np.float32) / 255.0


def preprocess_image(image: np.ndarray, config: ImageConfig) -> np.ndarray:
    """Resize, optionally grayscale and normalise one decoded image."""
    out = resize_nearest(image, config.target_height, config.target_width)
    if config.grayscale:
        out = to_grayscale(out)
    else:
        out = out[:, :, :3].astype(np.float32)
    if config.normalize:
        out = normalize_pixels(out)
    return out.astype(np.float32)


def images_to_tensor(images: Sequence[np.ndarray], config: ImageConfig) -> np.ndarray:
    """Stack preprocessed images into a float32 array of shape [N, H, W, C]."""
    if not images:
        return np.zeros(
            (0, config.target_height, config.target_width, config.channels),
            dtype=np.float32,
        )
    return np.stack([preprocess_image(img, config) for img in images]).astype(np.float32)


def flip_horizontal(image: np.ndarray) -> np.ndarray:
    return image[:, ::-1].copy()


def rotate_90(image: np.ndarray) -> np.ndarray:
    """Rotate clockwise by 90 degrees."""
    return np.rot90(image, k=-1, axes=(0, 1)).copy()


def augment(images: Sequence[np.ndarray], labels: Sequence[int]) -> Tuple[List[np.ndarray], List[int]]:
    """Append a flipped and a rotated copy of every image."""
    out_images: List[np.ndarray] = []
    out_labels: List[int] = []
    for image, label in zip(images, labels):
        for variant in (image, flip_horizontal(image), rotate_90(image)):
            out_images.append(variant)
            out_labels.append(label)
    return out_images, out_labels


def load_image_archive(raw: bytes) -> Tuple[List[str], List[np.ndarray]]:
    """Decode every image inside a zip archive.

    Entries are read in sorted name order; non-image entries and files that
    fail to decode are skipped with a warning.

    Returns:
        (names, images)
    """
    names: List[str] = []
    images: List[np.ndarray] = []
    with zipfile.ZipFile(io.BytesIO(raw)) as archive:
        for name in sorted(archive.namelist()):
            path = PurePosixPath(name)
            if name.endswith("/") or path.suffix.lower() not in IMAGE_SUFFIXES:
                continue
            if any(part.startswith("__MACOSX") for part in path.parts):
                continue
            try:
                images.append(decode_image(archive.read(name)))
            except ValueError as e:
                logger.warning(f"Skipping {name}: {e}")
                continue
            names.append(name)

    logger.info(f"Decoded {len(images)} images from archive")
    return names, images


def labels_from_directories(names: Sequence[str]) -> Tuple[List[int], Dict[str, int]]:
    """Label each image by its parent directory, codes in sorted class order.

    Returns:
        (labels, class_to_code)
    """
    classes = [PurePosixPath(n).parent.name or "default" for n in names]
    mapping = {name: code for code, name in enumerate(sorted(set(classes)))}
    return [mapping[c] for c in classes], mapping


__all__ = [
    "decode_image",
    "resize_nearest",
    "to_grayscale",
    "normalize_pixels",
    "preprocess_image",
    "images_to_tensor",
    "flip_horizontal",
    "rotate_90",
    "augment",
    "load_image_archive",
    "labels_from_directories",
]
