"""Image and keypoint preprocessing helpers."""

from __future__ import annotations

import math
from typing import Callable

import numpy as np
from PIL import Image

_INTERPOLATION = {
    "linear": Image.Resampling.BILINEAR,
    "cubic": Image.Resampling.BICUBIC,
    "nearest": Image.Resampling.NEAREST,
    "area": Image.Resampling.BOX,
}

_EDGE_FUNCTIONS: dict[str, Callable[[int, int], int]] = {"max": max, "min": min}

_ALLOWED_SIZES = (512, 1024, 2048)

_GRAY_WEIGHTS = (0.299, 0.587, 0.114)


def _channel_count(image: np.ndarray) -> int:
    if image.ndim == 2:
        return 1
    if image.ndim == 3:
        return image.shape[2]
    return 0


def _cast_like(values: np.ndarray, dtype: np.dtype) -> np.ndarray:
    if np.issubdtype(dtype, np.integer):
        info = np.iinfo(dtype)
        return np.clip(np.rint(values), info.min, info.max).astype(dtype)
    return values.astype(dtype)


def normalize_image(image) -> np.ndarray:
    """Scale pixels to [0, 1] as float32; three-channel BGR input becomes RGB."""
    arr = np.asarray(image)
    channels = _channel_count(arr)
    if channels == 3:
        arr = arr[..., ::-1]
    elif channels != 1:
        raise ValueError("Not an image")
    return (arr.astype(np.float64) / 255.0).astype(np.float32)


def normalize_keypoints(keypoints, height: int, width: int) -> np.ndarray:
    """Map pixel keypoints of shape (N, 2) around the image centre into [-1, 1]."""
    pts = np.asarray(keypoints, dtype=np.float32).reshape(-1, 2)
    shift = np.array([width / 2, height / 2], dtype=np.float32)
    scale = np.float32(max(width, height) / 2)
    return (pts - shift) / scale


def _resize_plane(plane: np.ndarray, width: int, height: int, resample) -> np.ndarray:
    source = Image.fromarray(np.ascontiguousarray(plane, dtype=np.float32))
    return np.asarray(source.resize((width, height), resample=resample), dtype=np.float32)


def resize_image(image, size: int, fn: str = "max", interp: str = "area") -> tuple[np.ndarray, float]:
    """Resize so that the max (or min) edge equals ``size``; return the image and the scale."""
    try:
        edge = _EDGE_FUNCTIONS[fn]
    except KeyError:
        raise ValueError(f"Incorrect function: {fn}") from None
    if size not in _ALLOWED_SIZES:
        raise ValueError(f"Incorrect new size: {size}")
    try:
        resample = _INTERPOLATION[interp]
    except KeyError:
        raise ValueError(f"Incorrect interpolation mode: {interp}") from None

    arr = np.asarray(image)
    if arr.ndim not in (2, 3):
        raise ValueError("Not an image")
    height, width = arr.shape[:2]
    reference = edge(height, width)
    if reference == 0:
        raise ValueError("Cannot resize an empty image")

    scale = np.float32(size) / np.float32(reference)
    new_height = int(math.floor(float(np.float32(height) * scale) + 0.5))
    new_width = int(math.floor(float(np.float32(width) * scale) + 0.5))
    if new_height < 1 or new_width < 1:
        raise ValueError("Resized image would be empty")

    if arr.ndim == 2:
        resized = _resize_plane(arr, new_width, new_height, resample)
    else:
        resized = np.stack(
            [_resize_plane(arr[..., c], new_width, new_height, resample) for c in range(arr.shape[2])],
            axis=-1,
        )
    return _cast_like(resized, arr.dtype), float(scale)


def rgb_to_grayscale(image) -> np.ndarray:
    """Convert an RGB image to a single-channel luminance image."""
    arr = np.asarray(image)
    if _channel_count(arr) != 3:
        raise ValueError("Expected a three-channel RGB image")
    red, green, blue = (arr[..., c].astype(np.float64) for c in range(3))
    gray = _GRAY_WEIGHTS[0] * red + _GRAY_WEIGHTS[1] * green + _GRAY_WEIGHTS[2] * blue
    return _cast_like(gray, arr.dtype)