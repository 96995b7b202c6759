"""SuperPoint post-processing: heatmap decoding, NMS, descriptor sampling and matching."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

_DETECTOR_CHANNELS = 65
_CELL = 8
_DEFAULT_CONFIDENCE = 0.25


@dataclass(frozen=True)
class KeyPoint:
    """A detected keypoint in pixel coordinates with its detector response."""

    x: float
    y: float
    response: float


def softmax(values) -> np.ndarray:
    """Numerically stable softmax over the last axis, computed in float32."""
    arr = np.asarray(values, dtype=np.float32)
    if arr.size == 0:
        raise ValueError("softmax needs at least one value")
    peak = np.max(arr, axis=-1, keepdims=True)
    total = np.sum(np.exp(arr - peak), axis=-1, keepdims=True)
    offset = peak + np.log(total)
    return np.exp(arr - offset).astype(np.float32)


def decode_heatmap(
    detector_output,
    height: int,
    width: int,
    confidence_thresh: float = _DEFAULT_CONFIDENCE,
) -> list[KeyPoint]:
    """Turn a 65 x H/8 x W/8 detector output into keypoints above ``confidence_thresh``.

    The last channel is the "no keypoint" bin and is dropped after the softmax.
    Keypoints come out in row-major order of the full-resolution heatmap.
    """
    rows, cols = height // _CELL, width // _CELL
    logits = np.asarray(detector_output, dtype=np.float32).reshape(_DETECTOR_CHANNELS, rows, cols)
    probabilities = softmax(np.transpose(logits, (1, 2, 0)))[..., : _DETECTOR_CHANNELS - 1]
    heatmap = (
        probabilities.reshape(rows, cols, _CELL, _CELL)
        .transpose(0, 2, 1, 3)
        .reshape(rows * _CELL, cols * _CELL)
    )
    ys, xs = np.nonzero(heatmap > confidence_thresh)
    return [
        KeyPoint(x=float(x), y=float(y), response=float(heatmap[y, x]))
        for y, x in zip(ys.tolist(), xs.tolist())
    ]


def nms_fast(keypoints, height: int, width: int, dist_thresh: int) -> list[int]:
    """Grid-based non-maximum suppression; return indices of kept keypoints.

    Keypoints are visited by descending response (stable for ties). A kept
    keypoint suppresses the window ``[y - d, y + d) x [x - d, x + d)``.
    """
    keypoints = list(keypoints)
    distance = int(dist_thresh)
    available = np.ones((height, width), dtype=bool)
    order = sorted(range(len(keypoints)), key=lambda idx: -keypoints[idx].response)

    kept: list[int] = []
    for idx in order:
        x, y = int(keypoints[idx].x), int(keypoints[idx].y)
        if not (0 <= x < width and 0 <= y < height):
            raise ValueError(f"Keypoint ({x}, {y}) lies outside a {width}x{height} grid")
        if available[y, x]:
            top, bottom = max(y - distance, 0), max(min(y + distance, height), 0)
            left, right = max(x - distance, 0), max(min(x + distance, width), 0)
            available[top:bottom, left:right] = False
            kept.append(idx)
    return kept


def bilinear_grid_sample(features, grid, align_corners: bool) -> np.ndarray:
    """Sample ``features`` (B x C x H x W) at ``grid`` (B x Hg x Wg x 2, entries ``[y, x]``).

    Returns a B x C x Hg x Wg float32 array. Corners outside ``(0, size)`` contribute zero.
    """
    feats = np.asarray(features, dtype=np.float32)
    points = np.asarray(grid, dtype=np.float32)
    if feats.ndim != 4 or points.ndim != 4 or points.shape[-1] != 2:
        raise ValueError("Expected features B x C x H x W and grid B x Hg x Wg x 2")
    if feats.shape[0] != points.shape[0]:
        raise ValueError("input and grid need to have the same batch size")

    batch, channels, height, width = feats.shape
    grid_rows, grid_cols = points.shape[1], points.shape[2]
    y = points[..., 0].reshape(batch, -1)
    x = points[..., 1].reshape(batch, -1)

    if align_corners:
        x = ((x + 1) / 2) * (width - 1)
        y = ((y + 1) / 2) * (height - 1)
    else:
        x = ((x + 1) * width - 1) / 2
        y = ((y + 1) * height - 1) / 2

    x0 = np.rint(x - np.float32(0.5)).astype(np.float32)
    y0 = np.rint(y - np.float32(0.5)).astype(np.float32)
    x1 = x0 + 1
    y1 = x0 + 1

    corners = (
        (x0, y0, (x1 - x) * (y1 - y)),
        (x0, y1, (x1 - x) * (y - y0)),
        (x1, y0, (x - x0) * (y1 - y)),
        (x1, y1, (x - x0) * (y - y0)),
    )

    batch_index = np.broadcast_to(np.arange(batch)[:, None], x.shape)
    result = np.zeros((batch, channels, x.shape[1]), dtype=np.float32)
    for cx, cy, weight in corners:
        xi = cx.astype(np.int64)
        yi = cy.astype(np.int64)
        safe = (xi > 0) & (xi < width) & (yi > 0) & (yi < height)
        sampled = feats[batch_index, :, np.where(safe, yi, 0), np.where(safe, xi, 0)]
        sampled = np.transpose(sampled, (0, 2, 1))
        result += sampled * np.where(safe, weight, 0.0).astype(np.float32)[:, None, :]

    return result.reshape(batch, channels, grid_rows, grid_cols)


def get_descriptors(
    coarse_descriptors,
    keypoints,
    height: int,
    width: int,
    align_corners: bool = True,
) -> np.ndarray:
    """Interpolate a 1 x C x Hc x Wc descriptor map at pixel keypoints; return N x C."""
    coarse = np.asarray(coarse_descriptors, dtype=np.float32)
    if coarse.ndim != 4 or coarse.shape[0] != 1:
        raise ValueError("Expected coarse descriptors of shape 1 x C x Hc x Wc")
    if height < 2 or width < 2:
        raise ValueError("Image height and width must both exceed one pixel")

    keypoints = list(keypoints)
    channels = coarse.shape[1]
    if not keypoints:
        return np.zeros((0, channels), dtype=np.float32)

    ys = np.array([kp.y for kp in keypoints], dtype=np.float32)
    xs = np.array([kp.x for kp in keypoints], dtype=np.float32)
    grid = np.stack(
        [2 * ys / np.float32(height - 1) - 1, 2 * xs / np.float32(width - 1) - 1],
        axis=-1,
    ).reshape(1, 1, len(keypoints), 2)

    sampled = bilinear_grid_sample(coarse, grid, align_corners)
    return np.ascontiguousarray(sampled.reshape(channels, len(keypoints)).T)


def cross_check_matches(descriptors0, descriptors1) -> list[tuple[int, int, float]]:
    """Brute-force L2 nearest-neighbour matching kept only when mutual.

    Returns ``(query_index, train_index, distance)`` tuples ordered by query index.
    """
    query = np.asarray(descriptors0, dtype=np.float64)
    train = np.asarray(descriptors1, dtype=np.float64)
    if len(query) == 0 or len(train) == 0:
        return []
    if query.ndim != 2 or train.ndim != 2 or query.shape[1] != train.shape[1]:
        raise ValueError("Descriptor sets must be 2-D with the same width")

    distances = np.sqrt(
        np.maximum(((query[:, None, :] - train[None, :, :]) ** 2).sum(axis=-1), 0.0)
    )
    forward = np.argmin(distances, axis=1)
    backward = np.argmin(distances, axis=0)
    return [
        (q, int(t), float(distances[q, t]))
        for q, t in enumerate(forward)
        if backward[t] == q
    ]