"""Affine and homography estimation between matched keypoint sets."""

from __future__ import annotations

import random
from dataclasses import dataclass

import numpy as np

from gluematch.svd import pseudo_inverse

_AFFINE_ITERATIONS = 200
_AFFINE_DRAW = 5
_HOMOGRAPHY_ITERATIONS = 1
_PINV_EPS = 1e-4


@dataclass(frozen=True)
class Transform:
    """Planar transform; the projective terms ``a31``/``a32`` are zero for an affine map."""

    a11: float = 1.0
    a12: float = 0.0
    a21: float = 0.0
    a22: float = 1.0
    dx: float = 0.0
    dy: float = 0.0
    a31: float = 0.0
    a32: float = 0.0

    @property
    def is_affine(self) -> bool:
        """True when the transform has no projective part."""
        return self.a31 == 0.0 and self.a32 == 0.0

    def apply(self, x: float, y: float) -> tuple[float, float]:
        """Map the point ``(x, y)`` through the transform."""
        denominator = self.a31 * x + self.a32 * y + 1.0
        return (
            (self.a11 * x + self.a12 * y + self.dx) / denominator,
            (self.a21 * x + self.a22 * y + self.dy) / denominator,
        )


def _as_points(points) -> np.ndarray:
    arr = np.asarray(points, dtype=np.float64)
    if arr.size == 0:
        return arr.reshape(0, 2)
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise ValueError("Points must have shape (N, 2)")
    return arr


def _paired(src_points, dst_points) -> tuple[np.ndarray, np.ndarray]:
    src = _as_points(src_points)
    dst = _as_points(dst_points)
    if len(src) != len(dst):
        raise ValueError("Source and destination point counts differ")
    return src, dst


def inlier_ratio(src_points, dst_points, transform: Transform, threshold: float) -> float:
    """Fraction of pairs whose mapped source lies closer than ``threshold`` to its match."""
    src, dst = _paired(src_points, dst_points)
    if len(src) == 0:
        raise ValueError("No point pairs to evaluate")
    x, y = src[:, 0], src[:, 1]
    denominator = transform.a31 * x + transform.a32 * y + 1.0
    with np.errstate(divide="ignore", invalid="ignore"):
        est_x = (transform.a11 * x + transform.a12 * y + transform.dx) / denominator
        est_y = (transform.a21 * x + transform.a22 * y + transform.dy) / denominator
        distance = np.hypot(est_x - dst[:, 0], est_y - dst[:, 1])
        inliers = int(np.count_nonzero(distance < threshold))
    return inliers / len(src)


def solve_augmented(matrix) -> np.ndarray:
    """Solve an (n-1) x n augmented system by Gaussian elimination with partial pivoting."""
    a = np.array(matrix, dtype=np.float64)
    if a.ndim != 2 or a.shape[0] + 1 != a.shape[1]:
        raise ValueError("Expected an augmented matrix of shape (n - 1, n)")
    m, n = a.shape
    i = j = 0
    while i < m and j < n:
        pivot = i + int(np.argmax(np.abs(a[i:, j])))
        if a[pivot, j] != 0.0:
            if pivot != i:
                a[[i, pivot]] = a[[pivot, i]]
            a[i] /= a[i, j]
            a[i + 1:] -= np.outer(a[i + 1:, j], a[i])
            i += 1
        j += 1

    for row in range(m - 2, -1, -1):
        a[row, m] -= a[row, row + 1:m] @ a[row + 1:m, m]
    return a[:, m].copy()


def fit_affine(src_points, dst_points) -> Transform:
    """Fit an affine transform to the first three point pairs via the pseudo-inverse."""
    src, dst = _paired(src_points, dst_points)
    if len(src) < 3:
        raise ValueError("An affine fit needs at least three point pairs")
    system = np.zeros((6, 6))
    rhs = np.zeros(6)
    for q, ((x, y), (u, v)) in enumerate(zip(src[:3], dst[:3])):
        system[2 * q] = (x, y, 0.0, 0.0, 1.0, 0.0)
        system[2 * q + 1] = (0.0, 0.0, x, y, 0.0, 1.0)
        rhs[2 * q] = u
        rhs[2 * q + 1] = v
    params = pseudo_inverse(system, _PINV_EPS) @ rhs
    a11, a12, a21, a22, dx, dy = (float(p) for p in params)
    return Transform(a11=a11, a12=a12, a21=a21, a22=a22, dx=dx, dy=dy)


def fit_homography(src_points, dst_points) -> Transform:
    """Fit a homography to the first four point pairs."""
    src, dst = _paired(src_points, dst_points)
    if len(src) < 4:
        raise ValueError("A homography fit needs at least four point pairs")
    rows = []
    for (x, y), (u, v) in zip(src[:4], dst[:4]):
        rows.append((-x, -y, -1.0, 0.0, 0.0, 0.0, x * u, y * u, -u))
        rows.append((0.0, 0.0, 0.0, -x, -y, -1.0, x * v, y * v, -v))
    h = solve_augmented(rows)
    a11, a12, dx, a21, a22, dy, a31, a32 = (float(p) for p in h)
    return Transform(a11=a11, a12=a12, a21=a21, a22=a22, dx=dx, dy=dy, a31=a31, a32=a32)


def evaluate_transform(
    src_points,
    dst_points,
    sample_size: int,
    threshold: float,
    rng: random.Random | None = None,
) -> tuple[Transform | None, float]:
    """Estimate a transform by random sampling.

    ``sample_size`` 3 fits affine models over 200 draws; 4 fits one homography.
    Returns the model with the highest inlier ratio and that ratio, or
    ``(None, 0.0)`` when no model has any inlier.
    """
    src, dst = _paired(src_points, dst_points)
    if sample_size == 3:
        draw, iterations, fit = _AFFINE_DRAW, _AFFINE_ITERATIONS, fit_affine
    elif sample_size == 4:
        draw, iterations, fit = 4, _HOMOGRAPHY_ITERATIONS, fit_homography
    else:
        raise ValueError(f"Unsupported sample size: {sample_size}")
    if len(src) < draw:
        raise ValueError(f"At least {draw} point pairs are required, got {len(src)}")
    rng = rng if rng is not None else random.Random()

    best: Transform | None = None
    best_ratio = 0.0
    for _ in range(iterations):
        indices = rng.sample(range(len(src)), draw)
        model = fit(src[indices], dst[indices])
        ratio = inlier_ratio(src, dst, model, threshold)
        if ratio > best_ratio:
            best, best_ratio = model, ratio
    return best, best_ratio