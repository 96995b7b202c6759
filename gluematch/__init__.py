"""Keypoint post-processing, match filtering and transform fitting around user-supplied model sessions."""

__version__ = "0.1.0"

__all__ = [
    "config",
    "transform",
    "svd",
    "geometry",
    "superpoint",
    "runner_base",
    "decoupled",
    "endtoend",
]