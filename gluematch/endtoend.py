"""Single-model SuperPoint runner: detection, description and brute-force matching."""

from __future__ import annotations

import logging
from dataclasses import replace

import numpy as np

from gluematch.config import Configuration
from gluematch.decoupled import image_to_tensor, preprocess_image
from gluematch.runner_base import FeatureMatchRunner, InferenceSession
from gluematch.superpoint import (
    KeyPoint,
    cross_check_matches,
    decode_heatmap,
    get_descriptors,
    nms_fast,
)

logger = logging.getLogger(__name__)

_CONFIDENCE_THRESH = 0.25
# The suppression radius is an integer grid distance; a fractional radius truncates to zero.
_NMS_DISTANCE = int(0.1)
_CELL = 8
_MAX_MATCH_DISTANCE = 0.15


def extract_features(
    detector_output,
    descriptor_output,
    reshape_height: int,
    reshape_width: int,
    orig_width: int,
    orig_height: int,
) -> tuple[list[KeyPoint], np.ndarray]:
    """Decode SuperPoint outputs into keypoints and their descriptors.

    Keypoints are found on the resized image, ordered by descending response,
    described by sampling the coarse descriptor map, and finally scaled back to
    the original image size. Returns the keypoints and an N x C descriptor array.
    """
    if reshape_height < _CELL or reshape_width < _CELL:
        raise ValueError("Resized image must be at least one cell in each direction")
    keypoints = decode_heatmap(detector_output, reshape_height, reshape_width, _CONFIDENCE_THRESH)
    kept = [keypoints[i] for i in nms_fast(keypoints, reshape_height, reshape_width, _NMS_DISTANCE)]

    coarse = np.asarray(descriptor_output, dtype=np.float32).reshape(
        1, -1, reshape_height // _CELL, reshape_width // _CELL
    )
    descriptors = get_descriptors(coarse, kept, reshape_height, reshape_width, True)

    scale_x = np.float32(orig_width) / np.float32(reshape_width)
    scale_y = np.float32(orig_height) / np.float32(reshape_height)
    scaled = [
        replace(kp, x=float(np.float32(kp.x) * scale_x), y=float(np.float32(kp.y) * scale_y))
        for kp in kept
    ]
    return scaled, descriptors


def _points(keypoints: list[KeyPoint], indices: list[int]) -> np.ndarray:
    return np.array(
        [(keypoints[i].x, keypoints[i].y) for i in indices], dtype=np.float32
    ).reshape(-1, 2)


class SuperPointRunner(FeatureMatchRunner):
    """Run one SuperPoint model on both images and match descriptors by mutual nearest neighbour."""

    def __init__(self, session: InferenceSession, config: Configuration):
        super().__init__(match_thresh=config.threshold)
        self.session = session
        self.config = config
        self.scales: tuple[float, float] = (1.0, 1.0)

    def timer(self, name: str = "matcher") -> float:
        """Milliseconds spent running the model; the stage name is ignored."""
        return super().timer("matcher")

    def infer(self, src_image, dest_image) -> tuple[np.ndarray, np.ndarray]:
        """Return matched keypoints of both images in original pixel coordinates."""
        src, dest = self._require_images(src_image, dest_image)
        src_input, src_scale = preprocess_image(self.config, src)
        dest_input, dest_scale = preprocess_image(self.config, dest)
        self.scales = (src_scale, dest_scale)

        kind = self.config.extractor_type
        # Only the first image's run counts towards the timer.
        src_out = self._timed("matcher", self.session, [image_to_tensor(src_input, kind)])
        dest_out = self.session.run([image_to_tensor(dest_input, kind)])
        for outputs in (src_out, dest_out):
            if len(outputs) < 2:
                raise ValueError("Model output needs a detector map and a descriptor map")

        kpts0, desc0 = extract_features(
            src_out[0], src_out[1], src_input.shape[0], src_input.shape[1],
            src.shape[1], src.shape[0],
        )
        kpts1, desc1 = extract_features(
            dest_out[0], dest_out[1], dest_input.shape[0], dest_input.shape[1],
            dest.shape[1], dest.shape[0],
        )

        matches = [
            (query, train)
            for query, train, distance in cross_check_matches(desc0, desc1)
            if distance < _MAX_MATCH_DISTANCE
        ]
        logger.debug("%d matches", len(matches))

        self.keypoints_result = (
            _points(kpts0, [q for q, _ in matches]),
            _points(kpts1, [t for _, t in matches]),
        )
        return self.keypoints_result