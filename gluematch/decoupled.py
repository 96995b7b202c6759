"""Runner with separate extractor and matcher models."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from gluematch.config import Configuration, ExtractorType
from gluematch.runner_base import FeatureMatchRunner, InferenceSession
from gluematch.transform import normalize_image, normalize_keypoints, resize_image, rgb_to_grayscale

logger = logging.getLogger(__name__)

_DESCRIPTOR_WIDTH = {ExtractorType.SUPERPOINT: 256, ExtractorType.DISK: 128}


@dataclass(frozen=True)
class ExtractorResult:
    """Keypoints (N x 2), scores (N,) and descriptors (N x D) of one image."""

    keypoints: np.ndarray
    scores: np.ndarray
    descriptors: np.ndarray


def image_to_tensor(image, extractor_type) -> np.ndarray:
    """Lay out a preprocessed image as a 1 x C x H x W float32 tensor.

    SuperPoint takes one channel; DISK takes three, with the channel order reversed.
    """
    arr = np.asarray(image, dtype=np.float32)
    kind = ExtractorType(extractor_type)
    if kind is ExtractorType.SUPERPOINT:
        if arr.ndim == 3 and arr.shape[2] == 1:
            arr = arr[..., 0]
        if arr.ndim != 2:
            raise ValueError("SuperPoint expects a single-channel image")
        return np.ascontiguousarray(arr[None, None])
    if arr.ndim != 3 or arr.shape[2] != 3:
        raise ValueError("DISK expects a three-channel image")
    return np.ascontiguousarray(arr[..., ::-1].transpose(2, 0, 1)[None])


def preprocess_image(config: Configuration, image) -> tuple[np.ndarray, float]:
    """Resize to the configured size, normalise and, for SuperPoint, convert to grayscale."""
    resized, scale = resize_image(image, config.image_size, "max", "area")
    normalized = normalize_image(resized)
    if (
        config.extractor_type is ExtractorType.SUPERPOINT
        and normalized.ndim == 3
        and normalized.shape[2] == 3
    ):
        normalized = rgb_to_grayscale(normalized)
    return normalized, scale


def parse_extractor_output(outputs) -> ExtractorResult:
    """Unpack the keypoints, scores and descriptors produced by the extractor model."""
    outputs = list(outputs)
    if len(outputs) < 3:
        raise ValueError("Extractor output needs keypoints, scores and descriptors")
    kpts = np.asarray(outputs[0])
    if kpts.ndim != 3 or kpts.shape[0] != 1 or kpts.shape[2] != 2:
        raise ValueError("Keypoints must have shape 1 x N x 2")
    descriptors = np.asarray(outputs[2], dtype=np.float32)
    if descriptors.ndim != 3 or descriptors.shape[0] != 1:
        raise ValueError("Descriptors must have shape 1 x N x D")
    keypoints = kpts[0].astype(np.float32)
    if descriptors.shape[1] != len(keypoints):
        raise ValueError("Keypoint and descriptor counts differ")
    scores = np.asarray(outputs[1], dtype=np.float32).reshape(-1)
    logger.debug("keypoints %s, descriptors %s", kpts.shape, descriptors.shape)
    return ExtractorResult(keypoints=keypoints, scores=scores, descriptors=descriptors[0])


def filter_matches(matches0, matches1, scores0, threshold: float) -> list[tuple[int, int]]:
    """Keep mutual matches whose score exceeds ``threshold``, ordered by source index."""
    m0 = np.asarray(matches0, dtype=np.int64).reshape(-1)
    m1 = np.asarray(matches1, dtype=np.int64).reshape(-1)
    s0 = np.asarray(scores0, dtype=np.float32).reshape(-1)
    if len(s0) < len(m0):
        raise ValueError("Fewer match scores than matches")
    pairs = []
    for i, (j, score) in enumerate(zip(m0.tolist(), s0.tolist())):
        if j > -1 and score > threshold:
            if j >= len(m1):
                raise ValueError(f"Match index {j} outside the destination matches")
            if m1[j] == i:
                pairs.append((i, j))
    return pairs


class DecoupledRunner(FeatureMatchRunner):
    """Extract features with one model and match them with another."""

    def __init__(self, extractor: InferenceSession, matcher: InferenceSession, config: Configuration):
        super().__init__(match_thresh=config.threshold)
        self.extractor = extractor
        self.matcher = matcher
        self.config = config
        self.scales: tuple[float, float] = (1.0, 1.0)

    def timer(self, name: str = "matcher") -> float:
        """Milliseconds spent in the extractor, or in the matcher for any other name."""
        return super().timer("extractor" if name == "extractor" else "matcher")

    def _extract(self, image: np.ndarray) -> ExtractorResult:
        tensor = image_to_tensor(image, self.config.extractor_type)
        return parse_extractor_output(self._timed("extractor", self.extractor, [tensor]))

    def infer(self, src_image, dest_image) -> tuple[np.ndarray, np.ndarray]:
        """Return matched keypoints of both images in source-image pixel coordinates."""
        src, dest = self._require_images(src_image, dest_image)
        src_input, src_scale = preprocess_image(self.config, src)
        dest_input, dest_scale = preprocess_image(self.config, dest)
        self.scales = (src_scale, dest_scale)

        features0 = self._extract(src_input)
        features1 = self._extract(dest_input)

        width = _DESCRIPTOR_WIDTH[self.config.extractor_type]
        for features in (features0, features1):
            if features.descriptors.shape[1] != width:
                raise ValueError(
                    f"Expected descriptors of width {width}, got {features.descriptors.shape[1]}"
                )

        norm0 = normalize_keypoints(features0.keypoints, *src_input.shape[:2])
        norm1 = normalize_keypoints(features1.keypoints, *dest_input.shape[:2])
        outputs = self._timed(
            "matcher",
            self.matcher,
            [norm0[None], norm1[None], features0.descriptors[None], features1.descriptors[None]],
        )
        if len(outputs) < 3:
            raise ValueError("Matcher output needs matches0, matches1 and scores0")

        pairs = filter_matches(outputs[0], outputs[1], outputs[2], self.match_thresh)
        logger.debug("%d matches", len(pairs))

        # Both keypoint sets are rescaled with the source image's scale.
        scale = self.scales[0]
        kpts0 = (features0.keypoints.astype(np.float64) + 0.5) / scale - 0.5
        kpts1 = (features1.keypoints.astype(np.float64) + 0.5) / scale - 0.5
        idx0 = [i for i, _ in pairs]
        idx1 = [j for _, j in pairs]
        if any(i >= len(kpts0) for i in idx0) or any(j >= len(kpts1) for j in idx1):
            raise ValueError("Match index outside the extracted keypoints")

        self.keypoints_result = (
            kpts0[idx0].astype(np.float32).reshape(-1, 2),
            kpts1[idx1].astype(np.float32).reshape(-1, 2),
        )
        return self.keypoints_result