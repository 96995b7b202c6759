"""Shared pieces of the feature matching runners: model sessions and the runner base."""

from __future__ import annotations

import time
from typing import Any, Callable, Mapping, Sequence

import numpy as np

Model = Callable[[Mapping[str, np.ndarray]], Any]


def _empty_points() -> np.ndarray:
    return np.zeros((0, 2), dtype=np.float32)


class InferenceSession:
    """A loaded model with named inputs and outputs.

    ``model`` receives a mapping from input name to array and returns either a
    sequence of output arrays or a mapping from output name to array.
    """

    def __init__(self, model: Model, input_names: Sequence[str], output_names: Sequence[str] | None = None):
        self._model = model
        self.input_names = tuple(input_names)
        self.output_names = tuple(output_names) if output_names is not None else None
        if not self.input_names:
            raise ValueError("A session needs at least one input name")

    def run(self, inputs) -> list[np.ndarray]:
        """Feed ``inputs`` (positional sequence or name mapping) and return the outputs in order."""
        if isinstance(inputs, Mapping):
            missing = [name for name in self.input_names if name not in inputs]
            if missing:
                raise ValueError(f"Missing model inputs: {', '.join(missing)}")
            feed = {name: np.ascontiguousarray(inputs[name]) for name in self.input_names}
        else:
            arrays = [np.ascontiguousarray(value) for value in inputs]
            if len(arrays) != len(self.input_names):
                raise ValueError(
                    f"Model expects {len(self.input_names)} inputs, got {len(arrays)}"
                )
            feed = dict(zip(self.input_names, arrays))

        raw = self._model(feed)
        if isinstance(raw, Mapping):
            if self.output_names is None:
                raise ValueError("Output names are required to order a mapping of outputs")
            try:
                outputs = [raw[name] for name in self.output_names]
            except KeyError as exc:
                raise ValueError(f"Model did not produce output {exc.args[0]!r}") from None
        else:
            outputs = list(raw)
            if self.output_names is not None and len(outputs) != len(self.output_names):
                raise ValueError(
                    f"Model produced {len(outputs)} outputs, expected {len(self.output_names)}"
                )

        for position, output in enumerate(outputs):
            if output is None:
                raise ValueError(f"Inference output {position} has no value")
        return [np.asarray(output) for output in outputs]


class FeatureMatchRunner:
    """Base of the runners that match keypoints between two images."""

    def __init__(self, match_thresh: float = 0.0):
        self.match_thresh = float(match_thresh)
        self.keypoints_result: tuple[np.ndarray, np.ndarray] = (_empty_points(), _empty_points())
        self._timers: dict[str, int] = {}

    def timer(self, name: str = "matcher") -> float:
        """Accumulated inference time in milliseconds for the named stage."""
        return float(self._timers.get(name, self._timers.get("matcher", 0)))

    def infer(self, src_image, dest_image) -> tuple[np.ndarray, np.ndarray]:
        """Match two images; the base runner finds no correspondences."""
        self._require_images(src_image, dest_image)
        self.keypoints_result = (_empty_points(), _empty_points())
        return self.keypoints_result

    @staticmethod
    def _require_images(src_image, dest_image) -> tuple[np.ndarray, np.ndarray]:
        src = np.asarray(src_image)
        dest = np.asarray(dest_image)
        if src.size == 0 or dest.size == 0:
            raise ValueError("Image is empty")
        return src, dest

    def _timed(self, name: str, session: InferenceSession, inputs) -> list[np.ndarray]:
        start = time.perf_counter()
        outputs = session.run(inputs)
        elapsed = int((time.perf_counter() - start) * 1000)
        self._timers[name] = self._timers.get(name, 0) + elapsed
        return outputs