# gluematch

Match keypoints between two images using SuperPoint or DISK features and a
LightGlue-style matcher, and fit an affine or projective transform between
matched points by random sampling.

## What the package does not do

gluematch does not load or execute model files. It has no inference runtime,
no command-line program, and it does not draw or save match visualisations.
You wrap your own model in an `InferenceSession` and the runners handle
preprocessing, post-processing and match filtering around it.

## Installation

```
pip install gluematch
```

The `test` extra installs pytest for the test suite.

## Configuration

```python
from gluematch.config import Configuration, ExtractorType

config = Configuration.from_mapping({
    "extractor_type": "superpoint",
    "image_size": 512,
    "threshold": 0.0,
})
```

The fields are `lightglue_path`, `extractor_path`, `extractor_type`,
`is_end_to_end`, `gray_scale`, `image_size`, `threshold`, `device` and `viz`.
`from_mapping` raises `ValueError` for unknown keys. `extractor_type` is
turned into an `ExtractorType` (`SUPERPOINT` or `DISK`). During preprocessing,
`image_size` must be 512, 1024 or 2048. Images are resized so that their longer
edge has that length.

## Sessions

`gluematch.runner_base.InferenceSession` wraps a callable model:

```python
from gluematch.runner_base import InferenceSession

def model(feed):            # feed: dict of input name -> numpy array
    ...
    return [out0, out1]     # or a dict of output name -> array

session = InferenceSession(model, input_names=["image"], output_names=["a", "b"])
outputs = session.run([tensor])   # or session.run({"image": tensor})
```

`run` checks the number or names of the inputs. It orders the outputs by
`output_names` when the model returns a mapping. It raises `ValueError` when an
output is missing or `None`.

## Two-stage matching: extractor plus matcher

```python
from gluematch.decoupled import DecoupledRunner

runner = DecoupledRunner(extractor_session, matcher_session, config)
src_points, dest_points = runner.infer(src_image, dest_image)  # HxWx3 BGR arrays
print(runner.timer("extractor"), runner.timer("matcher"))
```

Each image goes through these steps:

1. It is resized with box filtering.
2. It is scaled to `[0, 1]` and converted from BGR to RGB.
3. For SuperPoint, it is converted to grayscale.
4. It is laid out as a `1 x C x H x W` tensor.

The extractor must return keypoints `1 x N x 2`, scores and descriptors
`1 x N x D`. `D` is 256 for SuperPoint and 128 for DISK. Keypoints are
normalised with `normalize_keypoints`. The matcher receives
`[kpts0, kpts1, desc0, desc1]` and must return at least `matches0`,
`matches1` and `scores0`.

`filter_matches` keeps only mutual matches whose score exceeds
`config.threshold`, ordered by source index. The returned keypoints of both
images are mapped back with the source image's resize scale. The helpers
`image_to_tensor`, `preprocess_image`, `parse_extractor_output` and
`filter_matches` can be used on their own.

## SuperPoint with brute-force matching

```python
from gluematch.endtoend import SuperPointRunner

runner = SuperPointRunner(superpoint_session, config)
src_points, dest_points = runner.infer(src_image, dest_image)
```

The session must return a 65-channel detector map and a coarse descriptor map
at 1/8 resolution. `extract_features` works in these steps:

1. It decodes the heatmap with a per-cell softmax.
2. It keeps points with a response above 0.25.
3. It applies grid non-maximum suppression.
4. It samples descriptors bilinearly.
5. It scales the keypoints to the original image size.

Descriptors are matched by cross-checked L2 nearest neighbour. Only matches
with a distance below 0.15 are returned. `timer()` accumulates the time of the
source image's model run only.

## Building blocks

- `gluematch.transform`: `resize_image` (returns the image and the scale),
  `normalize_image`, `rgb_to_grayscale` and `normalize_keypoints`.
- `gluematch.superpoint`: `KeyPoint`, `softmax`, `decode_heatmap`,
  `nms_fast`, `bilinear_grid_sample`, `get_descriptors` and
  `cross_check_matches`.
- `gluematch.svd`: `svd` returns an `SvdResult` with `u`,
  `singular_values`, `vt`, `sigma` and `rank`. Singular values at or below
  `eps` times the largest are zeroed. `pseudo_inverse` builds on `svd`.
  `SvdConvergenceError` is raised when the decomposition fails.
- `gluematch.geometry`: `Transform` with `apply` and `is_affine`. The module
  also has `fit_affine` (pseudo-inverse), `fit_homography` (Gaussian
  elimination through `solve_augmented`), `inlier_ratio` and
  `evaluate_transform`.

```python
import random
from gluematch.geometry import evaluate_transform

transform, ratio = evaluate_transform(src_pts, dst_pts, sample_size=3,
                                      threshold=2.0, rng=random.Random(0))
if transform is not None:
    x, y = transform.apply(10.0, 20.0)
```

With `sample_size=3`, `evaluate_transform` fits affine models over 200 random
draws of five pairs. With `sample_size=4`, it fits a single homography from
four random pairs. It returns the model with the highest inlier ratio, or
`(None, 0.0)` when no model has any inlier.