import numpy as np
import pytest

from gluematch.superpoint import (
    KeyPoint,
    bilinear_grid_sample,
    cross_check_matches,
    decode_heatmap,
    get_descriptors,
    nms_fast,
    softmax,
)


def test_softmax_sums_to_one_and_keeps_order():
    values = [0.5, -1.0, 3.0, 2.0]
    out = softmax(values)
    assert out.sum() == pytest.approx(1.0, abs=1e-6)
    assert list(np.argsort(out)) == list(np.argsort(values))


def test_softmax_is_shift_invariant_and_stable_for_large_values():
    base = np.array([1.0, 2.0, 3.0])
    shifted = softmax(base + 1000.0)
    assert np.all(np.isfinite(shifted))
    assert np.allclose(shifted, softmax(base), atol=1e-6)


def test_softmax_works_along_last_axis():
    out = softmax(np.arange(12, dtype=np.float32).reshape(3, 4))
    assert np.allclose(out.sum(axis=-1), 1.0, atol=1e-6)


def test_softmax_rejects_empty():
    with pytest.raises(ValueError):
        softmax([])


def _detector(rows, cols, fill_dustbin=20.0):
    out = np.zeros((65, rows, cols), dtype=np.float32)
    out[64] = fill_dustbin
    return out


def test_decode_heatmap_locates_peak_within_cell():
    out = _detector(2, 3)
    channel = 8 * 5 + 3  # row offset 5, column offset 3
    out[channel, 1, 2] = 40.0
    keypoints = decode_heatmap(out, 16, 24, 0.25)
    assert len(keypoints) == 1
    kp = keypoints[0]
    assert (kp.x, kp.y) == (2 * 8 + 3, 1 * 8 + 5)
    assert kp.response == pytest.approx(1.0, abs=1e-4)


def test_decode_heatmap_row_major_order_and_batch_axis():
    out = _detector(2, 2)
    out[0, 1, 0] = 40.0
    out[7, 0, 1] = 40.0
    keypoints = decode_heatmap(out[None], 16, 16)
    coords = [(kp.x, kp.y) for kp in keypoints]
    assert coords == sorted(coords, key=lambda c: (c[1], c[0]))
    assert set(coords) == {(0.0, 8.0), (15.0, 0.0)}


def test_decode_heatmap_empty_when_dustbin_dominates():
    assert decode_heatmap(_detector(2, 2), 16, 16) == []


def test_decode_heatmap_shape_mismatch():
    with pytest.raises(ValueError):
        decode_heatmap(np.zeros((65, 2, 2)), 32, 32)


def test_nms_zero_distance_keeps_all_sorted_by_response():
    kps = [KeyPoint(1, 1, 0.3), KeyPoint(2, 2, 0.9), KeyPoint(3, 3, 0.5)]
    assert nms_fast(kps, 8, 8, 0) == [1, 2, 0]


def test_nms_truncated_float_distance_behaves_like_zero():
    kps = [KeyPoint(1, 1, 0.3), KeyPoint(1, 1, 0.9)]
    assert nms_fast(kps, 4, 4, 0.1) == [1, 0]


def test_nms_stable_for_ties():
    kps = [KeyPoint(0, 0, 0.5), KeyPoint(3, 3, 0.5), KeyPoint(6, 6, 0.5)]
    assert nms_fast(kps, 8, 8, 0) == [0, 1, 2]


def test_nms_suppresses_within_half_open_window():
    kps = [KeyPoint(5, 5, 0.9), KeyPoint(6, 5, 0.8), KeyPoint(7, 5, 0.7), KeyPoint(3, 3, 0.6)]
    assert nms_fast(kps, 10, 10, 2) == [0, 2, 3]


def test_nms_rejects_out_of_grid_point():
    with pytest.raises(ValueError):
        nms_fast([KeyPoint(10, 0, 1.0)], 4, 4, 1)


def _features():
    return np.arange(2 * 5 * 5, dtype=np.float32).reshape(1, 2, 5, 5)


def test_grid_sample_hits_integer_pixel_with_align_corners():
    feats = _features()
    grid = np.zeros((1, 1, 1, 2), dtype=np.float32)  # centre -> pixel (2, 2)
    out = bilinear_grid_sample(feats, grid, True)
    assert out.shape == (1, 2, 1, 1)
    assert np.allclose(out[0, :, 0, 0], feats[0, :, 2, 2])


def test_grid_sample_without_align_corners_maps_centre_to_centre():
    feats = _features()
    grid = np.zeros((1, 1, 1, 2), dtype=np.float32)
    out = bilinear_grid_sample(feats, grid, False)
    assert np.allclose(out[0, :, 0, 0], feats[0, :, 2, 2])


def test_grid_sample_diagonal_pixel_one():
    feats = _features()
    grid = np.full((1, 1, 1, 2), -0.5, dtype=np.float32)  # -> pixel (1, 1)
    out = bilinear_grid_sample(feats, grid, True)
    assert np.allclose(out[0, :, 0, 0], feats[0, :, 1, 1])


def test_grid_sample_corner_index_zero_contributes_nothing():
    feats = _features() + 1.0
    grid = np.full((1, 1, 1, 2), -1.0, dtype=np.float32)  # -> pixel (0, 0)
    out = bilinear_grid_sample(feats, grid, True)
    assert np.allclose(out, 0.0)


def test_grid_sample_output_shape():
    out = bilinear_grid_sample(_features(), np.zeros((1, 3, 4, 2)), True)
    assert out.shape == (1, 2, 3, 4)


def test_grid_sample_batch_mismatch():
    with pytest.raises(ValueError):
        bilinear_grid_sample(_features(), np.zeros((2, 1, 1, 2)), True)


def test_get_descriptors_samples_keypoint_locations():
    coarse = _features()
    kps = [KeyPoint(2, 2, 1.0), KeyPoint(1, 1, 0.5)]
    desc = get_descriptors(coarse, kps, 5, 5, True)
    assert desc.shape == (2, 2)
    assert np.allclose(desc[0], coarse[0, :, 2, 2])
    assert np.allclose(desc[1], coarse[0, :, 1, 1])


def test_get_descriptors_empty_keypoints():
    desc = get_descriptors(_features(), [], 5, 5, True)
    assert desc.shape == (0, 2)


def test_get_descriptors_rejects_batched_input():
    with pytest.raises(ValueError):
        get_descriptors(np.zeros((2, 2, 5, 5)), [KeyPoint(1, 1, 1.0)], 5, 5, True)


def test_cross_check_recovers_permutation():
    rng = np.random.default_rng(3)
    desc0 = rng.normal(size=(6, 8)).astype(np.float32)
    perm = rng.permutation(6)
    desc1 = desc0[perm]
    matches = cross_check_matches(desc0, desc1)
    assert [q for q, _, _ in matches] == list(range(6))
    for q, t, dist in matches:
        assert perm[t] == q
        assert dist == pytest.approx(0.0, abs=1e-6)


def test_cross_check_drops_non_mutual():
    matches = cross_check_matches([[0.0], [1.0]], [[0.9]])
    assert len(matches) == 1
    q, t, dist = matches[0]
    assert (q, t) == (1, 0)
    assert dist == pytest.approx(0.1, abs=1e-6)


def test_cross_check_empty_and_mismatched():
    assert cross_check_matches(np.zeros((0, 4)), np.zeros((3, 4))) == []
    with pytest.raises(ValueError):
        cross_check_matches(np.zeros((2, 3)), np.zeros((2, 4)))