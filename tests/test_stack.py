"""
Unit tests for streaming mean integration
"""

import numpy as np
import pytest

from starstack.errors import DimensionMismatch, InvalidInput
from starstack.frames import Frame
from starstack.stack import (
    StackAccumulator,
    accumulate,
    estimate_snr,
    estimate_snr_improvement,
    stack_frames,
)
from tests.conftest import make_star_field


def _frames(arrays):
    return [Frame(index=i, data=np.asarray(a, dtype=np.float32)) for i, a in enumerate(arrays)]


@pytest.fixture
def abc():
    rng = np.random.default_rng(3)
    return [rng.uniform(0, 1000, size=(12, 9)).astype(np.float32) for _ in range(3)]


class TestStackFrames:
    """Test cases for stack_frames"""

    def test_uniform_frames_stack_to_same_value(self):
        """N frames of value V stack to exactly V"""
        frames = _frames([np.full((8, 6), 123.25) for _ in range(7)])
        stacked = stack_frames(frames)
        assert np.array_equal(stacked.data, np.full((8, 6), 123.25, dtype=np.float32))

    def test_two_frames_average(self, abc):
        a, b = abc[:2]
        stacked = stack_frames(_frames([a, b]))
        np.testing.assert_allclose(stacked.data, (a + b) / 2.0, rtol=1e-6)

    def test_matches_arithmetic_mean(self, abc):
        stacked = stack_frames(_frames(abc))
        np.testing.assert_allclose(stacked.data, np.mean(np.stack(abc), axis=0), rtol=1e-5)

    def test_order_does_not_matter(self, abc):
        """[A, B, C] and [C, A, B] agree within rounding"""
        a, b, c = abc
        first = stack_frames(_frames([a, b, c])).data
        second = stack_frames(_frames([c, a, b])).data
        np.testing.assert_allclose(first, second, rtol=1e-5)

    def test_single_frame_returned_unchanged(self, abc):
        frame = _frames(abc[:1])[0]
        assert stack_frames([frame]) is frame

    def test_rgb_frames(self):
        a = np.zeros((4, 5, 3), dtype=np.float32)
        b = np.full((4, 5, 3), 2.0, dtype=np.float32)
        stacked = stack_frames(_frames([a, b]))
        assert stacked.data.shape == (4, 5, 3)
        np.testing.assert_allclose(stacked.data, 1.0)

    def test_dimension_mismatch(self, abc):
        frames = _frames([abc[0], np.zeros((5, 5))])
        with pytest.raises(DimensionMismatch):
            stack_frames(frames)

    def test_empty_is_invalid(self):
        with pytest.raises(InvalidInput):
            stack_frames([])


class TestStackAccumulator:
    """Test cases for StackAccumulator"""

    def test_count_only_increases(self, abc):
        acc = StackAccumulator()
        counts = []
        for arr in abc:
            acc.merge(arr)
            counts.append(acc.count)
        assert counts == [1, 2, 3]

    def test_failed_merge_keeps_state(self, abc):
        acc = accumulate(abc[:2])
        before = acc.result().copy()
        with pytest.raises(DimensionMismatch):
            acc.merge(np.zeros((2, 2)))
        assert acc.count == 2
        assert np.array_equal(acc.result(), before)

    def test_merge_does_not_alias_input(self, abc):
        first = abc[0].copy()
        acc = StackAccumulator()
        acc.merge(first)
        acc.merge(abc[1])
        assert np.array_equal(first, abc[0])

    def test_combine_weights_by_count(self, abc):
        """Partial stacks of unequal size combine into the overall mean"""
        left = accumulate(abc[:2])
        right = accumulate(abc[2:])
        left.combine(right)

        assert left.count == 3
        np.testing.assert_allclose(left.result(), np.mean(np.stack(abc), axis=0), rtol=1e-5)

    def test_combine_into_empty(self, abc):
        acc = StackAccumulator()
        acc.combine(accumulate(abc))
        assert acc.count == 3

    def test_declared_shape_checked_on_first_merge(self):
        acc = StackAccumulator(shape=(12, 9))
        assert acc.shape == (12, 9)
        with pytest.raises(DimensionMismatch):
            acc.merge(np.zeros((9, 12)))
        assert acc.count == 0

    def test_declared_shape_accepts_matching_frames(self, abc):
        acc = StackAccumulator(shape=abc[0].shape)
        for arr in abc:
            acc.merge(arr)
        assert acc.count == 3

    def test_shape_follows_first_merge(self, abc):
        acc = StackAccumulator()
        assert acc.shape is None
        acc.merge(abc[0])
        assert acc.shape == (12, 9)

    def test_combine_checks_declared_shape(self, abc):
        with pytest.raises(DimensionMismatch):
            StackAccumulator(shape=(3, 3)).combine(accumulate(abc))

    def test_empty_result_is_invalid(self):
        with pytest.raises(InvalidInput):
            StackAccumulator().result()


class TestSnrMetrics:
    """Test cases for SNR estimates"""

    def test_averaging_noise_improves_snr(self, stars):
        frames = [make_star_field(stars, noise=5.0, seed=s) for s in range(9)]
        stacked = stack_frames(_frames(frames)).data

        assert estimate_snr(frames[0]) > 0
        assert estimate_snr_improvement(frames[0], stacked) > 1.5

    def test_flat_image_has_no_snr(self):
        assert estimate_snr(np.ones((20, 20))) == 0.0
