"""
Unit tests for star and match preview overlays
"""

import numpy as np

from starstack.frames import FeatureSet, Match
from starstack.overlay import CYAN, GREEN, RED, draw_keypoints, draw_matches, preview_rgb


def _flat(shape=(40, 50)):
    return np.zeros(shape, dtype=np.float32)


def _is(canvas, y, x, color):
    return tuple(int(v) for v in canvas[y, x]) == color


class TestDrawKeypoints:
    """Test cases for draw_keypoints"""

    def test_circles_each_star(self):
        features = FeatureSet.from_xy([(10.0, 10.0), (30.0, 25.0)])

        canvas = draw_keypoints(_flat(), features, radius=4)

        assert canvas.shape == (40, 50, 3)
        assert canvas.dtype == np.uint8
        assert _is(canvas, 10, 14, RED)
        assert _is(canvas, 21, 30, RED)
        assert _is(canvas, 10, 10, (0, 0, 0))

    def test_stars_near_the_border_are_clipped(self):
        canvas = draw_keypoints(_flat(), FeatureSet.from_xy([(1.0, 1.0)]), radius=6)
        assert _is(canvas, 1, 7, RED)

    def test_input_is_not_modified(self):
        image = _flat()
        draw_keypoints(image, FeatureSet.from_xy([(10.0, 10.0)]))
        assert not image.any()


class TestDrawMatches:
    """Test cases for draw_matches"""

    def test_joins_matched_pairs(self):
        target = FeatureSet.from_xy([(10.0, 20.0)])
        source = FeatureSet.from_xy([(30.0, 20.0)])

        canvas = draw_matches(_flat(), source, target, [Match(0, 0, 20.0)], radius=4)

        assert _is(canvas, 20, 20, GREEN)
        assert _is(canvas, 16, 10, RED)
        assert _is(canvas, 18, 30, CYAN)

    def test_unmatched_target_stars_are_still_circled(self):
        target = FeatureSet.from_xy([(10.0, 10.0), (40.0, 30.0)])
        source = FeatureSet.from_xy([(11.0, 10.0)])

        canvas = draw_matches(_flat(), source, target, [Match(0, 0, 1.0)], radius=4)

        assert _is(canvas, 30, 44, RED)


def test_preview_of_colour_frame_keeps_channels():
    rgb = np.random.default_rng(2).uniform(size=(8, 9, 3)).astype(np.float32)
    assert preview_rgb(rgb).shape == (8, 9, 3)
