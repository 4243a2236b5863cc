"""
Unit tests for detector sensitivity probing
"""

import numpy as np
import pytest

from starstack.errors import InvalidInput
from starstack.frames import Frame
from starstack.probe import probe_sensitivity
from tests.conftest import make_star_field


class CountingDetector:
    """Fake detector returning `count_for(sensitivity)` dummy stars."""

    def __init__(self, count_for):
        self.count_for = count_for
        self.calls = []

    def __call__(self, frame, sensitivity):
        self.calls.append(sensitivity)
        return [None] * self.count_for(sensitivity)


@pytest.fixture
def blank_frame():
    return Frame(index=0, data=np.zeros((4, 4), dtype=np.float32))


class TestProbeSensitivity:
    """Test cases for probe_sensitivity"""

    def test_converges_upwards(self, blank_frame):
        """Too many stars raise the sensitivity until the count fits"""
        detector = CountingDetector(lambda s: max(0, 1000 - 4 * s))

        result = probe_sensitivity(blank_frame, target=300, ceiling=350, detector=detector)

        assert 300 <= 1000 - 4 * result <= 350
        assert result == 164
        assert detector.calls[:3] == [100, 102, 104]

    def test_converges_downwards(self, blank_frame):
        detector = CountingDetector(lambda s: max(0, 1000 - 4 * s))

        result = probe_sensitivity(blank_frame, target=700, ceiling=720, detector=detector)

        assert 700 <= 1000 - 4 * result <= 720
        assert result == 74

    def test_already_in_window(self, blank_frame):
        detector = CountingDetector(lambda s: 50)
        assert probe_sensitivity(blank_frame, target=10, ceiling=100, detector=detector) == 100
        assert detector.calls == [100]

    def test_floor_returns_one(self, blank_frame):
        """Never enough stars walks down to the floor"""
        detector = CountingDetector(lambda s: 10)

        result = probe_sensitivity(blank_frame, target=100, ceiling=200, detector=detector)

        assert result == 1
        assert detector.calls[-1] == 2
        assert 1 not in detector.calls

    def test_ceiling_of_scale(self, blank_frame):
        detector = CountingDetector(lambda s: 10_000)

        result = probe_sensitivity(blank_frame, target=1, ceiling=750, detector=detector)

        assert result == 255
        assert detector.calls[-1] == 255

    def test_count_jumping_over_window(self, blank_frame):
        """A gap between neighbouring sensitivities settles under the ceiling"""
        detector = CountingDetector(lambda s: 1000 if s <= 120 else 0)

        result = probe_sensitivity(blank_frame, target=10, ceiling=500, detector=detector)

        assert result == 122
        assert detector.calls.count(120) == 1

    def test_target_above_ceiling(self, blank_frame):
        with pytest.raises(InvalidInput):
            probe_sensitivity(blank_frame, target=800, ceiling=750, detector=CountingDetector(lambda s: 0))

    def test_negative_target(self, blank_frame):
        with pytest.raises(InvalidInput):
            probe_sensitivity(blank_frame, target=-1, ceiling=750, detector=CountingDetector(lambda s: 0))

    def test_default_detector_on_star_field(self, stars):
        """The photutils detector finds the synthetic field at the start value"""
        frame = Frame(index=0, data=make_star_field(stars))
        assert probe_sensitivity(frame, target=len(stars) - 4, ceiling=len(stars) + 4) == 100
