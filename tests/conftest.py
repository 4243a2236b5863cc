"""Synthetic star fields shared by the test suite."""

import numpy as np
import pytest

from starstack.frames import FeatureSet, Frame

FIELD_SHAPE = (160, 160)
BACKGROUND = 20.0


def star_positions(seed: int = 42) -> list[tuple[float, float, float]]:
    """Jittered grid of (x, y, amplitude) kept well away from the borders."""
    rng = np.random.default_rng(seed)
    stars = []
    for y in range(25, 140, 22):
        for x in range(25, 140, 22):
            jx, jy = rng.uniform(-4.0, 4.0, size=2)
            stars.append((x + jx, y + jy, float(rng.uniform(400.0, 1200.0))))
    return stars


def make_star_field(
    stars,
    shift=(0.0, 0.0),
    shape=FIELD_SHAPE,
    fwhm: float = 3.0,
    background: float = BACKGROUND,
    noise: float = 1.0,
    seed: int = 0,
) -> np.ndarray:
    h, w = shape
    yy, xx = np.mgrid[0:h, 0:w].astype(np.float64)
    sigma = fwhm / 2.3548
    image = np.full(shape, background, dtype=np.float64)
    for x, y, amp in stars:
        cx, cy = x + shift[0], y + shift[1]
        image += amp * np.exp(-((xx - cx) ** 2 + (yy - cy) ** 2) / (2.0 * sigma**2))
    if noise > 0:
        image += np.random.default_rng(seed).normal(0.0, noise, size=shape)
    return image.astype(np.float32)


def shifted_features(stars, shift) -> FeatureSet:
    return FeatureSet.from_xy((x + shift[0], y + shift[1]) for x, y, _ in stars)


@pytest.fixture
def stars():
    return star_positions()


@pytest.fixture
def drifting_frames(stars):
    """Three frames of one star field drifting by (2, 1) px per exposure."""
    drift = (2.0, 1.0)
    return [
        Frame(index=i, data=make_star_field(stars, shift=(drift[0] * i, drift[1] * i), seed=i), source=f"f{i}")
        for i in range(3)
    ]
