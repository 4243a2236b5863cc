"""Preview overlays of detected stars and accepted matches."""

from __future__ import annotations

from typing import Sequence

import numpy as np
from skimage.draw import circle_perimeter, line

from starstack.frames import FeatureSet, Match
from starstack.io import stretch_for_display, to_uint8

RED = (255, 0, 0)
CYAN = (0, 255, 255)
GREEN = (0, 255, 0)


def preview_rgb(image: np.ndarray) -> np.ndarray:
    """Stretched 8-bit RGB rendition of a mono or colour frame."""
    rgb = to_uint8(stretch_for_display(image))
    if rgb.ndim == 2:
        rgb = np.stack([rgb] * 3, axis=-1)
    return np.ascontiguousarray(rgb)


def _paint(canvas: np.ndarray, rr: np.ndarray, cc: np.ndarray, color: tuple[int, int, int]) -> None:
    h, w = canvas.shape[:2]
    keep = (rr >= 0) & (rr < h) & (cc >= 0) & (cc < w)
    canvas[rr[keep], cc[keep]] = color


def _circle(canvas: np.ndarray, x: float, y: float, radius: int, color: tuple[int, int, int]) -> None:
    rr, cc = circle_perimeter(int(round(y)), int(round(x)), radius, shape=canvas.shape[:2])
    _paint(canvas, rr, cc, color)


def draw_keypoints(
    image: np.ndarray,
    features: FeatureSet,
    radius: int = 6,
    color: tuple[int, int, int] = RED,
) -> np.ndarray:
    """Circle every detected star on a stretched copy of `image`."""
    canvas = preview_rgb(image)
    for p in features:
        _circle(canvas, p.x, p.y, radius, color)
    return canvas


def draw_matches(
    image: np.ndarray,
    source: FeatureSet,
    target: FeatureSet,
    matches: Sequence[Match],
    radius: int = 6,
) -> np.ndarray:
    """Draw accepted matches of `source` stars onto `target` stars over `image`.

    `image` is the frame `target` was detected on. Target stars are circled in
    red, their matched source stars in cyan, and each pair is joined by a
    green line.
    """
    canvas = preview_rgb(image)
    for p in target:
        _circle(canvas, p.x, p.y, radius, RED)
    for m in matches:
        src = source[m.source_index]
        dst = target[m.target_index]
        rr, cc = line(int(round(dst.y)), int(round(dst.x)), int(round(src.y)), int(round(src.x)))
        _paint(canvas, rr, cc, GREEN)
        _circle(canvas, src.x, src.y, max(radius // 2, 1), CYAN)
    return canvas
