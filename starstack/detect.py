"""Star centroid detection for registration."""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np
from astropy.stats import sigma_clipped_stats
from photutils.detection import DAOStarFinder

from starstack.frames import FeaturePoint, FeatureSet, Frame

logger = logging.getLogger(__name__)

# Sensitivity 100 corresponds to a 5 sigma detection threshold.
SENSITIVITY_PER_SIGMA = 20.0


def to_luminance(image: np.ndarray) -> np.ndarray:
    """Convert mono/RGB image to a mono luminance representation."""
    arr = np.asarray(image, dtype=np.float32)
    if arr.ndim == 2:
        return arr
    if arr.shape[-1] < 3:
        return np.mean(arr, axis=-1)
    return (0.2126 * arr[..., 0] + 0.7152 * arr[..., 1] + 0.0722 * arr[..., 2]).astype(np.float32)


def sensitivity_to_sigma(sensitivity: float) -> float:
    """Detection threshold in background sigmas for a sensitivity value."""
    return float(sensitivity) / SENSITIVITY_PER_SIGMA


def detect_stars(
    frame: Frame,
    sensitivity: float = 100,
    fwhm: float = 3.0,
    max_stars: Optional[int] = None,
) -> FeatureSet:
    """Locate star centroids; higher sensitivity values report fewer stars."""
    lum = to_luminance(frame.data)
    _, median, std = sigma_clipped_stats(lum, sigma=3.0)
    std = max(float(std), 1e-6)

    finder = DAOStarFinder(
        threshold=sensitivity_to_sigma(sensitivity) * std,
        fwhm=fwhm,
        n_brightest=max_stars,
    )
    sources = finder(lum - median)
    if sources is None or len(sources) == 0:
        logger.debug("Frame %d: no stars at sensitivity %s", frame.index, sensitivity)
        return FeatureSet()

    xs = np.asarray(sources["x_centroid"], dtype=np.float64)
    ys = np.asarray(sources["y_centroid"], dtype=np.float64)
    flux = np.asarray(sources["flux"], dtype=np.float64)
    order = np.argsort(-flux, kind="stable")

    points = tuple(
        FeaturePoint(x=float(xs[i]), y=float(ys[i]), flux=float(flux[i]), fwhm=float(fwhm))
        for i in order
    )
    logger.debug("Frame %d: found %d stars at sensitivity %s", frame.index, len(points), sensitivity)
    return FeatureSet(points)
