"""Streaming mean integration of registered frames, and quality metrics."""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

import numpy as np

from starstack.detect import to_luminance
from starstack.errors import DimensionMismatch, InvalidInput
from starstack.frames import Frame

logger = logging.getLogger(__name__)


class StackAccumulator:
    """Running unweighted mean of equally sized frames.

    Only the current mean and the number of merged frames are kept, so memory
    does not grow with the length of the sequence. An optional `shape`
    declares the expected frame shape up front; otherwise the first merged
    frame fixes it. Must not be merged into from several threads at once.
    """

    def __init__(self, shape: Optional[tuple[int, ...]] = None) -> None:
        self._shape: Optional[tuple[int, ...]] = None if shape is None else tuple(shape)
        self._mean: Optional[np.ndarray] = None
        self._count = 0

    @property
    def count(self) -> int:
        return self._count

    @property
    def shape(self) -> Optional[tuple[int, ...]]:
        return self._shape

    def _check_shape(self, shape: tuple[int, ...]) -> None:
        if self._shape is not None and tuple(shape) != self._shape:
            raise DimensionMismatch(
                f"Cannot stack frame of shape {tuple(shape)} onto stack of shape {self._shape}."
            )

    def merge(self, image: np.ndarray) -> None:
        """Fold one frame into the running mean."""
        arr = np.asarray(image, dtype=np.float64)
        self._check_shape(arr.shape)
        if self._mean is None:
            self._mean = arr.copy()
            self._shape = tuple(arr.shape)
            self._count = 1
            return

        n = self._count
        self._mean = self._mean * (n / (n + 1)) + arr * (1.0 / (n + 1))
        self._count = n + 1

    def combine(self, other: "StackAccumulator") -> None:
        """Fold another partial stack in, weighting both sides by frame count."""
        if other.count == 0:
            return
        self._check_shape(other._mean.shape)
        if self._mean is None:
            self._mean = other._mean.copy()
            self._shape = tuple(other._mean.shape)
            self._count = other.count
            return

        na, nb = self._count, other.count
        total = na + nb
        self._mean = self._mean * (na / total) + other._mean * (nb / total)
        self._count = total

    def result(self) -> np.ndarray:
        """Return the current mean as float32."""
        if self._mean is None:
            raise InvalidInput("No frames have been merged into the stack.")
        return self._mean.astype(np.float32)


def accumulate(images: Iterable[np.ndarray]) -> StackAccumulator:
    """Merge every image of an iterable into a fresh accumulator."""
    acc = StackAccumulator()
    for image in images:
        acc.merge(image)
    return acc


def stack_frames(frames: Sequence[Frame]) -> Frame:
    """Average registered frames into one master frame."""
    if not frames:
        raise InvalidInput("No frames to integrate.")
    if len(frames) == 1:
        return frames[0]

    acc = StackAccumulator()
    for frame in frames:
        try:
            acc.merge(frame.data)
        except DimensionMismatch as exc:
            raise DimensionMismatch(f"Frame {frame.index}: {exc}") from exc

    logger.info("Stacked %d frames of shape %s", acc.count, acc.shape)
    return Frame(index=frames[0].index, data=acc.result(), source="stack")


def robust_std(values: np.ndarray) -> float:
    """Median absolute deviation based robust sigma estimate."""
    vals = np.asarray(values, dtype=np.float32)
    vals = vals[np.isfinite(vals)]
    if vals.size == 0:
        return 0.0
    med = np.median(vals)
    mad = np.median(np.abs(vals - med))
    return float(1.4826 * mad)


def estimate_snr(image: np.ndarray) -> float:
    """Estimate SNR using robust background noise and bright signal percentile."""
    lum = to_luminance(image)
    valid = lum[np.isfinite(lum)]
    if valid.size < 10:
        return 0.0

    bg = np.percentile(valid, 20)
    signal = np.percentile(valid, 99) - bg
    noise = robust_std(valid[valid <= np.percentile(valid, 60)])
    if noise <= 0:
        return 0.0
    return float(signal / noise)


def estimate_snr_improvement(single_frame: np.ndarray, stacked_frame: np.ndarray) -> float:
    """Estimate SNR gain factor from first frame to final stack."""
    single_snr = estimate_snr(single_frame)
    if single_snr <= 0:
        return 0.0
    return float(estimate_snr(stacked_frame) / single_snr)
