"""Frame, star feature and correspondence containers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional, Sequence

import numpy as np


@dataclass
class Frame:
    """One raster of the input sequence, identified by its position."""

    index: int
    data: np.ndarray
    source: str = ""

    @property
    def shape_hw(self) -> tuple[int, int]:
        """Return image shape as height, width regardless of channels."""
        return int(self.data.shape[0]), int(self.data.shape[1])

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def channels(self) -> int:
        return 1 if self.data.ndim == 2 else int(self.data.shape[-1])

    def with_data(self, data: np.ndarray) -> "Frame":
        """Return a new frame carrying `data` under the same identity."""
        return Frame(index=self.index, data=data, source=self.source)


@dataclass(frozen=True)
class FeaturePoint:
    """A detected star centroid in pixel coordinates."""

    x: float
    y: float
    flux: Optional[float] = None
    fwhm: Optional[float] = None


@dataclass(frozen=True)
class FeatureSet:
    """Ordered star list of one frame; positions are the match identities."""

    points: tuple[FeaturePoint, ...] = field(default_factory=tuple)

    @classmethod
    def from_xy(cls, coords: Iterable[Sequence[float]]) -> "FeatureSet":
        """Build a feature set from bare (x, y) pairs."""
        return cls(tuple(FeaturePoint(float(x), float(y)) for x, y in coords))

    @property
    def xy(self) -> np.ndarray:
        """Coordinates as an (N, 2) float64 array of x, y columns."""
        if not self.points:
            return np.empty((0, 2), dtype=np.float64)
        return np.array([(p.x, p.y) for p in self.points], dtype=np.float64)

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[FeaturePoint]:
        return iter(self.points)

    def __getitem__(self, idx: int) -> FeaturePoint:
        return self.points[idx]


@dataclass(frozen=True)
class Match:
    """Pairing of a source feature index with a target feature index."""

    source_index: int
    target_index: int
    distance: float
