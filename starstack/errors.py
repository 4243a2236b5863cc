"""Error types raised by the alignment and stacking pipeline."""

from __future__ import annotations


class StackingError(Exception):
    """Base class for every failure surfaced by StarStack."""


class InvalidInput(StackingError, ValueError):
    """Bad parameters, empty feature sets, or an impossible probe window."""


class InsufficientCorrespondences(StackingError):
    """Fewer accepted matches than a projective fit needs."""

    def __init__(self, message: str, found: int = 0, required: int = 4):
        super().__init__(message)
        self.found = found
        self.required = required


class EstimationFailure(StackingError):
    """The robust transform solver produced no usable model."""

    def __init__(self, message: str, matched: int = 0):
        super().__init__(message)
        self.matched = matched


class DimensionMismatch(StackingError, ValueError):
    """Frames of unequal size were combined."""


class IOFailure(StackingError, OSError):
    """Frame discovery, decoding or encoding failed."""
