"""Processing settings shared by the pipeline, CLI and UI."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Optional

from starstack.errors import InvalidInput

WARP_MODES = ("composed", "chained")


@dataclass
class StackSettings:
    """User-configurable alignment and stacking settings."""

    precision: float = 3.5
    ransac_threshold: float = 5.0
    ransac_max_trials: int = 1000
    ransac_seed: Optional[int] = 0
    sensitivity: int = 100
    target_stars: Optional[int] = None
    star_ceiling: int = 750
    probe_step: int = 2
    max_sensitivity: int = 255
    fwhm: float = 3.0
    max_stars: Optional[int] = None
    warp_mode: str = "composed"
    interpolation_order: int = 3
    background: float = 0.0
    skip_failed: bool = False
    workers: int = 4

    def validate(self) -> None:
        """Raise InvalidInput on settings no stage can run with."""
        if self.precision <= 0:
            raise InvalidInput(f"Matching precision must be positive, got {self.precision}.")
        if self.ransac_threshold <= 0:
            raise InvalidInput(f"RANSAC threshold must be positive, got {self.ransac_threshold}.")
        if self.ransac_max_trials < 1:
            raise InvalidInput("RANSAC needs at least one trial.")
        if not 1 <= self.sensitivity <= self.max_sensitivity:
            raise InvalidInput(
                f"Sensitivity {self.sensitivity} outside [1, {self.max_sensitivity}]."
            )
        if self.probe_step < 1:
            raise InvalidInput("Probe step must be at least 1.")
        if self.target_stars is not None:
            if self.target_stars < 0:
                raise InvalidInput("Target star count cannot be negative.")
            if self.target_stars > self.star_ceiling:
                raise InvalidInput(
                    f"Target star count {self.target_stars} exceeds ceiling {self.star_ceiling}."
                )
        if self.fwhm <= 0:
            raise InvalidInput("Star FWHM must be positive.")
        if self.max_stars is not None and self.max_stars < 1:
            raise InvalidInput("max_stars must be at least 1 when set.")
        if self.warp_mode not in WARP_MODES:
            raise InvalidInput(f"Unknown warp mode {self.warp_mode!r}; expected one of {WARP_MODES}.")
        if not 0 <= self.interpolation_order <= 5:
            raise InvalidInput("Interpolation order must be in [0, 5].")
        if self.workers < 1:
            raise InvalidInput("At least one worker is required.")

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-ready copy of the settings."""
        return asdict(self)
