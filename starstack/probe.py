"""Detector sensitivity tuning towards a target star count."""

from __future__ import annotations

import logging
from typing import Callable, Optional, Sized

from starstack.detect import detect_stars
from starstack.errors import InvalidInput
from starstack.frames import Frame

logger = logging.getLogger(__name__)

Detector = Callable[[Frame, int], Sized]


def probe_sensitivity(
    frame: Frame,
    target: int,
    ceiling: int,
    detector: Optional[Detector] = None,
    start: int = 100,
    step: int = 2,
    maximum: int = 255,
) -> int:
    """Walk the sensitivity until the star count lands in [target, ceiling].

    Counts above the ceiling raise the sensitivity, counts below the target
    lower it. Hitting the floor returns 1 and hitting `maximum` returns
    `maximum`, both possibly still outside the window. If the count jumps
    over the window between two neighbouring values the walk would loop, so
    it stops at the lowest sensitivity seen that stayed under the ceiling.
    """
    if target < 0:
        raise InvalidInput(f"Target star count cannot be negative, got {target}.")
    if target > ceiling:
        raise InvalidInput(f"Target {target} is bigger than ceiling {ceiling}.")
    if step < 1:
        raise InvalidInput("Probe step must be at least 1.")
    detector = detector or detect_stars

    sensitivity = min(max(int(start), 1), maximum)
    counts: dict[int, int] = {}

    while True:
        if sensitivity in counts:
            best = min(s for s, c in counts.items() if c <= ceiling)
            logger.debug("Star count skips the target window; settling on %d", best)
            return best

        count = len(detector(frame, sensitivity))
        counts[sensitivity] = count
        logger.debug("Got %d hits with sensitivity %d", count, sensitivity)

        if target <= count <= ceiling:
            return sensitivity

        if count > ceiling:
            if sensitivity >= maximum:
                return maximum
            sensitivity = min(sensitivity + step, maximum)
            continue

        sensitivity -= step
        if sensitivity < 1:
            return 1
