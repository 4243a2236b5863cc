"""Nearest-neighbour star correspondence between two frames."""

from __future__ import annotations

import logging

import numpy as np

from starstack.errors import InvalidInput
from starstack.frames import FeatureSet, Match

logger = logging.getLogger(__name__)


def nearest_candidates(source: FeatureSet, target: FeatureSet) -> list[Match]:
    """Pair every source star with its closest target star.

    Cost is O(n*m) time and O(m) memory: one row of squared distances is
    held at a time. Ties resolve to the lowest target index. The result has
    exactly one candidate per source star, in source order, and may reuse
    target indices.
    """
    if len(source) == 0 or len(target) == 0:
        raise InvalidInput(
            f"Cannot match empty feature sets (source={len(source)}, target={len(target)})."
        )

    dst = target.xy
    candidates = []
    for i, point in enumerate(source.xy):
        sq_dist = np.sum((dst - point) ** 2, axis=1)
        j = int(np.argmin(sq_dist))
        candidates.append(Match(source_index=i, target_index=j, distance=float(np.sqrt(sq_dist[j]))))
    return candidates


def _claim_unique(candidates: list[Match]) -> list[Match]:
    claimed_src: set[int] = set()
    claimed_dst: set[int] = set()
    accepted: list[Match] = []
    for m in candidates:
        if m.source_index in claimed_src or m.target_index in claimed_dst:
            continue
        claimed_src.add(m.source_index)
        claimed_dst.add(m.target_index)
        accepted.append(m)
    return accepted


def match_features(source: FeatureSet, target: FeatureSet, precision: float) -> list[Match]:
    """Match stars of `source` onto stars of `target`.

    Candidates are claimed greedily in source order: a candidate whose target
    was already taken by an earlier source star is dropped, even when it was
    the closer pair. Survivors must lie closer than `precision` pixels.
    """
    if precision <= 0:
        raise InvalidInput(f"Matching precision must be positive, got {precision}.")

    accepted = _claim_unique(nearest_candidates(source, target))
    matches = [m for m in accepted if m.distance < precision]

    for m in matches:
        logger.debug(
            "Match %d to %d with distance: %.4f", m.source_index, m.target_index, m.distance
        )
    return matches
