"""Star-based frame registration: pairwise homographies and warping."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np
from skimage.measure import ransac
from skimage.transform import ProjectiveTransform, warp

from starstack.config import StackSettings
from starstack.errors import (
    DimensionMismatch,
    EstimationFailure,
    InsufficientCorrespondences,
    InvalidInput,
    StackingError,
)
from starstack.frames import FeatureSet, Frame
from starstack.match import match_features

logger = logging.getLogger(__name__)

MIN_CORRESPONDENCES = 4


@dataclass
class AlignmentMetric:
    """Per-frame registration quality details."""

    index: int
    success: bool
    rms_error_px: Optional[float]
    matched_stars: int
    inliers: int = 0
    error: Optional[str] = None


@dataclass
class AlignmentResult:
    """Warped frames plus the transforms and metrics that produced them."""

    frames: list[Frame]
    metrics: list[AlignmentMetric]
    pairwise: list[Optional[ProjectiveTransform]] = field(default_factory=list)
    transforms: list[Optional[ProjectiveTransform]] = field(default_factory=list)


def estimate_transform(
    source_xy: np.ndarray,
    target_xy: np.ndarray,
    residual_threshold: float = 5.0,
    max_trials: int = 1000,
    seed: Optional[int] = 0,
) -> tuple[ProjectiveTransform, np.ndarray]:
    """Fit a homography mapping source points onto target points with RANSAC."""
    src = np.asarray(source_xy, dtype=np.float64)
    dst = np.asarray(target_xy, dtype=np.float64)
    if src.ndim != 2 or src.shape[-1] != 2 or src.shape != dst.shape:
        raise InvalidInput(f"Point arrays must both be (N, 2), got {src.shape} and {dst.shape}.")
    if len(src) < MIN_CORRESPONDENCES:
        raise InsufficientCorrespondences(
            f"Need at least {MIN_CORRESPONDENCES} correspondences, got {len(src)}.",
            found=len(src),
            required=MIN_CORRESPONDENCES,
        )

    try:
        model, inliers = ransac(
            (src, dst),
            ProjectiveTransform,
            min_samples=MIN_CORRESPONDENCES,
            residual_threshold=residual_threshold,
            max_trials=max_trials,
            rng=seed,
        )
    except (ValueError, np.linalg.LinAlgError) as exc:
        raise EstimationFailure(f"Homography solver failed: {exc}") from exc

    if model is None or inliers is None:
        raise EstimationFailure("Homography solver found no consistent inlier set.")
    params = np.asarray(model.params, dtype=np.float64)
    if not np.all(np.isfinite(params)) or abs(np.linalg.det(params)) < 1e-12:
        raise EstimationFailure("Homography solver returned a degenerate matrix.")

    return model, np.asarray(inliers, dtype=bool)


def _rms_residual(model: ProjectiveTransform, src: np.ndarray, dst: np.ndarray) -> Optional[float]:
    if src.size == 0:
        return None
    distances = np.linalg.norm(model(src) - dst, axis=1)
    return float(np.sqrt(np.mean(distances**2)))


def estimate_pair(
    source: FeatureSet,
    target: FeatureSet,
    precision: float,
    settings: StackSettings,
) -> tuple[ProjectiveTransform, AlignmentMetric]:
    """Match two star lists and fit the homography from source into target."""
    matches = match_features(source, target, precision)
    if len(matches) < MIN_CORRESPONDENCES:
        raise InsufficientCorrespondences(
            f"Only {len(matches)} star matches within {precision} px; "
            f"at least {MIN_CORRESPONDENCES} are required.",
            found=len(matches),
            required=MIN_CORRESPONDENCES,
        )

    src_xy = source.xy[[m.source_index for m in matches]]
    dst_xy = target.xy[[m.target_index for m in matches]]
    try:
        model, inliers = estimate_transform(
            src_xy,
            dst_xy,
            residual_threshold=settings.ransac_threshold,
            max_trials=settings.ransac_max_trials,
            seed=settings.ransac_seed,
        )
    except EstimationFailure as exc:
        raise EstimationFailure(str(exc), matched=len(matches)) from exc
    metric = AlignmentMetric(
        index=-1,
        success=True,
        rms_error_px=_rms_residual(model, src_xy[inliers], dst_xy[inliers]),
        matched_stars=len(matches),
        inliers=int(np.count_nonzero(inliers)),
    )
    return model, metric


def _matched_count(exc: StackingError) -> int:
    if isinstance(exc, InsufficientCorrespondences):
        return exc.found
    if isinstance(exc, EstimationFailure):
        return exc.matched
    return 0


def _with_link_context(exc: StackingError, message: str) -> StackingError:
    if isinstance(exc, InsufficientCorrespondences):
        return InsufficientCorrespondences(message, found=exc.found, required=exc.required)
    if isinstance(exc, EstimationFailure):
        return EstimationFailure(message, matched=exc.matched)
    return type(exc)(message)


def pairwise_transforms(
    feature_sets: Sequence[FeatureSet],
    precision: float,
    settings: Optional[StackSettings] = None,
    skip_failed: bool = False,
) -> tuple[list[Optional[ProjectiveTransform]], list[AlignmentMetric]]:
    """Estimate the transform from every frame into its predecessor.

    Entry i maps frame i onto frame i-1; entry 0 is always None. With
    `skip_failed` a failing pair leaves None and an unsuccessful metric
    instead of raising.
    """
    settings = settings or StackSettings()
    n = len(feature_sets)
    transforms: list[Optional[ProjectiveTransform]] = [None] * n
    metrics: list[Optional[AlignmentMetric]] = [None] * n
    if n:
        metrics[0] = AlignmentMetric(index=0, success=True, rms_error_px=0.0, matched_stars=0)

    for i in range(n - 1, 0, -1):
        logger.info("Calculating homography for %d to %d", i, i - 1)
        try:
            model, metric = estimate_pair(feature_sets[i], feature_sets[i - 1], precision, settings)
        except StackingError as exc:
            message = f"Frame {i} -> {i - 1}: {exc}"
            if not skip_failed:
                raise _with_link_context(exc, message) from exc
            logger.warning("Skipping link %d -> %d: %s", i, i - 1, exc)
            metrics[i] = AlignmentMetric(
                index=i,
                success=False,
                rms_error_px=None,
                matched_stars=_matched_count(exc),
                error=message,
            )
            continue
        metric.index = i
        transforms[i] = model
        metrics[i] = metric
        logger.debug(
            "Frame %d: %d matches, %d inliers, rms %.3f px",
            i,
            metric.matched_stars,
            metric.inliers,
            metric.rms_error_px or 0.0,
        )

    return transforms, [m for m in metrics if m is not None]


def compose_chain(pairwise: Sequence[Optional[ProjectiveTransform]], index: int) -> ProjectiveTransform:
    """Collapse links 1..index into one transform from frame `index` to frame 0."""
    matrix = np.eye(3, dtype=np.float64)
    for k in range(1, index + 1):
        link = pairwise[k]
        if link is None:
            raise EstimationFailure(f"No transform available for link {k} -> {k - 1}.")
        matrix = matrix @ link.params
    matrix /= matrix[2, 2]
    return ProjectiveTransform(matrix=matrix)


def warp_frame(
    image: np.ndarray,
    transform: ProjectiveTransform,
    output_shape: tuple[int, int],
    background: float = 0.0,
    order: int = 3,
) -> np.ndarray:
    """Resample mono or RGB image into the transform's target space."""
    arr = np.asarray(image, dtype=np.float32)
    if arr.ndim == 2:
        warped = warp(
            arr,
            inverse_map=transform.inverse,
            output_shape=output_shape,
            order=order,
            mode="constant",
            cval=background,
            preserve_range=True,
        )
        return warped.astype(np.float32, copy=False)

    channels = []
    for c in range(arr.shape[-1]):
        warped_c = warp(
            arr[..., c],
            inverse_map=transform.inverse,
            output_shape=output_shape,
            order=order,
            mode="constant",
            cval=background,
            preserve_range=True,
        )
        channels.append(warped_c.astype(np.float32, copy=False))
    return np.stack(channels, axis=-1).astype(np.float32, copy=False)


def _check_frames(frames: Sequence[Frame], feature_sets: Sequence[FeatureSet]) -> None:
    if not frames:
        raise InvalidInput("No frames available for registration.")
    if len(frames) != len(feature_sets):
        raise InvalidInput(
            f"Got {len(frames)} frames but {len(feature_sets)} feature sets."
        )
    ref_shape = frames[0].data.shape
    for frame in frames[1:]:
        if frame.data.shape != ref_shape:
            raise DimensionMismatch(
                f"Frame {frame.index} has shape {frame.data.shape}, reference has {ref_shape}."
            )


def align_series(
    frames: Sequence[Frame],
    feature_sets: Sequence[FeatureSet],
    precision: float = 3.5,
    settings: Optional[StackSettings] = None,
) -> AlignmentResult:
    """Warp every frame into the coordinate space of frame 0.

    In "composed" mode each frame is resampled once with the product of its
    chain of pairwise transforms. In "chained" mode the pairwise transforms
    are applied one after another, one resampling pass each.
    """
    settings = settings or StackSettings()
    _check_frames(frames, feature_sets)

    pairwise, metrics = pairwise_transforms(
        feature_sets, precision, settings=settings, skip_failed=settings.skip_failed
    )
    metric_by_index = {m.index: m for m in metrics}
    output_shape = frames[0].shape_hw

    aligned = [frames[0]]
    composed: list[Optional[ProjectiveTransform]] = [None]
    broken_at: Optional[int] = None

    for i in range(1, len(frames)):
        if pairwise[i] is None and broken_at is None:
            broken_at = i
        if broken_at is not None:
            metric = metric_by_index[i]
            if metric.success:
                metric.success = False
                metric.error = f"Chain to reference broken at link {broken_at} -> {broken_at - 1}."
            logger.warning("Dropping frame %d: %s", i, metric.error)
            composed.append(None)
            continue

        chain = compose_chain(pairwise, i)
        composed.append(chain)
        if settings.warp_mode == "chained":
            data = frames[i].data
            for k in range(i, 0, -1):
                data = warp_frame(
                    data,
                    pairwise[k],
                    output_shape,
                    background=settings.background,
                    order=settings.interpolation_order,
                )
        else:
            data = warp_frame(
                frames[i].data,
                chain,
                output_shape,
                background=settings.background,
                order=settings.interpolation_order,
            )
        aligned.append(frames[i].with_data(data))

    return AlignmentResult(frames=aligned, metrics=metrics, pairwise=pairwise, transforms=composed)


def summarize_alignment(metrics: list[AlignmentMetric]) -> dict[str, float]:
    """Compute summary quality metrics for UI/reporting."""
    nan = float("nan")
    if not metrics:
        return {"success_ratio": 0.0, "mean_rms_px": nan, "median_rms_px": nan}

    success = [m for m in metrics if m.success]
    # The reference frame carries a zero residual by definition.
    rms_values = [m.rms_error_px for m in success if m.rms_error_px is not None and m.index != 0]

    success_ratio = len(success) / len(metrics)
    if not rms_values:
        return {"success_ratio": success_ratio, "mean_rms_px": nan, "median_rms_px": nan}

    return {
        "success_ratio": float(success_ratio),
        "mean_rms_px": float(np.mean(rms_values)),
        "median_rms_px": float(np.median(rms_values)),
    }
