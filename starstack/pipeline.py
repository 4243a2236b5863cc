"""End-to-end driver: load, detect, register, stack, write."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from typing import Any, Optional, Sequence

import pandas as pd

from starstack import io as frame_io
from starstack.config import StackSettings
from starstack.detect import detect_stars
from starstack.errors import InvalidInput
from starstack.frames import FeatureSet, Frame, Match
from starstack.match import match_features
from starstack.probe import probe_sensitivity
from starstack.register import AlignmentMetric, align_series, summarize_alignment
from starstack.stack import estimate_snr_improvement, stack_frames

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Everything one run produced."""

    stacked: Frame
    aligned: list[Frame]
    feature_sets: list[FeatureSet]
    metrics: list[AlignmentMetric]
    sensitivity: int
    snr_improvement: float
    unaligned: Optional[Frame] = None
    reference_matches: list[Match] = field(default_factory=list)
    inputs: list[str] = field(default_factory=list)
    outputs: dict[str, str] = field(default_factory=dict)


def load_frames(paths: Sequence[str | Path], workers: int = 4) -> list[Frame]:
    """Decode files in parallel; frame indices follow the order of `paths`."""
    with ThreadPoolExecutor(max_workers=workers) as pool:
        frames = list(pool.map(frame_io.load_frame, paths, range(len(paths))))
    logger.info("Loaded %d frame(s)", len(frames))
    return frames


def detect_all(frames: Sequence[Frame], sensitivity: int, settings: StackSettings) -> list[FeatureSet]:
    """Run star detection on every frame independently."""
    detector = partial(
        detect_stars, sensitivity=sensitivity, fwhm=settings.fwhm, max_stars=settings.max_stars
    )
    with ThreadPoolExecutor(max_workers=settings.workers) as pool:
        feature_sets = list(pool.map(detector, frames))
    for frame, stars in zip(frames, feature_sets):
        logger.info("Frame %d: %d stars", frame.index, len(stars))
    return feature_sets


def choose_sensitivity(reference: Frame, settings: StackSettings) -> int:
    """Fixed sensitivity, or one probed on the reference frame when a target is set."""
    if settings.target_stars is None:
        return settings.sensitivity

    def detector(frame: Frame, sensitivity: int) -> FeatureSet:
        return detect_stars(frame, sensitivity, fwhm=settings.fwhm)

    sensitivity = probe_sensitivity(
        reference,
        target=settings.target_stars,
        ceiling=settings.star_ceiling,
        detector=detector,
        start=settings.sensitivity,
        step=settings.probe_step,
        maximum=settings.max_sensitivity,
    )
    logger.info("Probed sensitivity %d for about %d stars", sensitivity, settings.target_stars)
    return sensitivity


def process_frames(frames: Sequence[Frame], settings: Optional[StackSettings] = None) -> PipelineResult:
    """Register in-memory frames onto the first one and average them."""
    settings = settings or StackSettings()
    settings.validate()
    if not frames:
        raise InvalidInput("No frames to process.")

    sensitivity = choose_sensitivity(frames[0], settings)
    feature_sets = detect_all(frames, sensitivity, settings)

    alignment = align_series(frames, feature_sets, settings.precision, settings)
    summary = summarize_alignment(alignment.metrics)
    logger.info(
        "Aligned %d of %d frame(s); mean rms %.3f px",
        len(alignment.frames),
        len(frames),
        summary["mean_rms_px"],
    )

    stacked = stack_frames(alignment.frames)
    unaligned = stack_frames(frames)
    snr_gain = estimate_snr_improvement(frames[0].data, stacked.data)
    logger.info("SNR improvement factor: %.2f", snr_gain)

    return PipelineResult(
        stacked=stacked,
        aligned=alignment.frames,
        feature_sets=feature_sets,
        metrics=alignment.metrics,
        sensitivity=sensitivity,
        snr_improvement=snr_gain,
        unaligned=unaligned,
        reference_matches=reference_matches(feature_sets, settings.precision),
        inputs=[f.source for f in frames],
    )


def reference_matches(feature_sets: Sequence[FeatureSet], precision: float) -> list[Match]:
    """Accepted matches of frame 1 onto the reference frame, for previews."""
    if len(feature_sets) < 2 or not feature_sets[0] or not feature_sets[1]:
        return []
    return match_features(feature_sets[1], feature_sets[0], precision)


def run_pipeline(
    pattern: str,
    output: Optional[str | Path] = None,
    settings: Optional[StackSettings] = None,
    report_path: Optional[str | Path] = None,
) -> PipelineResult:
    """Stack every file matching `pattern`, writing the master and a report."""
    settings = settings or StackSettings()
    settings.validate()

    paths = frame_io.discover_frames(pattern)
    frames = load_frames(paths, workers=settings.workers)
    result = process_frames(frames, settings)

    if output is not None:
        result.outputs["stacked"] = str(frame_io.save_frame(result.stacked, output))
    if report_path is not None:
        report_path = Path(report_path)
        result.outputs["report"] = str(report_path)
        csv_path = report_path.with_suffix(".csv")
        alignment_table(result.metrics).to_csv(csv_path, index=False)
        result.outputs["alignment_csv"] = str(csv_path)
        frame_io.save_json(report_path, build_report(result, settings))
    return result


def alignment_table(metrics: Sequence[AlignmentMetric]) -> pd.DataFrame:
    """Per-frame alignment metrics as a DataFrame for display or CSV export."""
    columns = ["index", "success", "rms_error_px", "matched_stars", "inliers", "error"]
    return pd.DataFrame([asdict(m) for m in metrics], columns=columns)


def build_report(result: PipelineResult, settings: StackSettings) -> dict[str, Any]:
    """JSON-ready summary of one run."""
    h, w = result.stacked.shape_hw
    return {
        "created_utc": datetime.now(timezone.utc).isoformat(),
        "pipeline": "StarStack",
        "settings": settings.to_dict(),
        "inputs": result.inputs,
        "sensitivity": result.sensitivity,
        "stars_per_frame": [len(fs) for fs in result.feature_sets],
        "alignment": {
            "summary": summarize_alignment(result.metrics),
            "per_frame": [asdict(m) for m in result.metrics],
        },
        "stack": {
            "frames": len(result.aligned),
            "width": w,
            "height": h,
            "snr_improvement_factor": result.snr_improvement,
        },
        "outputs": result.outputs,
    }
