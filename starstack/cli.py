"""
Command-line interface for the StarStack alignment and stacking pipeline.

Usage:
    starstack -i "night1/*.fits" -o stacked.fits
    starstack -i "frames/*.png" -o out.tiff --precision 4 --target-stars 200
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

from starstack import __version__
from starstack.config import WARP_MODES, StackSettings
from starstack.errors import StackingError
from starstack.pipeline import run_pipeline

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for CLI."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-7s | %(message)s",
        datefmt="%H:%M:%S",
    )


def build_parser() -> argparse.ArgumentParser:
    defaults = StackSettings()
    parser = argparse.ArgumentParser(
        prog="starstack",
        description="Align drifting astrophotography frames on their stars and average them.",
    )
    parser.add_argument("-i", "--input", required=True, metavar="GLOB", help="Input file glob pattern")
    parser.add_argument(
        "-o", "--output", default="stacked.fits", metavar="OUTPUT_FILE",
        help="Output image (.fits/.tiff keep linear data, other formats are stretched)",
    )
    parser.add_argument(
        "-p", "--precision", type=float, default=defaults.precision,
        help="Maximum star match distance in pixels (default: %(default)s)",
    )
    parser.add_argument(
        "-t", "--target-stars", type=int, default=None,
        help="Tune detector sensitivity on the first frame to find about this many stars",
    )
    parser.add_argument(
        "--ceiling", type=int, default=defaults.star_ceiling,
        help="Upper bound on stars per frame while tuning (default: %(default)s)",
    )
    parser.add_argument(
        "--sensitivity", type=int, default=defaults.sensitivity,
        help="Detector sensitivity, 1-255; higher finds fewer stars (default: %(default)s)",
    )
    parser.add_argument("--fwhm", type=float, default=defaults.fwhm, help="Expected star FWHM in pixels")
    parser.add_argument(
        "--warp-mode", choices=WARP_MODES, default=defaults.warp_mode,
        help="Resample once per frame (composed) or once per link (chained)",
    )
    parser.add_argument(
        "--skip-failed", action="store_true",
        help="Leave out frames that cannot be registered instead of aborting",
    )
    parser.add_argument("--report", default=None, metavar="JSON", help="Write a JSON run report")
    parser.add_argument("--workers", type=int, default=defaults.workers, help="Loader/detector threads")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def settings_from_args(args: argparse.Namespace) -> StackSettings:
    return StackSettings(
        precision=args.precision,
        sensitivity=args.sensitivity,
        target_stars=args.target_stars,
        star_ceiling=args.ceiling,
        fwhm=args.fwhm,
        warp_mode=args.warp_mode,
        skip_failed=args.skip_failed,
        workers=args.workers,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = settings_from_args(args)
        result = run_pipeline(args.input, args.output, settings=settings, report_path=args.report)
    except StackingError as exc:
        logger.error("Stacking failed: %s", exc)
        return 1

    logger.info(
        "Stacked %d frame(s) into %s", len(result.aligned), result.outputs.get("stacked", args.output)
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
