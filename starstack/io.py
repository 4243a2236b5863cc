"""Frame discovery, decoding and encoding for StarStack."""

from __future__ import annotations

import glob
import json
import logging
from pathlib import Path
from typing import Any, Iterable, Optional

import imageio.v3 as iio
import numpy as np
import tifffile
from astropy.io import fits

from starstack.errors import IOFailure
from starstack.frames import Frame

logger = logging.getLogger(__name__)

FITS_SUFFIXES = (".fits", ".fit", ".fts", ".fits.gz", ".fit.gz", ".fts.gz")
TIFF_SUFFIXES = (".tif", ".tiff")


def _suffix_of(path: Path) -> str:
    name = path.name.lower()
    for suffix in FITS_SUFFIXES + TIFF_SUFFIXES:
        if name.endswith(suffix):
            return suffix
    return path.suffix.lower()


def _normalize_image_array(data: np.ndarray) -> np.ndarray:
    """Normalize image orientation to HxW or HxWx3 float32."""
    arr = np.squeeze(np.asarray(data))
    if arr.ndim == 2:
        return arr.astype(np.float32, copy=False)

    if arr.ndim != 3:
        raise ValueError(f"Unsupported image dimensionality: {arr.shape}")

    if arr.shape[0] in (3, 4) and arr.shape[-1] not in (3, 4):
        arr = np.moveaxis(arr, 0, -1)
    elif arr.shape[-1] not in (3, 4):
        raise ValueError("3D images must be channel-first (3,H,W) or channel-last (H,W,3).")

    if arr.shape[-1] == 4:
        arr = arr[..., :3]

    return arr.astype(np.float32, copy=False)


def _extract_primary_hdu(hdul: fits.HDUList) -> np.ndarray:
    for hdu in hdul:
        if hdu.data is not None:
            return np.asarray(hdu.data)
    raise ValueError("No image data found in FITS file.")


def _read_pixels(path: Path) -> np.ndarray:
    suffix = _suffix_of(path)
    if suffix in FITS_SUFFIXES:
        with fits.open(path, memmap=False) as hdul:
            return _extract_primary_hdu(hdul)
    if suffix in TIFF_SUFFIXES:
        return tifffile.imread(path)
    return iio.imread(path)


def load_frame(path: str | Path, index: int = 0) -> Frame:
    """Decode one image file into a float32 frame."""
    path_obj = Path(path)
    logger.debug("Loading image: %s", path_obj)
    try:
        data = _normalize_image_array(_read_pixels(path_obj))
    except (OSError, ValueError) as exc:
        raise IOFailure(f"Unable to read {path_obj}: {exc}") from exc
    return Frame(index=index, data=data, source=str(path_obj))


def discover_frames(pattern: str) -> list[Path]:
    """Expand a glob pattern into a sorted list of image files."""
    files = sorted(Path(p) for p in glob.glob(str(Path(pattern).expanduser()), recursive=True))
    files = [f for f in files if f.is_file()]
    if not files:
        raise IOFailure(f"No input files match pattern: {pattern}")
    logger.info("Found %d input file(s) for %s", len(files), pattern)
    return files


def stage_uploads(uploads: Iterable[tuple[str, bytes]], folder: str | Path) -> str:
    """Write uploaded (name, payload) pairs and return a glob that lists them in upload order."""
    folder = Path(folder)
    for i, (name, payload) in enumerate(uploads):
        (folder / f"{i:04d}_{Path(name).name}").write_bytes(payload)
    return str(folder / "*")


def auto_stretch_params(image: np.ndarray) -> tuple[float, float]:
    """Estimate black point and white point from robust percentiles."""
    arr = np.asarray(image, dtype=np.float32)
    valid = arr[np.isfinite(arr)]
    if valid.size == 0:
        return 0.0, 1.0

    black = float(np.percentile(valid, 0.5))
    white = float(np.percentile(valid, 99.8))
    if white <= black:
        white = black + 1e-6
    return black, white


def stretch_for_display(image: np.ndarray, stretch_factor: float = 8.0) -> np.ndarray:
    """Asinh stretch of linear data into [0, 1] for previews and 8-bit files."""
    arr = np.asarray(image, dtype=np.float32)
    black, white = auto_stretch_params(arr)
    norm = np.clip((arr - black) / max(white - black, 1e-6), 0.0, 1.0)
    stretched = np.arcsinh(stretch_factor * norm) / np.arcsinh(stretch_factor)
    return np.nan_to_num(stretched, nan=0.0).astype(np.float32, copy=False)


def to_uint8(image01: np.ndarray) -> np.ndarray:
    """Convert normalized [0,1] image to uint8."""
    arr = np.asarray(image01, dtype=np.float32)
    return np.round(np.clip(arr, 0.0, 1.0) * 255.0).astype(np.uint8)


def save_frame(frame: Frame, path: str | Path, history: Optional[str] = None) -> Path:
    """Encode a frame; FITS and TIFF keep linear float32 data, others are stretched."""
    out = Path(path)
    suffix = _suffix_of(out)
    data = np.asarray(frame.data, dtype=np.float32)
    try:
        out.parent.mkdir(parents=True, exist_ok=True)
        if suffix in FITS_SUFFIXES:
            fits_data = np.moveaxis(data, -1, 0) if data.ndim == 3 else data
            header = fits.Header()
            header["HISTORY"] = history or "StarStack aligned mean stack"
            fits.writeto(out, fits_data, header=header, overwrite=True)
        elif suffix in TIFF_SUFFIXES:
            tifffile.imwrite(out, data, photometric="rgb" if data.ndim == 3 else "minisblack")
        else:
            iio.imwrite(out, to_uint8(stretch_for_display(data)))
    except (OSError, ValueError) as exc:
        raise IOFailure(f"Unable to write {out}: {exc}") from exc
    logger.info("Wrote %s", out)
    return out


def save_json(path: str | Path, payload: dict[str, Any]) -> None:
    """Write JSON with stable formatting."""
    out = Path(path)
    try:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(json.dumps(payload, indent=2, sort_keys=True, default=str), encoding="utf-8")
    except OSError as exc:
        raise IOFailure(f"Unable to write {out}: {exc}") from exc
