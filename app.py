"""Streamlit UI for local star-aligned frame stacking."""

from __future__ import annotations

import json
import logging
import tempfile
from datetime import datetime
from pathlib import Path

import numpy as np
import streamlit as st
from PIL import Image

from starstack import io as frame_io
from starstack.config import WARP_MODES, StackSettings
from starstack.errors import StackingError
from starstack.overlay import draw_keypoints, draw_matches
from starstack.pipeline import alignment_table, build_report, run_pipeline
from starstack.register import summarize_alignment


st.set_page_config(page_title="StarStack", layout="wide")


class ListLogHandler(logging.Handler):
    """Collect formatted log lines for display on the page."""

    def __init__(self, lines: list[str]):
        super().__init__(level=logging.INFO)
        self.lines = lines
        self.setFormatter(logging.Formatter("[%(asctime)s] %(message)s", datefmt="%H:%M:%S"))

    def emit(self, record: logging.LogRecord) -> None:
        self.lines.append(self.format(record))


def preview(image: np.ndarray) -> Image.Image:
    return Image.fromarray(frame_io.to_uint8(frame_io.stretch_for_display(image)))


def run_with_logs(pattern: str, settings: StackSettings, output_dir: Path) -> dict:
    logs: list[str] = []
    handler = ListLogHandler(logs)
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(logging.INFO)
    try:
        result = run_pipeline(
            pattern,
            output=output_dir / "stacked.fits",
            settings=settings,
            report_path=output_dir / "stack_report.json",
        )
        tiff_path = frame_io.save_frame(result.stacked, output_dir / "stacked.tiff")
        png_path = frame_io.save_frame(result.stacked, output_dir / "stacked_preview.png")
        result.outputs["tiff"] = str(tiff_path)
        result.outputs["png"] = str(png_path)
    finally:
        root.removeHandler(handler)
    return {"result": result, "logs": logs, "output_dir": output_dir}


def main() -> None:
    st.title("StarStack")
    st.caption("Star-matched alignment and mean stacking of drifting astrophotography frames.")

    if "run" not in st.session_state:
        st.session_state.run = None

    defaults = StackSettings()
    st.sidebar.header("Pipeline Controls")
    precision = st.sidebar.slider("Match precision (px)", min_value=0.5, max_value=20.0, value=defaults.precision, step=0.1)
    auto_tune = st.sidebar.toggle("Auto-tune star count", value=False)
    target_stars = st.sidebar.number_input("Target stars", min_value=1, value=200, step=10)
    ceiling = st.sidebar.number_input("Star ceiling", min_value=1, value=defaults.star_ceiling, step=50)
    sensitivity = st.sidebar.slider("Detector sensitivity", min_value=1, max_value=255, value=defaults.sensitivity)
    fwhm = st.sidebar.number_input("Star FWHM (px)", min_value=0.5, value=defaults.fwhm, step=0.5)
    warp_mode = st.sidebar.selectbox("Warp mode", list(WARP_MODES), index=0)
    skip_failed = st.sidebar.toggle("Skip frames that fail to register", value=False)

    settings = StackSettings(
        precision=float(precision),
        sensitivity=int(sensitivity),
        target_stars=int(target_stars) if auto_tune else None,
        star_ceiling=int(ceiling),
        fwhm=float(fwhm),
        warp_mode=warp_mode,
        skip_failed=skip_failed,
    )

    st.subheader("1) Input Frames")
    input_mode = st.radio("Input mode", ["Glob pattern", "Upload files"], horizontal=True)
    pattern = ""
    uploaded_files = None
    if input_mode == "Glob pattern":
        pattern = st.text_input("Input glob", value="")
    else:
        uploaded_files = st.file_uploader("Upload frames in capture order", accept_multiple_files=True)

    if st.button("Align and stack", type="primary"):
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        output_dir = Path.cwd() / "starstack_outputs" / timestamp
        output_dir.mkdir(parents=True, exist_ok=True)
        with st.spinner("Detecting stars, aligning and stacking..."):
            try:
                if input_mode == "Upload files":
                    with tempfile.TemporaryDirectory() as tmp:
                        run = run_with_logs(
                            frame_io.stage_uploads(((up.name, up.getvalue()) for up in uploaded_files or []), tmp),
                            settings,
                            output_dir,
                        )
                else:
                    run = run_with_logs(pattern, settings, output_dir)
                st.session_state.run = run
                st.success("Processing complete.")
            except StackingError as exc:
                st.session_state.run = None
                st.error(f"Pipeline failed: {exc}")

    run = st.session_state.run
    if not run:
        return

    result = run["result"]
    summary = summarize_alignment(result.metrics)

    st.subheader("2) Output Summary")
    cols = st.columns(4)
    cols[0].metric("Frames stacked", len(result.aligned))
    cols[1].metric("Sensitivity", result.sensitivity)
    mean_rms = summary["mean_rms_px"]
    cols[2].metric("Alignment RMS (px)", f"{mean_rms:.3f}" if np.isfinite(mean_rms) else "N/A")
    cols[3].metric("SNR improvement", f"x{result.snr_improvement:.2f}")

    preview_cols = st.columns(3)
    reference = result.aligned[0]
    preview_cols[0].image(preview(reference.data), caption="Reference frame")
    if result.unaligned is not None:
        preview_cols[1].image(preview(result.unaligned.data), caption="Stacked without alignment")
    preview_cols[2].image(preview(result.stacked.data), caption="Stacked")

    overlay_cols = st.columns(2)
    overlay_cols[0].image(
        draw_keypoints(reference.data, result.feature_sets[0]),
        caption=f"Detected stars ({len(result.feature_sets[0])})",
    )
    if len(result.feature_sets) > 1:
        overlay_cols[1].image(
            draw_matches(reference.data, result.feature_sets[1], result.feature_sets[0], result.reference_matches),
            caption=f"Matches frame 1 -> 0 ({len(result.reference_matches)})",
        )

    st.subheader("3) Alignment")
    st.dataframe(alignment_table(result.metrics), use_container_width=True)

    st.subheader("4) Downloads")
    mimes = {".fits": "application/fits", ".tiff": "image/tiff", ".png": "image/png", ".json": "application/json", ".csv": "text/csv"}
    for label, path in result.outputs.items():
        path = Path(path)
        if not path.exists():
            continue
        st.download_button(
            f"Download {label}",
            data=path.read_bytes(),
            file_name=path.name,
            mime=mimes.get(path.suffix, "application/octet-stream"),
        )
    st.caption(f"Output directory: {run['output_dir']}")

    st.subheader("Processing Log")
    st.code("\n".join(run["logs"]), language="text")

    with st.expander("View JSON report"):
        st.json(json.loads(json.dumps(build_report(result, settings), default=str)))


if __name__ == "__main__":
    main()
