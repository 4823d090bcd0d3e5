"""Periodic screen capture and OCR feeding the reaction engine."""

from __future__ import annotations

import io
from pathlib import Path
import subprocess
import sys
import tempfile
import threading
import time
from typing import Callable, Optional

from PIL import Image

from buddy.engine import DeliverFn, ReactionEngine
from buddy.timeline import Timeline, disabled_timeline, log_verbose
from buddy.vision import VisionTracker

CaptureFn = Callable[[], bytes]
OcrFn = Callable[[bytes], str]

_PNG_HEADER = b"\x89PNG\r\n\x1a\n"
_PERMISSION_HINT = (
    "Check Screen Recording permission for your terminal or Python "
    "in System Settings > Privacy & Security."
)


def capture_screen_png(display_id: Optional[int] = None) -> bytes:
    """Capture the main display to PNG bytes using macOS screencapture."""

    with tempfile.TemporaryDirectory() as tmp_dir:
        tmp_path = Path(tmp_dir) / "capture.png"

        command = ["/usr/sbin/screencapture", "-x", "-t", "png"]
        if display_id is not None:
            command.extend(["-D", str(display_id)])
        command.append(str(tmp_path))

        try:
            result = subprocess.run(command, check=False, capture_output=True)
        except FileNotFoundError as exc:
            raise RuntimeError("screencapture not found; macOS is required.") from exc

        stderr = result.stderr.decode("utf-8", errors="replace").strip()
        detail = f" screencapture stderr: {stderr}" if stderr else ""
        if result.returncode != 0:
            raise RuntimeError(
                f"screencapture failed (code {result.returncode}). {_PERMISSION_HINT}{detail}"
            )

        if not tmp_path.exists():
            raise RuntimeError("screencapture did not create an output file.")

        data = tmp_path.read_bytes()
        if not data.startswith(_PNG_HEADER):
            raise RuntimeError(f"screencapture returned no PNG data. {_PERMISSION_HINT}{detail}")

        return data


def ocr_png(png_bytes: bytes, lang: str = "eng") -> str:
    """Extract text from a PNG screenshot with Tesseract."""

    import pytesseract

    image = Image.open(io.BytesIO(png_bytes))
    try:
        return pytesseract.image_to_string(image, lang=lang)
    except pytesseract.TesseractNotFoundError as exc:
        raise RuntimeError(
            "tesseract binary not found. Install it (e.g. brew install tesseract)."
        ) from exc


class CaptureLoop:
    """Capture, OCR and hand the text to the engine every ``interval_sec``."""

    def __init__(
        self,
        engine: ReactionEngine,
        deliver: DeliverFn,
        interval_sec: float,
        capture_fn: CaptureFn,
        ocr_fn: OcrFn,
        vision: Optional[VisionTracker] = None,
        verbose: bool = False,
        timeline: Optional[Timeline] = None,
    ) -> None:
        self._engine = engine
        self._deliver = deliver
        self._interval_sec = interval_sec
        self._capture_fn = capture_fn
        self._ocr_fn = ocr_fn
        self._vision = vision
        self._verbose = verbose
        self._timeline = timeline or disabled_timeline()
        self._warning_shown = False
        self._capture_id = 0

    @property
    def warning_shown(self) -> bool:
        return self._warning_shown

    def tick(self) -> bool:
        """Run one capture step. Returns True if a reaction cycle was started."""

        try:
            png_bytes = self._capture_fn()
            if self._vision is not None and not self._vision.changed(png_bytes):
                log_verbose(self._verbose, "skip=idle_frame")
                self._timeline.log("skip", reason="idle_frame")
                return False
            text = self._ocr_fn(png_bytes)
        except Exception as exc:
            if self._vision is not None:
                self._vision.reset()
            if not self._warning_shown:
                print(f"[Capture] Screen text unavailable: {exc}", file=sys.stderr)
                self._warning_shown = True
            self._timeline.log("capture_error", error=str(exc))
            return False

        if self._warning_shown:
            print("[Capture] Screen text available again.", file=sys.stderr)
            self._warning_shown = False
        self._capture_id += 1
        self._timeline.log("capture", id=self._capture_id, chars=len(text))
        log_verbose(self._verbose, f"capture id={self._capture_id} chars={len(text)}")
        return self._engine.analyze(text, self._deliver)

    def run(self, stop_event: threading.Event, max_ticks: Optional[int] = None) -> int:
        """Tick until ``stop_event`` is set or ``max_ticks`` ticks have run."""

        ticks = 0
        while not stop_event.is_set():
            started = time.monotonic()
            self.tick()
            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break
            elapsed = time.monotonic() - started
            stop_event.wait(max(0.0, self._interval_sec - elapsed))
        return ticks
