"""Pixel-level screen change detection, used to skip OCR on idle frames."""

from __future__ import annotations

from dataclasses import dataclass
import io
from typing import Optional

import numpy as np
from PIL import Image


@dataclass(frozen=True)
class VisualMetrics:
    """Metrics derived from the current screen image."""

    activity: float
    first_frame: bool


class VisionTracker:
    """Track visual changes across frames."""

    def __init__(self, min_activity: float = 0.0) -> None:
        self._prev_small: Optional[np.ndarray] = None
        self._min_activity = min_activity

    def reset(self) -> None:
        """Clear the previous frame state."""

        self._prev_small = None

    def analyze(self, png_bytes: bytes) -> VisualMetrics:
        """Compute mean absolute grayscale difference from the previous frame."""

        image = Image.open(io.BytesIO(png_bytes)).convert("L")
        small = image.resize((64, 64), Image.BILINEAR)
        gray = np.asarray(small, dtype=np.float32)

        first_frame = self._prev_small is None
        if first_frame:
            activity = 0.0
        else:
            activity = float(np.mean(np.abs(gray - self._prev_small)))

        self._prev_small = gray
        return VisualMetrics(activity=activity, first_frame=first_frame)

    def changed(self, png_bytes: bytes) -> bool:
        """Return False when the frame is visually the same as the last one."""

        metrics = self.analyze(png_bytes)
        return metrics.first_frame or metrics.activity > self._min_activity
