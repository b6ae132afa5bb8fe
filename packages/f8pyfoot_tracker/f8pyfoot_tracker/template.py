from __future__ import annotations

import logging
from dataclasses import dataclass

import cv2  # type: ignore
import numpy as np  # type: ignore

from .frame_source import Frame
from .preprocess import downscale, to_gray

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class TemplatePatch:
    size: int
    scale: float
    gray: np.ndarray
    reduced: np.ndarray
    captured_ts_ms: int = 0
    source_frame_id: int = 0

    @property
    def reduced_width(self) -> int:
        return int(self.reduced.shape[1])

    @property
    def reduced_height(self) -> int:
        return int(self.reduced.shape[0])

    def describe(self) -> dict[str, int | float]:
        return {
            "size": int(self.size),
            "scale": float(self.scale),
            "reducedWidth": self.reduced_width,
            "reducedHeight": self.reduced_height,
            "capturedTsMs": int(self.captured_ts_ms),
            "frameId": int(self.source_frame_id),
        }


def center_crop(img: np.ndarray, size: int) -> np.ndarray:
    """
    `size` x `size` crop centered at (w // 2, h // 2).

    Pixels falling outside the image are zero.
    """
    h, w = int(img.shape[0]), int(img.shape[1])
    x0 = w // 2 - size // 2
    y0 = h // 2 - size // 2
    sx0, sy0 = max(0, x0), max(0, y0)
    sx1, sy1 = min(w, x0 + size), min(h, y0 + size)
    crop = img[sy0:sy1, sx0:sx1]
    if crop.shape[0] == size and crop.shape[1] == size:
        return crop.copy()
    return cv2.copyMakeBorder(
        np.ascontiguousarray(crop),
        sy0 - y0,
        (y0 + size) - sy1,
        sx0 - x0,
        (x0 + size) - sx1,
        cv2.BORDER_CONSTANT,
        value=0,
    )


def capture_template(frame: Frame | None, *, size: int, scale: float) -> TemplatePatch | None:
    """
    Cut a square template out of the center of `frame`.

    Returns None (and touches nothing) when the frame is missing or empty.
    """
    if frame is None or frame.width <= 0 or frame.height <= 0:
        return None
    gray = to_gray(center_crop(frame.bgr, int(size)))
    reduced = downscale(gray, scale)
    gray.setflags(write=False)
    reduced.setflags(write=False)
    log.info("template captured size=%s reduced=%sx%s frame=%s", size, reduced.shape[1], reduced.shape[0], frame.frame_id)
    return TemplatePatch(
        size=int(size),
        scale=float(scale),
        gray=gray,
        reduced=reduced,
        captured_ts_ms=int(frame.ts_ms),
        source_frame_id=int(frame.frame_id),
    )
