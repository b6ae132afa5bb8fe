from __future__ import annotations

from dataclasses import dataclass

import cv2  # type: ignore
import numpy as np  # type: ignore


@dataclass(frozen=True)
class MatchResult:
    score: float
    row: int
    col: int


class ScoreSurface:
    """
    Reusable float32 buffer for correlation scores.

    The buffer is replaced by a fresh array whenever the required shape
    changes and written in place otherwise.
    """

    def __init__(self) -> None:
        self._buf: np.ndarray | None = None
        self.allocations = 0

    @property
    def buffer(self) -> np.ndarray | None:
        return self._buf

    @property
    def shape(self) -> tuple[int, int] | None:
        if self._buf is None:
            return None
        return int(self._buf.shape[0]), int(self._buf.shape[1])

    def ensure(self, rows: int, cols: int) -> np.ndarray:
        if self._buf is None or self._buf.shape != (rows, cols):
            self._buf = np.empty((rows, cols), dtype=np.float32)
            self.allocations += 1
        return self._buf


def surface_shape(frame_shape: tuple[int, ...], template_shape: tuple[int, ...]) -> tuple[int, int] | None:
    rows = int(frame_shape[0]) - int(template_shape[0]) + 1
    cols = int(frame_shape[1]) - int(template_shape[1]) + 1
    if rows <= 0 or cols <= 0:
        return None
    return rows, cols


def best_match(scores: np.ndarray) -> MatchResult:
    """
    Global maximum of `scores`; the first one in row-major order wins ties.
    """
    flat_index = int(np.argmax(scores))
    row, col = divmod(flat_index, int(scores.shape[1]))
    return MatchResult(score=float(scores[row, col]), row=int(row), col=int(col))


def match_template(reduced_frame: np.ndarray, reduced_template: np.ndarray, surface: ScoreSurface) -> MatchResult | None:
    """
    Normalized cross-correlation of `reduced_template` over `reduced_frame`.

    Scores land in `surface` (reallocated first if its shape is stale) and are
    clipped to [-1, 1]; non-finite scores count as -1. Returns None when the
    template does not fit inside the frame.
    """
    shape = surface_shape(reduced_frame.shape, reduced_template.shape)
    if shape is None:
        return None
    buf = surface.ensure(*shape)
    out = cv2.matchTemplate(reduced_frame, reduced_template, cv2.TM_CCOEFF_NORMED, result=buf)
    if out is not buf:
        np.copyto(buf, out)
    np.nan_to_num(buf, copy=False, nan=-1.0, posinf=1.0, neginf=-1.0)
    np.clip(buf, -1.0, 1.0, out=buf)
    return best_match(buf)
