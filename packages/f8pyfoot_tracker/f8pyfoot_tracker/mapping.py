from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .constants import DETECTION_SCHEMA_VERSION
from .matcher import MatchResult


@dataclass(frozen=True)
class Detection:
    x: float
    y: float
    score: float
    frame_id: int = 0
    ts_ms: int = 0

    def to_payload(self) -> dict[str, Any]:
        return {
            "schemaVersion": DETECTION_SCHEMA_VERSION,
            "x": float(self.x),
            "y": float(self.y),
            "score": float(self.score),
            "frameId": int(self.frame_id),
            "tsMs": int(self.ts_ms),
        }


def map_to_normalized(
    row: int,
    col: int,
    *,
    template_dims: tuple[int, int],
    scale: float,
    frame_dims: tuple[int, int],
) -> tuple[float, float]:
    """
    Map a reduced-resolution top-left match location to normalized [0, 1] coords.

    `template_dims` is (width, height) of the reduced template, `frame_dims`
    (width, height) of the full-resolution frame. No clamping.
    """
    tw, th = template_dims
    fw, fh = frame_dims
    cx = (float(col) + float(tw) / 2.0) / float(scale)
    cy = (float(row) + float(th) / 2.0) / float(scale)
    return cx / float(fw), cy / float(fh)


def detection_from_match(
    match: MatchResult,
    *,
    threshold: float,
    template_dims: tuple[int, int],
    scale: float,
    frame_dims: tuple[int, int],
    frame_id: int = 0,
    ts_ms: int = 0,
) -> Detection | None:
    """
    Detection for `match`, or None unless its score strictly exceeds `threshold`.
    """
    if not match.score > float(threshold):
        return None
    x, y = map_to_normalized(match.row, match.col, template_dims=template_dims, scale=scale, frame_dims=frame_dims)
    return Detection(x=x, y=y, score=float(match.score), frame_id=int(frame_id), ts_ms=int(ts_ms))
