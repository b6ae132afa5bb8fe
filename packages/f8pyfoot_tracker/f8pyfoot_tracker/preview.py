from __future__ import annotations

import base64
from typing import Any

import cv2  # type: ignore
import numpy as np  # type: ignore


def preview_size(width: int, height: int, *, max_width: int, max_height: int) -> tuple[int, int]:
    """
    Largest (width, height) with the frame's aspect ratio inside the bounds.

    A bound of 0 means unbounded on that axis; frames are never enlarged.
    """
    f = 1.0
    if max_width > 0:
        f = min(f, float(max_width) / float(max(1, width)))
    if max_height > 0:
        f = min(f, float(max_height) / float(max(1, height)))
    if f >= 1.0:
        return int(width), int(height)
    return max(1, int(round(width * f))), max(1, int(round(height * f)))


def encode_frame_b64(
    bgr: np.ndarray,
    *,
    quality: int = 80,
    max_width: int = 0,
    max_height: int = 0,
) -> tuple[str, dict[str, Any]]:
    """
    Shrink a frame to the preview bounds and JPEG-encode it as base64.

    Returns (b64, meta) with the encoded dimensions and sizes in meta.
    """
    h, w = int(bgr.shape[0]), int(bgr.shape[1])
    size = preview_size(w, h, max_width=max_width, max_height=max_height)
    img = bgr if size == (w, h) else cv2.resize(bgr, size, interpolation=cv2.INTER_AREA)
    q = max(1, min(100, int(quality)))
    ok, buf = cv2.imencode(".jpg", img, [int(cv2.IMWRITE_JPEG_QUALITY), q])
    if not ok:
        raise RuntimeError("cv2.imencode failed")
    raw = buf.tobytes()
    b64 = base64.b64encode(raw).decode("ascii")
    return b64, {
        "format": "jpg",
        "width": size[0],
        "height": size[1],
        "bytes": len(raw),
        "b64Bytes": len(b64),
    }
