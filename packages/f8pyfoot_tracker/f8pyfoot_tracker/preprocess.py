from __future__ import annotations

import cv2  # type: ignore
import numpy as np  # type: ignore

BLUR_KERNEL = (3, 3)


def reduced_size(width: int, height: int, scale: float) -> tuple[int, int]:
    """
    (width, height) after reduction by `scale`, floored and at least 1px.
    """
    return max(1, int(width * scale)), max(1, int(height * scale))


def to_gray(img: np.ndarray) -> np.ndarray:
    if img.ndim == 2:
        return img
    if img.shape[2] == 4:
        return cv2.cvtColor(img, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)


def downscale(gray: np.ndarray, scale: float) -> np.ndarray:
    h, w = int(gray.shape[0]), int(gray.shape[1])
    size = reduced_size(w, h, scale)
    if size == (w, h):
        return gray
    return cv2.resize(gray, size, interpolation=cv2.INTER_AREA)


def preprocess_frame(bgr: np.ndarray, scale: float) -> np.ndarray:
    """
    Grayscale, 3x3 Gaussian smoothing, then area downscale by `scale`.
    """
    gray = to_gray(bgr)
    blurred = cv2.GaussianBlur(gray, BLUR_KERNEL, 0)
    return downscale(blurred, scale)
