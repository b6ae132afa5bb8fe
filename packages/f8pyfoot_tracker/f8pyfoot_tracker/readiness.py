from __future__ import annotations

import asyncio
import logging
from typing import Callable

log = logging.getLogger(__name__)


class RuntimeNotReadyError(RuntimeError):
    pass


def opencv_ready() -> bool:
    """
    True once the OpenCV bindings import and expose the calls the tracker uses.
    """
    try:
        import cv2  # type: ignore
    except ImportError:
        return False
    return callable(getattr(cv2, "matchTemplate", None)) and callable(getattr(cv2, "VideoCapture", None))


async def wait_runtime_ready(
    probe: Callable[[], bool] = opencv_ready,
    *,
    interval_s: float = 0.1,
    timeout_s: float | None = None,
) -> None:
    """
    Block until `probe()` reports the vision runtime as initialized.

    Polls every `interval_s`. With `timeout_s=None` this waits forever;
    otherwise `RuntimeNotReadyError` is raised once the timeout expires.
    Cancelling the awaiting task stops the poll.
    """

    async def _poll() -> None:
        attempts = 0
        while not probe():
            attempts += 1
            if attempts == 1:
                log.info("waiting for vision runtime")
            await asyncio.sleep(float(interval_s))
        if attempts:
            log.info("vision runtime ready after %d polls", attempts)

    if timeout_s is None:
        await _poll()
        return
    try:
        await asyncio.wait_for(_poll(), timeout=float(timeout_s))
    except asyncio.TimeoutError as exc:
        raise RuntimeNotReadyError(f"vision runtime not ready after {timeout_s:.3f}s") from exc
