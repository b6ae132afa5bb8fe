from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any

import cv2  # type: ignore
import numpy as np  # type: ignore

log = logging.getLogger(__name__)


class DeviceUnavailableError(RuntimeError):
    """Raised when a video source cannot be opened (missing, busy, or denied)."""


@dataclass(frozen=True)
class Frame:
    frame_id: int
    ts_ms: int
    bgr: np.ndarray

    @property
    def width(self) -> int:
        return int(self.bgr.shape[1]) if self.bgr.ndim >= 2 else 0

    @property
    def height(self) -> int:
        return int(self.bgr.shape[0]) if self.bgr.ndim >= 2 else 0


@dataclass(frozen=True)
class SourceInfo:
    label: str
    source_id: str

    def to_payload(self) -> dict[str, str]:
        return {"label": self.label, "sourceId": self.source_id}


def _now_ms() -> int:
    return int(time.time() * 1000)


def default_source_label(source_id: str) -> str:
    return f"Camera {str(source_id)[:4]}"


def _capture_target(source_id: str) -> Any:
    s = str(source_id or "").strip()
    if s.isdigit():
        return int(s)
    return s


class FrameSource:
    """
    Owner of one active video stream.

    Subclasses bind an actual backend; the tracking session only relies on
    `open`, `current_frame`, `close` and `source_id`.
    """

    source_id: str = ""

    def open(self, source_id: str) -> None:
        raise NotImplementedError

    def current_frame(self) -> Frame | None:
        """
        Latest decoded frame, or None while the stream is not ready.

        Called from worker threads, one per loop; it may block without
        stalling the event loop.
        """
        raise NotImplementedError

    def close(self) -> None:
        return None

    @property
    def is_open(self) -> bool:
        return False


class LatestFrame:
    """
    Most recent good frame of a capture stream.

    Written by the grabber thread, read by the loops. After `max_failed_reads`
    consecutive failed reads the frame is dropped, so a camera that stops
    delivering reads as "not ready" instead of a frozen image.
    """

    def __init__(self, *, max_failed_reads: int = 30) -> None:
        self._lock = threading.Lock()
        self._frame: Frame | None = None
        self._next_id = 0
        self._failures = 0
        self.max_failed_reads = max(1, int(max_failed_reads))

    def get(self) -> Frame | None:
        with self._lock:
            return self._frame

    def push_read(self, ok: bool, bgr: np.ndarray | None) -> Frame | None:
        if not ok or bgr is None or bgr.size == 0:
            with self._lock:
                self._failures += 1
                if self._failures >= self.max_failed_reads and self._frame is not None:
                    self._frame = None
                    log.warning("no frame for %d consecutive reads, dropping the last one", self._failures)
                return None
        if bgr.ndim == 2:
            bgr = cv2.cvtColor(bgr, cv2.COLOR_GRAY2BGR)
        elif bgr.shape[2] == 4:
            bgr = cv2.cvtColor(bgr, cv2.COLOR_BGRA2BGR)
        with self._lock:
            self._next_id += 1
            self._failures = 0
            self._frame = Frame(frame_id=self._next_id, ts_ms=_now_ms(), bgr=bgr)
            return self._frame

    def clear(self) -> None:
        with self._lock:
            self._frame = None
            self._failures = 0


class OpenCvFrameSource(FrameSource):
    """
    `cv2.VideoCapture` backed frame source.

    A grabber thread owns the capture and keeps reading into a `LatestFrame`;
    `current_frame()` only hands out the latest reference, so a stalled
    device never blocks the caller.
    """

    def __init__(self, *, max_failed_reads: int = 30, api_preference: int | None = None, join_timeout_s: float = 2.0) -> None:
        self._api_preference = api_preference
        self._max_failed_reads = max(1, int(max_failed_reads))
        self._join_timeout_s = float(join_timeout_s)
        self._latest: LatestFrame | None = None
        self._stop: threading.Event | None = None
        self._thread: threading.Thread | None = None
        self.source_id = ""

    @property
    def is_open(self) -> bool:
        return self._thread is not None

    def _open_capture(self, target: Any) -> Any:
        if self._api_preference is None:
            return cv2.VideoCapture(target)
        return cv2.VideoCapture(target, int(self._api_preference))

    def open(self, source_id: str) -> None:
        self.close()
        cap = self._open_capture(_capture_target(source_id))
        if cap is None or not cap.isOpened():
            if cap is not None:
                cap.release()
            raise DeviceUnavailableError(f"failed to open video source {source_id!r}")
        latest = LatestFrame(max_failed_reads=self._max_failed_reads)
        stop = threading.Event()
        thread = threading.Thread(
            target=_grab_loop,
            args=(cap, latest, stop),
            name=f"foot_tracker:grab:{source_id}",
            daemon=True,
        )
        self._latest = latest
        self._stop = stop
        self._thread = thread
        self.source_id = str(source_id)
        thread.start()
        log.info("opened video source %s", source_id)

    def current_frame(self) -> Frame | None:
        latest = self._latest
        if latest is None:
            return None
        return latest.get()

    def close(self) -> None:
        thread, stop, latest = self._thread, self._stop, self._latest
        self._thread = None
        self._stop = None
        self._latest = None
        self.source_id = ""
        if latest is not None:
            latest.clear()
        if stop is not None:
            stop.set()
        if thread is not None:
            thread.join(timeout=self._join_timeout_s)
            if thread.is_alive():
                log.warning("grabber thread %s still blocked in read; it releases the device when the read returns", thread.name)


def _grab_loop(cap: Any, latest: LatestFrame, stop: threading.Event) -> None:
    try:
        while not stop.is_set():
            try:
                ok, bgr = cap.read()
            except cv2.error as exc:
                log.warning("VideoCapture.read failed", exc_info=exc)
                ok, bgr = False, None
            if stop.is_set():
                break
            if latest.push_read(bool(ok), bgr) is None:
                stop.wait(0.01)
    finally:
        try:
            cap.release()
        except cv2.error as exc:
            log.debug("VideoCapture.release failed", exc_info=exc)


def list_sources(*, max_index: int = 8, api_preference: int | None = None) -> list[SourceInfo]:
    """
    Probe device indices 0..max_index-1 and return the ones that open.

    Order is discovery order. Probe failures are logged and skipped, so the
    result may be partial or empty.
    """
    out: list[SourceInfo] = []
    for index in range(max(0, int(max_index))):
        cap = None
        try:
            if api_preference is None:
                cap = cv2.VideoCapture(index)
            else:
                cap = cv2.VideoCapture(index, int(api_preference))
            if cap is None or not cap.isOpened():
                continue
            label = ""
            try:
                label = str(cap.getBackendName() or "").strip()
            except cv2.error:
                label = ""
            source_id = str(index)
            out.append(SourceInfo(label=f"{label} {source_id}" if label else default_source_label(source_id), source_id=source_id))
        except cv2.error as exc:
            log.warning("camera probe failed index=%s", index, exc_info=exc)
        finally:
            if cap is not None:
                cap.release()
    return out
