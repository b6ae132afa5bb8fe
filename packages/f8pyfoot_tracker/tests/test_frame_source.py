import os
import sys
import threading
import time
import unittest
from typing import Any

import numpy as np

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from f8pyfoot_tracker.frame_source import DeviceUnavailableError, LatestFrame, OpenCvFrameSource  # noqa: E402


class _FakeCapture:
    def __init__(self, *, good_reads: int = 1_000_000, gate: threading.Event | None = None, opened: bool = True) -> None:
        self.good_reads = good_reads
        self.gate = gate
        self.opened = opened
        self.reads = 0
        self.released = threading.Event()

    def isOpened(self) -> bool:
        return self.opened

    def read(self) -> tuple[bool, Any]:
        if self.gate is not None:
            self.gate.wait()
        time.sleep(0.001)
        self.reads += 1
        if self.reads > self.good_reads:
            return False, None
        return True, np.full((48, 64, 3), self.reads % 256, dtype=np.uint8)

    def release(self) -> None:
        self.released.set()


class _FakeCaptureSource(OpenCvFrameSource):
    def __init__(self, cap: _FakeCapture, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.cap = cap

    def _open_capture(self, target: Any) -> Any:
        return self.cap


def _wait_for(pred: Any, timeout_s: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        if pred():
            return True
        time.sleep(0.005)
    return bool(pred())


class LatestFrameTests(unittest.TestCase):
    def test_good_read_publishes_frame(self) -> None:
        slot = LatestFrame(max_failed_reads=3)
        frame = slot.push_read(True, np.zeros((4, 6, 3), dtype=np.uint8))
        assert frame is not None
        self.assertIs(slot.get(), frame)
        self.assertEqual((frame.width, frame.height), (6, 4))
        self.assertEqual(frame.frame_id, 1)

    def test_gray_frames_become_bgr(self) -> None:
        slot = LatestFrame()
        frame = slot.push_read(True, np.zeros((4, 6), dtype=np.uint8))
        assert frame is not None
        self.assertEqual(frame.bgr.shape, (4, 6, 3))

    def test_frame_is_dropped_after_consecutive_failures(self) -> None:
        slot = LatestFrame(max_failed_reads=3)
        slot.push_read(True, np.zeros((4, 6, 3), dtype=np.uint8))
        slot.push_read(False, None)
        slot.push_read(False, None)
        self.assertIsNotNone(slot.get())
        slot.push_read(False, None)
        self.assertIsNone(slot.get())

    def test_good_read_resets_failure_count(self) -> None:
        slot = LatestFrame(max_failed_reads=2)
        slot.push_read(True, np.zeros((4, 6, 3), dtype=np.uint8))
        slot.push_read(False, None)
        slot.push_read(True, np.zeros((4, 6, 3), dtype=np.uint8))
        slot.push_read(False, None)
        self.assertIsNotNone(slot.get())


class OpenCvFrameSourceTests(unittest.TestCase):
    def test_grabber_publishes_frames(self) -> None:
        src = _FakeCaptureSource(_FakeCapture())
        src.open("0")
        try:
            self.assertTrue(src.is_open)
            self.assertEqual(src.source_id, "0")
            self.assertTrue(_wait_for(lambda: src.current_frame() is not None))
            first = src.current_frame()
            assert first is not None
            self.assertTrue(_wait_for(lambda: src.current_frame().frame_id > first.frame_id))
        finally:
            src.close()
        self.assertTrue(src.cap.released.wait(1.0))
        self.assertFalse(src.is_open)
        self.assertIsNone(src.current_frame())

    def test_camera_that_stops_delivering_reads_as_not_ready(self) -> None:
        src = _FakeCaptureSource(_FakeCapture(good_reads=5), max_failed_reads=3)
        src.open("0")
        try:
            self.assertTrue(_wait_for(lambda: src.cap.reads >= 5))
            self.assertTrue(_wait_for(lambda: src.current_frame() is None))
        finally:
            src.close()

    def test_stalled_read_does_not_block_callers(self) -> None:
        gate = threading.Event()
        src = _FakeCaptureSource(_FakeCapture(gate=gate), join_timeout_s=0.05)
        src.open("0")
        try:
            t0 = time.perf_counter()
            self.assertIsNone(src.current_frame())
            self.assertLess(time.perf_counter() - t0, 0.05)
            src.close()
            self.assertFalse(src.is_open)
            self.assertFalse(src.cap.released.is_set())
        finally:
            gate.set()
        self.assertTrue(src.cap.released.wait(1.0))

    def test_unopenable_device(self) -> None:
        src = _FakeCaptureSource(_FakeCapture(opened=False))
        with self.assertRaises(DeviceUnavailableError):
            src.open("3")
        self.assertFalse(src.is_open)
        self.assertTrue(src.cap.released.is_set())


if __name__ == "__main__":
    unittest.main()
