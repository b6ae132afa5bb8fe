import asyncio
import json
import os
import sys
import unittest
from typing import Any

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from f8pyfoot_tracker.config import TrackerConfig  # noqa: E402
from f8pyfoot_tracker.constants import EVENT_CAMERA_LIST, EVENT_CAMERA_READY  # noqa: E402
from f8pyfoot_tracker.frame_source import SourceInfo  # noqa: E402
from f8pyfoot_tracker.service import FootTrackerService, UnknownCallError  # noqa: E402
from f8pyfoot_tracker.session import TrackingSession  # noqa: E402
from f8pyfoot_tracker.sink import HostSink  # noqa: E402
from f8pyfoot_tracker.testing import InMemoryTransport, ScriptedFrameSource, textured_frame  # noqa: E402


class _FakeMsg:
    def __init__(self, payload: dict[str, Any] | bytes) -> None:
        self.data = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
        self.replies: list[dict[str, Any]] = []

    async def respond(self, data: bytes) -> None:
        self.replies.append(json.loads(data.decode("utf-8")))


class FootTrackerServiceTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.transport = InMemoryTransport()
        self.source = ScriptedFrameSource([textured_frame(640, 480)], available={"0"})
        session = TrackingSession(
            source=self.source,
            sink=HostSink(self.transport, service_id="foot1"),
            config=TrackerConfig(refresh_hz=240.0, preview_max_width=160, preview_max_height=120),
            ready_probe=lambda: True,
            source_lister=lambda: [SourceInfo(label="Front cam", source_id="0"), SourceInfo(label="Camera 1", source_id="1")],
        )
        self.service = FootTrackerService(service_id="foot1", session=session)

    async def asyncTearDown(self) -> None:
        await self.service.close()

    async def test_list_sources_replies_and_emits(self) -> None:
        out = await self.service.on_command("listSources")
        expected = [{"label": "Front cam", "sourceId": "0"}, {"label": "Camera 1", "sourceId": "1"}]
        self.assertEqual(out, expected)
        self.assertEqual(self.transport.events(EVENT_CAMERA_LIST), [(EVENT_CAMERA_LIST, expected)])

    async def test_announce_sources_publishes_camera_list(self) -> None:
        seen: list[str] = []

        async def _on_event(subject: str, payload: bytes) -> None:
            seen.append(subject)

        self.transport.cluster.subscribe("svc.foot1.events.>", _on_event)
        await self.service.announce_sources()
        subjects = [s for s, _ in self.transport.cluster.published]
        self.assertEqual(subjects, ["svc.foot1.events.cameraList"])
        self.assertEqual(seen, subjects)

    async def test_start_capture_and_status(self) -> None:
        out = await self.service.on_command("startTracking", {"sourceId": "0"})
        self.assertEqual(out["sourceId"], "0")
        await asyncio.sleep(0.1)
        self.assertEqual(len(self.transport.events(EVENT_CAMERA_READY)), 1)

        cap = await self.service.on_command("captureTemplate")
        self.assertTrue(cap["captured"])
        self.assertEqual(cap["template"]["reducedWidth"], 50)

        status = await self.service.on_command("status")
        self.assertEqual(status["serviceId"], "foot1")
        self.assertEqual(status["sourceId"], "0")
        self.assertTrue(status["cameraReady"])
        self.assertTrue(status["trackingRunning"])

        stopped = await self.service.on_command("stopTracking")
        self.assertEqual(stopped, {"ok": True})
        self.assertFalse(self.source.is_open)

    async def test_capture_before_start_reports_not_captured(self) -> None:
        out = await self.service.on_command("captureTemplate")
        self.assertEqual(out, {"captured": False, "template": None})

    async def test_unknown_call_raises(self) -> None:
        with self.assertRaises(UnknownCallError):
            await self.service.on_command("explode")

    async def test_cmd_endpoint_envelope(self) -> None:
        msg = _FakeMsg({"reqId": "r1", "call": "listSources", "args": {}})
        await self.service._cmd(msg)
        self.assertEqual(len(msg.replies), 1)
        reply = msg.replies[0]
        self.assertEqual(reply["reqId"], "r1")
        self.assertTrue(reply["ok"])
        self.assertEqual(reply["result"][0]["sourceId"], "0")
        self.assertIsNone(reply["error"])

    async def test_cmd_endpoint_error_codes(self) -> None:
        unknown = _FakeMsg({"reqId": "r2", "call": "explode"})
        await self.service._cmd(unknown)
        self.assertFalse(unknown.replies[0]["ok"])
        self.assertEqual(unknown.replies[0]["error"]["code"], "UNKNOWN_CALL")

        missing = _FakeMsg({"reqId": "r3", "call": "startTracking", "args": {"sourceId": "7"}})
        await self.service._cmd(missing)
        self.assertEqual(missing.replies[0]["error"]["code"], "DEVICE_UNAVAILABLE")

        no_args = _FakeMsg({"reqId": "r4", "call": "startTracking"})
        await self.service._cmd(no_args)
        self.assertEqual(no_args.replies[0]["error"]["code"], "INVALID_ARGS")

        garbage = _FakeMsg(b"not json")
        await self.service._cmd(garbage)
        self.assertFalse(garbage.replies[0]["ok"])
        self.assertTrue(garbage.replies[0]["reqId"])

    def test_service_id_must_be_a_single_token(self) -> None:
        with self.assertRaises(ValueError):
            FootTrackerService(service_id="a.b", session=self.service.session)


if __name__ == "__main__":
    unittest.main()
