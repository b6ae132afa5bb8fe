from __future__ import annotations

import asyncio
import logging
from typing import Any

from nats.micro import ServiceConfig, add_service  # type: ignore[import-not-found]
from nats.micro.service import EndpointConfig  # type: ignore[import-not-found]

from .codec import encode_reply, parse_envelope
from .config import TrackerConfig, _coerce_str
from .constants import (
    CMD_CAPTURE_TEMPLATE,
    CMD_LIST_SOURCES,
    CMD_START_TRACKING,
    CMD_STATUS,
    CMD_STOP_TRACKING,
    EVENT_CAMERA_LIST,
    SERVICE_CLASS,
)
from .frame_source import DeviceUnavailableError
from .naming import cmd_channel_subject, ensure_token, new_id, svc_micro_name
from .readiness import RuntimeNotReadyError
from .session import TrackingSession

log = logging.getLogger(__name__)


class UnknownCallError(ValueError):
    pass


def _error_code(exc: Exception) -> str:
    if isinstance(exc, DeviceUnavailableError):
        return "DEVICE_UNAVAILABLE"
    if isinstance(exc, RuntimeNotReadyError):
        return "RUNTIME_NOT_READY"
    if isinstance(exc, UnknownCallError):
        return "UNKNOWN_CALL"
    if isinstance(exc, ValueError):
        return "INVALID_ARGS"
    return "INTERNAL"


class FootTrackerService:
    """
    Host-facing command surface of one tracking session.

    Commands arrive either in-process via `on_command` or as JSON envelopes
    on the `svc.<serviceId>.cmd` micro endpoint.
    """

    def __init__(self, *, service_id: str, session: TrackingSession) -> None:
        self.service_id = ensure_token(service_id, label="service_id")
        self._session = session
        self._sink = session.sink
        self._micro: Any | None = None
        self._terminate = asyncio.Event()

    @property
    def session(self) -> TrackingSession:
        return self._session

    @property
    def config(self) -> TrackerConfig:
        return self._session.config

    async def on_command(self, name: str, args: dict[str, Any] | None = None, *, meta: dict[str, Any] | None = None) -> Any:
        del meta
        call = str(name or "").strip()
        a = dict(args or {})
        if call == CMD_LIST_SOURCES:
            return await self._cmd_list_sources()
        if call == CMD_START_TRACKING:
            source_id = _coerce_str(a.get("sourceId", a.get("deviceId")))
            return await self._session.start_tracking(source_id)
        if call == CMD_CAPTURE_TEMPLATE:
            patch = await self._session.capture_template()
            return {"captured": patch is not None, "template": patch.describe() if patch is not None else None}
        if call == CMD_STOP_TRACKING:
            await self._session.stop()
            return {"ok": True}
        if call == CMD_STATUS:
            return {"serviceId": self.service_id, "serviceClass": SERVICE_CLASS, **self._session.status()}
        raise UnknownCallError(f"unknown call: {call}")

    async def _cmd_list_sources(self) -> list[dict[str, str]]:
        sources = [s.to_payload() for s in await self._session.list_sources()]
        await self._sink.emit(EVENT_CAMERA_LIST, sources)
        return sources

    async def announce_sources(self) -> None:
        """
        Publish the camera list once so a host can populate its picker without asking.
        """
        try:
            await self._cmd_list_sources()
        except Exception as exc:
            log.warning("camera list failed", exc_info=exc)

    # ---- NATS micro endpoint ---------------------------------------------
    async def _cmd(self, req: Any) -> None:
        req_id, raw, args, meta = parse_envelope(req.data, default_req_id=new_id())
        call = str(raw.get("call") or "").strip()
        if not call:
            await req.respond(encode_reply(req_id=req_id, ok=False, error={"code": "INVALID_ARGS", "message": "missing call"}))
            return
        try:
            out = await self.on_command(call, args, meta=meta)
        except Exception as exc:
            log.warning("command %s failed", call, exc_info=exc)
            await req.respond(encode_reply(req_id=req_id, ok=False, error={"code": _error_code(exc), "message": str(exc)}))
            return
        await req.respond(encode_reply(req_id=req_id, ok=True, result=out))

    async def start_endpoints(self, nc: Any) -> None:
        self._micro = await add_service(
            nc,
            ServiceConfig(
                name=svc_micro_name(self.service_id),
                version="0.1.0",
                description=f"Foot template tracker (serviceClass={SERVICE_CLASS}, serviceId={self.service_id}).",
                metadata={"serviceId": self.service_id, "serviceClass": SERVICE_CLASS},
            ),
        )
        await self._micro.add_endpoint(
            EndpointConfig(name="cmd", subject=cmd_channel_subject(self.service_id), handler=self._cmd, metadata={"builtin": "false"})
        )
        log.info("command endpoint listening on %s", cmd_channel_subject(self.service_id))

    async def stop_endpoints(self) -> None:
        if self._micro is None:
            return
        try:
            await self._micro.stop()
        except Exception as exc:
            log.debug("micro stop failed", exc_info=exc)
        self._micro = None

    def request_terminate(self) -> None:
        self._terminate.set()

    async def wait_terminate(self) -> None:
        await self._terminate.wait()

    async def close(self) -> None:
        await self.stop_endpoints()
        await self._session.close()
