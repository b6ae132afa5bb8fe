from __future__ import annotations

import logging
from typing import Any, Protocol

from .codec import encode_event
from .naming import ensure_token, event_subject

log = logging.getLogger(__name__)


class EventTransport(Protocol):
    async def publish(self, subject: str, payload: bytes) -> None: ...


class HostSink:
    """
    Publishes named tracker events to the host.

    Each event goes to `svc.<serviceId>.events.<event>` as a MsgPack payload.
    """

    def __init__(self, transport: EventTransport, *, service_id: str) -> None:
        self._transport = transport
        self.service_id = ensure_token(service_id, label="service_id")
        self.emitted = 0

    async def emit(self, event: str, payload: Any) -> None:
        subject = event_subject(self.service_id, event)
        await self._transport.publish(subject, encode_event(payload))
        self.emitted += 1
        log.debug("emitted %s", subject)
