from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any

import nats  # type: ignore[import-not-found]
from nats.errors import Error as NatsError  # type: ignore[import-not-found]

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class NatsTransportConfig:
    url: str = "nats://127.0.0.1:4222"
    connect_timeout_s: float = 2.0
    reconnect_time_wait_s: float = 0.5


class NatsTransport:
    """
    Single-process NATS core pub/sub transport.

    Shared by the event sink and the command endpoint of one tracker process.
    """

    def __init__(self, config: NatsTransportConfig) -> None:
        self._config = config
        self._nc: Any = None
        self._lock = asyncio.Lock()

    async def require_client(self) -> Any:
        """
        Return connected nats.py client (connects if needed).
        """
        if self._nc is None:
            await self.connect()
        if self._nc is None:
            raise RuntimeError("NATS not connected")
        return self._nc

    async def connect(self) -> None:
        async with self._lock:
            if self._nc is not None:
                return
            url = str(self._config.url or "nats://127.0.0.1:4222").strip()
            last_log = 0.0
            attempt = 0
            last_err_log = 0.0

            # nats.py's default error callback prints a traceback per failed reconnect.
            async def _error_cb(exc: Exception) -> None:
                nonlocal last_err_log
                now = time.monotonic()
                if (now - last_err_log) < 2.0:
                    return
                last_err_log = now
                log.warning("NATS connection error (will retry): %s: %s", type(exc).__name__, exc)

            while self._nc is None:
                attempt += 1
                try:
                    self._nc = await nats.connect(
                        servers=[url],
                        connect_timeout=float(self._config.connect_timeout_s),
                        reconnect_time_wait=float(self._config.reconnect_time_wait_s),
                        max_reconnect_attempts=-1,
                        error_cb=_error_cb,
                    )
                except (OSError, asyncio.TimeoutError, NatsError) as exc:
                    now = time.monotonic()
                    if attempt == 1 or (now - last_log) >= 2.0:
                        last_log = now
                        log.warning(
                            "NATS server is not reachable at %r. Start `nats-server` or set `F8_NATS_URL`. retrying... (%s)",
                            url,
                            type(exc).__name__,
                        )
                    await asyncio.sleep(min(2.0, 0.2 * attempt))
            log.info("connected to NATS at %s", url)

    async def close(self) -> None:
        async with self._lock:
            nc = self._nc
            self._nc = None
            if nc is None:
                return
            try:
                await nc.drain()
            except Exception as exc:
                log.debug("nats drain failed during close", exc_info=exc)

    async def publish(self, subject: str, payload: bytes) -> None:
        nc = await self.require_client()
        await nc.publish(str(subject), bytes(payload))
