from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from ..codec import decode_event


def _match_pattern(pattern: str, key: str) -> bool:
    if pattern == key:
        return True
    if pattern.endswith(">"):
        return key.startswith(pattern[:-1])
    return False


@dataclass
class InMemoryCluster:
    subs: list[tuple[str, Callable[[str, bytes], Awaitable[None]]]] = field(default_factory=list)
    published: list[tuple[str, bytes]] = field(default_factory=list)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    async def publish(self, subject: str, payload: bytes) -> None:
        async with self.lock:
            self.published.append((str(subject), bytes(payload)))
            callbacks = [cb for pattern, cb in self.subs if _match_pattern(pattern, subject)]
        for cb in callbacks:
            await cb(str(subject), bytes(payload))

    def subscribe(self, pattern: str, cb: Callable[[str, bytes], Awaitable[None]]) -> None:
        self.subs.append((str(pattern), cb))


class InMemoryTransport:
    """
    In-memory stand-in for `NatsTransport` in async tests.

    Records every published message; `events()` decodes the ones published
    on event subjects.
    """

    def __init__(self, *, cluster: InMemoryCluster | None = None) -> None:
        self._cluster = cluster or InMemoryCluster()

    @property
    def cluster(self) -> InMemoryCluster:
        return self._cluster

    async def close(self) -> None:
        return None

    async def publish(self, subject: str, payload: bytes) -> None:
        await self._cluster.publish(str(subject), bytes(payload))

    def events(self, name: str | None = None) -> list[tuple[str, Any]]:
        """
        Decoded (event, payload) pairs in publish order, optionally filtered by name.
        """
        out: list[tuple[str, Any]] = []
        for subject, raw in self._cluster.published:
            parts = subject.split(".")
            if len(parts) < 4 or parts[2] != "events":
                continue
            if name is not None and parts[3] != name:
                continue
            out.append((parts[3], decode_event(raw)))
        return out
