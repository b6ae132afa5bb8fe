from __future__ import annotations

from .fake_source import ScriptedFrameSource, solid_frame, textured_frame
from .in_memory_transport import InMemoryCluster, InMemoryTransport

__all__ = [
    "InMemoryCluster",
    "InMemoryTransport",
    "ScriptedFrameSource",
    "solid_frame",
    "textured_frame",
]
