from __future__ import annotations

from .config import TrackerConfig
from .constants import DETECTION_SCHEMA_VERSION, SERVICE_CLASS
from .frame_source import DeviceUnavailableError, Frame, FrameSource, OpenCvFrameSource, SourceInfo
from .readiness import RuntimeNotReadyError
from .service import FootTrackerService
from .session import TrackingSession

__all__ = [
    "DETECTION_SCHEMA_VERSION",
    "SERVICE_CLASS",
    "DeviceUnavailableError",
    "FootTrackerService",
    "Frame",
    "FrameSource",
    "OpenCvFrameSource",
    "RuntimeNotReadyError",
    "SourceInfo",
    "TrackerConfig",
    "TrackingSession",
]
