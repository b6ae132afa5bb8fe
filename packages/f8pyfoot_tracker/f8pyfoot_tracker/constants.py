from __future__ import annotations

SERVICE_CLASS = "f8.foot.tracker"

DETECTION_SCHEMA_VERSION = "f8footDetection/1"

# Host-facing event names.
EVENT_CAMERA_LIST = "cameraList"
EVENT_CAMERA_READY = "cameraReady"
EVENT_FRAME_PREVIEW = "framePreview"
EVENT_DETECTION = "detection"

# Command names accepted on the service command channel.
CMD_LIST_SOURCES = "listSources"
CMD_START_TRACKING = "startTracking"
CMD_CAPTURE_TEMPLATE = "captureTemplate"
CMD_STOP_TRACKING = "stopTracking"
CMD_STATUS = "status"

DEFAULT_TEMPLATE_SIZE = 100
DEFAULT_SCALE = 0.5
DEFAULT_MATCH_THRESHOLD = 0.8
DEFAULT_REFRESH_HZ = 60.0
DEFAULT_READY_POLL_MS = 100
DEFAULT_MAX_FAILED_READS = 30
DEFAULT_PREVIEW_QUALITY = 80
DEFAULT_PREVIEW_MAX_WIDTH = 640
DEFAULT_PREVIEW_MAX_HEIGHT = 480
DEFAULT_PROBE_MAX_INDEX = 8

COMMANDS = (CMD_LIST_SOURCES, CMD_START_TRACKING, CMD_CAPTURE_TEMPLATE, CMD_STOP_TRACKING, CMD_STATUS)
EVENTS = (EVENT_CAMERA_LIST, EVENT_CAMERA_READY, EVENT_FRAME_PREVIEW, EVENT_DETECTION)
