from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from .config import TrackerConfig
from .constants import EVENT_CAMERA_READY, EVENT_DETECTION, EVENT_FRAME_PREVIEW
from .frame_source import Frame, FrameSource
from .mapping import Detection, detection_from_match
from .matcher import MatchResult, ScoreSurface, match_template
from .preprocess import preprocess_frame
from .preview import encode_frame_b64
from .sink import HostSink
from .template import TemplatePatch

log = logging.getLogger(__name__)


class LoopHandle:
    """
    Cancellation handle of one loop instance.

    Once `cancel()` has been called the loop neither reschedules nor emits,
    even if an iteration was suspended mid-emit.
    """

    def __init__(self, name: str) -> None:
        self.name = str(name)
        self.cancelled = False
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done() and not self.cancelled

    def bind(self, task: asyncio.Task[None]) -> None:
        self._task = task

    def cancel(self) -> None:
        self.cancelled = True
        t = self._task
        if t is not None and not t.done():
            t.cancel()

    async def wait(self) -> None:
        t = self._task
        if t is None:
            return
        await asyncio.gather(t, return_exceptions=True)


class _CadenceLoop:
    name = "loop"

    def __init__(self, *, source: FrameSource, sink: HostSink, config: TrackerConfig) -> None:
        self._source = source
        self._sink = sink
        self._config = config
        self.handle = LoopHandle(self.name)
        self.iterations = 0
        self.last_error = ""

    def start(self) -> LoopHandle:
        loop = asyncio.get_running_loop()
        self.handle.bind(loop.create_task(self._run(), name=f"foot_tracker:{self.name}"))
        return self.handle

    def cancel(self) -> None:
        self.handle.cancel()

    async def _emit(self, event: str, payload: Any) -> bool:
        if self.handle.cancelled:
            return False
        await self._sink.emit(event, payload)
        return True

    async def _fetch_frame(self) -> Frame | None:
        # A stalled read only holds up this loop; the event loop keeps running.
        frame = await asyncio.to_thread(self._source.current_frame)
        if frame is None or frame.width <= 0 or frame.height <= 0:
            return None
        return frame

    async def iterate(self) -> None:
        raise NotImplementedError

    async def _run(self) -> None:
        interval = self._config.interval_s
        while not self.handle.cancelled:
            try:
                await self.iterate()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self.last_error = f"{type(exc).__name__}: {exc}"
                log.warning("%s iteration failed", self.name, exc_info=exc)
            self.iterations += 1
            await asyncio.sleep(interval)


class PreviewLoop(_CadenceLoop):
    """
    Forwards every available frame to the host as an encoded preview.

    Emits `cameraReady` once, after the first preview of this instance.
    """

    name = "preview"

    def __init__(self, *, source: FrameSource, sink: HostSink, config: TrackerConfig) -> None:
        super().__init__(source=source, sink=sink, config=config)
        self.ready_sent = False
        self.frames_sent = 0

    async def iterate(self) -> None:
        frame = await self._fetch_frame()
        if frame is None:
            return
        cfg = self._config
        b64, meta = encode_frame_b64(
            frame.bgr,
            quality=cfg.preview_quality,
            max_width=cfg.preview_max_width,
            max_height=cfg.preview_max_height,
        )
        payload = {
            "b64": b64,
            **meta,
            "frameId": int(frame.frame_id),
            "tsMs": int(frame.ts_ms),
            "sourceWidth": frame.width,
            "sourceHeight": frame.height,
        }
        if not await self._emit(EVENT_FRAME_PREVIEW, payload):
            return
        self.frames_sent += 1
        if not self.ready_sent:
            self.ready_sent = True
            await self._emit(
                EVENT_CAMERA_READY,
                {"sourceId": str(self._source.source_id), "width": frame.width, "height": frame.height},
            )


class TrackingLoop(_CadenceLoop):
    """
    Per tick: frame -> preprocess -> match -> threshold -> map -> emit.

    The template is read once per iteration through `template_provider`, so
    a concurrent capture swaps it between iterations, never within one.
    """

    name = "tracking"

    def __init__(
        self,
        *,
        source: FrameSource,
        sink: HostSink,
        config: TrackerConfig,
        template_provider: Callable[[], TemplatePatch | None],
        surface: ScoreSurface,
    ) -> None:
        super().__init__(source=source, sink=sink, config=config)
        self._template_provider = template_provider
        self._surface = surface
        self.last_match: MatchResult | None = None
        self.last_detection: Detection | None = None
        self.detections_sent = 0

    async def iterate(self) -> None:
        template = self._template_provider()
        if template is None:
            return
        frame = await self._fetch_frame()
        if frame is None:
            return

        reduced = preprocess_frame(frame.bgr, template.scale)
        match = match_template(reduced, template.reduced, self._surface)

        detection = None
        if match is not None:
            detection = detection_from_match(
                match,
                threshold=self._config.match_threshold,
                template_dims=(template.reduced_width, template.reduced_height),
                scale=template.scale,
                frame_dims=(frame.width, frame.height),
                frame_id=frame.frame_id,
                ts_ms=frame.ts_ms,
            )
        self.last_match = match

        if detection is not None:
            self.last_detection = detection
            if await self._emit(EVENT_DETECTION, detection.to_payload()):
                self.detections_sent += 1
