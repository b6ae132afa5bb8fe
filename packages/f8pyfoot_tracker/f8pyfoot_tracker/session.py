from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from .config import TrackerConfig
from .frame_source import FrameSource, SourceInfo, list_sources
from .loops import PreviewLoop, TrackingLoop
from .matcher import ScoreSurface
from .readiness import opencv_ready, wait_runtime_ready
from .sink import HostSink
from .template import TemplatePatch, capture_template

log = logging.getLogger(__name__)


class TrackingSession:
    """
    Single owner of the tracking state of one host connection.

    Holds the active frame source, the current template, the reusable score
    surface and the two loop instances. All mutation happens on the event
    loop thread; the loops only ever read the template reference.
    """

    def __init__(
        self,
        *,
        source: FrameSource,
        sink: HostSink,
        config: TrackerConfig | None = None,
        ready_probe: Callable[[], bool] = opencv_ready,
        source_lister: Callable[[], list[SourceInfo]] | None = None,
    ) -> None:
        self._source = source
        self._sink = sink
        self._config = config or TrackerConfig()
        self._ready_probe = ready_probe
        self._source_lister = source_lister
        self._template: TemplatePatch | None = None
        self._surface = ScoreSurface()
        self._preview: PreviewLoop | None = None
        self._tracking: TrackingLoop | None = None
        self._start_lock = asyncio.Lock()
        self._generation = 0
        self._closed = False

    # ---- read-only views -------------------------------------------------
    @property
    def config(self) -> TrackerConfig:
        return self._config

    @property
    def source(self) -> FrameSource:
        return self._source

    @property
    def sink(self) -> HostSink:
        return self._sink

    @property
    def template(self) -> TemplatePatch | None:
        return self._template

    @property
    def surface(self) -> ScoreSurface:
        return self._surface

    @property
    def preview_loop(self) -> PreviewLoop | None:
        return self._preview

    @property
    def tracking_loop(self) -> TrackingLoop | None:
        return self._tracking

    @property
    def camera_ready(self) -> bool:
        return self._preview is not None and self._preview.ready_sent

    def _current_template(self) -> TemplatePatch | None:
        return self._template

    # ---- commands --------------------------------------------------------
    async def list_sources(self) -> list[SourceInfo]:
        if self._source_lister is not None:
            return await asyncio.to_thread(self._source_lister)
        return await asyncio.to_thread(list_sources, max_index=self._config.probe_max_index)

    async def start_tracking(self, source_id: str) -> dict[str, Any]:
        """
        Switch to `source_id` and start previewing it.

        Both loops are cancelled before the source is reopened. The tracking
        loop stays idle until the next template capture. Raises
        `DeviceUnavailableError` if the source cannot be opened.
        """
        sid = str(source_id or "").strip()
        if not sid:
            raise ValueError("missing sourceId")
        async with self._start_lock:
            self._generation += 1
            await self.cancel_loops()
            await wait_runtime_ready(
                self._ready_probe,
                interval_s=float(self._config.ready_poll_ms) / 1000.0,
                timeout_s=self._config.ready_timeout_s,
            )
            await asyncio.to_thread(self._source.open, sid)
            self._closed = False
            self._preview = PreviewLoop(source=self._source, sink=self._sink, config=self._config)
            self._preview.start()
            log.info("tracking session started on source %s", sid)
        return {"sourceId": sid, "preview": True, "tracking": False}

    async def capture_template(self) -> TemplatePatch | None:
        """
        Capture a new template from the center of the current frame.

        Returns None, with no state change, if no usable frame is available
        or a source switch is in progress. On success the template is swapped
        in whole and the tracking loop is restarted; the preview loop is not
        touched.
        """
        if self._start_lock.locked() or not self._source.is_open:
            return None
        generation = self._generation
        frame = await asyncio.to_thread(self._source.current_frame)
        if self._start_lock.locked() or generation != self._generation:
            log.debug("template capture dropped: source switched meanwhile")
            return None
        patch = capture_template(frame, size=self._config.template_size, scale=self._config.scale)
        if patch is None:
            log.debug("template capture skipped: no usable frame")
            return None
        self._template = patch
        self._restart_tracking()
        return patch

    def _restart_tracking(self) -> None:
        if self._tracking is not None:
            self._tracking.cancel()
        self._tracking = TrackingLoop(
            source=self._source,
            sink=self._sink,
            config=self._config,
            template_provider=self._current_template,
            surface=self._surface,
        )
        self._tracking.start()

    async def cancel_loops(self) -> None:
        loops = [lp for lp in (self._preview, self._tracking) if lp is not None]
        for lp in loops:
            lp.cancel()
        for lp in loops:
            await lp.handle.wait()
        self._preview = None
        self._tracking = None

    async def stop(self) -> None:
        async with self._start_lock:
            self._generation += 1
            await self.cancel_loops()
            await asyncio.to_thread(self._source.close)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.stop()

    def status(self) -> dict[str, Any]:
        tpl = self._template
        last_match = self._tracking.last_match if self._tracking is not None else None
        errors = [lp.last_error for lp in (self._preview, self._tracking) if lp is not None and lp.last_error]
        return {
            "sourceId": str(self._source.source_id or ""),
            "sourceOpen": bool(self._source.is_open),
            "cameraReady": self.camera_ready,
            "previewRunning": bool(self._preview is not None and self._preview.handle.running),
            "trackingRunning": bool(self._tracking is not None and self._tracking.handle.running),
            "template": tpl.describe() if tpl is not None else None,
            "scoreSurface": list(self._surface.shape) if self._surface.shape is not None else None,
            "lastScore": float(last_match.score) if last_match is not None else None,
            "lastError": errors[-1] if errors else "",
        }
