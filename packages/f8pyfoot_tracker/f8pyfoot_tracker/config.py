from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Any, Mapping

from .constants import (
    DEFAULT_MAX_FAILED_READS,
    DEFAULT_MATCH_THRESHOLD,
    DEFAULT_PREVIEW_MAX_HEIGHT,
    DEFAULT_PREVIEW_MAX_WIDTH,
    DEFAULT_PREVIEW_QUALITY,
    DEFAULT_PROBE_MAX_INDEX,
    DEFAULT_READY_POLL_MS,
    DEFAULT_REFRESH_HZ,
    DEFAULT_SCALE,
    DEFAULT_TEMPLATE_SIZE,
)

ENV_PREFIX = "F8_FOOT_"


def _coerce_int(v: Any, *, default: int, minimum: int | None = None, maximum: int | None = None) -> int:
    try:
        out = int(v)
    except (TypeError, ValueError):
        out = int(default)
    if minimum is not None and out < minimum:
        out = int(minimum)
    if maximum is not None and out > maximum:
        out = int(maximum)
    return out


def _coerce_float(v: Any, *, default: float, minimum: float | None = None, maximum: float | None = None) -> float:
    try:
        out = float(v)
    except (TypeError, ValueError):
        out = float(default)
    if out != out:
        out = float(default)
    if minimum is not None and out < minimum:
        out = float(minimum)
    if maximum is not None and out > maximum:
        out = float(maximum)
    return out


def _coerce_str(v: Any, *, default: str = "") -> str:
    if v is None:
        return str(default)
    s = str(v).strip()
    return s if s else str(default)


@dataclass(frozen=True)
class TrackerConfig:
    """
    Tunables for one tracking session.

    `template_size` is the side S of the captured square, `scale` the factor r
    applied to both template and frames before matching, `match_threshold`
    the score a match must strictly exceed to be reported.
    """

    template_size: int = DEFAULT_TEMPLATE_SIZE
    scale: float = DEFAULT_SCALE
    match_threshold: float = DEFAULT_MATCH_THRESHOLD
    refresh_hz: float = DEFAULT_REFRESH_HZ
    ready_poll_ms: int = DEFAULT_READY_POLL_MS
    ready_timeout_ms: int = 0
    max_failed_reads: int = DEFAULT_MAX_FAILED_READS
    preview_quality: int = DEFAULT_PREVIEW_QUALITY
    preview_max_width: int = DEFAULT_PREVIEW_MAX_WIDTH
    preview_max_height: int = DEFAULT_PREVIEW_MAX_HEIGHT
    probe_max_index: int = DEFAULT_PROBE_MAX_INDEX

    @property
    def interval_s(self) -> float:
        return 1.0 / float(self.refresh_hz)

    @property
    def ready_timeout_s(self) -> float | None:
        if self.ready_timeout_ms <= 0:
            return None
        return float(self.ready_timeout_ms) / 1000.0

    @property
    def reduced_template_side(self) -> int:
        return int(self.template_size * self.scale)

    @classmethod
    def from_values(cls, values: Mapping[str, Any]) -> "TrackerConfig":
        """
        Build a config from loosely typed values (env strings, JSON args).

        Unknown keys are ignored; unparsable values fall back to defaults and
        everything is clamped to a sane range.
        """
        d = cls()
        cfg = cls(
            template_size=_coerce_int(values.get("template_size"), default=d.template_size, minimum=2, maximum=4096),
            scale=_coerce_float(values.get("scale"), default=d.scale, minimum=0.05, maximum=1.0),
            match_threshold=_coerce_float(values.get("match_threshold"), default=d.match_threshold, minimum=-1.0, maximum=1.0),
            refresh_hz=_coerce_float(values.get("refresh_hz"), default=d.refresh_hz, minimum=1.0, maximum=240.0),
            ready_poll_ms=_coerce_int(values.get("ready_poll_ms"), default=d.ready_poll_ms, minimum=1, maximum=10000),
            ready_timeout_ms=_coerce_int(values.get("ready_timeout_ms"), default=d.ready_timeout_ms, minimum=0),
            max_failed_reads=_coerce_int(values.get("max_failed_reads"), default=d.max_failed_reads, minimum=1, maximum=10000),
            preview_quality=_coerce_int(values.get("preview_quality"), default=d.preview_quality, minimum=1, maximum=100),
            preview_max_width=_coerce_int(values.get("preview_max_width"), default=d.preview_max_width, minimum=0, maximum=10000),
            preview_max_height=_coerce_int(values.get("preview_max_height"), default=d.preview_max_height, minimum=0, maximum=10000),
            probe_max_index=_coerce_int(values.get("probe_max_index"), default=d.probe_max_index, minimum=1, maximum=64),
        )
        if cfg.reduced_template_side < 1:
            cfg = replace(cfg, scale=d.scale)
        return cfg

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "TrackerConfig":
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for key, raw in env.items():
            if not key.startswith(ENV_PREFIX):
                continue
            name = key[len(ENV_PREFIX) :].lower()
            values[name] = _coerce_str(raw)
        return cls.from_values(values)
