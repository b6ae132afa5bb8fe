from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import signal
from dataclasses import asdict

from .config import TrackerConfig
from .constants import COMMANDS, EVENTS, SERVICE_CLASS
from .frame_source import DeviceUnavailableError, OpenCvFrameSource
from .naming import cmd_channel_subject, event_subject
from .readiness import RuntimeNotReadyError
from .service import FootTrackerService
from .session import TrackingSession
from .sink import HostSink
from .transport import NatsTransport, NatsTransportConfig

log = logging.getLogger(__name__)


def _env_or(default: str, key: str) -> str:
    v = os.environ.get(key)
    return v.strip() if v and v.strip() else default


def build_service(*, service_id: str, transport: NatsTransport, config: TrackerConfig) -> FootTrackerService:
    sink = HostSink(transport, service_id=service_id)
    session = TrackingSession(
        source=OpenCvFrameSource(max_failed_reads=config.max_failed_reads),
        sink=sink,
        config=config,
    )
    return FootTrackerService(service_id=service_id, session=session)


async def start_initial_source(service: FootTrackerService, source_id: str) -> bool:
    """
    Start tracking `source_id` at boot; on failure keep serving commands.
    """
    try:
        await service.session.start_tracking(source_id)
    except (DeviceUnavailableError, RuntimeNotReadyError) as exc:
        log.error("could not start source %s: %s", source_id, exc)
        return False
    return True


async def run_forever(*, service_id: str, nats_url: str, config: TrackerConfig, source_id: str = "") -> None:
    transport = NatsTransport(NatsTransportConfig(url=nats_url))
    service = build_service(service_id=service_id, transport=transport, config=config)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, service.request_terminate)
        except (NotImplementedError, RuntimeError):
            pass

    try:
        nc = await transport.require_client()
        await service.start_endpoints(nc)
        await service.announce_sources()
        log.info("%s ready serviceId=%s nats=%s", SERVICE_CLASS, service_id, nats_url)
        if source_id:
            await start_initial_source(service, source_id)
        await service.wait_terminate()
    finally:
        await service.close()
        await transport.close()


def describe_json(service_id: str, config: TrackerConfig) -> dict[str, object]:
    out: dict[str, object] = {
        "serviceClass": SERVICE_CLASS,
        "commands": list(COMMANDS),
        "events": list(EVENTS),
        "config": asdict(config),
    }
    if service_id:
        out["commandSubject"] = cmd_channel_subject(service_id)
        out["eventSubjects"] = {e: event_subject(service_id, e) for e in EVENTS}
    return out


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=SERVICE_CLASS)
    parser.add_argument("--describe", action="store_true", help="Output the service description in JSON format")
    parser.add_argument("--service-id", default=_env_or("", "F8_SERVICE_ID"), help="Service instance id (required)")
    parser.add_argument("--nats-url", default=_env_or("nats://127.0.0.1:4222", "F8_NATS_URL"), help="NATS server URL")
    parser.add_argument("--source", default=_env_or("", "F8_FOOT_SOURCE"), help="Start tracking this source id right away")
    parser.add_argument("--log-level", default=_env_or("INFO", "F8_LOG_LEVEL"), help="Logging level")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(levelname)s:%(name)s:%(message)s",
    )
    config = TrackerConfig.from_env()
    service_id = str(args.service_id or "").strip()

    if args.describe:
        print(json.dumps(describe_json(service_id, config), ensure_ascii=False, indent=1))
        return 0

    if not service_id:
        raise SystemExit("Missing --service-id (or env F8_SERVICE_ID)")

    asyncio.run(
        run_forever(
            service_id=service_id,
            nats_url=str(args.nats_url).strip(),
            config=config,
            source_id=str(args.source or "").strip(),
        )
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
