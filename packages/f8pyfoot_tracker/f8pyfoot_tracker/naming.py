from __future__ import annotations

import uuid


def ensure_token(value: str, *, label: str) -> str:
    """
    Ensure a string is safe to use as a single NATS subject token.

    "." separates tokens in every subject, so ids must not contain it.
    """
    value = str(value).strip()
    if not value:
        raise ValueError(f"{label} must be non-empty")
    if "." in value or "*" in value or ">" in value or " " in value:
        raise ValueError(f"{label} must be a single subject token (got {value!r}).")
    return value


def cmd_channel_subject(service_id: str) -> str:
    """
    Command channel for a tracker instance.

    Requests carry a JSON envelope (reqId/call/args/meta).
    """
    service_id = ensure_token(service_id, label="service_id")
    return f"svc.{service_id}.cmd"


def event_subject(service_id: str, event: str) -> str:
    """
    Subject a host subscribes to for one named event (msgpack payload).
    """
    service_id = ensure_token(service_id, label="service_id")
    event = ensure_token(event, label="event")
    return f"svc.{service_id}.events.{event}"


def svc_micro_name(service_id: str) -> str:
    """
    NATS micro service name; micro names cannot contain "." either.
    """
    return f"svc_{ensure_token(service_id, label='service_id')}"


def new_id() -> str:
    return uuid.uuid4().hex
