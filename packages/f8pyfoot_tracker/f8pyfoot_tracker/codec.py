from __future__ import annotations

import json
from typing import Any

import msgpack


def encode_event(obj: Any) -> bytes:
    """
    Encode an event payload (dict or list) into MsgPack bytes.

    Raises:
        TypeError: if payload is neither a dict nor a list.
        ValueError: if encoding fails.
    """
    if not isinstance(obj, (dict, list)):
        raise TypeError("event payload must be a dict or list")
    try:
        return msgpack.packb(obj, use_bin_type=True)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"msgpack encode failed: {exc}") from exc


def decode_event(raw: bytes) -> Any:
    """
    Decode MsgPack bytes produced by `encode_event`.

    Raises:
        ValueError: if bytes cannot be decoded.
    """
    if not raw:
        return {}
    try:
        return msgpack.unpackb(raw, raw=False, strict_map_key=False)
    except (TypeError, ValueError, msgpack.ExtraData, msgpack.FormatError, msgpack.StackError) as exc:
        raise ValueError(f"msgpack decode failed: {exc}") from exc


def parse_envelope(data: bytes, *, default_req_id: str) -> tuple[str, dict[str, Any], dict[str, Any], dict[str, Any]]:
    """
    Parse a JSON command envelope into (reqId, raw, args, meta).

    Malformed input yields empty dicts rather than an error.
    """
    req: Any = {}
    if data:
        try:
            req = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            req = {}
    if not isinstance(req, dict):
        req = {}
    req_id = str(req.get("reqId") or "") or default_req_id
    args = req.get("args") if isinstance(req.get("args"), dict) else {}
    meta = req.get("meta") if isinstance(req.get("meta"), dict) else {}
    return req_id, req, dict(args), dict(meta)


def encode_reply(*, req_id: str, ok: bool, result: Any = None, error: dict[str, Any] | None = None) -> bytes:
    payload = {"reqId": req_id, "ok": bool(ok), "result": result if ok else None, "error": error if not ok else None}
    return json.dumps(payload, ensure_ascii=False, default=str).encode("utf-8")
