"""Gateway frame helpers — build and parse ``req``/``res``/``event`` frames."""

from __future__ import annotations

import json
from typing import Any
from uuid import uuid4

from pydantic import ValidationError

from .models import GatewayFrame, RpcEvent, RpcRequest, RpcResponse

# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def new_request_id() -> str:
    return str(uuid4())


def build_request(
    method: str,
    params: Any = None,
    *,
    request_id: str | None = None,
) -> RpcRequest:
    """Create a correlated request with a fresh id unless one is given."""
    return RpcRequest(id=request_id or new_request_id(), method=method, params=params)


def encode(frame: GatewayFrame) -> str:
    return frame.model_dump_json(exclude_none=True)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _as_text(raw: str | bytes | bytearray | memoryview) -> str:
    if isinstance(raw, str):
        return raw
    return bytes(raw).decode("utf-8")


def parse_frame(raw: str | bytes | bytearray | memoryview) -> GatewayFrame | None:
    """Decode one incoming frame.

    Returns ``None`` for anything that is not a well-formed frame: invalid
    JSON or UTF-8, an unknown ``type``, or a ``res`` without an ``id``.
    """
    try:
        data = json.loads(_as_text(raw))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    if not isinstance(data, dict):
        return None

    try:
        match data.get("type"):
            case "res":
                if not data.get("id"):
                    return None
                return RpcResponse.model_validate(data)
            case "event":
                return RpcEvent.model_validate(data)
            case "req":
                return RpcRequest.model_validate(data)
            case _:
                return None
    except ValidationError:
        return None
