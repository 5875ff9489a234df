"""Pydantic models for the gateway wire protocol and bridge results."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

PROTOCOL_VERSION = 3


# ---------------------------------------------------------------------------
# Wire frames
# ---------------------------------------------------------------------------


class RpcError(BaseModel):
    """Error object carried by a failed ``res`` frame."""

    model_config = ConfigDict(extra="allow")

    code: str | int | None = None
    message: str | None = None

    @field_validator("code", mode="before")
    @classmethod
    def _scalar_code(cls, v: Any) -> Any:
        if v is None or isinstance(v, (str, int)):
            return v
        return str(v)

    @field_validator("message", mode="before")
    @classmethod
    def _text_message(cls, v: Any) -> str | None:
        if v is None or isinstance(v, str):
            return v
        return str(v)


class RpcRequest(BaseModel):
    """``req`` frame: a correlated call that expects exactly one ``res``."""

    type: Literal["req"] = "req"
    id: str
    method: str
    params: Any = None


class RpcResponse(BaseModel):
    """``res`` frame answering the ``req`` with the same ``id``."""

    model_config = ConfigDict(extra="allow")

    type: Literal["res"] = "res"
    id: str
    ok: bool = False
    payload: Any = None
    error: RpcError | None = None

    @field_validator("error", mode="before")
    @classmethod
    def _error_object(cls, v: Any) -> Any:
        # Some gateway paths reply with a bare string; keep it as the message.
        if v is None or isinstance(v, (dict, RpcError)):
            return v
        return {"message": str(v)}


class RpcEvent(BaseModel):
    """``event`` frame: unsolicited push from the gateway, never correlated."""

    model_config = ConfigDict(extra="allow")

    type: Literal["event"] = "event"
    event: str | None = None
    payload: Any = None


GatewayFrame = RpcRequest | RpcResponse | RpcEvent


# ---------------------------------------------------------------------------
# Handshake
# ---------------------------------------------------------------------------


class ClientInfo(BaseModel):
    id: str = "gateway-client"
    version: str = "1.0.0"
    platform: str = "server"
    mode: str = "backend"


class ConnectParams(BaseModel):
    minProtocol: int = PROTOCOL_VERSION
    maxProtocol: int = PROTOCOL_VERSION
    client: ClientInfo = Field(default_factory=ClientInfo)
    auth: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Results surfaced to callers
# ---------------------------------------------------------------------------


class RpcResult(BaseModel):
    """Terminal outcome of one gateway call; exactly one per call."""

    ok: bool
    payload: Any = None
    error: str | None = None
    details: str | None = None

    @classmethod
    def success(cls, payload: Any) -> RpcResult:
        return cls(ok=True, payload=payload)

    @classmethod
    def failure(cls, error: str, details: str | None = None) -> RpcResult:
        return cls(ok=False, error=error, details=details)


class ChatHistoryResult(BaseModel):
    ok: bool
    messages: list[Any] = Field(default_factory=list)
    error: str | None = None


class GatewayTarget(BaseModel):
    """Resolved endpoint for one call; computed fresh, never persisted."""

    gateway_url: str
    token: str
    overridden: bool = False


class WhatsAppDebug(BaseModel):
    """Snapshot of the WhatsApp channel as reported by ``channels.status``."""

    at: str
    channel: Any = None
    account: Any = None
    error: str | None = None


class OwnerOnlyResult(BaseModel):
    ok: bool
    applied: bool
    ownerE164: str | None = None
    accountId: str | None = None
    error: str | None = None


class LoginWaitResult(BaseModel):
    """Outcome of waiting for a WhatsApp QR login to complete.

    ``retryable`` marks failures caused by the gateway restarting (it does
    so after every config patch), where asking again shortly is expected
    to succeed.
    """

    ok: bool
    connected: bool = False
    message: str | None = None
    retryable: bool = False
    error: str | None = None
    details: str | None = None
    access: OwnerOnlyResult | None = None
    debug: WhatsAppDebug | None = None
