"""Short-lived WebSocket RPC client for the chat gateway.

Each call opens its own connection and walks a fixed state machine::

    CONNECTING -> AUTHENTICATING -> AWAITING_RESPONSE -> CLOSED

1. Connect to the gateway (``http`` -> ``ws``, ``https`` -> ``wss``).
2. Send a ``connect`` request carrying the protocol version, client
   identity and bearer token; wait up to ``min(timeout, 15s)``.
3. Send the caller's method request; wait up to the full timeout.
4. Close the socket and return an :class:`RpcResult`.

An independent deadline armed at call start force-closes the socket and
returns ``"Connection timeout"``.  Every path out of the machine goes
through ``_finish``, which only succeeds once, so a call produces exactly
one result.  Nothing is raised past ``GatewayCall.run``.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import re
from typing import Any

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from . import rpc
from .log_setup import redact
from .models import (
    ChatHistoryResult,
    ClientInfo,
    ConnectParams,
    RpcResponse,
    RpcResult,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 30_000
HANDSHAKE_TIMEOUT_CAP_MS = 15_000
MIN_REQUEST_TIMEOUT_MS = 1_000
MAX_HISTORY_LIMIT = 1000
DEFAULT_HISTORY_LIMIT = MAX_HISTORY_LIMIT
MAX_FRAME_BYTES = 16 * 1024 * 1024
CLOSE_TIMEOUT = 2.0  # seconds


class CallState(enum.Enum):
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    AWAITING_RESPONSE = "awaiting_response"
    CLOSED = "closed"


_TRANSITIONS: dict[CallState, frozenset[CallState]] = {
    CallState.CONNECTING: frozenset({CallState.AUTHENTICATING, CallState.CLOSED}),
    CallState.AUTHENTICATING: frozenset({CallState.AWAITING_RESPONSE, CallState.CLOSED}),
    CallState.AWAITING_RESPONSE: frozenset({CallState.CLOSED}),
    CallState.CLOSED: frozenset(),
}


class RequestTimeout(Exception):
    """A single correlated request went unanswered for too long."""


def normalize_gateway_ws_url(gateway_url: str) -> str:
    url = re.sub(r"^http:", "ws:", gateway_url.strip())
    url = re.sub(r"^https:", "wss:", url)
    return url[:-1] if url.endswith("/") else url


class GatewayCall:
    """One authenticated request/response exchange with the gateway."""

    def __init__(
        self,
        gateway_url: str,
        token: str,
        method: str,
        params: Any = None,
        *,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        client: ClientInfo | None = None,
    ) -> None:
        self._url = normalize_gateway_ws_url(gateway_url)
        self._token = token
        self._method = method
        self._params = params
        self._timeout_ms = timeout_ms
        self._client = client or ClientInfo()
        self._state = CallState.CONNECTING
        self._pending: dict[str, asyncio.Future[RpcResponse]] = {}
        self._result: asyncio.Future[RpcResult] | None = None
        self._ws: ClientConnection | None = None

    @property
    def state(self) -> CallState:
        return self._state

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # ------------------------------------------------------------------
    # State handling
    # ------------------------------------------------------------------

    def _transition(self, target: CallState) -> bool:
        if target not in _TRANSITIONS[self._state]:
            return False
        logger.debug("Gateway call %s: %s -> %s", self._method, self._state.value, target.value)
        self._state = target
        return True

    def _finish(self, result: RpcResult) -> bool:
        """Publish the terminal result.  Returns False if one already exists."""
        if not self._transition(CallState.CLOSED):
            return False
        for fut in self._pending.values():
            if not fut.done():
                fut.cancel()
        self._pending.clear()
        if self._result is not None and not self._result.done():
            self._result.set_result(result)
        if not result.ok:
            logger.debug("Gateway call %s failed: %s", self._method, result.error)
        return True

    def _on_deadline(self) -> None:
        self._finish(RpcResult.failure("Connection timeout"))

    # ------------------------------------------------------------------
    # Public entry
    # ------------------------------------------------------------------

    async def run(self) -> RpcResult:
        loop = asyncio.get_running_loop()
        self._result = loop.create_future()
        deadline = loop.call_later(self._timeout_ms / 1000, self._on_deadline)
        driver = asyncio.create_task(self._drive())
        try:
            return await self._result
        finally:
            deadline.cancel()
            if not driver.done():
                driver.cancel()
            await asyncio.gather(driver, return_exceptions=True)
            await self._close_channel()

    # ------------------------------------------------------------------
    # Exchange
    # ------------------------------------------------------------------

    async def _drive(self) -> None:
        logger.debug("Connecting to gateway: %s (method=%s)", self._url, self._method)
        try:
            self._ws = await connect(
                self._url,
                open_timeout=self._timeout_ms / 1000,
                close_timeout=CLOSE_TIMEOUT,
                ping_interval=None,
                max_size=MAX_FRAME_BYTES,
            )
        except (OSError, TimeoutError, ValueError, WebSocketException) as exc:
            self._finish(RpcResult.failure(f"Failed to connect: {exc}"))
            return

        if not self._transition(CallState.AUTHENTICATING):
            return

        reader = asyncio.create_task(self._read_loop())
        try:
            await self._exchange()
        except RequestTimeout as exc:
            self._finish(RpcResult.failure(f"RPC error: {exc}"))
        except ConnectionClosed:
            self._finish(RpcResult.failure("Connection closed before completing"))
        except (OSError, WebSocketException) as exc:
            self._finish(RpcResult.failure(f"WebSocket error: {exc}"))
        finally:
            reader.cancel()
            await asyncio.gather(reader, return_exceptions=True)

    async def _exchange(self) -> None:
        handshake = ConnectParams(client=self._client, auth={"token": self._token})
        connect_res = await self._request(
            "connect",
            handshake.model_dump(),
            min(self._timeout_ms, HANDSHAKE_TIMEOUT_CAP_MS),
        )
        if not connect_res.ok:
            message = connect_res.error.message if connect_res.error else None
            self._finish(RpcResult.failure(message or "Authentication failed"))
            return

        if not self._transition(CallState.AWAITING_RESPONSE):
            return

        res = await self._request(self._method, self._params, self._timeout_ms)
        if not res.ok:
            message = (res.error.message if res.error else None) or f"{self._method} failed"
            details = res.error.model_dump_json(exclude_none=True) if res.error else None
            logger.debug("Gateway error response for %s: %s %s", self._method, message, details)
            self._finish(RpcResult.failure(message, details))
            return
        self._finish(RpcResult.success(res.payload))

    async def _request(self, method: str, params: Any, timeout_ms: int) -> RpcResponse:
        assert self._ws is not None
        req = rpc.build_request(method, params)
        fut: asyncio.Future[RpcResponse] = asyncio.get_running_loop().create_future()
        self._pending[req.id] = fut
        try:
            frame = rpc.encode(req)
            logger.debug("-> %s", redact(frame))
            await self._ws.send(frame)
            return await asyncio.wait_for(
                fut, timeout=max(MIN_REQUEST_TIMEOUT_MS, timeout_ms) / 1000
            )
        except asyncio.TimeoutError:
            raise RequestTimeout(f"Request timeout for {method}") from None
        finally:
            self._pending.pop(req.id, None)

    async def _read_loop(self) -> None:
        assert self._ws is not None
        try:
            async for raw in self._ws:
                self._dispatch(raw)
        except ConnectionClosed:
            pass
        except (OSError, WebSocketException) as exc:
            self._finish(RpcResult.failure(f"WebSocket error: {exc}"))
            return
        self._finish(RpcResult.failure("Connection closed before completing"))

    def _dispatch(self, raw: str | bytes) -> None:
        frame = rpc.parse_frame(raw)
        if not isinstance(frame, RpcResponse):
            return
        fut = self._pending.pop(frame.id, None)
        if fut is not None and not fut.done():
            fut.set_result(frame)

    async def _close_channel(self) -> None:
        ws, self._ws = self._ws, None
        if ws is None:
            return
        try:
            await ws.close()
        except (OSError, WebSocketException) as exc:
            logger.debug("Error closing gateway socket: %s", exc)


# ---------------------------------------------------------------------------
# Convenience wrappers
# ---------------------------------------------------------------------------


async def gateway_rpc(
    gateway_url: str,
    token: str,
    method: str,
    params: Any = None,
    *,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
) -> RpcResult:
    """Open a connection, authenticate, call *method*, close."""
    return await GatewayCall(
        gateway_url, token, method, params, timeout_ms=timeout_ms
    ).run()


def clamp_history_limit(raw: Any) -> int:
    """Map a user-supplied limit onto ``1..MAX_HISTORY_LIMIT``."""
    try:
        limit = int(raw)
    except (TypeError, ValueError):
        return DEFAULT_HISTORY_LIMIT
    if limit <= 0:
        return DEFAULT_HISTORY_LIMIT
    return min(MAX_HISTORY_LIMIT, limit)


async def fetch_chat_history(
    gateway_url: str,
    token: str,
    session_key: str,
    limit: int = DEFAULT_HISTORY_LIMIT,
) -> ChatHistoryResult:
    """Fetch the messages of one session via ``chat.history``."""
    result = await gateway_rpc(
        gateway_url,
        token,
        "chat.history",
        {"sessionKey": session_key, "limit": clamp_history_limit(limit)},
    )
    if not result.ok:
        return ChatHistoryResult(ok=False, error=result.error)

    payload = result.payload if isinstance(result.payload, dict) else {}
    messages = payload.get("messages")
    return ChatHistoryResult(ok=True, messages=messages if isinstance(messages, list) else [])


def build_session_key(user_id: str, agent_id: str = "main") -> str:
    """Session key understood by the gateway's OpenAI-compatible endpoint."""
    return f"agent:{agent_id}:openai-user:{user_id}"
