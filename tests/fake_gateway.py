from __future__ import annotations

import asyncio
import contextlib
import json
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from websockets.asyncio.server import ServerConnection, serve
from websockets.exceptions import ConnectionClosed

MethodReply = dict[str, Any] | Callable[[dict[str, Any], ServerConnection], Awaitable[dict[str, Any] | None]]


class FakeGateway:
    """In-process stand-in for the chat gateway's WebSocket endpoint.

    ``handshake`` controls how ``connect`` is answered:
      "ok"     — accept when the token matches, reject otherwise
      "silent" — never answer
      "close"  — close the socket instead of answering
    ``methods`` maps a method name to a reply dict (merged into the ``res``
    frame) or an async callable returning one; ``None`` means no answer.
    """

    def __init__(
        self,
        *,
        token: str = "secret",
        handshake: str = "ok",
        handshake_error: dict[str, Any] | None = None,
        methods: dict[str, MethodReply] | None = None,
        close_after_auth: bool = False,
    ) -> None:
        self.token = token
        self.handshake = handshake
        self.handshake_error = handshake_error
        self.methods = methods or {}
        self.close_after_auth = close_after_auth
        self.requests: list[dict[str, Any]] = []
        self.connections: list[ServerConnection] = []

    def methods_called(self) -> list[str]:
        return [r["method"] for r in self.requests]

    async def _send(self, ws: ServerConnection, frame: dict[str, Any]) -> None:
        try:
            await ws.send(json.dumps(frame))
        except ConnectionClosed:
            pass

    async def handler(self, ws: ServerConnection) -> None:
        self.connections.append(ws)
        try:
            async for raw in ws:
                msg = json.loads(raw)
                self.requests.append(msg)
                if msg.get("method") == "connect":
                    await self._answer_connect(ws, msg)
                    if self.close_after_auth:
                        await ws.close()
                        return
                    continue
                await self._answer_method(ws, msg)
        except ConnectionClosed:
            pass
        finally:
            self.connections.remove(ws)

    async def _answer_connect(self, ws: ServerConnection, msg: dict[str, Any]) -> None:
        if self.handshake == "silent":
            return
        if self.handshake == "close":
            await ws.close()
            return
        ok = msg["params"]["auth"]["token"] == self.token
        frame: dict[str, Any] = {"type": "res", "id": msg["id"], "ok": ok}
        if not ok:
            frame["error"] = self.handshake_error if self.handshake_error is not None else {
                "code": "UNAUTHORIZED",
                "message": "invalid token",
            }
        else:
            frame["payload"] = {"type": "hello-ok", "protocol": 3}
        await self._send(ws, frame)

    async def _answer_method(self, ws: ServerConnection, msg: dict[str, Any]) -> None:
        reply = self.methods.get(msg["method"])
        if reply is None:
            return
        if callable(reply):
            reply = await reply(msg, ws)
            if reply is None:
                return
        await self._send(ws, {"type": "res", "id": msg["id"], **reply})


@contextlib.asynccontextmanager
async def running_gateway(gateway: FakeGateway) -> AsyncIterator[str]:
    """Serve *gateway* on a free localhost port and yield its http:// URL."""
    async with serve(gateway.handler, "127.0.0.1", 0) as server:
        port = next(iter(server.sockets)).getsockname()[1]
        yield f"http://127.0.0.1:{port}/"


def run(coro: Awaitable[Any]) -> Any:
    return asyncio.run(coro)  # type: ignore[arg-type]
