"""FastAPI HTTP surface for gwbridge.

Every request resolves the gateway target fresh from the configured
instance and the local override, then runs one short-lived gateway call.
Endpoints:
  GET  /status                   — resolved gateway target (no credentials)
  GET  /history                  — sanitised chat history for a user
  POST /rpc                      — raw gateway method call
  GET  /channels/whatsapp/debug  — WhatsApp channel status snapshot
  POST /channels/whatsapp/secure — restrict WhatsApp DMs to the linked owner
  POST /channels/whatsapp/login/wait — wait for a QR login, then secure DMs
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import uvicorn
from fastapi import FastAPI, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .chat_sanitize import strip_envelope_from_messages
from .config import Config, GatewayOverride, load_gateway_override
from .models import GatewayTarget
from .target import resolve_gateway_target
from .whatsapp_guard import collect_whatsapp_debug, ensure_owner_only, wait_for_whatsapp_login
from .ws_client import (
    DEFAULT_HISTORY_LIMIT,
    build_session_key,
    clamp_history_limit,
    fetch_chat_history,
    gateway_rpc,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="gwbridge", version="0.1.0", docs_url=None, redoc_url=None)

_config = Config()
_override = GatewayOverride()


def configure(config: Config, override: GatewayOverride | None = None) -> None:
    """Install the instance config and gateway override used by the endpoints."""
    global _config, _override
    _config = config
    _override = override if override is not None else load_gateway_override()


class RpcBody(BaseModel):
    method: str
    params: Any = None
    timeoutMs: Optional[int] = Field(default=None, gt=0)


def _resolve_target() -> GatewayTarget | None:
    if not _config.instance_url.strip() and not _override.url:
        return None
    return resolve_gateway_target(
        _config.instance_url,
        _config.instance_token,
        _config.instance_id,
        _override,
    )


def _not_ready() -> JSONResponse:
    return JSONResponse({"error": "Instance not ready"}, status_code=400)


@app.get("/status")
async def get_status() -> JSONResponse:
    target = _resolve_target()
    return JSONResponse(
        {
            "instance_id": _config.instance_id,
            "ready": target is not None,
            "gateway_url": target.gateway_url if target else None,
            "overridden": target.overridden if target else False,
        }
    )


@app.get("/history")
async def get_history(
    limit: Optional[str] = Query(default=None),
    user_id: Optional[str] = Query(default=None),
) -> JSONResponse:
    target = _resolve_target()
    if target is None:
        return _not_ready()
    owner = (user_id or _config.user_id).strip()
    if not owner:
        return JSONResponse({"error": "user_id is required"}, status_code=400)

    result = await fetch_chat_history(
        target.gateway_url,
        target.token,
        build_session_key(owner, _config.agent_id),
        clamp_history_limit(limit) if limit is not None else DEFAULT_HISTORY_LIMIT,
    )
    if not result.ok:
        logger.error("[history] Gateway error: %s", result.error)
        return JSONResponse(
            {"error": "Failed to fetch history", "details": result.error},
            status_code=500,
        )
    return JSONResponse({"messages": strip_envelope_from_messages(result.messages)})


@app.post("/rpc")
async def post_rpc(body: RpcBody) -> JSONResponse:
    target = _resolve_target()
    if target is None:
        return _not_ready()
    result = await gateway_rpc(
        target.gateway_url,
        target.token,
        body.method,
        body.params if body.params is not None else {},
        timeout_ms=body.timeoutMs or _config.timeout_ms,
    )
    if not result.ok:
        content: dict[str, Any] = {"error": result.error}
        if result.details:
            content["details"] = result.details
        return JSONResponse(content, status_code=502)
    return JSONResponse({"ok": True, "payload": result.payload})


@app.get("/channels/whatsapp/debug")
async def get_whatsapp_debug() -> JSONResponse:
    target = _resolve_target()
    if target is None:
        return _not_ready()
    debug = await collect_whatsapp_debug(target.gateway_url, target.token)
    return JSONResponse(debug.model_dump(exclude_none=True))


@app.post("/channels/whatsapp/secure")
async def post_whatsapp_secure() -> JSONResponse:
    target = _resolve_target()
    if target is None:
        return _not_ready()
    result = await ensure_owner_only(
        target.gateway_url, target.token, _config.whatsapp_account_id
    )
    return JSONResponse(
        result.model_dump(exclude_none=True),
        status_code=200 if result.ok else 502,
    )


class LoginWaitBody(BaseModel):
    timeoutMs: Optional[float] = Field(default=None, allow_inf_nan=False)
    accountId: Optional[str] = None


@app.post("/channels/whatsapp/login/wait")
async def post_whatsapp_login_wait(body: Optional[LoginWaitBody] = None) -> JSONResponse:
    target = _resolve_target()
    if target is None:
        return _not_ready()
    body = body or LoginWaitBody()
    result = await wait_for_whatsapp_login(
        target.gateway_url,
        target.token,
        timeout_ms=body.timeoutMs,
        account_id=body.accountId or _config.whatsapp_account_id,
    )
    if result.ok:
        status_code = 200
    elif result.retryable:
        status_code = 503
    else:
        status_code = 500
    return JSONResponse(result.model_dump(exclude_none=True), status_code=status_code)


async def run_http_server(config: Config, stop_event: asyncio.Event) -> None:
    """Serve the API on the running loop until *stop_event* is set.

    ``log_config=None`` keeps uvicorn from replacing the handlers that
    :func:`gwbridge.log_setup.init` installed.
    """
    server = uvicorn.Server(
        uvicorn.Config(
            app=app,
            host=config.http_host,
            port=config.http_port,
            log_config=None,
            lifespan="off",
            loop="none",
        )
    )
    serving = asyncio.create_task(server.serve())
    stopping = asyncio.create_task(stop_event.wait())
    try:
        await asyncio.wait({serving, stopping}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        server.should_exit = True
        stopping.cancel()
        await asyncio.gather(serving, stopping, return_exceptions=True)
    logger.info("HTTP API on %s:%s stopped.", config.http_host, config.http_port)
