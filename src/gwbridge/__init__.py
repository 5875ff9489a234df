"""gwbridge — short-lived RPC bridge to a chat gateway.

Exports the key building blocks:
  - gateway_rpc / GatewayCall      — one authenticated gateway call
  - fetch_chat_history             — ``chat.history`` helper
  - build_session_key              — session key shared with the gateway
  - resolve_gateway_target         — instance address vs. local override
  - ensure_owner_only              — WhatsApp owner-only DM guard
  - wait_for_whatsapp_login        — QR login wait that runs the guard once linked
  - sanitize_user_text             — strip chat envelopes and markers
  - parse_command                  — /config and /debug slash commands
  - parse_duration_ms              — "1.5s" -> 1500
"""

from . import log_setup
from .chat_sanitize import (
    sanitize_user_text,
    strip_envelope_from_message,
    strip_envelope_from_messages,
)
from .commands import (
    CommandError,
    ResetCommand,
    SetCommand,
    ShowCommand,
    UnsetCommand,
    parse_command,
    parse_config_command,
    parse_debug_command,
)
from .durations import InvalidDuration, format_duration, parse_duration_ms
from .models import GatewayTarget, LoginWaitResult, OwnerOnlyResult, RpcResult, WhatsAppDebug
from .target import resolve_gateway_target
from .whatsapp_guard import collect_whatsapp_debug, ensure_owner_only, wait_for_whatsapp_login
from .ws_client import (
    GatewayCall,
    build_session_key,
    fetch_chat_history,
    gateway_rpc,
)

__version__ = "0.1.0"
__all__ = [
    "log_setup",
    "CommandError",
    "GatewayCall",
    "GatewayTarget",
    "InvalidDuration",
    "LoginWaitResult",
    "OwnerOnlyResult",
    "ResetCommand",
    "RpcResult",
    "SetCommand",
    "ShowCommand",
    "UnsetCommand",
    "WhatsAppDebug",
    "build_session_key",
    "collect_whatsapp_debug",
    "ensure_owner_only",
    "fetch_chat_history",
    "format_duration",
    "gateway_rpc",
    "parse_command",
    "parse_config_command",
    "parse_debug_command",
    "parse_duration_ms",
    "resolve_gateway_target",
    "sanitize_user_text",
    "strip_envelope_from_message",
    "strip_envelope_from_messages",
    "wait_for_whatsapp_login",
]
