"""Restrict a linked WhatsApp account to direct messages from its owner.

After a WhatsApp login the gateway knows the linked phone number
(``channels.whatsapp.self.e164``).  From then on only that number may DM
the bot, which we enforce by patching the gateway config::

    channels.whatsapp.accounts.<accountId>.dmPolicy  = "allowlist"
    channels.whatsapp.accounts.<accountId>.allowFrom = [<owner e164>]

The patch is sent with the config hash we read, so a concurrent edit on
the gateway is rejected rather than overwritten.  Calls after a
successful patch are no-ops.

``wait_for_whatsapp_login`` runs the guard as soon as a QR login reports
``connected``, and flags failures that look like a restarting gateway as
retryable.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from .models import LoginWaitResult, OwnerOnlyResult, WhatsAppDebug
from .ws_client import gateway_rpc

logger = logging.getLogger(__name__)

STATUS_TIMEOUT_MS = 12_000
STATUS_PROBE_TIMEOUT_MS = 8_000
CONFIG_GET_TIMEOUT_MS = 10_000
CONFIG_PATCH_TIMEOUT_MS = 15_000
RESTART_DELAY_MS = 1_000
DEFAULT_ACCOUNT_ID = "default"
LOGIN_WAIT_DEFAULT_MS = 120_000
LOGIN_WAIT_MIN_BOUND_MS = 15_000
LOGIN_WAIT_MARGIN_MS = 10_000

# Errors seen while the gateway restarts (e.g. right after a config patch).
RESTARTING_MARKERS = (
    "502",
    "503",
    "504",
    "connection timeout",
    "connection closed before completing",
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _as_record(value: Any) -> dict[str, Any] | None:
    return value if isinstance(value, dict) else None


def _trimmed_str(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


async def collect_whatsapp_debug(gateway_url: str, token: str) -> WhatsAppDebug:
    """Probe ``channels.status`` and keep only the WhatsApp parts."""
    status = await gateway_rpc(
        gateway_url,
        token,
        "channels.status",
        {"probe": True, "timeoutMs": STATUS_PROBE_TIMEOUT_MS},
        timeout_ms=STATUS_TIMEOUT_MS,
    )
    if not status.ok:
        return WhatsAppDebug(at=_now_iso(), error=status.error or "channels.status failed")

    payload = _as_record(status.payload) or {}
    channels = _as_record(payload.get("channels")) or {}
    channel_accounts = _as_record(payload.get("channelAccounts")) or {}
    accounts = channel_accounts.get("whatsapp")
    account = accounts[0] if isinstance(accounts, list) and accounts else None
    return WhatsAppDebug(at=_now_iso(), channel=channels.get("whatsapp"), account=account)


def extract_linked_self_e164(debug: WhatsAppDebug) -> str | None:
    channel = _as_record(debug.channel) or {}
    linked_self = _as_record(channel.get("self")) or {}
    return _trimmed_str(linked_self.get("e164")) or None


def extract_account_id(debug: WhatsAppDebug, fallback: str) -> str:
    account = _as_record(debug.account) or {}
    return _trimmed_str(account.get("accountId")) or fallback


def needs_owner_allowlist_patch(
    config: dict[str, Any] | None, account_id: str, owner_e164: str
) -> bool:
    channels = _as_record((config or {}).get("channels")) or {}
    whatsapp = _as_record(channels.get("whatsapp")) or {}
    accounts = _as_record(whatsapp.get("accounts")) or {}
    account = _as_record(accounts.get(account_id)) or {}

    dm_policy = _trimmed_str(account.get("dmPolicy"))
    raw_allow = account.get("allowFrom")
    allow_from = [
        entry for entry in (_trimmed_str(e) for e in raw_allow) if entry
    ] if isinstance(raw_allow, list) else []
    return not (dm_policy == "allowlist" and allow_from == [owner_e164])


def build_owner_only_patch(account_id: str, owner_e164: str) -> str:
    return json.dumps(
        {
            "channels": {
                "whatsapp": {
                    "accounts": {
                        account_id: {
                            "dmPolicy": "allowlist",
                            "allowFrom": [owner_e164],
                        }
                    }
                }
            }
        }
    )


async def ensure_owner_only(
    gateway_url: str,
    token: str,
    fallback_account_id: str | None = None,
    debug: WhatsAppDebug | None = None,
) -> OwnerOnlyResult:
    """Make sure only the linked owner can DM the WhatsApp account.

    *debug* may be a snapshot the caller already collected; otherwise the
    channel status is probed first.
    """
    fallback = (fallback_account_id or "").strip() or DEFAULT_ACCOUNT_ID
    if debug is None:
        debug = await collect_whatsapp_debug(gateway_url, token)
    if debug.error:
        return OwnerOnlyResult(ok=False, applied=False, error=debug.error)

    owner_e164 = extract_linked_self_e164(debug)
    if owner_e164 is None:
        return OwnerOnlyResult(ok=True, applied=False)
    account_id = extract_account_id(debug, fallback)

    config_result = await gateway_rpc(
        gateway_url, token, "config.get", {}, timeout_ms=CONFIG_GET_TIMEOUT_MS
    )
    payload = _as_record(config_result.payload) or {}
    base_hash = payload.get("hash")
    if not config_result.ok or not base_hash:
        return OwnerOnlyResult(
            ok=False,
            applied=False,
            ownerE164=owner_e164,
            accountId=account_id,
            error=config_result.error or "Config hash unavailable",
        )

    if not needs_owner_allowlist_patch(_as_record(payload.get("config")), account_id, owner_e164):
        return OwnerOnlyResult(ok=True, applied=False, ownerE164=owner_e164, accountId=account_id)

    patch_result = await gateway_rpc(
        gateway_url,
        token,
        "config.patch",
        {
            "baseHash": base_hash,
            "raw": build_owner_only_patch(account_id, owner_e164),
            "restartDelayMs": RESTART_DELAY_MS,
        },
        timeout_ms=CONFIG_PATCH_TIMEOUT_MS,
    )
    if not patch_result.ok:
        logger.warning(
            "WhatsApp owner-only patch failed (account=%s): %s",
            account_id,
            patch_result.error,
        )
        return OwnerOnlyResult(
            ok=False,
            applied=False,
            ownerE164=owner_e164,
            accountId=account_id,
            error=patch_result.error or "Failed to update WhatsApp policy",
        )

    logger.info("WhatsApp account %s restricted to its owner.", account_id)
    return OwnerOnlyResult(ok=True, applied=True, ownerE164=owner_e164, accountId=account_id)


def is_gateway_restarting_error(error: str | None) -> bool:
    message = (error or "").lower()
    return any(marker in message for marker in RESTARTING_MARKERS)


async def wait_for_whatsapp_login(
    gateway_url: str,
    token: str,
    *,
    timeout_ms: float | None = None,
    account_id: str | None = None,
) -> LoginWaitResult:
    """Wait for a pending QR login, then lock the account to its owner.

    The gateway blocks ``web.login.wait`` for up to *timeout_ms*; the call
    itself gets ten seconds on top of that (and never less than 15 s).
    Once the login reports ``connected`` the owner-only guard runs with
    the status snapshot taken here, so the channel is probed only once.
    """
    wait_ms = max(0, int(timeout_ms)) if timeout_ms is not None else LOGIN_WAIT_DEFAULT_MS
    account = (account_id or "").strip() or DEFAULT_ACCOUNT_ID

    result = await gateway_rpc(
        gateway_url,
        token,
        "web.login.wait",
        {"timeoutMs": wait_ms, "accountId": account},
        timeout_ms=max(LOGIN_WAIT_MIN_BOUND_MS, wait_ms + LOGIN_WAIT_MARGIN_MS),
    )
    debug = await collect_whatsapp_debug(gateway_url, token)

    if not result.ok:
        if is_gateway_restarting_error(result.error):
            logger.info("web.login.wait hit a restarting gateway: %s", result.error)
            return LoginWaitResult(
                ok=False,
                retryable=True,
                error="Gateway is restarting",
                details="Please wait a moment and try again.",
                debug=debug,
            )
        return LoginWaitResult(
            ok=False,
            error="Failed to check WhatsApp login",
            details=result.error,
            debug=debug,
        )

    payload = _as_record(result.payload) or {}
    connected = payload.get("connected") is True
    access = None
    if connected:
        access = await ensure_owner_only(gateway_url, token, account, debug=debug)
        if not access.ok:
            return LoginWaitResult(
                ok=False,
                connected=True,
                error="WhatsApp linked but failed to secure DM access",
                details=access.error,
                access=access,
                debug=debug,
            )

    message = payload.get("message")
    return LoginWaitResult(
        ok=True,
        connected=connected,
        message=message if isinstance(message, str) else "Waiting for QR scan.",
        access=access,
        debug=debug,
    )
