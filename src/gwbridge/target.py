"""Decide which gateway a call goes to."""

from __future__ import annotations

from .config import GatewayOverride
from .models import GatewayTarget


def normalize_gateway_url(raw_url: str) -> str:
    trimmed = raw_url.strip()
    if not trimmed:
        return trimmed
    return trimmed if trimmed.startswith("http") else f"https://{trimmed}"


def resolve_gateway_target(
    instance_public_url: str,
    instance_token: str,
    instance_id: str | None = None,
    override: GatewayOverride | None = None,
) -> GatewayTarget:
    """Prefer the local override gateway, else the instance's own address.

    The override is skipped when it is scoped to a different instance id.
    Its token falls back to the instance token.
    """
    default = GatewayTarget(
        gateway_url=normalize_gateway_url(instance_public_url),
        token=instance_token,
    )
    if override is None or not override.url:
        return default
    if override.instance_id and instance_id and instance_id != override.instance_id:
        return default

    return GatewayTarget(
        gateway_url=normalize_gateway_url(override.url),
        token=override.token or instance_token,
        overridden=True,
    )
