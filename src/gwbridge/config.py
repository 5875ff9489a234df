"""Config management for gwbridge.

Files live under ~/.gwbridge/:
  config.json  — persistent settings (instance address, token, HTTP bind)
  logs/        — rotating log files

The local gateway override is read from the environment instead:
  LOCAL_GATEWAY_URL          — send every call to this gateway instead
  LOCAL_GATEWAY_INSTANCE_ID  — only override calls for this instance id
  LOCAL_GATEWAY_TOKEN        — token for the override gateway
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

APP_DIR = Path.home() / ".gwbridge"
CONFIG_FILE = APP_DIR / "config.json"
LOG_DIR = APP_DIR / "logs"


class Config(BaseModel):
    instance_id: Optional[str] = None
    instance_url: str = ""
    instance_token: str = ""
    user_id: str = ""
    agent_id: str = "main"
    whatsapp_account_id: str = "default"
    timeout_ms: int = 30_000
    http_host: str = "127.0.0.1"
    http_port: int = 18090


class GatewayOverride(BaseModel):
    """Local gateway that replaces the instance's own address when set."""

    url: Optional[str] = None
    instance_id: Optional[str] = None
    token: Optional[str] = None


def load_config(path: Path | None = None) -> Config:
    config_file = path or CONFIG_FILE
    if config_file.exists():
        return Config.model_validate_json(config_file.read_text(encoding="utf-8"))
    return Config()


def save_config(config: Config, path: Path | None = None) -> None:
    config_file = path or CONFIG_FILE
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(config.model_dump_json(indent=2), encoding="utf-8")


def _env_value(env: Mapping[str, str], key: str) -> Optional[str]:
    value = (env.get(key) or "").strip()
    return value or None


def load_gateway_override(env: Mapping[str, str] | None = None) -> GatewayOverride:
    source = os.environ if env is None else env
    return GatewayOverride(
        url=_env_value(source, "LOCAL_GATEWAY_URL"),
        instance_id=_env_value(source, "LOCAL_GATEWAY_INSTANCE_ID"),
        token=_env_value(source, "LOCAL_GATEWAY_TOKEN"),
    )
