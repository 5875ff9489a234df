from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest


@pytest.fixture
def isolated_app_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Point ~/.gwbridge at a temp dir and clear the local gateway override."""
    import gwbridge.cli as cli_mod
    import gwbridge.config as config_mod

    app_dir = tmp_path / ".gwbridge"
    monkeypatch.setattr(config_mod, "APP_DIR", app_dir)
    monkeypatch.setattr(config_mod, "CONFIG_FILE", app_dir / "config.json")
    monkeypatch.setattr(config_mod, "LOG_DIR", app_dir / "logs")
    monkeypatch.setattr(cli_mod, "CONFIG_FILE", app_dir / "config.json")
    for key in ("LOCAL_GATEWAY_URL", "LOCAL_GATEWAY_INSTANCE_ID", "LOCAL_GATEWAY_TOKEN"):
        monkeypatch.delenv(key, raising=False)
    yield app_dir
