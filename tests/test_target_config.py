from __future__ import annotations

from pathlib import Path

from gwbridge.config import Config, GatewayOverride, load_config, load_gateway_override, save_config
from gwbridge.target import normalize_gateway_url, resolve_gateway_target


def test_normalize_gateway_url() -> None:
    assert normalize_gateway_url(" abc.example.com ") == "https://abc.example.com"
    assert normalize_gateway_url("http://10.0.0.5:18789") == "http://10.0.0.5:18789"
    assert normalize_gateway_url("   ") == ""


def test_without_override_uses_instance() -> None:
    target = resolve_gateway_target("abc.example.com", "tok", "inst-1")
    assert target.gateway_url == "https://abc.example.com"
    assert target.token == "tok"
    assert target.overridden is False


def test_override_applies_and_falls_back_to_instance_token() -> None:
    override = GatewayOverride(url="http://localhost:18789")
    target = resolve_gateway_target("abc.example.com", "tok", "inst-1", override)
    assert target.gateway_url == "http://localhost:18789"
    assert target.token == "tok"
    assert target.overridden is True


def test_override_token_wins() -> None:
    override = GatewayOverride(url="localhost:18789", token="local")
    target = resolve_gateway_target("abc.example.com", "tok", None, override)
    assert target.gateway_url == "https://localhost:18789"
    assert target.token == "local"


def test_override_scoped_to_other_instance_is_ignored() -> None:
    override = GatewayOverride(url="http://localhost:18789", instance_id="inst-2", token="local")
    target = resolve_gateway_target("abc.example.com", "tok", "inst-1", override)
    assert target.overridden is False
    assert target.gateway_url == "https://abc.example.com"

    matching = resolve_gateway_target("abc.example.com", "tok", "inst-2", override)
    assert matching.overridden is True
    unscoped_call = resolve_gateway_target("abc.example.com", "tok", None, override)
    assert unscoped_call.overridden is True


def test_load_gateway_override_trims_and_drops_blanks() -> None:
    override = load_gateway_override(
        {
            "LOCAL_GATEWAY_URL": "  http://localhost:18789 ",
            "LOCAL_GATEWAY_INSTANCE_ID": "   ",
        }
    )
    assert override == GatewayOverride(url="http://localhost:18789")


def test_load_gateway_override_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("LOCAL_GATEWAY_URL", "http://gw.local")
    monkeypatch.setenv("LOCAL_GATEWAY_TOKEN", "env-token")
    monkeypatch.delenv("LOCAL_GATEWAY_INSTANCE_ID", raising=False)
    override = load_gateway_override()
    assert override.url == "http://gw.local"
    assert override.token == "env-token"
    assert override.instance_id is None


def test_config_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "config.json"
    assert load_config(path) == Config()
    config = Config(instance_url="abc.example.com", instance_token="tok", user_id="u1")
    save_config(config, path)
    assert load_config(path) == config
