from __future__ import annotations

import pytest

from gwbridge.commands import (
    CommandError,
    ResetCommand,
    SetCommand,
    ShowCommand,
    SlashInvocation,
    UnsetCommand,
    parse_command,
    parse_config_command,
    parse_debug_command,
    parse_set_unset_command,
    parse_slash_command,
)
from gwbridge.config_value import parse_config_value


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------


def test_slash_prefix_must_match_whole_word() -> None:
    assert parse_slash_command("/other thing", "/config") is None
    assert parse_slash_command("/configure x", "/config") is None
    assert parse_slash_command("hello /config", "/config") is None


def test_slash_defaults_to_show() -> None:
    assert parse_slash_command("  /CONFIG  ", "/config") == SlashInvocation(action="show", args="")


def test_slash_splits_action_and_args() -> None:
    assert parse_slash_command("/config SET a.b = 5 ", "/config") == SlashInvocation(
        action="set", args="a.b = 5"
    )


def test_slash_rejects_non_word_action() -> None:
    assert parse_slash_command("/config 123", "/config") == CommandError("Invalid /config syntax.")


# ---------------------------------------------------------------------------
# set / unset grammar
# ---------------------------------------------------------------------------


def test_set_unset_ignores_other_actions() -> None:
    assert parse_set_unset_command("/config", "show", "") is None


def test_unset_requires_path() -> None:
    assert parse_set_unset_command("/config", "unset", "foo.bar") == UnsetCommand(path="foo.bar")
    assert parse_set_unset_command("/config", "unset", "   ") == CommandError(
        "Usage: /config unset path"
    )


def test_set_parses_json_object() -> None:
    assert parse_set_unset_command("/config", "set", 'foo.bar={"x":1}') == SetCommand(
        path="foo.bar", value={"x": 1}
    )


@pytest.mark.parametrize("args", ["", "a.b", "=5", "  =5", " \t= 5"])
def test_set_usage_errors(args: str) -> None:
    assert parse_set_unset_command("/debug", "set", args) == CommandError(
        "Usage: /debug set path=value"
    )


def test_set_surfaces_value_parser_error_verbatim() -> None:
    expected = parse_config_value("{bad").error
    assert expected is not None
    assert parse_set_unset_command("/config", "set", "a={bad") == CommandError(expected)
    assert parse_set_unset_command("/config", "set", "a=") == CommandError("Missing value.")


def test_set_splits_on_first_equals() -> None:
    assert parse_set_unset_command("/config", "set", "a=b=c") == SetCommand(path="a", value="b=c")


# ---------------------------------------------------------------------------
# /config
# ---------------------------------------------------------------------------


def test_config_set_number() -> None:
    result = parse_config_command("/config set a.b=5")
    assert result == SetCommand(path="a.b", value=5)
    assert result is not None and result.kind == "set"


def test_config_unset() -> None:
    result = parse_config_command("/config unset a.b")
    assert result == UnsetCommand(path="a.b")
    assert result is not None and result.kind == "unset"


def test_config_set_usage_errors() -> None:
    assert isinstance(parse_config_command("/config set =5"), CommandError)
    assert isinstance(parse_config_command("/config set a.b"), CommandError)


def test_config_show_and_get_alias() -> None:
    assert parse_config_command("/config") == ShowCommand()
    assert parse_config_command("/config show") == ShowCommand()
    assert parse_config_command("/config show channels") == ShowCommand(path="channels")
    assert parse_config_command("/config get channels.whatsapp") == ShowCommand(
        path="channels.whatsapp"
    )


def test_config_unknown_action() -> None:
    assert parse_config_command("/config reset") == CommandError("Usage: /config show|set|unset")


def test_config_not_addressed() -> None:
    assert parse_config_command("/other set a=1") is None
    assert parse_command("/other ...", "/config") is None


# ---------------------------------------------------------------------------
# /debug
# ---------------------------------------------------------------------------


def test_debug_actions() -> None:
    assert parse_debug_command("/debug") == ShowCommand()
    assert parse_debug_command("/debug show anything") == ShowCommand()
    assert parse_debug_command("/debug reset") == ResetCommand()
    assert parse_debug_command("/debug set verbose=true") == SetCommand(path="verbose", value=True)
    assert parse_debug_command("/debug unset verbose") == UnsetCommand(path="verbose")
    assert parse_debug_command("/debug get x") == CommandError(
        "Usage: /debug show|set|unset|reset"
    )


def test_parse_command_dispatch() -> None:
    assert parse_command("/debug reset") == ResetCommand()
    assert parse_command("/config set a=1") == SetCommand(path="a", value=1)
    assert parse_command("just chatting") is None
    assert parse_command("/debug reset", "/nope") is None


def test_parsed_commands_are_frozen() -> None:
    cmd = SetCommand(path="a", value=1)
    with pytest.raises(AttributeError):
        cmd.path = "b"  # type: ignore[misc]


# ---------------------------------------------------------------------------
# Value parser
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("5", 5),
        ("-2", -2),
        ("1.5", 1.5),
        ("true", True),
        ("false", False),
        ("null", None),
        ('"quoted"', "quoted"),
        ("'single'", "single"),
        ('"a\\nb"', "a\nb"),
        ("[1, 2]", [1, 2]),
        ('{"k": "v"}', {"k": "v"}),
        ("  bare words  ", "bare words"),
        ("1e5", "1e5"),
    ],
)
def test_parse_config_value(raw: str, expected: object) -> None:
    parsed = parse_config_value(raw)
    assert parsed.error is None
    assert parsed.value == expected


def test_parse_config_value_errors() -> None:
    assert parse_config_value("  ").error == "Missing value."
    error = parse_config_value("[1,").error
    assert error is not None and error.startswith("Invalid JSON:")


def test_parse_config_value_accepts_relaxed_objects() -> None:
    assert parse_config_value("{enabled: true}").value == {"enabled": True}
    assert parse_config_value("[1, 2,]").value == [1, 2]
    assert parse_set_unset_command("/config", "set", "x={enabled:true}") == SetCommand(
        path="x", value={"enabled": True}
    )
