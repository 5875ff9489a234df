"""Slash-command parsing for chat-driven configuration.

``/config`` and ``/debug`` share one grammar for ``set``/``unset``::

    /config set channels.whatsapp.dmPolicy="allowlist"
    /config unset channels.whatsapp.allowFrom
    /debug set verbose=true

Parsers return ``None`` when the input is not addressed to them so the
caller can try the next parser.  Malformed input never raises; it comes
back as a :class:`CommandError` carrying a usage message.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from .config_value import parse_config_value

_ACTION_RE = re.compile(r"^[a-z][a-z-]*$")
_SPLIT_RE = re.compile(r"^(\S+)(?:\s+(.*))?$", re.DOTALL)


# ---------------------------------------------------------------------------
# Parsed command values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ShowCommand:
    path: str | None = None
    kind: Literal["show"] = field(default="show", init=False)


@dataclass(frozen=True)
class SetCommand:
    path: str
    value: Any
    kind: Literal["set"] = field(default="set", init=False)


@dataclass(frozen=True)
class UnsetCommand:
    path: str
    kind: Literal["unset"] = field(default="unset", init=False)


@dataclass(frozen=True)
class ResetCommand:
    kind: Literal["reset"] = field(default="reset", init=False)


@dataclass(frozen=True)
class CommandError:
    message: str
    kind: Literal["error"] = field(default="error", init=False)


ParsedCommand = ShowCommand | SetCommand | UnsetCommand | ResetCommand | CommandError


@dataclass(frozen=True)
class SlashInvocation:
    action: str
    args: str


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------


def parse_slash_command(
    raw: str,
    slash: str,
    *,
    default_action: str = "show",
) -> SlashInvocation | CommandError | None:
    """Split ``<slash> <action> <args>``.

    Returns ``None`` when *raw* does not start with *slash* followed by
    whitespace or end of input.  The prefix match ignores case.
    """
    trimmed = raw.strip()
    if not trimmed.lower().startswith(slash.lower()):
        return None
    rest = trimmed[len(slash):]
    if rest and not rest[0].isspace():
        return None

    rest = rest.strip()
    if not rest:
        return SlashInvocation(action=default_action, args="")

    match = _SPLIT_RE.match(rest)
    if match is None:
        return CommandError(f"Invalid {slash} syntax.")
    action = match.group(1).lower()
    if not _ACTION_RE.match(action):
        return CommandError(f"Invalid {slash} syntax.")
    return SlashInvocation(action=action, args=(match.group(2) or "").strip())


# ---------------------------------------------------------------------------
# Shared set / unset grammar
# ---------------------------------------------------------------------------


def parse_set_unset_command(
    slash: str, action: str, args: str
) -> SetCommand | UnsetCommand | CommandError | None:
    """Parse the ``set``/``unset`` actions; ``None`` for any other action."""
    if action not in ("set", "unset"):
        return None

    args = args.strip()
    if action == "unset":
        if not args:
            return CommandError(f"Usage: {slash} unset path")
        return UnsetCommand(path=args)

    usage = CommandError(f"Usage: {slash} set path=value")
    eq_index = args.find("=")
    if eq_index <= 0:
        return usage
    path = args[:eq_index].strip()
    if not path:
        return usage

    parsed = parse_config_value(args[eq_index + 1:])
    if parsed.error is not None:
        return CommandError(parsed.error)
    return SetCommand(path=path, value=parsed.value)


# ---------------------------------------------------------------------------
# Concrete commands
# ---------------------------------------------------------------------------


def parse_config_command(raw: str) -> ParsedCommand | None:
    """``/config show|get [path]``, ``/config set path=value``, ``/config unset path``."""
    invocation = parse_slash_command(raw, "/config")
    if invocation is None or isinstance(invocation, CommandError):
        return invocation

    set_unset = parse_set_unset_command("/config", invocation.action, invocation.args)
    if set_unset is not None:
        return set_unset

    match invocation.action:
        case "show" | "get":
            return ShowCommand(path=invocation.args or None)
        case _:
            return CommandError("Usage: /config show|set|unset")


def parse_debug_command(raw: str) -> ParsedCommand | None:
    """``/debug show``, ``/debug reset``, ``/debug set path=value``, ``/debug unset path``."""
    invocation = parse_slash_command(raw, "/debug")
    if invocation is None or isinstance(invocation, CommandError):
        return invocation

    set_unset = parse_set_unset_command("/debug", invocation.action, invocation.args)
    if set_unset is not None:
        return set_unset

    match invocation.action:
        case "show":
            return ShowCommand()
        case "reset":
            return ResetCommand()
        case _:
            return CommandError("Usage: /debug show|set|unset|reset")


COMMAND_PARSERS: dict[str, Callable[[str], ParsedCommand | None]] = {
    "/config": parse_config_command,
    "/debug": parse_debug_command,
}


def parse_command(raw: str, slash: str | None = None) -> ParsedCommand | None:
    """Parse *raw* with the parser registered for *slash*.

    Without *slash*, every registered parser is tried in turn and the first
    one that claims the input wins.
    """
    if slash is not None:
        parser = COMMAND_PARSERS.get(slash.lower())
        return parser(raw) if parser is not None else None
    for parser in COMMAND_PARSERS.values():
        result = parser(raw)
        if result is not None:
            return result
    return None
