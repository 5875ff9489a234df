"""Strip structural wrappers from user chat messages before display.

The gateway wraps inbound user text in several layers before handing it to
the model.  Chat history fetched back from the gateway still carries them,
so the UI sanitises user-authored messages through three passes, in order:

1. the outer envelope (metadata blocks, ``[channel timestamp]`` header,
   ``[message_id: …]`` hint lines), see :mod:`gwbridge.envelope`;
2. a leading block of ``System: [tag] …`` event lines;
3. at most one structural marker (thread starter, thread history, history
   context, current message).

Steps 2 and 3 never reduce a non-empty text to an empty one.  The whole
chain is repeated until the text stops changing, which makes
``sanitize_user_text`` idempotent.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .envelope import strip_envelope, strip_message_id_hints

__all__ = [
    "CURRENT_MESSAGE_MARKER",
    "HISTORY_CONTEXT_MARKER",
    "THREAD_HISTORY_MARKER",
    "THREAD_STARTER_MARKER",
    "MARKER_RULES",
    "MarkerRule",
    "sanitize_user_text",
    "strip_envelope",
    "strip_envelope_from_message",
    "strip_envelope_from_messages",
    "strip_structured_history_wrappers",
    "strip_system_event_block",
]

HISTORY_CONTEXT_MARKER = "[Chat messages since your last reply - for context]"
CURRENT_MESSAGE_MARKER = "[Current message - respond to this]"
THREAD_STARTER_MARKER = "[Thread starter - for context]"
THREAD_HISTORY_MARKER = "[Thread history - for context]"

_SYSTEM_EVENT_LINE_RE = re.compile(r"^System:\s*\[[^\]]+\]\s+.+$")
_LINE_SPLIT_RE = re.compile(r"\r?\n")


@dataclass(frozen=True)
class MarkerRule:
    """One structural marker: when it applies and what it leaves behind."""

    name: str
    applies: Callable[[str], bool]
    strip: Callable[[str], str]


def _after_last(marker: str) -> Callable[[str], str]:
    def strip(text: str) -> str:
        return text[text.rindex(marker) + len(marker):].lstrip()

    return strip


def _after_leading(marker: str) -> Callable[[str], str]:
    def strip(text: str) -> str:
        return text[len(marker):].lstrip()

    return strip


def _leading_rule(name: str, marker: str) -> MarkerRule:
    return MarkerRule(
        name=name,
        applies=lambda text: text.startswith(f"{marker}\n"),
        strip=_after_leading(marker),
    )


# First match wins.  The current-message marker may follow other leading
# context, so it is searched anywhere; the rest must open the text.
MARKER_RULES: tuple[MarkerRule, ...] = (
    MarkerRule(
        name="current-message",
        applies=lambda text: CURRENT_MESSAGE_MARKER in text,
        strip=_after_last(CURRENT_MESSAGE_MARKER),
    ),
    _leading_rule("thread-starter", THREAD_STARTER_MARKER),
    _leading_rule("thread-history", THREAD_HISTORY_MARKER),
    _leading_rule("history-context", HISTORY_CONTEXT_MARKER),
)


def strip_system_event_block(text: str) -> str:
    lines = _LINE_SPLIT_RE.split(text)
    i = 0
    while i < len(lines) and _SYSTEM_EVENT_LINE_RE.match(lines[i].strip()):
        i += 1
    if i == 0:
        return text
    while i < len(lines) and lines[i].strip() == "":
        i += 1
    stripped = "\n".join(lines[i:]).lstrip()
    return stripped if stripped else text


def strip_structured_history_wrappers(text: str) -> str:
    for rule in MARKER_RULES:
        if rule.applies(text):
            stripped = rule.strip(text)
            return stripped if stripped else text
    return text


def _sanitize_once(text: str) -> str:
    no_envelope = strip_message_id_hints(strip_envelope(text))
    no_system_block = strip_system_event_block(no_envelope)
    return strip_structured_history_wrappers(no_system_block)


def sanitize_user_text(text: str) -> str:
    """Return *text* with every gateway-added wrapper removed."""
    current = text
    while True:
        nxt = _sanitize_once(current)
        # Every strip step only ever shortens the text, so this terminates.
        if nxt == current:
            return current
        current = nxt


def _strip_content_blocks(content: list[Any]) -> tuple[list[Any], bool]:
    changed = False
    out: list[Any] = []
    for block in content:
        if (
            isinstance(block, dict)
            and block.get("type") == "text"
            and isinstance(block.get("text"), str)
        ):
            stripped = sanitize_user_text(block["text"])
            if stripped != block["text"]:
                changed = True
                out.append({**block, "text": stripped})
                continue
        out.append(block)
    return out, changed


def strip_envelope_from_message(message: Any) -> Any:
    """Sanitise one chat message.

    Only messages whose ``role`` is ``user`` are touched.  The input
    object is returned when nothing changed; otherwise a shallow copy.
    """
    if not isinstance(message, dict):
        return message
    role = message.get("role")
    if not isinstance(role, str) or role.lower() != "user":
        return message

    content = message.get("content")
    if isinstance(content, str):
        stripped = sanitize_user_text(content)
        if stripped != content:
            return {**message, "content": stripped}
    elif isinstance(content, list):
        blocks, changed = _strip_content_blocks(content)
        if changed:
            return {**message, "content": blocks}
    elif isinstance(message.get("text"), str):
        stripped = sanitize_user_text(message["text"])
        if stripped != message["text"]:
            return {**message, "text": stripped}
    return message


def strip_envelope_from_messages(messages: list[Any]) -> list[Any]:
    """Sanitise a message list; returns *messages* itself when unchanged."""
    if not messages:
        return messages
    changed = False
    out: list[Any] = []
    for message in messages:
        stripped = strip_envelope_from_message(message)
        if stripped is not message:
            changed = True
        out.append(stripped)
    return out if changed else messages
