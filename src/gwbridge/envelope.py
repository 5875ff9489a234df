"""Outer chat envelope added by the gateway's inbound message assembly.

An inbound user message may reach the model looking like::

    Conversation info (untrusted metadata):
    ```json
    { "message_id": "abc", "sender": "webchat-ui" }
    ```

    [WhatsApp 2026-01-24 13:36] hello there
    [message_id: 7b8b]

``strip_envelope`` removes the metadata blocks and the bracketed
``[channel timestamp]`` header; ``strip_message_id_hints`` removes the
standalone ``[message_id: …]`` lines.  Both return the input unchanged
when there is nothing to strip.
"""

from __future__ import annotations

import re

INBOUND_METADATA_SENTINELS: tuple[str, ...] = (
    "Conversation info (untrusted metadata):",
    "Sender (untrusted metadata):",
    "Thread starter (untrusted, for context):",
    "Replied message (untrusted, for context):",
    "Forwarded message context (untrusted metadata):",
    "Chat history since last reply (untrusted, for context):",
)

ENVELOPE_CHANNELS: tuple[str, ...] = (
    "WebChat",
    "WhatsApp",
    "Telegram",
    "Signal",
    "Slack",
    "Discord",
    "Google Chat",
    "iMessage",
    "Teams",
    "Matrix",
    "Zalo",
    "Zalo Personal",
    "BlueBubbles",
)

_ENVELOPE_PREFIX_RE = re.compile(r"^\[([^\]\n]+)\]\s*")
_ENVELOPE_DATE_RES = (
    re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}Z\b"),
    re.compile(r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}\b"),
)
_MESSAGE_ID_LINE_RE = re.compile(r"^\s*\[message_id:\s*[^\]]+\]\s*$", re.IGNORECASE)
_FENCE_OPEN = "```json"
_FENCE_CLOSE = "```"


def _looks_like_envelope_header(header: str) -> bool:
    if any(pattern.search(header) for pattern in _ENVELOPE_DATE_RES):
        return True
    return any(header.startswith(f"{channel} ") for channel in ENVELOPE_CHANNELS)


def strip_inbound_metadata(text: str) -> str:
    """Drop leading ``<label> (untrusted …):`` + fenced JSON blocks."""
    if not any(sentinel in text for sentinel in INBOUND_METADATA_SENTINELS):
        return text

    lines = text.split("\n")
    i = 0
    stripped_any = False
    while i < len(lines):
        if lines[i].strip() not in INBOUND_METADATA_SENTINELS:
            break
        if i + 1 >= len(lines) or lines[i + 1].strip() != _FENCE_OPEN:
            break
        close = i + 2
        while close < len(lines) and lines[close].strip() != _FENCE_CLOSE:
            close += 1
        if close >= len(lines):
            # Unterminated fence: not something we wrote.
            break
        i = close + 1
        stripped_any = True
        while i < len(lines) and lines[i].strip() == "":
            i += 1

    if not stripped_any:
        return text
    return "\n".join(lines[i:])


def strip_envelope(text: str) -> str:
    """Remove inbound metadata blocks and the ``[channel timestamp]`` header."""
    without_meta = strip_inbound_metadata(text)
    match = _ENVELOPE_PREFIX_RE.match(without_meta)
    if match is None or not _looks_like_envelope_header(match.group(1)):
        return without_meta
    return without_meta[match.end():]


def strip_message_id_hints(text: str) -> str:
    """Remove lines that consist solely of a ``[message_id: …]`` hint."""
    if "[message_id:" not in text.lower():
        return text
    lines = text.split("\n")
    kept = [line for line in lines if not _MESSAGE_ID_LINE_RE.match(line)]
    if len(kept) == len(lines):
        return text
    return "\n".join(kept)
