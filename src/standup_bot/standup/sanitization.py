"""Sanitization of task text before it reaches the model or the channel.

Titles come from an untrusted store: they may carry mentions that would ping
people, links, markdown that breaks the layout, or pasted secrets. Everything
rendered from a snapshot passes through ``sanitize_text`` first.
"""

from __future__ import annotations

import re

_REPLACEMENTS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"https?://\S+", re.IGNORECASE), "[URL]"),
    (re.compile(r"@\w+"), ""),
    (re.compile(r"@"), ""),
    (re.compile(r"`"), "'"),
    (re.compile(r"(?<![A-Za-z0-9])[A-Za-z0-9]{32,}(?![A-Za-z0-9])"), "[TOKEN]"),
    (re.compile(r"[*_~]"), ""),
)

_WHITESPACE = re.compile(r"\s+")


def sanitize_text(text: str) -> str:
    """Strip mentions, links, markdown emphasis and long opaque tokens."""

    sanitized = text
    for pattern, replacement in _REPLACEMENTS:
        sanitized = pattern.sub(replacement, sanitized)
    return _WHITESPACE.sub(" ", sanitized).strip()


def sanitize_optional(text: str | None) -> str | None:
    if text is None:
        return None
    return sanitize_text(text) or None
