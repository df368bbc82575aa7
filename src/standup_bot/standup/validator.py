"""Guardrail validation for model-composed stand-up reports."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

_BULLET_LINE = re.compile(r"^\s*[•\-*]\s")


class GuardrailViolation(str, Enum):
    """Why a model answer was rejected."""

    INVALID_SHAPE = "invalid_shape"
    TOO_LONG = "too_long"
    UNKNOWN_TASK_ID = "unknown_task_id"
    TOO_MANY_LINES = "too_many_lines"
    TOO_MANY_BULLETS = "too_many_bullets"
    MENTION_PRESENT = "mention_present"


@dataclass(slots=True)
class ValidationResult:
    """Result of output validation."""

    is_valid: bool
    violation: GuardrailViolation | None
    error_summary: str | None
    payload: dict[str, Any] | None


def count_lines(text: str) -> int:
    return len(text.split("\n"))


def count_bullets(text: str) -> int:
    return sum(1 for line in text.split("\n") if _BULLET_LINE.match(line))


def validate_report_payload(  # noqa: PLR0911
    payload: dict[str, Any],
    *,
    allowed_task_ids: set[str],
    max_lines: int,
    max_bullets: int,
    max_chars: int,
) -> ValidationResult:
    """Check a parsed model answer against every hard guardrail.

    Counts are recomputed from ``post_text``; any self-reported metrics in the
    payload are ignored.
    """

    post_text = payload.get("post_text")
    if not isinstance(post_text, str) or not post_text.strip():
        return _rejected(GuardrailViolation.INVALID_SHAPE, "post_text must be a non-empty string.")
    included = payload.get("included_task_ids")
    if not isinstance(included, list) or not all(isinstance(item, str) for item in included):
        return _rejected(
            GuardrailViolation.INVALID_SHAPE,
            "included_task_ids must be a list of strings.",
        )
    if len(post_text) > max_chars:
        return _rejected(
            GuardrailViolation.TOO_LONG,
            f"post_text has {len(post_text)} chars, limit is {max_chars}.",
        )

    unknown = sorted(set(included) - allowed_task_ids)
    if unknown:
        return _rejected(
            GuardrailViolation.UNKNOWN_TASK_ID,
            f"included_task_ids contains unknown ids: {', '.join(unknown)}",
        )

    lines = count_lines(post_text)
    if lines > max_lines:
        return _rejected(
            GuardrailViolation.TOO_MANY_LINES,
            f"post_text has {lines} lines, limit is {max_lines}.",
        )
    bullets = count_bullets(post_text)
    if bullets > max_bullets:
        return _rejected(
            GuardrailViolation.TOO_MANY_BULLETS,
            f"post_text has {bullets} bullets, limit is {max_bullets}.",
        )
    if "@" in post_text:
        return _rejected(GuardrailViolation.MENTION_PRESENT, "post_text contains '@'.")

    return ValidationResult(
        is_valid=True,
        violation=None,
        error_summary=None,
        payload={"post_text": post_text, "included_task_ids": included},
    )


def _rejected(violation: GuardrailViolation, summary: str) -> ValidationResult:
    return ValidationResult(
        is_valid=False,
        violation=violation,
        error_summary=summary,
        payload=None,
    )
