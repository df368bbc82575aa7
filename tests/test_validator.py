from __future__ import annotations

import allure
import pytest

from standup_bot.standup.validator import (
    GuardrailViolation,
    count_bullets,
    count_lines,
    validate_report_payload,
)

pytestmark = [
    allure.epic("Report Composition"),
    allure.feature("Guardrails"),
]

VALID_TEXT = "**Yesterday:** Completed 1 task\n**At risk:** None\n**Next:**\n• Ship it"


def _validate(payload: dict, **overrides):
    options = {
        "allowed_task_ids": {"T-1", "T-2"},
        "max_lines": 8,
        "max_bullets": 3,
        "max_chars": 2_000,
    }
    options.update(overrides)
    return validate_report_payload(payload, **options)


def test_valid_payload_is_accepted() -> None:
    result = _validate(
        {"post_text": VALID_TEXT, "included_task_ids": ["T-1"], "char_count": 1},
    )

    assert result.is_valid is True
    assert result.violation is None
    assert result.payload == {"post_text": VALID_TEXT, "included_task_ids": ["T-1"]}


@pytest.mark.parametrize(
    ("payload", "overrides", "violation"),
    [
        ({"included_task_ids": []}, {}, GuardrailViolation.INVALID_SHAPE),
        ({"post_text": "   ", "included_task_ids": []}, {}, GuardrailViolation.INVALID_SHAPE),
        ({"post_text": "ok", "included_task_ids": "T-1"}, {}, GuardrailViolation.INVALID_SHAPE),
        ({"post_text": "ok", "included_task_ids": [1]}, {}, GuardrailViolation.INVALID_SHAPE),
        (
            {"post_text": "x" * 21, "included_task_ids": []},
            {"max_chars": 20},
            GuardrailViolation.TOO_LONG,
        ),
        (
            {"post_text": "ok", "included_task_ids": ["T-1", "T-9"]},
            {},
            GuardrailViolation.UNKNOWN_TASK_ID,
        ),
        (
            {"post_text": "a\nb\nc", "included_task_ids": []},
            {"max_lines": 2},
            GuardrailViolation.TOO_MANY_LINES,
        ),
        (
            {"post_text": "• a\n- b\n* c\n• d", "included_task_ids": []},
            {},
            GuardrailViolation.TOO_MANY_BULLETS,
        ),
        (
            {"post_text": "ping @ana", "included_task_ids": []},
            {},
            GuardrailViolation.MENTION_PRESENT,
        ),
    ],
)
def test_guardrail_violations(payload: dict, overrides: dict, violation) -> None:
    result = _validate(payload, **overrides)

    assert result.is_valid is False
    assert result.violation is violation
    assert result.error_summary
    assert result.payload is None


def test_counts_ignore_inline_dashes_and_count_trailing_newline() -> None:
    text = "**At risk:** a - b\n  • one\n-no-space\n* two\n"

    assert count_bullets(text) == 2
    assert count_lines(text) == 5
