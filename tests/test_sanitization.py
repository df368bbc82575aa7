from __future__ import annotations

import allure
import pytest

from standup_bot.standup.sanitization import sanitize_optional, sanitize_text

pytestmark = [
    allure.epic("Stand-up Snapshot"),
    allure.feature("Title Sanitization"),
]


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Ping @channel about deploy", "Ping about deploy"),
        ("See https://evil.example.com/x?y=1 now", "See [URL] now"),
        ("Use `rm -rf` carefully", "Use 'rm -rf' carefully"),
        ("**Bold** _italic_ ~strike~", "Bold italic strike"),
        ("mail me at foo@", "mail me at foo"),
        ("  many   spaces\nand\tlines  ", "many spaces and lines"),
    ],
)
def test_sanitize_text_neutralizes_untrusted_markup(raw: str, expected: str) -> None:
    assert sanitize_text(raw) == expected


def test_sanitize_text_redacts_long_opaque_tokens() -> None:
    secret = "a1B2" * 10

    assert sanitize_text(f"token {secret} leaked") == "token [TOKEN] leaked"
    assert sanitize_text("short abc123 stays") == "short abc123 stays"


@pytest.mark.parametrize(
    "raw",
    [
        "rotate ghp_{secret} today",
        "rotate _{secret}_ today",
        "rotate **{secret}** today",
        "rotate key-{secret} today",
    ],
)
def test_sanitize_text_redacts_tokens_next_to_punctuation(raw: str) -> None:
    secret = "A1b2C3d4E5f6G7h8I9j0K1l2M3n4O5p6Q7r8"

    sanitized = sanitize_text(raw.format(secret=secret))

    assert "[TOKEN]" in sanitized
    assert secret not in sanitized
    assert secret[:16] not in sanitized


def test_sanitized_text_never_contains_at_sign() -> None:
    assert "@" not in sanitize_text("@@here @ @team-lead x@y")


def test_sanitize_optional_maps_empty_result_to_none() -> None:
    assert sanitize_optional(None) is None
    assert sanitize_optional("@ghost") is None
    assert sanitize_optional("Ana") == "Ana"
