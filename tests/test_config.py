from __future__ import annotations

from pathlib import Path

import allure
import pytest

from standup_bot.config import (
    CompositionSettings,
    DeliverySettings,
    LockSettings,
    SchedulerSettings,
    Settings,
)

pytestmark = [
    allure.epic("Stand-up Generation"),
    allure.feature("Configuration"),
]


def test_from_env_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "STANDUP_BOT_DB_PATH",
        "STANDUP_BOT_LLM_DISABLED",
        "STANDUP_BOT_LLM_COMMAND_TEMPLATE",
        "STANDUP_BOT_LOCK_BACKEND",
        "STANDUP_BOT_DEDUPE_WINDOW_HOURS",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert settings.db_path == Path(".standup_bot.db")
    assert settings.llm.disabled is False
    assert settings.llm.command_template == ""
    assert settings.lock.backend == "sqlite"
    assert settings.lock.ttl_seconds == 300
    assert settings.dedupe.window_hours == 6
    assert settings.snapshot.max_items == 3
    assert settings.composition.max_lines == 8
    assert settings.composition.max_bullets == 3
    settings.validate()


def test_from_env_reads_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("STANDUP_BOT_LLM_DISABLED", "yes")
    monkeypatch.setenv("STANDUP_BOT_LLM_COMMAND_TEMPLATE", "  agent {prompt_file}  ")
    monkeypatch.setenv("STANDUP_BOT_LOCK_BACKEND", " Memory ")
    monkeypatch.setenv("STANDUP_BOT_DEDUPE_WINDOW_HOURS", "12")
    monkeypatch.setenv("STANDUP_BOT_DELIVERY_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("STANDUP_BOT_STANDUP_HOUR", "10")

    settings = Settings.from_env(db_path=tmp_path / "custom.db")

    assert settings.db_path == tmp_path / "custom.db"
    assert settings.llm.disabled is True
    assert settings.llm.command_template == "agent {prompt_file}"
    assert settings.lock.backend == "memory"
    assert settings.dedupe.window_hours == 12
    assert settings.delivery.max_attempts == 5
    assert settings.scheduler.standup_hour == 10


def test_invalid_boolean_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STANDUP_BOT_LLM_DISABLED", "maybe")

    with pytest.raises(ValueError, match="Invalid boolean value"):
        Settings.from_env()


@pytest.mark.parametrize(
    ("settings", "message"),
    [
        (
            Settings(composition=CompositionSettings(default_mention_policy="everyone")),
            "MENTION_POLICY",
        ),
        (Settings(lock=LockSettings(backend="redis")), "LOCK_BACKEND"),
        (Settings(lock=LockSettings(ttl_seconds=0)), "TTL_SECONDS"),
        (Settings(lock=LockSettings(manual_timeout_seconds=-1)), "timeouts"),
        (Settings(delivery=DeliverySettings(max_attempts=0)), "MAX_ATTEMPTS"),
        (Settings(delivery=DeliverySettings(api_url="slack.com/api")), "SLACK_API_URL"),
        (Settings(scheduler=SchedulerSettings(standup_hour=24)), "STANDUP_HOUR"),
        (Settings(scheduler=SchedulerSettings(window_minutes=0)), "WINDOW_MINUTES"),
    ],
)
def test_validate_rejects_out_of_range_values(settings: Settings, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        settings.validate()


def test_worst_case_delivery_time() -> None:
    delivery = DeliverySettings(
        max_attempts=3,
        retry_base_seconds=1.0,
        request_timeout_seconds=10.0,
        max_retry_after_seconds=30.0,
    )

    assert delivery.worst_case_seconds() == 3 * 10.0 + 30.0 + 30.0
    assert DeliverySettings(max_attempts=1).worst_case_seconds() == 10.0


@pytest.mark.parametrize("ttl_seconds", [100, 150])
def test_validate_rejects_lease_shorter_than_generation(ttl_seconds: int) -> None:
    # 60s LLM timeout + 90s worst-case delivery with defaults
    settings = Settings(lock=LockSettings(ttl_seconds=ttl_seconds))

    with pytest.raises(ValueError, match="must exceed the LLM timeout"):
        settings.validate()


def test_validate_accepts_lease_longer_than_generation() -> None:
    Settings(lock=LockSettings(ttl_seconds=151)).validate()
