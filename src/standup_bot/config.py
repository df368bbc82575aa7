"""Runtime configuration for stand-up generation and delivery."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

MENTION_POLICIES = ("no_mentions", "names_bold")
LOCK_BACKENDS = ("sqlite", "memory")


@dataclass(slots=True)
class LlmSettings:
    """LLM provider settings for the composition step."""

    disabled: bool = False
    command_template: str = ""
    model: str = "sonnet"
    timeout_seconds: int = 60


@dataclass(slots=True)
class CompositionSettings:
    """Guardrail caps and defaults for composed reports."""

    default_mention_policy: str = "names_bold"
    max_lines: int = 8
    max_bullets: int = 3
    max_chars: int = 2_000


@dataclass(slots=True)
class SnapshotSettings:
    """Snapshot aggregation settings."""

    max_items: int = 3
    due_soon_hours: int = 48
    recent_actor_days: int = 14
    max_suggestions_per_owner: int = 2
    as_of_granularity_seconds: int = 900


@dataclass(slots=True)
class DedupeSettings:
    """Idempotency window for identical snapshots."""

    window_hours: int = 6


@dataclass(slots=True)
class LockSettings:
    """Per-project lease lock settings."""

    backend: str = "sqlite"
    ttl_seconds: int = 300
    poll_interval_seconds: float = 0.1
    scheduler_timeout_seconds: float = 5.0
    manual_timeout_seconds: float = 30.0


@dataclass(slots=True)
class DeliverySettings:
    """Channel delivery settings."""

    max_attempts: int = 3
    retry_base_seconds: float = 1.0
    request_timeout_seconds: float = 10.0
    max_retry_after_seconds: float = 30.0
    api_url: str = "https://slack.com/api/chat.postMessage"

    def worst_case_seconds(self) -> float:
        """Upper bound of one delivery: every attempt times out, every wait is maximal."""

        waits = sum(
            max(
                self.max_retry_after_seconds,
                self.retry_base_seconds * (2 ** (attempt - 1)) + self.retry_base_seconds,
            )
            for attempt in range(1, self.max_attempts)
        )
        return self.max_attempts * self.request_timeout_seconds + waits


@dataclass(slots=True)
class SchedulerSettings:
    """Scheduled tick settings."""

    standup_hour: int = 9
    window_minutes: int = 15
    window_hours: int = 24


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".standup_bot.db")
    sqlite_busy_timeout_ms: int = 5_000
    llm: LlmSettings = field(default_factory=LlmSettings)
    composition: CompositionSettings = field(default_factory=CompositionSettings)
    snapshot: SnapshotSettings = field(default_factory=SnapshotSettings)
    dedupe: DedupeSettings = field(default_factory=DedupeSettings)
    lock: LockSettings = field(default_factory=LockSettings)
    delivery: DeliverySettings = field(default_factory=DeliverySettings)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("STANDUP_BOT_DB_PATH", ".standup_bot.db")),
            sqlite_busy_timeout_ms=int(os.getenv("STANDUP_BOT_SQLITE_BUSY_TIMEOUT_MS", "5000")),
            llm=LlmSettings(
                disabled=_env_bool("STANDUP_BOT_LLM_DISABLED", default=False),
                command_template=os.getenv("STANDUP_BOT_LLM_COMMAND_TEMPLATE", "").strip(),
                model=os.getenv("STANDUP_BOT_LLM_MODEL", "sonnet"),
                timeout_seconds=int(os.getenv("STANDUP_BOT_LLM_TIMEOUT_SECONDS", "60")),
            ),
            composition=CompositionSettings(
                default_mention_policy=os.getenv(
                    "STANDUP_BOT_DEFAULT_MENTION_POLICY",
                    "names_bold",
                ).strip(),
            ),
            snapshot=SnapshotSettings(
                as_of_granularity_seconds=int(
                    os.getenv("STANDUP_BOT_SNAPSHOT_GRANULARITY_SECONDS", "900"),
                ),
            ),
            dedupe=DedupeSettings(
                window_hours=int(os.getenv("STANDUP_BOT_DEDUPE_WINDOW_HOURS", "6")),
            ),
            lock=LockSettings(
                backend=os.getenv("STANDUP_BOT_LOCK_BACKEND", "sqlite").strip().lower(),
                ttl_seconds=int(os.getenv("STANDUP_BOT_LOCK_TTL_SECONDS", "300")),
                scheduler_timeout_seconds=float(
                    os.getenv("STANDUP_BOT_LOCK_SCHEDULER_TIMEOUT_SECONDS", "5"),
                ),
                manual_timeout_seconds=float(
                    os.getenv("STANDUP_BOT_LOCK_MANUAL_TIMEOUT_SECONDS", "30"),
                ),
            ),
            delivery=DeliverySettings(
                max_attempts=int(os.getenv("STANDUP_BOT_DELIVERY_MAX_ATTEMPTS", "3")),
                retry_base_seconds=float(
                    os.getenv("STANDUP_BOT_DELIVERY_RETRY_BASE_SECONDS", "1.0"),
                ),
                request_timeout_seconds=float(
                    os.getenv("STANDUP_BOT_DELIVERY_TIMEOUT_SECONDS", "10.0"),
                ),
                max_retry_after_seconds=float(
                    os.getenv("STANDUP_BOT_DELIVERY_MAX_RETRY_AFTER_SECONDS", "30"),
                ),
                api_url=os.getenv(
                    "STANDUP_BOT_SLACK_API_URL",
                    "https://slack.com/api/chat.postMessage",
                ),
            ),
            scheduler=SchedulerSettings(
                standup_hour=int(os.getenv("STANDUP_BOT_STANDUP_HOUR", "9")),
                window_minutes=int(os.getenv("STANDUP_BOT_STANDUP_WINDOW_MINUTES", "15")),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error on out-of-range values."""

        if self.composition.default_mention_policy not in MENTION_POLICIES:
            raise ValueError(
                "STANDUP_BOT_DEFAULT_MENTION_POLICY must be one of "
                f"{', '.join(MENTION_POLICIES)}, got {self.composition.default_mention_policy!r}.",
            )
        if self.lock.backend not in LOCK_BACKENDS:
            raise ValueError(
                f"STANDUP_BOT_LOCK_BACKEND must be one of {', '.join(LOCK_BACKENDS)}, "
                f"got {self.lock.backend!r}.",
            )
        if self.lock.ttl_seconds <= 0:
            raise ValueError("STANDUP_BOT_LOCK_TTL_SECONDS must be > 0.")
        if self.lock.scheduler_timeout_seconds < 0 or self.lock.manual_timeout_seconds < 0:
            raise ValueError("Lock acquire timeouts must be >= 0.")
        if self.dedupe.window_hours < 0:
            raise ValueError("STANDUP_BOT_DEDUPE_WINDOW_HOURS must be >= 0.")
        if self.delivery.max_attempts <= 0:
            raise ValueError("STANDUP_BOT_DELIVERY_MAX_ATTEMPTS must be a positive integer.")
        if self.delivery.max_retry_after_seconds < 0:
            raise ValueError("STANDUP_BOT_DELIVERY_MAX_RETRY_AFTER_SECONDS must be >= 0.")
        generation_budget = self.llm.timeout_seconds + self.delivery.worst_case_seconds()
        if self.lock.ttl_seconds <= generation_budget:
            raise ValueError(
                f"STANDUP_BOT_LOCK_TTL_SECONDS ({self.lock.ttl_seconds}) must exceed the LLM "
                f"timeout plus the worst-case delivery time ({generation_budget:g}s).",
            )
        if self.snapshot.as_of_granularity_seconds <= 0:
            raise ValueError("STANDUP_BOT_SNAPSHOT_GRANULARITY_SECONDS must be > 0.")
        if not 0 <= self.scheduler.standup_hour <= 23:  # noqa: PLR2004
            raise ValueError("STANDUP_BOT_STANDUP_HOUR must be within 0..23.")
        if not 1 <= self.scheduler.window_minutes <= 60:  # noqa: PLR2004
            raise ValueError("STANDUP_BOT_STANDUP_WINDOW_MINUTES must be within 1..60.")
        _validate_api_url(self.delivery.api_url)


def _validate_api_url(value: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            "Invalid STANDUP_BOT_SLACK_API_URL: "
            f"{value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
