"""Domain models for stand-up snapshots, composed reports and outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

STATUS_MODEL = "canonical_v1"


class MentionPolicy(str, Enum):
    """How person names are rendered in delivered text."""

    NO_MENTIONS = "no_mentions"
    NAMES_BOLD = "names_bold"


class CompositionMethod(str, Enum):
    """Which composition path produced the final text."""

    LLM = "llm"
    FALLBACK = "fallback"


class DeliveryMode(str, Enum):
    """Channel delivery transport."""

    WEBHOOK = "webhook"
    BOT = "bot"


class GenerationState(str, Enum):
    """Orchestrator states for one generation attempt."""

    IDLE = "idle"
    LOCK_ACQUIRING = "lock_acquiring"
    LOCK_BUSY = "lock_busy"
    LOCKED = "locked"
    BUILDING_SNAPSHOT = "building_snapshot"
    DEDUPE_CHECKING = "dedupe_checking"
    SUPPRESSED = "suppressed"
    SKIPPED_NON_BUSINESS_DAY = "skipped_non_business_day"
    COMPOSING = "composing"
    DELIVERING = "delivering"
    DELIVERED = "delivered"
    DELIVERY_FAILED = "delivery_failed"
    RELEASED = "released"


class OutcomeCode(str, Enum):
    """Closed set of caller-visible generation outcomes."""

    DELIVERED = "posted"
    SUPPRESSED = "noop"
    LOCK_BUSY = "locked"
    SKIPPED = "skipped"
    DELIVERY_FAILED = "failed"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS_BY_OUTCOME[self]


_HTTP_STATUS_BY_OUTCOME: dict[OutcomeCode, int] = {
    OutcomeCode.DELIVERED: 200,
    OutcomeCode.SUPPRESSED: 304,
    OutcomeCode.LOCK_BUSY: 409,
    OutcomeCode.SKIPPED: 200,
    OutcomeCode.DELIVERY_FAILED: 502,
}


class ProjectNotFoundError(LookupError):
    """Raised when a generation or preview targets an unknown project."""

    def __init__(self, project_id: str) -> None:
        super().__init__(f"Project {project_id} not found")
        self.project_id = project_id


@dataclass(frozen=True, slots=True)
class MovedDone:
    count: int
    examples: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class OverdueItem:
    id: str
    title: str
    assignee: str | None
    priority: int


@dataclass(frozen=True, slots=True)
class DueSoonItem:
    id: str
    title: str
    assignee: str | None
    priority: int
    due_in_hours: int


@dataclass(frozen=True, slots=True)
class AtRisk:
    overdue: tuple[OverdueItem, ...] = ()
    due_soon: tuple[DueSoonItem, ...] = ()


@dataclass(frozen=True, slots=True)
class OpenCounts:
    open: int
    overdue: int


@dataclass(frozen=True, slots=True)
class OwnerSuggestion:
    task_id: str
    suggested_owner: str
    reason: str


@dataclass(frozen=True, slots=True)
class SanitizationFlags:
    markdown_escaped: bool = True
    mentions_stripped: bool = True
    secrets_redacted: bool = True
    urls_stripped: bool = True


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Immutable, sanitized project-health payload for one generation attempt.

    ``payload_hash`` is derived from every other field; build instances through
    ``standup.snapshot.seal_snapshot`` so the two never drift apart.
    """

    project: str
    project_id: str
    window_hours: int
    window_start: datetime
    window_end: datetime
    moved_done: MovedDone
    at_risk: AtRisk
    open_counts: OpenCounts
    suggested_owners: tuple[OwnerSuggestion, ...]
    skip_post_today: bool
    mention_policy: MentionPolicy
    max_items: int
    allowed_task_ids: tuple[str, ...]
    sanitization: SanitizationFlags = field(default_factory=SanitizationFlags)
    status_model: str = STATUS_MODEL
    payload_hash: str = ""

    def to_dict(self, *, include_hash: bool = True) -> dict[str, Any]:
        """Serialize to the external snapshot JSON shape."""

        payload: dict[str, Any] = {
            "project": self.project,
            "project_id": self.project_id,
            "window_hours": self.window_hours,
            "window_start": format_timestamp(self.window_start),
            "window_end": format_timestamp(self.window_end),
            "status_model": self.status_model,
            "moved_done": {
                "count": self.moved_done.count,
                "examples": list(self.moved_done.examples),
            },
            "at_risk": {
                "overdue": [
                    {
                        "id": item.id,
                        "title": item.title,
                        "assignee": item.assignee,
                        "priority": item.priority,
                    }
                    for item in self.at_risk.overdue
                ],
                "due_soon": [
                    {
                        "id": item.id,
                        "title": item.title,
                        "assignee": item.assignee,
                        "priority": item.priority,
                        "due_in_hours": item.due_in_hours,
                    }
                    for item in self.at_risk.due_soon
                ],
            },
            "open_counts": {"open": self.open_counts.open, "overdue": self.open_counts.overdue},
            "suggested_owners": [
                {
                    "task_id": suggestion.task_id,
                    "suggested_owner": suggestion.suggested_owner,
                    "reason": suggestion.reason,
                }
                for suggestion in self.suggested_owners
            ],
            "business_calendar": {"skip_post_today": self.skip_post_today},
            "mention_policy": self.mention_policy.value,
            "max_items": self.max_items,
            "allowed_task_ids": list(self.allowed_task_ids),
            "sanitization": {
                "markdown_escaped": self.sanitization.markdown_escaped,
                "mentions_stripped": self.sanitization.mentions_stripped,
                "secrets_redacted": self.sanitization.secrets_redacted,
                "urls_stripped": self.sanitization.urls_stripped,
            },
        }
        if include_hash:
            payload["payload_hash"] = self.payload_hash
        return payload


@dataclass(frozen=True, slots=True)
class PolicyFlags:
    mention_policy: MentionPolicy
    max_lines: int
    max_bullets: int


@dataclass(frozen=True, slots=True)
class CompositionMetrics:
    composition_method: CompositionMethod
    char_count: int
    line_count: int
    bullet_count: int


@dataclass(frozen=True, slots=True)
class ComposedReport:
    """Bounded report text ready for delivery."""

    post_text: str
    included_task_ids: tuple[str, ...]
    policy_flags: PolicyFlags
    metrics: CompositionMetrics

    def to_dict(self) -> dict[str, Any]:
        return {
            "post_text": self.post_text,
            "included_task_ids": list(self.included_task_ids),
            "policy_flags": {
                "mention_policy": self.policy_flags.mention_policy.value,
                "max_lines": self.policy_flags.max_lines,
                "max_bullets": self.policy_flags.max_bullets,
            },
            "metrics": {
                "composition_method": self.metrics.composition_method.value,
                "char_count": self.metrics.char_count,
                "line_count": self.metrics.line_count,
                "bullet_count": self.metrics.bullet_count,
            },
        }


@dataclass(slots=True)
class ProjectView:
    """Project settings relevant to stand-up generation."""

    id: str
    name: str
    timezone: str
    business_days_only: bool
    mention_policy: str | None
    slack_mode: str
    slack_webhook_url: str | None
    slack_bot_token: str | None
    slack_channel_id: str | None
    slack_thread_ts: str | None


@dataclass(slots=True)
class UserView:
    id: str
    name: str
    active: bool


@dataclass(slots=True)
class OpenTaskView:
    """Open task with its resolved assignee."""

    id: str
    title: str
    priority: int
    due_at: datetime | None
    assignee: UserView | None


@dataclass(slots=True)
class CompletedActivityView:
    """Done transition of one task inside the aggregation window."""

    task_id: str
    title: str
    at: datetime


@dataclass(slots=True)
class StandupPostWrite:
    """Delivery record persisted after a successful post."""

    project_id: str
    window_hours: int
    window_start: datetime
    window_end: datetime
    payload_hash: str
    body: str
    composition_method: CompositionMethod
    delivery_ts: str | None = None
    posted_at: datetime | None = None


@dataclass(slots=True)
class StandupPostView:
    id: str
    project_id: str
    window_hours: int
    window_start: datetime
    window_end: datetime
    payload_hash: str
    body: str
    composition_method: CompositionMethod
    delivery_ts: str | None
    posted_at: datetime


@dataclass(slots=True)
class GenerationOutcome:
    """Result of one orchestrated generation attempt."""

    code: OutcomeCode
    state: GenerationState
    project_id: str
    message: str
    payload_hash: str | None = None
    post_id: str | None = None
    composition_method: CompositionMethod | None = None
    delivery_ts: str | None = None
    error: str | None = None

    @property
    def http_status(self) -> int:
        return self.code.http_status


@dataclass(slots=True)
class PreviewResult:
    """Snapshot, composed text and latest post for read-only inspection."""

    snapshot: Snapshot
    report: ComposedReport
    last_post: StandupPostView | None


def format_timestamp(value: datetime) -> str:
    """Render an aware timestamp as UTC ISO-8601 with a ``Z`` suffix."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")
