"""Canonical snapshot builder.

Turns raw project data into a bounded, sanitized and deterministic
``Snapshot``. The builder only reads from the repository; the resulting
``payload_hash`` is the join key for duplicate suppression.
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
from collections import Counter
from collections.abc import Callable, Iterator
from dataclasses import replace
from datetime import UTC, datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from standup_bot.config import Settings
from standup_bot.standup.models import (
    AtRisk,
    DueSoonItem,
    MentionPolicy,
    MovedDone,
    OpenCounts,
    OpenTaskView,
    OverdueItem,
    OwnerSuggestion,
    ProjectNotFoundError,
    ProjectView,
    Snapshot,
    UserView,
)
from standup_bot.standup.repository import StandupRepository
from standup_bot.standup.sanitization import sanitize_optional, sanitize_text
from standup_bot.storage.common import utc_now

logger = logging.getLogger(__name__)

ALLOWED_WINDOW_HOURS = (24, 48)
_WEEKEND = (5, 6)
_SECONDS_PER_HOUR = 3600


class SnapshotBuilder:
    """Build sealed snapshots for one project over a 24h or 48h window."""

    def __init__(
        self,
        repository: StandupRepository,
        settings: Settings,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository
        self.settings = settings
        self.clock = clock

    def build(self, project_id: str, window_hours: int = 24) -> Snapshot:
        if window_hours not in ALLOWED_WINDOW_HOURS:
            raise ValueError(
                f"window_hours must be one of {ALLOWED_WINDOW_HOURS}, got {window_hours}",
            )

        project = self.repository.get_project(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)

        as_of = floor_to_granularity(self.clock(), self.settings.snapshot.as_of_granularity_seconds)
        window_start = as_of - timedelta(hours=window_hours)
        max_items = self.settings.snapshot.max_items

        moved_done = self._moved_done(project_id, start=window_start, end=as_of)
        open_tasks = self.repository.list_open_tasks(project_id)
        overdue_tasks, due_soon_tasks = self._split_at_risk(open_tasks, as_of=as_of)
        kept_overdue = overdue_tasks[:max_items]
        kept_due_soon = due_soon_tasks[:max_items]

        at_risk = AtRisk(
            overdue=tuple(
                OverdueItem(
                    id=task.id,
                    title=sanitize_text(task.title),
                    assignee=_assignee_name(task),
                    priority=task.priority,
                )
                for task in kept_overdue
            ),
            due_soon=tuple(
                DueSoonItem(
                    id=task.id,
                    title=sanitize_text(task.title),
                    assignee=_assignee_name(task),
                    priority=task.priority,
                    due_in_hours=_hours_until(task.due_at, as_of=as_of),
                )
                for task in kept_due_soon
                if task.due_at is not None
            ),
        )
        open_counts = OpenCounts(
            open=len(open_tasks),
            overdue=sum(
                1 for task in open_tasks if task.due_at is not None and task.due_at < as_of
            ),
        )

        snapshot = Snapshot(
            project=sanitize_text(project.name),
            project_id=project.id,
            window_hours=window_hours,
            window_start=window_start,
            window_end=as_of,
            moved_done=moved_done,
            at_risk=at_risk,
            open_counts=open_counts,
            suggested_owners=self._suggest_owners([*kept_overdue, *kept_due_soon], as_of=as_of),
            skip_post_today=is_non_business_day(project, as_of),
            mention_policy=self._mention_policy(project),
            max_items=max_items,
            allowed_task_ids=tuple(task.id for task in [*kept_overdue, *kept_due_soon]),
        )
        sealed = seal_snapshot(snapshot)
        logger.debug(
            "Built snapshot for project %s window=%sh hash=%s",
            project_id,
            window_hours,
            sealed.payload_hash,
        )
        return sealed

    def _moved_done(self, project_id: str, *, start: datetime, end: datetime) -> MovedDone:
        activities = self.repository.list_completed_activities(project_id, start=start, end=end)
        titles_by_task: dict[str, str] = {}
        for activity in activities:
            titles_by_task.setdefault(activity.task_id, activity.title)
        examples = tuple(
            sanitize_text(title)
            for title in list(titles_by_task.values())[: self.settings.snapshot.max_items]
        )
        return MovedDone(count=len(titles_by_task), examples=examples)

    def _split_at_risk(
        self,
        open_tasks: list[OpenTaskView],
        *,
        as_of: datetime,
    ) -> tuple[list[OpenTaskView], list[OpenTaskView]]:
        horizon = as_of + timedelta(hours=self.settings.snapshot.due_soon_hours)
        with_due = sorted(
            (task for task in open_tasks if task.due_at is not None),
            key=lambda task: (-task.priority, task.due_at, task.id),
        )
        overdue = [task for task in with_due if task.due_at < as_of]
        due_soon = [task for task in with_due if as_of <= task.due_at <= horizon]
        return overdue, due_soon

    def _suggest_owners(
        self,
        tasks: list[OpenTaskView],
        *,
        as_of: datetime,
    ) -> tuple[OwnerSuggestion, ...]:
        cap = self.settings.snapshot.max_suggestions_per_owner
        since = as_of - timedelta(days=self.settings.snapshot.recent_actor_days)
        load: Counter[str] = Counter()
        suggestions: list[OwnerSuggestion] = []

        for task in tasks:
            for user, reason in self._owner_candidates(task, since=since):
                if not user.active or load[user.id] >= cap:
                    continue
                load[user.id] += 1
                suggestions.append(
                    OwnerSuggestion(
                        task_id=task.id,
                        suggested_owner=sanitize_text(user.name),
                        reason=sanitize_text(reason),
                    ),
                )
                break
        return tuple(suggestions)

    def _owner_candidates(
        self,
        task: OpenTaskView,
        *,
        since: datetime,
    ) -> Iterator[tuple[UserView, str]]:
        """Yield owner candidates in rule order; lookups run lazily."""

        if task.assignee is not None:
            yield task.assignee, f"Currently assigned to {task.assignee.name}"
        actor = self.repository.most_recent_actor(task.id, since=since)
        if actor is not None:
            yield actor, f"Recent activity by {actor.name}"
        owner = self.repository.component_default_owner(task.id)
        if owner is not None:
            yield owner, "Default owner for component"

    def _mention_policy(self, project: ProjectView) -> MentionPolicy:
        configured = project.mention_policy or self.settings.composition.default_mention_policy
        try:
            return MentionPolicy(configured)
        except ValueError:
            logger.warning(
                "Unknown mention policy %r for project %s, using %s",
                configured,
                project.id,
                self.settings.composition.default_mention_policy,
            )
            return MentionPolicy(self.settings.composition.default_mention_policy)


def compute_payload_hash(snapshot: Snapshot) -> str:
    """SHA-256 hex digest over every snapshot field except the hash itself."""

    canonical = json.dumps(
        snapshot.to_dict(include_hash=False),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def seal_snapshot(snapshot: Snapshot) -> Snapshot:
    """Return a copy of ``snapshot`` carrying its own content hash."""

    return replace(snapshot, payload_hash=compute_payload_hash(snapshot))


def floor_to_granularity(value: datetime, granularity_seconds: int) -> datetime:
    """Floor an instant to a whole multiple of ``granularity_seconds`` (UTC)."""

    epoch = int(value.timestamp())
    return datetime.fromtimestamp(epoch - epoch % granularity_seconds, tz=UTC)


def resolve_timezone(name: str) -> tzinfo:
    """IANA zone for ``name``; UTC when the identifier is not recognised."""

    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Invalid timezone %r, falling back to UTC", name)
        return UTC


def is_non_business_day(project: ProjectView, now: datetime) -> bool:
    if not project.business_days_only:
        return False
    local_now = now.astimezone(resolve_timezone(project.timezone))
    return local_now.weekday() in _WEEKEND


def _assignee_name(task: OpenTaskView) -> str | None:
    if task.assignee is None:
        return None
    return sanitize_optional(task.assignee.name)


def _hours_until(due_at: datetime, *, as_of: datetime) -> int:
    return math.ceil((due_at - as_of).total_seconds() / _SECONDS_PER_HOUR)
