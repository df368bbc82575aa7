"""Stand-up time eligibility for the scheduled tick."""

from __future__ import annotations

from datetime import datetime

from standup_bot.config import Settings
from standup_bot.standup.models import ProjectView
from standup_bot.standup.repository import StandupRepository
from standup_bot.standup.snapshot import is_non_business_day, resolve_timezone


def is_standup_due(project: ProjectView, now: datetime, settings: Settings) -> bool:
    """True when ``now`` falls inside the project's local stand-up window."""

    if is_non_business_day(project, now):
        return False
    local_now = now.astimezone(resolve_timezone(project.timezone))
    return (
        local_now.hour == settings.scheduler.standup_hour
        and local_now.minute < settings.scheduler.window_minutes
    )


def due_projects(
    repository: StandupRepository,
    now: datetime,
    settings: Settings,
) -> list[ProjectView]:
    return [
        project
        for project in repository.list_projects()
        if is_standup_due(project, now, settings)
    ]
