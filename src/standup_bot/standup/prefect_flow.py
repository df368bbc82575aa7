"""Prefect flow for the scheduled stand-up tick.

Each due project runs as its own Prefect task. Same-project overlap with a
manual trigger is resolved by the lease lock inside ``generate``; the short
scheduler timeout turns a held lock into a ``locked`` outcome instead of a wait.
A scheduled run never posts twice on the same local day.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from prefect import flow, task
from prefect.cache_policies import NO_CACHE

from standup_bot.config import Settings
from standup_bot.standup.models import ProjectNotFoundError
from standup_bot.standup.orchestrator import StandupOrchestrator, build_orchestrator
from standup_bot.standup.repository import StandupRepository
from standup_bot.standup.scheduler import due_projects
from standup_bot.storage.common import utc_now

logger = logging.getLogger(__name__)

ERROR_OUTCOME = "error"


@dataclass(slots=True)
class TickResult:
    """Per-project result of one scheduled tick."""

    project_id: str
    outcome: str
    message: str


@task(cache_policy=NO_CACHE)
def generate_standup_task(
    *,
    orchestrator: StandupOrchestrator,
    project_id: str,
    window_hours: int,
    lock_timeout_seconds: float,
) -> TickResult:
    """Run one project's generation; failures are reported, not raised."""

    try:
        outcome = orchestrator.generate(
            project_id,
            window_hours=window_hours,
            lock_timeout_seconds=lock_timeout_seconds,
            once_per_local_day=True,
        )
    except ProjectNotFoundError as exc:
        logger.warning("Scheduled stand-up skipped: %s", exc)
        return TickResult(project_id=project_id, outcome=ERROR_OUTCOME, message=str(exc))
    except Exception as exc:  # noqa: BLE001
        logger.exception("Scheduled stand-up for project %s failed", project_id)
        return TickResult(project_id=project_id, outcome=ERROR_OUTCOME, message=str(exc))
    return TickResult(project_id=project_id, outcome=outcome.code.value, message=outcome.message)


@flow(name="scheduled_standups_flow")
def scheduled_standups_flow(*, settings: Settings, now: datetime | None = None) -> list[TickResult]:
    """Generate stand-ups for every project whose local stand-up time is now."""

    tick_at = now or utc_now()
    repository = StandupRepository(
        settings.db_path,
        sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    try:
        projects = due_projects(repository, tick_at, settings)
        logger.info("Scheduled tick at %s: %s project(s) due", tick_at.isoformat(), len(projects))
        if not projects:
            return []
        with build_orchestrator(settings, repository) as orchestrator:
            futures = [
                generate_standup_task.submit(
                    orchestrator=orchestrator,
                    project_id=project.id,
                    window_hours=settings.scheduler.window_hours,
                    lock_timeout_seconds=settings.lock.scheduler_timeout_seconds,
                )
                for project in projects
            ]
            return [future.result() for future in futures]
    finally:
        repository.close()
