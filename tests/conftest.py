"""Shared test fixtures."""

from __future__ import annotations

import os
import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from standup_bot.config import Settings
from standup_bot.standup.backend import BackendRunRequest, BackendRunResult
from standup_bot.standup.controllers import echo_agent_command_template
from standup_bot.standup.delivery import ChannelConfig, DeliveryResult
from standup_bot.standup.models import ComposedReport
from standup_bot.standup.repository import StandupRepository

# Wednesday.
FIXED_NOW = datetime(2026, 10, 14, 9, 0, tzinfo=UTC)
# Saturday.
WEEKEND_NOW = datetime(2026, 10, 17, 9, 0, tzinfo=UTC)

SRC_DIR = Path(__file__).resolve().parents[1] / "src"

ECHO_AGENT_COMMAND_TEMPLATE = echo_agent_command_template()


@dataclass
class RecordingPoster:
    """Poster double that records every delivery call."""

    result: DeliveryResult = field(
        default_factory=lambda: DeliveryResult(success=True, ts="1700000000.000100", attempts=1),
    )
    delay_seconds: float = 0.0
    calls: list[tuple[ComposedReport, ChannelConfig]] = field(default_factory=list)
    _guard: threading.Lock = field(default_factory=threading.Lock)

    def deliver(self, report: ComposedReport, channel: ChannelConfig) -> DeliveryResult:
        with self._guard:
            self.calls.append((report, channel))
        if self.delay_seconds:
            threading.Event().wait(self.delay_seconds)
        return self.result


@dataclass
class StaticBackend:
    """LLM backend double returning canned stdout."""

    stdout: str = ""
    exit_code: int = 0
    timed_out: bool = False
    error: Exception | None = None
    requests: list[BackendRunRequest] = field(default_factory=list)

    def run(self, request: BackendRunRequest) -> BackendRunResult:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return BackendRunResult(
            exit_code=self.exit_code,
            timed_out=self.timed_out,
            stdout=self.stdout,
            stderr="",
        )


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(db_path=tmp_path / "standup.db")


@pytest.fixture()
def repository(settings: Settings) -> Iterator[StandupRepository]:
    repo = StandupRepository(
        settings.db_path,
        sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    repo.init_schema()
    try:
        yield repo
    finally:
        repo.close()


@pytest.fixture()
def seeded_repository(repository: StandupRepository) -> StandupRepository:
    """Project ``p1`` with one completed, one overdue, one due-soon and one undated task."""

    seed_basic_project(repository, now=FIXED_NOW)
    return repository


def seed_basic_project(
    repository: StandupRepository,
    *,
    now: datetime,
    project_id: str = "p1",
    business_days_only: bool = True,
    timezone: str = "UTC",
    mention_policy: str | None = None,
) -> None:
    repository.add_project(
        project_id=project_id,
        name="Apollo",
        timezone=timezone,
        business_days_only=business_days_only,
        mention_policy=mention_policy,
        slack_webhook_url="https://hooks.example.com/services/T1",
    )
    repository.add_user(user_id="u_ana", name="Ana", email="ana@example.com")
    repository.add_user(user_id="u_ben", name="Ben", email="ben@example.com")
    repository.add_user(user_id="u_cal", name="Cal", email="cal@example.com", active=False)

    repository.add_task(
        task_id="T-1",
        project_id=project_id,
        title="Fix login @ana https://x.io/login",
        status="Done",
        status_category="done",
        assignee_id="u_ana",
    )
    repository.add_activity(
        project_id=project_id,
        task_id="T-1",
        from_status="In Progress",
        to_status="Done",
        at=now - timedelta(hours=2),
        actor_id="u_ana",
    )
    repository.add_task(
        task_id="T-2",
        project_id=project_id,
        title="Payment retries",
        status="In Progress",
        status_category="doing",
        priority=3,
        assignee_id="u_ana",
        due_at=now - timedelta(hours=5),
    )
    repository.add_task(
        task_id="T-3",
        project_id=project_id,
        title="Release notes",
        status="To-Do",
        status_category="todo",
        priority=2,
        due_at=now + timedelta(hours=10),
    )
    repository.add_task(
        task_id="T-4",
        project_id=project_id,
        title="Refactor settings page",
        status="To-Do",
        status_category="todo",
    )
    repository.add_component(
        component_id="c_docs",
        project_id=project_id,
        name="Docs",
        default_owner_id="u_ben",
        task_ids=("T-3",),
    )


@pytest.fixture()
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture()
def weekend_now() -> datetime:
    return WEEKEND_NOW


@pytest.fixture()
def seed_project():
    return seed_basic_project


@pytest.fixture()
def poster() -> RecordingPoster:
    return RecordingPoster()


@pytest.fixture()
def make_poster():
    return RecordingPoster


@pytest.fixture()
def make_backend():
    return StaticBackend


@pytest.fixture()
def echo_agent_template(monkeypatch: pytest.MonkeyPatch) -> str:
    """Echo agent command; the subprocess resolves the package from the source tree."""

    inherited = os.environ.get("PYTHONPATH")
    monkeypatch.setenv(
        "PYTHONPATH",
        os.pathsep.join(filter(None, [str(SRC_DIR), inherited])),
    )
    return ECHO_AGENT_COMMAND_TEMPLATE
