"""Controllers for stand-up CLI commands."""

from __future__ import annotations

import json
import shlex
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from pathlib import Path

from standup_bot.config import Settings
from standup_bot.standup.backend import CliAgentBackend
from standup_bot.standup.composition import CompositionEngine
from standup_bot.standup.demo import seed_demo_project
from standup_bot.standup.models import (
    AtRisk,
    CompositionMethod,
    DueSoonItem,
    GenerationOutcome,
    MentionPolicy,
    MovedDone,
    OpenCounts,
    OutcomeCode,
    OverdueItem,
    PreviewResult,
    Snapshot,
    StandupPostView,
    format_timestamp,
)
from standup_bot.standup.orchestrator import build_orchestrator
from standup_bot.standup.prefect_flow import scheduled_standups_flow
from standup_bot.standup.repository import StandupRepository
from standup_bot.standup.snapshot import seal_snapshot
from standup_bot.storage.common import utc_now

OUTPUT_FORMATS = ("text", "json")


def echo_agent_command_template() -> str:
    """Command template running the bundled deterministic echo agent."""

    return (
        f"{shlex.quote(sys.executable)} -m standup_bot.standup.backend.echo_agent "
        "--prompt-file {prompt_file}"
    )


@dataclass(slots=True)
class DbInitCommand:
    db_path: Path | None


@dataclass(slots=True)
class DbSeedDemoCommand:
    """CLI input for demo data seeding."""

    db_path: Path | None
    webhook_url: str | None


@dataclass(slots=True)
class StandupPreviewCommand:
    """CLI input for a read-only preview."""

    db_path: Path | None
    project_id: str
    window_hours: int
    output_format: str = "text"


@dataclass(slots=True)
class StandupGenerateCommand:
    """CLI input for one manual generation."""

    db_path: Path | None
    project_id: str
    window_hours: int
    force: bool
    lock_timeout_seconds: float | None


@dataclass(slots=True)
class StandupLastCommand:
    db_path: Path | None
    project_id: str


@dataclass(slots=True)
class StandupTickCommand:
    """CLI input for one scheduled tick."""

    db_path: Path | None
    now: datetime | None


@dataclass(slots=True)
class LlmSmokeCommand:
    """CLI input for the composition smoke check."""

    command_template: str | None
    use_echo_agent: bool
    model: str | None
    timeout_seconds: int


@dataclass(slots=True)
class CommandResult:
    """Lines to render in CLI plus overall success."""

    lines: list[str]
    success: bool


class StandupCliController:
    """Coordinates database, generation and smoke CLI operations."""

    def init_db(self, command: DbInitCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings):
            pass
        return [f"Database ready: {settings.db_path}"]

    def seed_demo(self, command: DbSeedDemoCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            result = seed_demo_project(
                repository,
                now=utc_now(),
                webhook_url=command.webhook_url,
            )
        if result.created:
            return [f"Demo project seeded: project_id={result.project_id}"]
        return [f"Demo project already present: project_id={result.project_id}"]

    def preview(self, command: StandupPreviewCommand) -> list[str]:
        settings = _validated_settings(command.db_path)
        with (
            _repository(settings) as repository,
            build_orchestrator(settings, repository) as orchestrator,
        ):
            preview = orchestrator.preview(
                command.project_id,
                window_hours=command.window_hours,
            )
        if command.output_format == "json":
            return [json.dumps(_preview_payload(preview), indent=2, ensure_ascii=False)]
        return _preview_lines(preview)

    def generate(self, command: StandupGenerateCommand) -> CommandResult:
        settings = _validated_settings(command.db_path)
        with (
            _repository(settings) as repository,
            build_orchestrator(settings, repository) as orchestrator,
        ):
            outcome = orchestrator.generate(
                command.project_id,
                window_hours=command.window_hours,
                force=command.force,
                lock_timeout_seconds=command.lock_timeout_seconds,
            )
        return CommandResult(
            lines=_outcome_lines(outcome),
            success=outcome.code is not OutcomeCode.DELIVERY_FAILED,
        )

    def last(self, command: StandupLastCommand) -> list[str]:
        settings = _validated_settings(command.db_path)
        with (
            _repository(settings) as repository,
            build_orchestrator(settings, repository) as orchestrator,
        ):
            post = orchestrator.last_post(command.project_id)
        if post is None:
            return [f"No stand-up posted yet for project {command.project_id}."]
        return [*_post_summary_lines(post), "", *post.body.split("\n")]

    def tick(self, command: StandupTickCommand) -> CommandResult:
        settings = _validated_settings(command.db_path)
        with _repository(settings):
            pass
        results = scheduled_standups_flow(settings=settings, now=command.now)
        if not results:
            return CommandResult(lines=["No projects due for stand-up."], success=True)
        lines = [
            f"{result.project_id}: {result.outcome} ({result.message})" for result in results
        ]
        failed = {OutcomeCode.DELIVERY_FAILED.value, "error"}
        return CommandResult(
            lines=lines,
            success=not any(result.outcome in failed for result in results),
        )

    def smoke(self, command: LlmSmokeCommand) -> CommandResult:
        """Run the guarded LLM path once over a synthetic snapshot."""

        settings = Settings.from_env()
        template = (
            echo_agent_command_template()
            if command.use_echo_agent
            else (command.command_template or settings.llm.command_template)
        )
        if not template:
            return CommandResult(
                lines=["No LLM command template configured (use --command or --use-echo-agent)."],
                success=False,
            )
        settings.llm = replace(
            settings.llm,
            disabled=False,
            command_template=template,
            model=command.model or settings.llm.model,
            timeout_seconds=command.timeout_seconds,
        )
        engine = CompositionEngine(settings, backend=CliAgentBackend())
        report = engine.compose(_smoke_snapshot())
        accepted = report.metrics.composition_method is CompositionMethod.LLM
        lines = [
            f"Command: {template}",
            f"LLM output {'accepted' if accepted else 'rejected, fallback used'}: "
            f"chars={report.metrics.char_count} lines={report.metrics.line_count} "
            f"bullets={report.metrics.bullet_count}",
            "",
            *report.post_text.split("\n"),
        ]
        return CommandResult(lines=lines, success=accepted)


def _validated_settings(db_path: Path | None) -> Settings:
    settings = Settings.from_env(db_path=db_path)
    settings.validate()
    return settings


def _outcome_lines(outcome: GenerationOutcome) -> list[str]:
    lines = [
        f"Outcome: {outcome.code.value} (status={outcome.http_status}) {outcome.message}",
    ]
    if outcome.payload_hash:
        lines.append(f"Payload hash: {outcome.payload_hash}")
    if outcome.composition_method is not None:
        lines.append(f"Composition: {outcome.composition_method.value}")
    if outcome.post_id:
        lines.append(f"Post id: {outcome.post_id} delivery_ts={outcome.delivery_ts or '-'}")
    if outcome.error:
        lines.append(f"Error: {outcome.error}")
    return lines


def _preview_lines(preview: PreviewResult) -> list[str]:
    snapshot = preview.snapshot
    metrics = preview.report.metrics
    lines = [
        f"Project: {snapshot.project} ({snapshot.project_id})",
        f"Window: {format_timestamp(snapshot.window_start)} .. "
        f"{format_timestamp(snapshot.window_end)} ({snapshot.window_hours}h)",
        f"Payload hash: {snapshot.payload_hash}",
        f"Open: {snapshot.open_counts.open} overdue={snapshot.open_counts.overdue} "
        f"done_in_window={snapshot.moved_done.count}",
        f"Skip today: {'yes' if snapshot.skip_post_today else 'no'}",
        f"Composition: {metrics.composition_method.value} chars={metrics.char_count} "
        f"lines={metrics.line_count} bullets={metrics.bullet_count}",
        "",
        *preview.report.post_text.split("\n"),
        "",
    ]
    if preview.last_post is None:
        lines.append("Last post: none")
    else:
        lines.extend(_post_summary_lines(preview.last_post))
    return lines


def _post_summary_lines(post: StandupPostView) -> list[str]:
    return [
        f"Last post: {format_timestamp(post.posted_at)} "
        f"method={post.composition_method.value} window={post.window_hours}h",
        f"Payload hash: {post.payload_hash}",
    ]


def _preview_payload(preview: PreviewResult) -> dict[str, object]:
    last_post = preview.last_post
    return {
        "snapshot": preview.snapshot.to_dict(),
        "report": preview.report.to_dict(),
        "last_post": (
            {
                "posted_at": format_timestamp(last_post.posted_at),
                "payload_hash": last_post.payload_hash,
                "composition_method": last_post.composition_method.value,
            }
            if last_post is not None
            else None
        ),
    }


def _smoke_snapshot() -> Snapshot:
    now = utc_now().replace(microsecond=0)
    return seal_snapshot(
        Snapshot(
            project="Smoke Project",
            project_id="smoke",
            window_hours=24,
            window_start=now - timedelta(hours=24),
            window_end=now,
            moved_done=MovedDone(count=1, examples=("Ship login page",)),
            at_risk=AtRisk(
                overdue=(
                    OverdueItem(id="S-1", title="Fix flaky CI", assignee="Dana", priority=3),
                ),
                due_soon=(
                    DueSoonItem(
                        id="S-2",
                        title="Prepare release notes",
                        assignee=None,
                        priority=2,
                        due_in_hours=20,
                    ),
                ),
            ),
            open_counts=OpenCounts(open=4, overdue=1),
            suggested_owners=(),
            skip_post_today=False,
            mention_policy=MentionPolicy.NAMES_BOLD,
            max_items=3,
            allowed_task_ids=("S-1", "S-2"),
        ),
    )


@contextmanager
def _repository(settings: Settings) -> Iterator[StandupRepository]:
    repository = StandupRepository(
        settings.db_path,
        sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()
