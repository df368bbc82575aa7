"""CLI entrypoint for standup-bot."""

from datetime import datetime
from pathlib import Path

import rich_click as click

from standup_bot import __version__
from standup_bot.standup.controllers import (
    OUTPUT_FORMATS,
    DbInitCommand,
    DbSeedDemoCommand,
    LlmSmokeCommand,
    StandupCliController,
    StandupGenerateCommand,
    StandupLastCommand,
    StandupPreviewCommand,
    StandupTickCommand,
)
from standup_bot.standup.models import ProjectNotFoundError
from standup_bot.storage.common import to_utc_aware_datetime

click.rich_click.USE_MARKDOWN = True
CONTROLLER = StandupCliController()

_WINDOW_CHOICE = click.Choice(["24", "48"])


@click.group()
@click.version_option(version=__version__, prog_name="standup-bot")
def standup_bot() -> None:
    """Stand-up report bot CLI."""


@standup_bot.group()
def db() -> None:
    """Database commands."""


@db.command("init")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def db_init(db_path: Path | None) -> None:
    """Create or upgrade the database schema."""

    _emit_lines(CONTROLLER.init_db(DbInitCommand(db_path=db_path)))


@db.command("seed-demo")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--webhook-url",
    default=None,
    help="Incoming webhook URL stored on the demo project.",
)
def db_seed_demo(db_path: Path | None, webhook_url: str | None) -> None:
    """Seed a demo project with users, tasks and activity."""

    _emit_lines(
        CONTROLLER.seed_demo(DbSeedDemoCommand(db_path=db_path, webhook_url=webhook_url)),
    )


@standup_bot.group()
def standup() -> None:
    """Stand-up generation commands."""


@standup.command("preview")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--project-id", required=True, help="Project id.")
@click.option(
    "--window-hours",
    type=_WINDOW_CHOICE,
    default="24",
    show_default=True,
    help="Aggregation window in hours.",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(OUTPUT_FORMATS, case_sensitive=False),
    default="text",
    show_default=True,
    help="Output format.",
)
def standup_preview(
    db_path: Path | None,
    project_id: str,
    window_hours: str,
    output_format: str,
) -> None:
    """Show snapshot and composed text without posting or writing anything."""

    try:
        lines = CONTROLLER.preview(
            StandupPreviewCommand(
                db_path=db_path,
                project_id=project_id,
                window_hours=int(window_hours),
                output_format=output_format.lower(),
            ),
        )
    except ProjectNotFoundError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@standup.command("generate")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--project-id", required=True, help="Project id.")
@click.option(
    "--window-hours",
    type=_WINDOW_CHOICE,
    default="24",
    show_default=True,
    help="Aggregation window in hours.",
)
@click.option("--force", is_flag=True, default=False, help="Post even if an identical one exists.")
@click.option(
    "--lock-timeout-seconds",
    type=click.FloatRange(min=0),
    default=None,
    help="Lock acquire timeout; defaults to STANDUP_BOT_LOCK_MANUAL_TIMEOUT_SECONDS.",
)
def standup_generate(
    db_path: Path | None,
    project_id: str,
    window_hours: str,
    force: bool,
    lock_timeout_seconds: float | None,
) -> None:
    """Generate and post a stand-up for one project."""

    try:
        result = CONTROLLER.generate(
            StandupGenerateCommand(
                db_path=db_path,
                project_id=project_id,
                window_hours=int(window_hours),
                force=force,
                lock_timeout_seconds=lock_timeout_seconds,
            ),
        )
    except ProjectNotFoundError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Stand-up delivery failed.")


@standup.command("last")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--project-id", required=True, help="Project id.")
def standup_last(db_path: Path | None, project_id: str) -> None:
    """Show the most recent delivered stand-up."""

    try:
        lines = CONTROLLER.last(StandupLastCommand(db_path=db_path, project_id=project_id))
    except ProjectNotFoundError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@standup.command("tick")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--now",
    type=click.DateTime(formats=["%Y-%m-%dT%H:%M:%S%z", "%Y-%m-%dT%H:%M:%S"]),
    default=None,
    help="Tick instant (ISO-8601); naive values are UTC. Defaults to the current time.",
)
def standup_tick(db_path: Path | None, now: datetime | None) -> None:
    """Run one scheduled tick for every project whose stand-up time is now."""

    result = CONTROLLER.tick(StandupTickCommand(db_path=db_path, now=_as_utc(now)))
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Scheduled tick finished with failures.")


@standup_bot.group()
def llm() -> None:
    """LLM backend commands."""


@llm.command("smoke")
@click.option(
    "--command",
    "command_template",
    default=None,
    help=(
        "Run template for the CLI agent. Supports {model}, {prompt}, and {prompt_file}. "
        "If omitted, STANDUP_BOT_LLM_COMMAND_TEMPLATE is used."
    ),
)
@click.option(
    "--use-echo-agent",
    is_flag=True,
    default=False,
    help="Use the bundled deterministic echo agent.",
)
@click.option("--model", default=None, help="Optional model id override.")
@click.option(
    "--timeout-seconds",
    type=click.IntRange(min=1, max=300),
    default=45,
    show_default=True,
    help="Timeout for the agent run.",
)
def llm_smoke(
    command_template: str | None,
    use_echo_agent: bool,
    model: str | None,
    timeout_seconds: int,
) -> None:
    """Compose one report through the LLM path and check it passes guardrails."""

    result = CONTROLLER.smoke(
        LlmSmokeCommand(
            command_template=command_template,
            use_echo_agent=use_echo_agent,
            model=model,
            timeout_seconds=timeout_seconds,
        ),
    )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("LLM smoke check failed.")


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return to_utc_aware_datetime(value)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    standup_bot()
