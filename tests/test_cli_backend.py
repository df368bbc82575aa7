from __future__ import annotations

import sys
from dataclasses import replace
from pathlib import Path

import allure
import pytest

from standup_bot.config import LlmSettings
from standup_bot.standup.backend import BackendRunError, BackendRunRequest, CliAgentBackend
from standup_bot.standup.backend.cli_backend import build_run_args
from standup_bot.standup.backend.echo_agent import main as echo_agent_main
from standup_bot.standup.composition import CompositionEngine
from standup_bot.standup.models import CompositionMethod
from standup_bot.standup.output_parser import extract_json_object
from standup_bot.standup.prompts import build_prompt
from standup_bot.standup.snapshot import SnapshotBuilder

pytestmark = [
    allure.epic("Report Composition"),
    allure.feature("Agent Command Rendering"),
]


def test_build_run_args_quotes_placeholder_values() -> None:
    run_args = build_run_args(
        command_template="agent --model {model} --prompt {prompt} --file {prompt_file}",
        model="sonnet",
        prompt='hello "world"',
        prompt_file=Path("/tmp/run dir/prompt.txt"),
    )

    assert run_args == [
        "agent",
        "--model",
        "sonnet",
        "--prompt",
        'hello "world"',
        "--file",
        "/tmp/run dir/prompt.txt",
    ]


@pytest.mark.parametrize(
    ("template", "message"),
    [
        ("   ", "empty"),
        ("agent --model {model}", "must include"),
        ("agent {prompt} {unknown}", "Unsupported"),
    ],
)
def test_build_run_args_rejects_bad_templates(template: str, message: str) -> None:
    with pytest.raises(BackendRunError, match=message) as error:
        build_run_args(
            command_template=template,
            model="m",
            prompt="p",
            prompt_file=Path("prompt.txt"),
        )

    assert error.value.transient is False


def test_missing_executable_is_not_transient() -> None:
    request = BackendRunRequest(
        prompt="p",
        model="m",
        command_template="definitely-not-a-real-agent-binary {prompt_file}",
        timeout_seconds=5,
    )

    with pytest.raises(BackendRunError, match="not found") as error:
        CliAgentBackend().run(request)

    assert error.value.transient is False


def test_run_times_out_and_reports_timeout() -> None:
    request = BackendRunRequest(
        prompt="p",
        model="m",
        command_template=f"{sys.executable} -c 'import time; time.sleep(10)' {{prompt_file}}",
        timeout_seconds=1,
    )

    result = CliAgentBackend().run(request)

    assert result.timed_out is True
    assert result.exit_code == 124


def test_echo_agent_answers_from_prompt_file(
    tmp_path,
    seeded_repository,
    settings,
    fixed_now,
    capsys,
) -> None:
    snapshot = SnapshotBuilder(seeded_repository, settings, clock=lambda: fixed_now).build("p1")
    prompt_file = tmp_path / "prompt.txt"
    prompt_file.write_text(build_prompt(snapshot, max_lines=8, max_bullets=3), "utf-8")

    assert echo_agent_main(["--prompt-file", str(prompt_file)]) == 0

    payload = extract_json_object(capsys.readouterr().out)
    assert payload == {
        "post_text": (
            "**Yesterday:** Completed 1 task(s)\n"
            "**At risk:** 1 overdue of 3 open\n"
            "**Next:**\n"
            "• Review at-risk tasks"
        ),
        "included_task_ids": ["T-2"],
    }


def test_echo_agent_through_subprocess_is_accepted(
    seeded_repository,
    settings,
    fixed_now,
    echo_agent_template,
) -> None:
    settings.llm = replace(LlmSettings(), command_template=echo_agent_template, timeout_seconds=30)
    snapshot = SnapshotBuilder(seeded_repository, settings, clock=lambda: fixed_now).build("p1")

    report = CompositionEngine(settings, backend=CliAgentBackend()).compose(snapshot)

    assert report.metrics.composition_method is CompositionMethod.LLM
    assert report.included_task_ids == ("T-2",)
    assert report.post_text.startswith("**Yesterday:** Completed 1 task(s)")


def test_echo_agent_unknown_id_forces_fallback(
    seeded_repository,
    settings,
    fixed_now,
    echo_agent_template,
) -> None:
    settings.llm = replace(
        LlmSettings(),
        command_template=f"{echo_agent_template} --unknown-id",
        timeout_seconds=30,
    )
    snapshot = SnapshotBuilder(seeded_repository, settings, clock=lambda: fixed_now).build("p1")

    report = CompositionEngine(settings, backend=CliAgentBackend()).compose(snapshot)

    assert report.metrics.composition_method is CompositionMethod.FALLBACK
    assert report.included_task_ids == ("T-2", "T-3")
