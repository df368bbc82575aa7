"""Subprocess-based backend runner for CLI agents."""

from __future__ import annotations

import shlex
import subprocess
from pathlib import Path
from tempfile import TemporaryDirectory

from standup_bot.standup.backend.base import BackendRunRequest, BackendRunResult

TIMEOUT_EXIT_CODE = 124


class BackendRunError(RuntimeError):
    """Backend execution error with retryability hint."""

    def __init__(self, message: str, *, transient: bool) -> None:
        super().__init__(message)
        self.transient = transient


class CliAgentBackend:
    """Run a CLI agent from a command template and capture its stdout.

    The template may reference ``{prompt}``, ``{prompt_file}`` and ``{model}``;
    the prompt is always written to ``prompt_file`` as well.
    """

    def run(self, request: BackendRunRequest) -> BackendRunResult:
        with TemporaryDirectory(prefix="standup-bot-") as workdir:
            prompt_file = Path(workdir) / "prompt.txt"
            prompt_file.write_text(request.prompt, "utf-8")

            run_args = build_run_args(
                command_template=request.command_template,
                model=request.model,
                prompt=request.prompt,
                prompt_file=prompt_file,
            )
            try:
                process = subprocess.Popen(  # noqa: S603
                    run_args,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    text=True,
                    encoding="utf-8",
                )
            except FileNotFoundError as error:
                raise BackendRunError(
                    f"CLI backend command not found: {run_args[0]}",
                    transient=False,
                ) from error
            except OSError as error:
                raise BackendRunError(
                    f"CLI backend failed to start: {error}",
                    transient=True,
                ) from error

            try:
                stdout, stderr = process.communicate(timeout=request.timeout_seconds)
            except subprocess.TimeoutExpired:
                _terminate_process(process)
                return BackendRunResult(
                    exit_code=TIMEOUT_EXIT_CODE,
                    timed_out=True,
                    stdout="",
                    stderr="",
                )
            return BackendRunResult(
                exit_code=process.returncode,
                timed_out=False,
                stdout=stdout or "",
                stderr=stderr or "",
            )


def build_run_args(
    *,
    command_template: str,
    model: str,
    prompt: str,
    prompt_file: Path,
) -> list[str]:
    stripped = command_template.strip()
    if not stripped:
        raise BackendRunError("CLI backend command template is empty.", transient=False)
    if "{prompt}" not in stripped and "{prompt_file}" not in stripped:
        raise BackendRunError(
            "CLI backend command template must include {prompt} or {prompt_file}.",
            transient=False,
        )

    try:
        rendered = stripped.format(
            model=shlex.quote(model),
            prompt=shlex.quote(prompt),
            prompt_file=shlex.quote(str(prompt_file)),
        )
    except KeyError as error:
        raise BackendRunError(
            f"Unsupported command template placeholder: {error}",
            transient=False,
        ) from error

    argv = shlex.split(rendered)
    if not argv:
        raise BackendRunError(
            "CLI backend command template rendered empty command.",
            transient=False,
        )
    return argv


def _terminate_process(process: subprocess.Popen[str]) -> None:
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.communicate(timeout=2)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.communicate(timeout=2)
