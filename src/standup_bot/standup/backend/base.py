"""Backend interface for the model call in stand-up composition."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(slots=True)
class BackendRunRequest:
    """Inputs required to execute one model call."""

    prompt: str
    model: str
    command_template: str
    timeout_seconds: int


@dataclass(slots=True)
class BackendRunResult:
    """Execution outcome from backend runner."""

    exit_code: int
    timed_out: bool
    stdout: str
    stderr: str


class LlmBackend(Protocol):
    """Protocol implemented by backend runners."""

    def run(self, request: BackendRunRequest) -> BackendRunResult:
        """Run one model call and return its raw output."""
