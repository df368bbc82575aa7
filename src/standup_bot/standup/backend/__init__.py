"""LLM backend implementations for report composition."""

from standup_bot.standup.backend.base import BackendRunRequest, BackendRunResult, LlmBackend
from standup_bot.standup.backend.cli_backend import BackendRunError, CliAgentBackend

__all__ = [
    "BackendRunError",
    "BackendRunRequest",
    "BackendRunResult",
    "CliAgentBackend",
    "LlmBackend",
]
