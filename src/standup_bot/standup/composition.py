"""Report composition: guarded LLM path with a deterministic template fallback."""

from __future__ import annotations

import logging

from standup_bot.config import Settings
from standup_bot.standup.backend import BackendRunError, BackendRunRequest, LlmBackend
from standup_bot.standup.models import (
    ComposedReport,
    CompositionMethod,
    CompositionMetrics,
    MentionPolicy,
    PolicyFlags,
    Snapshot,
)
from standup_bot.standup.output_parser import extract_json_object
from standup_bot.standup.prompts import build_prompt
from standup_bot.standup.validator import count_bullets, count_lines, validate_report_payload

logger = logging.getLogger(__name__)

MAX_AT_RISK_RENDERED = 3
MAX_NEXT_ACTIONS = 3
MAX_DONE_EXAMPLES = 2
GENERIC_NEXT_ACTIONS = (
    "Review open tasks and assign owners",
    "Update task priorities and due dates",
)


class CompositionEngine:
    """Compose a bounded report from a snapshot.

    The model is only consulted when a backend is configured and the LLM is
    not disabled. Its answer is either accepted whole or discarded.
    """

    def __init__(self, settings: Settings, *, backend: LlmBackend | None = None) -> None:
        self.settings = settings
        self.backend = backend

    def compose(self, snapshot: Snapshot) -> ComposedReport:
        if self.backend is not None and not self.settings.llm.disabled:
            accepted = self._compose_with_llm(snapshot, self.backend)
            if accepted is not None:
                post_text, included_ids = accepted
                return self._report(
                    snapshot,
                    post_text=post_text,
                    included_task_ids=included_ids,
                    method=CompositionMethod.LLM,
                )
        post_text, included_ids = render_fallback(snapshot)
        return self._report(
            snapshot,
            post_text=post_text,
            included_task_ids=included_ids,
            method=CompositionMethod.FALLBACK,
        )

    def _compose_with_llm(
        self,
        snapshot: Snapshot,
        backend: LlmBackend,
    ) -> tuple[str, tuple[str, ...]] | None:
        caps = self.settings.composition
        request = BackendRunRequest(
            prompt=build_prompt(snapshot, max_lines=caps.max_lines, max_bullets=caps.max_bullets),
            model=self.settings.llm.model,
            command_template=self.settings.llm.command_template,
            timeout_seconds=self.settings.llm.timeout_seconds,
        )
        try:
            result = backend.run(request)
        except BackendRunError as error:
            logger.warning(
                "LLM backend failed for project %s (transient=%s): %s; using fallback",
                snapshot.project_id,
                error.transient,
                error,
            )
            return None

        if result.timed_out or result.exit_code != 0:
            logger.warning(
                "LLM backend exited with code %s (timed_out=%s) for project %s; using fallback",
                result.exit_code,
                result.timed_out,
                snapshot.project_id,
            )
            return None

        payload = extract_json_object(result.stdout)
        if payload is None:
            logger.warning(
                "LLM output for project %s has no JSON object; using fallback",
                snapshot.project_id,
            )
            return None

        validation = validate_report_payload(
            payload,
            allowed_task_ids=set(snapshot.allowed_task_ids),
            max_lines=caps.max_lines,
            max_bullets=caps.max_bullets,
            max_chars=caps.max_chars,
        )
        if not validation.is_valid or validation.payload is None:
            logger.warning(
                "LLM output for project %s rejected (%s): %s; using fallback",
                snapshot.project_id,
                validation.violation.value if validation.violation else "unknown",
                validation.error_summary,
            )
            return None

        included = validation.payload["included_task_ids"]
        return validation.payload["post_text"], tuple(dict.fromkeys(included))

    def _report(
        self,
        snapshot: Snapshot,
        *,
        post_text: str,
        included_task_ids: tuple[str, ...],
        method: CompositionMethod,
    ) -> ComposedReport:
        return ComposedReport(
            post_text=post_text,
            included_task_ids=included_task_ids,
            policy_flags=PolicyFlags(
                mention_policy=snapshot.mention_policy,
                max_lines=self.settings.composition.max_lines,
                max_bullets=self.settings.composition.max_bullets,
            ),
            metrics=CompositionMetrics(
                composition_method=method,
                char_count=len(post_text),
                line_count=count_lines(post_text),
                bullet_count=count_bullets(post_text),
            ),
        )


def render_fallback(snapshot: Snapshot) -> tuple[str, tuple[str, ...]]:
    """Deterministic template; at most 6 lines and 3 bullets by construction."""

    lines = [_yesterday_line(snapshot)]

    at_risk: list[tuple[str, str]] = []
    for overdue in snapshot.at_risk.overdue:
        note = f"overdue, {_person(overdue.assignee, snapshot.mention_policy)}"
        at_risk.append((overdue.id, f"{overdue.title} ({note})"))
    for due_soon in snapshot.at_risk.due_soon:
        note = (
            f"due in {due_soon.due_in_hours}h, "
            f"{_person(due_soon.assignee, snapshot.mention_policy)}"
        )
        at_risk.append((due_soon.id, f"{due_soon.title} ({note})"))
    rendered = at_risk[:MAX_AT_RISK_RENDERED]
    if rendered:
        lines.append(f"**At risk:** {', '.join(text for _, text in rendered)}")
    else:
        lines.append("**At risk:** None")

    lines.append("**Next:**")
    suggestions = snapshot.suggested_owners[:MAX_NEXT_ACTIONS]
    if suggestions:
        lines.extend(
            f"• {_person(item.suggested_owner, snapshot.mention_policy)}: {item.reason}"
            for item in suggestions
        )
    else:
        lines.extend(f"• {action}" for action in GENERIC_NEXT_ACTIONS)

    return "\n".join(lines), tuple(task_id for task_id, _ in rendered)


def _yesterday_line(snapshot: Snapshot) -> str:
    count = snapshot.moved_done.count
    if count == 0:
        return "**Yesterday:** No completed tasks"
    line = f"**Yesterday:** Completed {count} task{'' if count == 1 else 's'}"
    examples = snapshot.moved_done.examples[:MAX_DONE_EXAMPLES]
    if examples:
        line += f" ({', '.join(examples)})"
    return line


def _person(name: str | None, policy: MentionPolicy) -> str:
    if not name:
        return "unassigned"
    if policy is MentionPolicy.NAMES_BOLD:
        return f"**{name}**"
    return name
