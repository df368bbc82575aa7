"""Fixed prompt for the LLM composition path."""

from __future__ import annotations

import json

from standup_bot.standup.models import Snapshot

SNAPSHOT_MARKER = "Snapshot JSON:"

SYSTEM_PROMPT = """\
You write the daily stand-up update for a software team channel.

Rules:
- Use only the facts in the snapshot below. Do not invent tasks, people or dates.
- Mention a task only if its id is listed in allowed_task_ids.
- At most {max_lines} lines and at most {max_bullets} bullet points in total.
- Never use the @ character.
- If mention_policy is names_bold, write person names in **bold**;
  if it is no_mentions, write them as plain text.
- Structure: a **Yesterday:** line, an **At risk:** line, then **Next:** with
  short bullets starting with "• ".

Reply with a single fenced json block and nothing else:
```json
{{"post_text": "<the update>", "included_task_ids": ["<id>", "..."]}}
```
"""


def build_prompt(snapshot: Snapshot, *, max_lines: int, max_bullets: int) -> str:
    """Render the system prompt followed by the serialized snapshot."""

    payload = json.dumps(snapshot.to_dict(), indent=2, sort_keys=True, ensure_ascii=False)
    instructions = SYSTEM_PROMPT.format(max_lines=max_lines, max_bullets=max_bullets)
    return f"{instructions}\n{SNAPSHOT_MARKER}\n{payload}\n"
