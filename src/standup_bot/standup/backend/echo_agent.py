"""Local deterministic agent for CLI backend smoke and integration tests."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from standup_bot.standup.prompts import SNAPSHOT_MARKER


def main(argv: list[str] | None = None) -> int:
    """Answer the composition prompt with a short, valid report."""

    parser = argparse.ArgumentParser()
    parser.add_argument("--prompt-file", required=True)
    parser.add_argument(
        "--unknown-id",
        action="store_true",
        help="Reference a task id outside the allowed set.",
    )
    args = parser.parse_args(argv)

    prompt = Path(args.prompt_file).read_text("utf-8")
    _, _, raw_snapshot = prompt.partition(SNAPSHOT_MARKER)
    snapshot = json.loads(raw_snapshot)

    allowed_ids = list(snapshot.get("allowed_task_ids", []))
    included_ids = allowed_ids[:1]
    if args.unknown_id:
        included_ids.append("task-not-in-snapshot")

    moved_done = snapshot.get("moved_done", {})
    open_counts = snapshot.get("open_counts", {})
    lines = [
        f"**Yesterday:** Completed {moved_done.get('count', 0)} task(s)",
        f"**At risk:** {open_counts.get('overdue', 0)} overdue of {open_counts.get('open', 0)} open",
        "**Next:**",
        "• Review at-risk tasks",
    ]
    payload = {"post_text": "\n".join(lines), "included_task_ids": included_ids}
    print("```json")
    print(json.dumps(payload, ensure_ascii=False))
    print("```")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
