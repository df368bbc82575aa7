from __future__ import annotations

import allure

from standup_bot.standup.demo import DEMO_PROJECT_ID, seed_demo_project
from standup_bot.standup.snapshot import SnapshotBuilder

pytestmark = [
    allure.epic("Stand-up Snapshot"),
    allure.feature("Demo Data"),
]


def test_seed_is_idempotent(repository, fixed_now) -> None:
    first = seed_demo_project(repository, now=fixed_now, webhook_url="https://hooks.example.com/x")
    second = seed_demo_project(repository, now=fixed_now)

    assert first.created is True
    assert second.created is False
    project = repository.get_project(DEMO_PROJECT_ID)
    assert project is not None
    assert project.timezone == "Asia/Kolkata"
    assert project.slack_webhook_url == "https://hooks.example.com/x"


def test_demo_snapshot_covers_every_owner_rule(repository, settings, fixed_now) -> None:
    seed_demo_project(repository, now=fixed_now)

    snapshot = SnapshotBuilder(repository, settings, clock=lambda: fixed_now).build(
        DEMO_PROJECT_ID,
    )

    assert snapshot.moved_done.count == 1
    assert snapshot.moved_done.examples == ("QA test scope for onboarding",)
    assert snapshot.allowed_task_ids == ("T-19", "T-27", "T-41")
    assert snapshot.open_counts.open == 3
    assert snapshot.open_counts.overdue == 1
    suggestions = {item.task_id: item.reason for item in snapshot.suggested_owners}
    assert suggestions == {
        "T-19": "Recent activity by Vikram",
        "T-27": "Currently assigned to Nina",
    }
