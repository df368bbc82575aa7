"""Demo project seeding for local runs and smoke checks."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from standup_bot.standup.repository import StandupRepository

logger = logging.getLogger(__name__)

DEMO_PROJECT_ID = "proj_1"


@dataclass(slots=True)
class DemoSeedResult:
    project_id: str
    created: bool


def seed_demo_project(
    repository: StandupRepository,
    *,
    now: datetime,
    webhook_url: str | None = None,
) -> DemoSeedResult:
    """Create the demo project with users, tasks and activity.

    Does nothing when the demo project already exists.
    """

    if repository.get_project(DEMO_PROJECT_ID) is not None:
        logger.info("Demo project %s already exists, skipping seed", DEMO_PROJECT_ID)
        return DemoSeedResult(project_id=DEMO_PROJECT_ID, created=False)

    def hours(offset: float) -> datetime:
        return now + timedelta(hours=offset)

    repository.add_project(
        project_id=DEMO_PROJECT_ID,
        name="Launch Alpha",
        timezone="Asia/Kolkata",
        business_days_only=True,
        slack_mode="webhook",
        slack_webhook_url=webhook_url,
    )
    for user_id, name, capacity in (
        ("u_vikram", "Vikram", 0.9),
        ("u_nina", "Nina", 0.8),
        ("u_arun", "Arun", 0.7),
    ):
        repository.add_user(
            user_id=user_id,
            name=name,
            email=f"{name.lower()}@example.com",
            capacity_score=capacity,
        )
    repository.add_user(
        user_id="u_mira",
        name="Mira",
        email="mira@example.com",
        active=False,
    )

    repository.add_task(
        task_id="T-19",
        project_id=DEMO_PROJECT_ID,
        title="Invoice export edge cases",
        status="In Progress",
        status_category="doing",
        priority=3,
        due_at=hours(-12),
    )
    repository.add_task(
        task_id="T-27",
        project_id=DEMO_PROJECT_ID,
        title="Auth rate limits",
        status="To-Do",
        status_category="todo",
        priority=2,
        assignee_id="u_nina",
        due_at=hours(36),
    )
    repository.add_task(
        task_id="T-33",
        project_id=DEMO_PROJECT_ID,
        title="QA test scope for onboarding",
        status="Done",
        status_category="done",
        priority=1,
        assignee_id="u_arun",
        due_at=hours(72),
    )
    repository.add_task(
        task_id="T-41",
        project_id=DEMO_PROJECT_ID,
        title="Onboarding copy review",
        status="Blocked",
        status_category="blocked",
        priority=1,
        assignee_id="u_mira",
        due_at=hours(20),
    )

    repository.add_component(
        component_id="c_billing",
        project_id=DEMO_PROJECT_ID,
        name="Billing",
        default_owner_id="u_vikram",
        task_ids=("T-19",),
    )

    repository.add_activity(
        project_id=DEMO_PROJECT_ID,
        task_id="T-33",
        from_status="In Progress",
        to_status="Done",
        at=hours(-10),
        actor_id="u_arun",
    )
    repository.add_activity(
        project_id=DEMO_PROJECT_ID,
        task_id="T-19",
        from_status="To-Do",
        to_status="In Progress",
        at=hours(-20),
        actor_id="u_vikram",
    )

    logger.info("Seeded demo project %s", DEMO_PROJECT_ID)
    return DemoSeedResult(project_id=DEMO_PROJECT_ID, created=True)
