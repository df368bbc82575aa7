from __future__ import annotations

from datetime import timedelta

import allure

from standup_bot.standup.idempotency import IdempotencyGuard
from standup_bot.standup.models import CompositionMethod, StandupPostWrite

pytestmark = [
    allure.epic("Stand-up Generation"),
    allure.feature("Duplicate Suppression"),
]


def _record(repository, *, payload_hash: str, posted_at) -> None:
    repository.record_post(
        StandupPostWrite(
            project_id="p1",
            window_hours=24,
            window_start=posted_at - timedelta(hours=24),
            window_end=posted_at,
            payload_hash=payload_hash,
            body="**Yesterday:** No completed tasks",
            composition_method=CompositionMethod.FALLBACK,
            posted_at=posted_at,
        ),
    )


def test_suppresses_identical_hash_inside_window(seeded_repository, fixed_now) -> None:
    _record(seeded_repository, payload_hash="abc", posted_at=fixed_now - timedelta(hours=2))
    guard = IdempotencyGuard(seeded_repository, window_hours=6, clock=lambda: fixed_now)

    assert guard.should_suppress("p1", "abc") is True
    assert guard.should_suppress("p1", "other") is False


def test_does_not_suppress_outside_window(seeded_repository, fixed_now) -> None:
    _record(seeded_repository, payload_hash="abc", posted_at=fixed_now - timedelta(hours=7))
    guard = IdempotencyGuard(seeded_repository, window_hours=6, clock=lambda: fixed_now)

    assert guard.should_suppress("p1", "abc") is False


def test_force_bypasses_suppression(seeded_repository, fixed_now) -> None:
    _record(seeded_repository, payload_hash="abc", posted_at=fixed_now - timedelta(minutes=5))
    guard = IdempotencyGuard(seeded_repository, clock=lambda: fixed_now)

    assert guard.should_suppress("p1", "abc", force=True) is False


def test_hash_match_is_scoped_to_project(seeded_repository, fixed_now) -> None:
    seeded_repository.add_project(project_id="p2", name="Other")
    _record(seeded_repository, payload_hash="abc", posted_at=fixed_now - timedelta(hours=1))
    guard = IdempotencyGuard(seeded_repository, clock=lambda: fixed_now)

    assert guard.should_suppress("p2", "abc") is False


def test_check_never_writes(seeded_repository, fixed_now) -> None:
    guard = IdempotencyGuard(seeded_repository, clock=lambda: fixed_now)

    assert guard.should_suppress("p1", "abc") is False
    assert seeded_repository.latest_post("p1") is None
