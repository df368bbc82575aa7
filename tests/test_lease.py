from __future__ import annotations

import threading
from datetime import timedelta

import allure
import pytest

from standup_bot.config import LockSettings, Settings
from standup_bot.standup.lease import (
    InMemoryLeaseLock,
    SqlLeaseLock,
    _PollingLeaseLock,
    build_lease_lock,
    project_lock_key,
)
from standup_bot.standup.repository import StandupRepository

pytestmark = [
    allure.epic("Stand-up Generation"),
    allure.feature("Lease Lock"),
]


class FakeTimer:
    """Monotonic clock advanced only by ``sleep``."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture(params=["sql", "memory"])
def make_lock(request, repository, fixed_now):
    def _make(*, clock=lambda: fixed_now, **kwargs):
        if request.param == "sql":
            return SqlLeaseLock(repository, clock=clock, **kwargs)
        return InMemoryLeaseLock(clock=clock, **kwargs)

    return _make


def test_second_acquire_fails_until_release(make_lock) -> None:
    timer = FakeTimer()
    lock = make_lock(sleep=timer.sleep, monotonic=timer.monotonic)
    key = project_lock_key("p1")

    assert lock.acquire(key, ttl_seconds=60, timeout_seconds=0) is True
    assert lock.acquire(key, ttl_seconds=60, timeout_seconds=0) is False
    assert lock.acquire(project_lock_key("p2"), ttl_seconds=60, timeout_seconds=0) is True

    lock.release(key)

    assert lock.acquire(key, ttl_seconds=60, timeout_seconds=0) is True


def test_zero_timeout_makes_single_attempt_without_sleeping(make_lock) -> None:
    timer = FakeTimer()
    lock = make_lock(sleep=timer.sleep, monotonic=timer.monotonic)
    lock.acquire("busy", ttl_seconds=60, timeout_seconds=0)

    assert lock.acquire("busy", ttl_seconds=60, timeout_seconds=0) is False
    assert timer.sleeps == []


def test_acquire_polls_until_timeout(make_lock) -> None:
    timer = FakeTimer()
    lock = make_lock(poll_interval_seconds=0.5, sleep=timer.sleep, monotonic=timer.monotonic)
    lock.acquire("busy", ttl_seconds=60, timeout_seconds=0)

    assert lock.acquire("busy", ttl_seconds=60, timeout_seconds=1.25) is False
    assert timer.sleeps == [0.5, 0.5, 0.25]


def test_expired_lease_is_reclaimed(make_lock, fixed_now) -> None:
    current = {"now": fixed_now}
    timer = FakeTimer()
    lock = make_lock(
        clock=lambda: current["now"],
        sleep=timer.sleep,
        monotonic=timer.monotonic,
    )

    assert lock.acquire("p", ttl_seconds=30, timeout_seconds=0) is True
    current["now"] = fixed_now + timedelta(seconds=29)
    assert lock.acquire("p", ttl_seconds=30, timeout_seconds=0) is False
    current["now"] = fixed_now + timedelta(seconds=31)
    assert lock.acquire("p", ttl_seconds=30, timeout_seconds=0) is True


def test_held_releases_on_exception(make_lock) -> None:
    lock = make_lock()

    with pytest.raises(RuntimeError):
        with lock.held("p", ttl_seconds=60, timeout_seconds=0) as acquired:
            assert acquired is True
            raise RuntimeError("boom")

    assert lock.acquire("p", ttl_seconds=60, timeout_seconds=0) is True


def test_held_does_not_release_lease_it_did_not_take(make_lock) -> None:
    lock = make_lock()
    lock.acquire("p", ttl_seconds=60, timeout_seconds=0)

    with lock.held("p", ttl_seconds=60, timeout_seconds=0) as acquired:
        assert acquired is False

    assert lock.acquire("p", ttl_seconds=60, timeout_seconds=0) is False


def test_non_positive_ttl_is_rejected(make_lock) -> None:
    with pytest.raises(ValueError, match="ttl_seconds"):
        make_lock().acquire("p", ttl_seconds=0, timeout_seconds=0)


def test_sql_lease_row_carries_expiry(repository, fixed_now) -> None:
    lock = SqlLeaseLock(repository, clock=lambda: fixed_now)

    lock.acquire("p", ttl_seconds=120, timeout_seconds=0)

    assert repository.get_lease_expiry(lock_key="p") == fixed_now + timedelta(seconds=120)
    lock.release("p")
    assert repository.get_lease_expiry(lock_key="p") is None


def test_concurrent_acquire_has_single_winner(fixed_now) -> None:
    lock = InMemoryLeaseLock(clock=lambda: fixed_now)
    barrier = threading.Barrier(8)
    results: list[bool] = []
    results_guard = threading.Lock()

    def worker() -> None:
        barrier.wait()
        acquired = lock.acquire("p", ttl_seconds=60, timeout_seconds=0)
        with results_guard:
            results.append(acquired)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(results) == [False] * 7 + [True]


def test_build_lease_lock_selects_backend(repository, tmp_path) -> None:
    memory = Settings(db_path=tmp_path / "x.db", lock=LockSettings(backend="memory"))
    sqlite = Settings(db_path=tmp_path / "x.db")

    assert isinstance(build_lease_lock(memory, repository), InMemoryLeaseLock)
    assert isinstance(build_lease_lock(sqlite, repository), SqlLeaseLock)


def test_sql_lease_is_shared_between_repositories(settings, repository, fixed_now) -> None:
    other = StandupRepository(settings.db_path)
    try:
        first = SqlLeaseLock(repository, clock=lambda: fixed_now)
        second = SqlLeaseLock(other, clock=lambda: fixed_now)

        assert first.acquire("p", ttl_seconds=60, timeout_seconds=0) is True
        assert second.acquire("p", ttl_seconds=60, timeout_seconds=0) is False
        first.release("p")
        assert second.acquire("p", ttl_seconds=60, timeout_seconds=0) is True
    finally:
        other.close()


def test_lease_backend_without_hooks_cannot_be_created() -> None:
    class MissingDelete(_PollingLeaseLock):
        def _try_acquire(self, key: str, *, ttl: timedelta) -> bool:
            return True

    with pytest.raises(TypeError, match="_delete"):
        MissingDelete()
