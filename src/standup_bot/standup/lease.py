"""Per-project lease locks with time-based expiry.

A lease is a row (or dict entry) keyed by lock name with an expiry instant.
Acquisition succeeds only when this caller's own insert succeeds; an expired
lease is deleted before the insert so a crashed holder never blocks forever.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager
from datetime import datetime, timedelta
from typing import Protocol

from standup_bot.config import Settings
from standup_bot.standup.repository import StandupRepository
from standup_bot.storage.common import utc_now

logger = logging.getLogger(__name__)


def project_lock_key(project_id: str) -> str:
    return f"project:{project_id}"


class LeaseLock(Protocol):
    def acquire(self, key: str, *, ttl_seconds: int, timeout_seconds: float) -> bool: ...

    def release(self, key: str) -> None: ...

    def held(
        self,
        key: str,
        *,
        ttl_seconds: int,
        timeout_seconds: float,
    ) -> AbstractContextManager[bool]: ...


class _PollingLeaseLock(ABC):
    """Retry loop shared by the lease backends; subclasses implement one attempt."""

    def __init__(
        self,
        *,
        poll_interval_seconds: float = 0.1,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.poll_interval_seconds = poll_interval_seconds
        self.clock = clock
        self.sleep = sleep
        self.monotonic = monotonic

    def acquire(self, key: str, *, ttl_seconds: int, timeout_seconds: float) -> bool:
        """Try to take ``key`` until ``timeout_seconds`` elapse.

        A zero timeout makes exactly one attempt without sleeping.
        """

        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        deadline = self.monotonic() + max(0.0, timeout_seconds)
        attempts = 0
        while True:
            attempts += 1
            if self._try_acquire(key, ttl=timedelta(seconds=ttl_seconds)):
                logger.debug("Acquired lease %s after %s attempt(s)", key, attempts)
                return True
            remaining = deadline - self.monotonic()
            if remaining <= 0:
                logger.info("Lease %s busy after %s attempt(s)", key, attempts)
                return False
            self.sleep(min(self.poll_interval_seconds, remaining))

    def release(self, key: str) -> None:
        self._delete(key)
        logger.debug("Released lease %s", key)

    @contextmanager
    def held(self, key: str, *, ttl_seconds: int, timeout_seconds: float) -> Iterator[bool]:
        """Yield whether the lease was acquired; release it on every exit path."""

        acquired = self.acquire(key, ttl_seconds=ttl_seconds, timeout_seconds=timeout_seconds)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(key)

    @abstractmethod
    def _try_acquire(self, key: str, *, ttl: timedelta) -> bool:
        """Make one insert-if-absent attempt for ``key``."""

    @abstractmethod
    def _delete(self, key: str) -> None: ...


class SqlLeaseLock(_PollingLeaseLock):
    """Lease lock stored in the ``mutex_locks`` table."""

    def __init__(self, repository: StandupRepository, **kwargs) -> None:  # noqa: ANN003
        super().__init__(**kwargs)
        self.repository = repository

    def _try_acquire(self, key: str, *, ttl: timedelta) -> bool:
        now = self.clock()
        reclaimed = self.repository.delete_expired_leases(now=now)
        if reclaimed:
            logger.warning("Reclaimed %s expired lease(s)", reclaimed)
        return self.repository.try_insert_lease(lock_key=key, now=now, expires_at=now + ttl)

    def _delete(self, key: str) -> None:
        self.repository.delete_lease(lock_key=key)


class InMemoryLeaseLock(_PollingLeaseLock):
    """Process-local lease lock for single-node runs and tests."""

    def __init__(self, **kwargs) -> None:  # noqa: ANN003
        super().__init__(**kwargs)
        self._guard = threading.Lock()
        self._leases: dict[str, datetime] = {}

    def _try_acquire(self, key: str, *, ttl: timedelta) -> bool:
        now = self.clock()
        with self._guard:
            for expired in [name for name, expires in self._leases.items() if expires <= now]:
                del self._leases[expired]
            if key in self._leases:
                return False
            self._leases[key] = now + ttl
            return True

    def _delete(self, key: str) -> None:
        with self._guard:
            self._leases.pop(key, None)


def build_lease_lock(settings: Settings, repository: StandupRepository) -> LeaseLock:
    """Lease lock backend selected by ``settings.lock.backend``."""

    if settings.lock.backend == "memory":
        return InMemoryLeaseLock(poll_interval_seconds=settings.lock.poll_interval_seconds)
    return SqlLeaseLock(repository, poll_interval_seconds=settings.lock.poll_interval_seconds)
