"""Duplicate suppression keyed by snapshot content hash."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from standup_bot.standup.repository import StandupRepository
from standup_bot.storage.common import utc_now

logger = logging.getLogger(__name__)


class IdempotencyGuard:
    """Decide whether an identical snapshot was already delivered recently."""

    def __init__(
        self,
        repository: StandupRepository,
        *,
        window_hours: int = 6,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository
        self.window_hours = window_hours
        self.clock = clock

    def should_suppress(self, project_id: str, payload_hash: str, *, force: bool = False) -> bool:
        """True when a post with the same hash exists inside the dedupe window.

        Never writes; recording a delivery is the caller's job once it succeeded.
        """

        if force:
            return False
        since = self.clock() - timedelta(hours=self.window_hours)
        previous = self.repository.find_recent_post(
            project_id,
            payload_hash=payload_hash,
            since=since,
        )
        if previous is None:
            return False
        logger.info(
            "Suppressing duplicate stand-up for project %s: hash %s already posted at %s",
            project_id,
            payload_hash,
            previous.posted_at.isoformat(),
        )
        return True
