"""Generation use case: lock, snapshot, dedupe, compose, deliver, record."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Protocol

from standup_bot.config import Settings
from standup_bot.standup.backend import CliAgentBackend, LlmBackend
from standup_bot.standup.composition import CompositionEngine
from standup_bot.standup.delivery import ChannelConfig, DeliveryResult, SlackDeliveryClient
from standup_bot.standup.idempotency import IdempotencyGuard
from standup_bot.standup.lease import LeaseLock, build_lease_lock, project_lock_key
from standup_bot.standup.models import (
    ComposedReport,
    GenerationOutcome,
    GenerationState,
    OutcomeCode,
    PreviewResult,
    ProjectNotFoundError,
    ProjectView,
    Snapshot,
    StandupPostView,
    StandupPostWrite,
)
from standup_bot.standup.repository import StandupRepository
from standup_bot.standup.snapshot import SnapshotBuilder, resolve_timezone
from standup_bot.storage.common import utc_now

logger = logging.getLogger(__name__)


class ReportPoster(Protocol):
    def deliver(self, report: ComposedReport, channel: ChannelConfig) -> DeliveryResult: ...


class StandupOrchestrator:
    """Run one generation attempt per call and map it to a closed outcome set.

    Per-project calls are serialized by the lease lock. The duplicate check
    runs under the lock and before any model or network call; the delivery
    record is written only after a successful post, as the last step.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        repository: StandupRepository,
        lock: LeaseLock,
        snapshot_builder: SnapshotBuilder,
        guard: IdempotencyGuard,
        composer: CompositionEngine,
        poster: ReportPoster,
        settings: Settings,
        clock: Callable[[], datetime] = utc_now,
        owned_client: SlackDeliveryClient | None = None,
    ) -> None:
        self.repository = repository
        self.lock = lock
        self.snapshot_builder = snapshot_builder
        self.guard = guard
        self.composer = composer
        self.poster = poster
        self.settings = settings
        self.clock = clock
        self._owned_client = owned_client

    def generate(
        self,
        project_id: str,
        *,
        window_hours: int = 24,
        force: bool = False,
        lock_timeout_seconds: float | None = None,
        once_per_local_day: bool = False,
    ) -> GenerationOutcome:
        """Run one generation attempt for ``project_id``.

        ``once_per_local_day`` adds the scheduled-run guard: any post since the
        project's local midnight ends the attempt as a no-op, whatever its hash.
        """

        project = self.repository.get_project(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)

        timeout = (
            self.settings.lock.manual_timeout_seconds
            if lock_timeout_seconds is None
            else lock_timeout_seconds
        )
        self._transition(project_id, GenerationState.LOCK_ACQUIRING)
        try:
            with self.lock.held(
                project_lock_key(project_id),
                ttl_seconds=self.settings.lock.ttl_seconds,
                timeout_seconds=timeout,
            ) as acquired:
                if not acquired:
                    return self._finish(
                        project_id,
                        GenerationState.LOCK_BUSY,
                        OutcomeCode.LOCK_BUSY,
                        "Another generation for this project is in progress.",
                    )
                self._transition(project_id, GenerationState.LOCKED)
                if once_per_local_day and not force and self._posted_today(project):
                    return self._finish(
                        project_id,
                        GenerationState.SUPPRESSED,
                        OutcomeCode.SUPPRESSED,
                        "Stand-up already posted today.",
                    )
                return self._generate_locked(
                    project_id,
                    channel=ChannelConfig.from_project(project),
                    window_hours=window_hours,
                    force=force,
                )
        finally:
            self._transition(project_id, GenerationState.RELEASED)

    def preview(self, project_id: str, *, window_hours: int = 24) -> PreviewResult:
        """Build and compose without locking, delivering or writing."""

        snapshot = self.snapshot_builder.build(project_id, window_hours)
        report = self.composer.compose(snapshot)
        return PreviewResult(
            snapshot=snapshot,
            report=report,
            last_post=self.repository.latest_post(project_id),
        )

    def last_post(self, project_id: str) -> StandupPostView | None:
        if self.repository.get_project(project_id) is None:
            raise ProjectNotFoundError(project_id)
        return self.repository.latest_post(project_id)

    def close(self) -> None:
        if self._owned_client is not None:
            self._owned_client.close()

    def __enter__(self) -> StandupOrchestrator:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def _posted_today(self, project: ProjectView) -> bool:
        local_now = self.clock().astimezone(resolve_timezone(project.timezone))
        midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
        return self.repository.latest_post(project.id, since=midnight) is not None

    def _generate_locked(
        self,
        project_id: str,
        *,
        channel: ChannelConfig,
        window_hours: int,
        force: bool,
    ) -> GenerationOutcome:
        self._transition(project_id, GenerationState.BUILDING_SNAPSHOT)
        snapshot = self.snapshot_builder.build(project_id, window_hours)

        self._transition(project_id, GenerationState.DEDUPE_CHECKING)
        if self.guard.should_suppress(project_id, snapshot.payload_hash, force=force):
            return self._finish(
                project_id,
                GenerationState.SUPPRESSED,
                OutcomeCode.SUPPRESSED,
                "Identical stand-up already posted within the dedupe window.",
                payload_hash=snapshot.payload_hash,
            )

        if snapshot.skip_post_today:
            return self._finish(
                project_id,
                GenerationState.SKIPPED_NON_BUSINESS_DAY,
                OutcomeCode.SKIPPED,
                "Not a business day for this project.",
                payload_hash=snapshot.payload_hash,
            )

        self._transition(project_id, GenerationState.COMPOSING)
        report = self.composer.compose(snapshot)

        self._transition(project_id, GenerationState.DELIVERING)
        delivery = self.poster.deliver(report, channel)
        if not delivery.success:
            return self._finish(
                project_id,
                GenerationState.DELIVERY_FAILED,
                OutcomeCode.DELIVERY_FAILED,
                "Delivery failed.",
                payload_hash=snapshot.payload_hash,
                composition_method=report.metrics.composition_method,
                error=delivery.error,
            )

        post = self._record(snapshot, report, delivery)
        return self._finish(
            project_id,
            GenerationState.DELIVERED,
            OutcomeCode.DELIVERED,
            f"Stand-up posted ({report.metrics.composition_method.value}).",
            payload_hash=snapshot.payload_hash,
            post_id=post.id,
            composition_method=report.metrics.composition_method,
            delivery_ts=delivery.ts,
        )

    def _record(
        self,
        snapshot: Snapshot,
        report: ComposedReport,
        delivery: DeliveryResult,
    ) -> StandupPostView:
        return self.repository.record_post(
            StandupPostWrite(
                project_id=snapshot.project_id,
                window_hours=snapshot.window_hours,
                window_start=snapshot.window_start,
                window_end=snapshot.window_end,
                payload_hash=snapshot.payload_hash,
                body=report.post_text,
                composition_method=report.metrics.composition_method,
                delivery_ts=delivery.ts,
                posted_at=self.clock(),
            ),
        )

    def _finish(
        self,
        project_id: str,
        state: GenerationState,
        code: OutcomeCode,
        message: str,
        **details: object,
    ) -> GenerationOutcome:
        self._transition(project_id, state)
        logger.info("Stand-up for project %s finished: %s (%s)", project_id, code.value, message)
        return GenerationOutcome(
            code=code,
            state=state,
            project_id=project_id,
            message=message,
            **details,  # type: ignore[arg-type]
        )

    def _transition(self, project_id: str, state: GenerationState) -> None:
        logger.debug("Stand-up for project %s: %s", project_id, state.value)


def build_orchestrator(
    settings: Settings,
    repository: StandupRepository,
    *,
    poster: ReportPoster | None = None,
    backend: LlmBackend | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> StandupOrchestrator:
    """Wire the default components from settings.

    A default delivery client is owned by the orchestrator and closed with it.
    """

    if backend is None and settings.llm.command_template and not settings.llm.disabled:
        backend = CliAgentBackend()
    owned_client = None
    if poster is None:
        owned_client = poster = SlackDeliveryClient(settings)
    return StandupOrchestrator(
        repository=repository,
        lock=build_lease_lock(settings, repository),
        snapshot_builder=SnapshotBuilder(repository, settings, clock=clock),
        guard=IdempotencyGuard(repository, window_hours=settings.dedupe.window_hours, clock=clock),
        composer=CompositionEngine(settings, backend=backend),
        poster=poster,
        settings=settings,
        clock=clock,
        owned_client=owned_client,
    )
