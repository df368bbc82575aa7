"""SQLModel repository for stand-up reads, delivery records and leases."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from uuid import uuid4

from sqlalchemy import delete as sa_delete
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from standup_bot.storage.alembic_runner import upgrade_head
from standup_bot.storage.common import (
    build_sqlite_engine,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from standup_bot.storage.sqlmodel_models import (
    AppUser,
    Component,
    MutexLock,
    Project,
    StandupPost,
    Task,
    TaskActivity,
    TaskComponent,
)
from standup_bot.standup.models import (
    CompletedActivityView,
    CompositionMethod,
    OpenTaskView,
    ProjectView,
    StandupPostView,
    StandupPostWrite,
    UserView,
)

DONE_STATUSES: tuple[str, ...] = ("done", "completed")
OPEN_STATUS_CATEGORIES: tuple[str, ...] = ("todo", "doing", "blocked")


class StandupRepository:
    """Persistence facade backed by SQLModel + SQLite.

    The snapshot builder only uses the read methods; delivery records and
    leases are written through the narrow ``record_post`` and lease methods.
    """

    def __init__(self, db_path: Path, *, sqlite_busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(
            db_path=db_path,
            busy_timeout_ms=sqlite_busy_timeout_ms,
        )

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations up to head."""

        upgrade_head(self.db_path)

    def get_project(self, project_id: str) -> ProjectView | None:
        with Session(self.engine) as session:
            row = session.exec(select(Project).where(Project.id == project_id)).one_or_none()
        return _to_project_view(row) if row is not None else None

    def list_projects(self) -> list[ProjectView]:
        with Session(self.engine) as session:
            rows = session.exec(select(Project).order_by(col(Project.id).asc())).all()
        return [_to_project_view(row) for row in rows]

    def list_completed_activities(
        self,
        project_id: str,
        *,
        start: datetime,
        end: datetime,
    ) -> list[CompletedActivityView]:
        """Done transitions inside ``[start, end]``, most recent first."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(TaskActivity, Task)
                .join(Task, col(Task.id) == col(TaskActivity.task_id))
                .where(
                    TaskActivity.project_id == project_id,
                    col(TaskActivity.at) >= to_db_datetime(start),
                    col(TaskActivity.at) <= to_db_datetime(end),
                    func.lower(TaskActivity.to_status).in_(DONE_STATUSES),
                )
                .order_by(col(TaskActivity.at).desc(), col(TaskActivity.id).asc()),
            ).all()
        return [
            CompletedActivityView(
                task_id=task.id,
                title=task.title,
                at=to_utc_aware_datetime(activity.at),
            )
            for activity, task in rows
        ]

    def list_open_tasks(self, project_id: str) -> list[OpenTaskView]:
        """All non-done tasks with their assignee, by priority then due date."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(Task, AppUser)
                .join(AppUser, col(AppUser.id) == col(Task.assignee_id), isouter=True)
                .where(
                    Task.project_id == project_id,
                    col(Task.status_category).in_(OPEN_STATUS_CATEGORIES),
                )
                .order_by(col(Task.priority).desc(), col(Task.due_at).asc(), col(Task.id).asc()),
            ).all()
        return [
            OpenTaskView(
                id=task.id,
                title=task.title,
                priority=task.priority,
                due_at=to_utc_aware_datetime(task.due_at) if task.due_at is not None else None,
                assignee=_to_user_view(user) if user is not None else None,
            )
            for task, user in rows
        ]

    def most_recent_actor(self, task_id: str, *, since: datetime) -> UserView | None:
        """Actor of the latest activity on the task since ``since``."""

        with Session(self.engine) as session:
            row = session.exec(
                select(AppUser)
                .join(TaskActivity, col(TaskActivity.actor_id) == col(AppUser.id))
                .where(
                    TaskActivity.task_id == task_id,
                    col(TaskActivity.at) >= to_db_datetime(since),
                )
                .order_by(col(TaskActivity.at).desc())
                .limit(1),
            ).first()
        return _to_user_view(row) if row is not None else None

    def component_default_owner(self, task_id: str) -> UserView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(AppUser)
                .join(Component, col(Component.default_owner_id) == col(AppUser.id))
                .join(TaskComponent, col(TaskComponent.component_id) == col(Component.id))
                .where(TaskComponent.task_id == task_id)
                .order_by(col(TaskComponent.id).asc())
                .limit(1),
            ).first()
        return _to_user_view(row) if row is not None else None

    def record_post(self, payload: StandupPostWrite) -> StandupPostView:
        """Append one delivery record."""

        with Session(self.engine) as session:
            row = StandupPost(
                id=str(uuid4()),
                project_id=payload.project_id,
                window_hours=payload.window_hours,
                window_start=to_db_datetime(payload.window_start),
                window_end=to_db_datetime(payload.window_end),
                payload_hash=payload.payload_hash,
                body=payload.body,
                composition_method=payload.composition_method.value,
                delivery_ts=payload.delivery_ts,
                posted_at=to_db_datetime(payload.posted_at or utc_now()),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_post_view(row)

    def find_recent_post(
        self,
        project_id: str,
        *,
        payload_hash: str,
        since: datetime,
    ) -> StandupPostView | None:
        """Latest delivery record with this exact hash posted at or after ``since``."""

        with Session(self.engine) as session:
            row = session.exec(
                select(StandupPost)
                .where(
                    StandupPost.project_id == project_id,
                    StandupPost.payload_hash == payload_hash,
                    col(StandupPost.posted_at) >= to_db_datetime(since),
                )
                .order_by(col(StandupPost.posted_at).desc())
                .limit(1),
            ).first()
        return _to_post_view(row) if row is not None else None

    def latest_post(
        self,
        project_id: str,
        *,
        since: datetime | None = None,
    ) -> StandupPostView | None:
        statement = select(StandupPost).where(StandupPost.project_id == project_id)
        if since is not None:
            statement = statement.where(col(StandupPost.posted_at) >= to_db_datetime(since))
        with Session(self.engine) as session:
            row = session.exec(
                statement.order_by(col(StandupPost.posted_at).desc()).limit(1),
            ).first()
        return _to_post_view(row) if row is not None else None

    def delete_expired_leases(self, *, now: datetime) -> int:
        """Drop every lease whose expiry has passed."""

        with Session(self.engine) as session:
            result = session.exec(
                sa_delete(MutexLock).where(col(MutexLock.expires_at) <= to_db_datetime(now)),
            )
            session.commit()
            return result.rowcount

    def try_insert_lease(self, *, lock_key: str, now: datetime, expires_at: datetime) -> bool:
        """Insert a lease row; ``False`` when a row for the key already exists."""

        with Session(self.engine) as session:
            session.add(
                MutexLock(
                    lock_key=lock_key,
                    acquired_at=to_db_datetime(now),
                    expires_at=to_db_datetime(expires_at),
                ),
            )
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                return False
        return True

    def delete_lease(self, *, lock_key: str) -> None:
        with Session(self.engine) as session:
            session.exec(sa_delete(MutexLock).where(col(MutexLock.lock_key) == lock_key))
            session.commit()

    def get_lease_expiry(self, *, lock_key: str) -> datetime | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(MutexLock).where(MutexLock.lock_key == lock_key),
            ).one_or_none()
        return to_utc_aware_datetime(row.expires_at) if row is not None else None

    def add_user(
        self,
        *,
        user_id: str,
        name: str,
        email: str,
        active: bool = True,
        capacity_score: float = 0.8,
    ) -> None:
        with Session(self.engine) as session:
            session.add(
                AppUser(
                    id=user_id,
                    name=name,
                    email=email,
                    active=active,
                    capacity_score=capacity_score,
                    created_at=to_db_datetime(utc_now()),
                ),
            )
            session.commit()

    def add_project(  # noqa: PLR0913
        self,
        *,
        project_id: str,
        name: str,
        timezone: str = "UTC",
        business_days_only: bool = True,
        mention_policy: str | None = None,
        slack_mode: str = "webhook",
        slack_webhook_url: str | None = None,
        slack_bot_token: str | None = None,
        slack_channel_id: str | None = None,
        slack_thread_ts: str | None = None,
    ) -> None:
        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            session.add(
                Project(
                    id=project_id,
                    name=name,
                    timezone=timezone,
                    business_days_only=business_days_only,
                    mention_policy=mention_policy,
                    slack_mode=slack_mode,
                    slack_webhook_url=slack_webhook_url,
                    slack_bot_token=slack_bot_token,
                    slack_channel_id=slack_channel_id,
                    slack_thread_ts=slack_thread_ts,
                    created_at=now,
                    updated_at=now,
                ),
            )
            session.commit()

    def add_task(  # noqa: PLR0913
        self,
        *,
        task_id: str,
        project_id: str,
        title: str,
        status: str,
        status_category: str,
        priority: int = 1,
        assignee_id: str | None = None,
        due_at: datetime | None = None,
    ) -> None:
        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            session.add(
                Task(
                    id=task_id,
                    project_id=project_id,
                    title=title,
                    status=status,
                    status_category=status_category,
                    priority=priority,
                    assignee_id=assignee_id,
                    due_at=to_db_datetime(due_at) if due_at is not None else None,
                    created_at=now,
                    updated_at=now,
                ),
            )
            session.commit()

    def add_activity(  # noqa: PLR0913
        self,
        *,
        project_id: str,
        task_id: str,
        to_status: str,
        at: datetime,
        from_status: str | None = None,
        actor_id: str | None = None,
        note: str | None = None,
    ) -> str:
        activity_id = str(uuid4())
        with Session(self.engine) as session:
            session.add(
                TaskActivity(
                    id=activity_id,
                    project_id=project_id,
                    task_id=task_id,
                    from_status=from_status,
                    to_status=to_status,
                    at=to_db_datetime(at),
                    actor_id=actor_id,
                    note=note,
                ),
            )
            session.commit()
        return activity_id

    def add_component(
        self,
        *,
        component_id: str,
        project_id: str,
        name: str,
        default_owner_id: str | None = None,
        task_ids: tuple[str, ...] = (),
    ) -> None:
        with Session(self.engine) as session:
            session.add(
                Component(
                    id=component_id,
                    project_id=project_id,
                    name=name,
                    default_owner_id=default_owner_id,
                ),
            )
            session.flush()
            for task_id in task_ids:
                session.add(TaskComponent(task_id=task_id, component_id=component_id))
            session.commit()


def _to_project_view(row: Project) -> ProjectView:
    return ProjectView(
        id=row.id,
        name=row.name,
        timezone=row.timezone,
        business_days_only=row.business_days_only,
        mention_policy=row.mention_policy,
        slack_mode=row.slack_mode,
        slack_webhook_url=row.slack_webhook_url,
        slack_bot_token=row.slack_bot_token,
        slack_channel_id=row.slack_channel_id,
        slack_thread_ts=row.slack_thread_ts,
    )


def _to_user_view(row: AppUser) -> UserView:
    return UserView(id=row.id, name=row.name, active=row.active)


def _to_post_view(row: StandupPost) -> StandupPostView:
    return StandupPostView(
        id=row.id,
        project_id=row.project_id,
        window_hours=row.window_hours,
        window_start=to_utc_aware_datetime(row.window_start),
        window_end=to_utc_aware_datetime(row.window_end),
        payload_hash=row.payload_hash,
        body=row.body,
        composition_method=CompositionMethod(row.composition_method),
        delivery_ts=row.delivery_ts,
        posted_at=to_utc_aware_datetime(row.posted_at),
    )
