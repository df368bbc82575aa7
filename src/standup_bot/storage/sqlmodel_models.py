"""SQLModel ORM tables for projects, tasks, leases and delivered posts."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


class Project(SQLModel, table=True):
    __tablename__ = "projects"  # type: ignore[bad-override]

    id: str = Field(primary_key=True)
    name: str
    timezone: str = "UTC"
    business_days_only: bool = True
    mention_policy: str | None = None
    slack_mode: str = "webhook"
    slack_webhook_url: str | None = None
    slack_bot_token: str | None = None
    slack_channel_id: str | None = None
    slack_thread_ts: str | None = None
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class AppUser(SQLModel, table=True):
    __tablename__ = "users"  # type: ignore[bad-override]
    __table_args__ = (UniqueConstraint("email", name="uq_users_email"),)

    id: str = Field(primary_key=True)
    name: str
    email: str
    active: bool = True
    capacity_score: float = 0.8
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class Task(SQLModel, table=True):
    __tablename__ = "tasks"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_tasks_project_category_due", "project_id", "status_category", "due_at"),
    )

    id: str = Field(primary_key=True)
    project_id: str = Field(
        sa_column=Column(ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
    )
    title: str
    status: str
    status_category: str
    priority: int = 1
    assignee_id: str | None = Field(
        default=None,
        sa_column=Column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    )
    due_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class TaskActivity(SQLModel, table=True):
    __tablename__ = "task_activities"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_task_activities_project_at", "project_id", "at"),
        Index("idx_task_activities_task_at", "task_id", "at"),
    )

    id: str = Field(primary_key=True)
    project_id: str = Field(
        sa_column=Column(ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
    )
    task_id: str = Field(
        sa_column=Column(ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False),
    )
    from_status: str | None = None
    to_status: str
    at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    actor_id: str | None = Field(
        default=None,
        sa_column=Column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    )
    note: str | None = Field(default=None, sa_column=Column(Text))


class Component(SQLModel, table=True):
    __tablename__ = "components"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_components_project", "project_id"),)

    id: str = Field(primary_key=True)
    project_id: str = Field(
        sa_column=Column(ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
    )
    name: str
    description: str | None = Field(default=None, sa_column=Column(Text))
    default_owner_id: str | None = Field(
        default=None,
        sa_column=Column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    )


class TaskComponent(SQLModel, table=True):
    __tablename__ = "task_components"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint("task_id", "component_id", name="uq_task_components_task_component"),
    )

    id: int | None = Field(default=None, primary_key=True)
    task_id: str = Field(foreign_key="tasks.id")
    component_id: str = Field(foreign_key="components.id")


class MutexLock(SQLModel, table=True):
    __tablename__ = "mutex_locks"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_mutex_locks_expires", "expires_at"),)

    lock_key: str = Field(primary_key=True)
    acquired_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    expires_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class StandupPost(SQLModel, table=True):
    __tablename__ = "standup_posts"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_standup_posts_project_posted", "project_id", "posted_at"),
        Index("idx_standup_posts_project_hash", "project_id", "payload_hash", "posted_at"),
    )

    id: str = Field(primary_key=True)
    project_id: str = Field(
        sa_column=Column(ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
    )
    window_hours: int
    window_start: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    window_end: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    payload_hash: str
    body: str = Field(sa_column=Column(Text, nullable=False))
    composition_method: str
    delivery_ts: str | None = None
    posted_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
