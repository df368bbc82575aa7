from pathlib import Path

import allure
from sqlalchemy import inspect, text

from standup_bot.standup.repository import StandupRepository

pytestmark = [
    allure.epic("Stand-up Snapshot"),
    allure.feature("Persistence"),
]


def test_alembic_schema_is_initialized_to_head(tmp_path: Path) -> None:
    repository = StandupRepository(tmp_path / "migrations.db")
    repository.init_schema()
    repository.init_schema()

    with repository.engine.connect() as connection:
        version = connection.execute(
            text("SELECT version_num FROM alembic_version LIMIT 1"),
        ).scalar_one()
    assert version == "20261018_0002"

    tables = set(inspect(repository.engine).get_table_names())
    assert {
        "projects",
        "users",
        "tasks",
        "task_activities",
        "standup_posts",
        "components",
        "task_components",
        "mutex_locks",
    } <= tables
    repository.close()
