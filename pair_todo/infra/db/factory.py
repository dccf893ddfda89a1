from __future__ import annotations

import logging
from pathlib import Path

from pair_todo.config import Settings
from pair_todo.domain.tasks.ports import TaskStore

logger = logging.getLogger(__name__)


def build_task_store(settings: Settings, repo_root: Path) -> TaskStore:
    """The one place that picks the persistence backend."""
    if settings.db_backend == "postgres":
        from pair_todo.infra.db.repo.tasks_postgres import PgDatabase, PostgresTaskStore

        logger.info("Using Postgres task store")
        return PostgresTaskStore(PgDatabase(settings.database_url))

    from pair_todo.infra.db.connection import Database
    from pair_todo.infra.db.repo.tasks_sqlite import SqliteTaskStore

    db_path = settings.db_path
    if not db_path.is_absolute():
        db_path = repo_root / db_path
    db_path.parent.mkdir(parents=True, exist_ok=True)
    logger.info("Using SQLite task store: %s", db_path)
    return SqliteTaskStore(Database(str(db_path), busy_timeout_s=settings.db_busy_timeout_s))
