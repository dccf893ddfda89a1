from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional, Protocol, Sequence

logger = logging.getLogger(__name__)


class MigrationTarget(Protocol):
    placeholder: str

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> None: ...

    async def executescript(self, sql: str) -> None: ...

    async def fetchone(self, sql: str, params: Sequence[Any] = ()) -> Optional[Any]: ...


async def apply_migrations(db: MigrationTarget, migrations_dir: str, now_iso: str) -> None:
    ph = db.placeholder
    await db.execute(
        "CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL);"
    )

    dir_path = Path(migrations_dir)
    files = sorted([p for p in dir_path.glob("*.sql") if p.is_file()])

    for p in files:
        version = int(p.stem.split("_")[0])

        row = await db.fetchone(f"SELECT version FROM schema_migrations WHERE version = {ph};", (version,))
        if row:
            continue

        logger.info("Applying migration %s", p.name)
        sql = p.read_text(encoding="utf-8")
        await db.executescript(sql)

        await db.execute(
            f"INSERT INTO schema_migrations(version, applied_at) VALUES ({ph}, {ph});",
            (version, now_iso),
        )
