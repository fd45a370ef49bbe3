"""SQLite storage for the outcome ledger."""
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

SCHEMA_VERSION = "1.0.0"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS schema_versions (version TEXT PRIMARY KEY, applied_at TEXT NOT NULL);
CREATE TABLE IF NOT EXISTS item_outcomes (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id      TEXT NOT NULL,
    pipeline    TEXT NOT NULL,
    pass_no     INTEGER NOT NULL,
    item_id     TEXT NOT NULL,
    outcome     TEXT NOT NULL,
    reason      TEXT,
    recorded_at TEXT NOT NULL,
    UNIQUE (run_id, pass_no, item_id),
    CHECK(outcome IN ('closed', 'progressed', 'skipped', 'failed'))
);
CREATE INDEX IF NOT EXISTS idx_outcomes_run ON item_outcomes(run_id);
CREATE INDEX IF NOT EXISTS idx_outcomes_recorded ON item_outcomes(recorded_at);
"""


class DatabaseError(Exception):
    pass


class DatabaseManager:
    """Opens short-lived connections to the ledger database.

    ``initialize`` must run once before the repository is used; it creates
    the parent directory, the schema and the version row.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._initialized = False

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self.connection() as conn:
            await conn.executescript(_SCHEMA)
            await conn.execute(
                "INSERT OR IGNORE INTO schema_versions (version, applied_at) VALUES (?, datetime('now'))",
                (SCHEMA_VERSION,),
            )
            await conn.commit()
        self._initialized = True

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        if not self._db_path.parent.exists():
            raise DatabaseError(f"Ledger directory missing: {self._db_path.parent}")
        conn = await aiosqlite.connect(self._db_path)
        conn.row_factory = aiosqlite.Row
        try:
            yield conn
        finally:
            await conn.close()

    async def close(self) -> None:
        # Connections are per call; nothing stays open between them.
        self._initialized = False
