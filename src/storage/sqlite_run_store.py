# src/storage/sqlite_run_store.py — v1
"""SQLite-backed pipeline run store (RUN_STORE_BACKEND=sqlite).

Uses stdlib sqlite3. Pipelines and their steps are stored as separate rows
keyed by pipeline id; each row keeps the full JSON payload next to the
indexed columns.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from shipyard.pipeline.models import DeploymentPipeline, PipelineStep
from shipyard.storage.run_store import BaseRunStore
from shipyard.submission.models import RepositoryRecord

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS deployment_pipelines (
    id TEXT PRIMARY KEY,
    repository_id TEXT NOT NULL,
    status TEXT NOT NULL,
    data TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_pipelines_repository
    ON deployment_pipelines(repository_id);
CREATE TABLE IF NOT EXISTS pipeline_steps (
    pipeline_id TEXT NOT NULL REFERENCES deployment_pipelines(id),
    position INTEGER NOT NULL,
    name TEXT NOT NULL,
    status TEXT NOT NULL,
    data TEXT NOT NULL,
    PRIMARY KEY (pipeline_id, name)
);
CREATE TABLE IF NOT EXISTS repositories (
    id TEXT PRIMARY KEY,
    status TEXT NOT NULL,
    data TEXT NOT NULL
);
"""


class SqliteRunStore(BaseRunStore):
    """Durable run store for single-instance deployments."""

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path).expanduser()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)

    async def save_pipeline(self, pipeline: DeploymentPipeline) -> None:
        header = pipeline.model_dump_json(exclude={"steps"})
        with self._conn:
            self._conn.execute(
                """INSERT OR REPLACE INTO deployment_pipelines
                   (id, repository_id, status, data, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    pipeline.id,
                    pipeline.repository_id,
                    pipeline.status,
                    header,
                    pipeline.created_at.isoformat(),
                ),
            )
            self._conn.execute(
                "DELETE FROM pipeline_steps WHERE pipeline_id = ?", (pipeline.id,)
            )
            self._conn.executemany(
                """INSERT INTO pipeline_steps (pipeline_id, position, name, status, data)
                   VALUES (?, ?, ?, ?, ?)""",
                [
                    (pipeline.id, i, step.name, step.status, step.model_dump_json())
                    for i, step in enumerate(pipeline.steps)
                ],
            )

    async def get_pipeline(self, pipeline_id: str) -> DeploymentPipeline | None:
        row = self._conn.execute(
            "SELECT data FROM deployment_pipelines WHERE id = ?", (pipeline_id,)
        ).fetchone()
        if row is None:
            return None
        return self._load(pipeline_id, row[0])

    async def list_pipelines(self, repository_id: str) -> list[DeploymentPipeline]:
        rows = self._conn.execute(
            """SELECT id, data FROM deployment_pipelines
               WHERE repository_id = ? ORDER BY created_at DESC""",
            (repository_id,),
        ).fetchall()
        return [self._load(pid, data) for pid, data in rows]

    async def save_repository(self, record: RepositoryRecord) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO repositories (id, status, data) VALUES (?, ?, ?)",
                (record.id, record.status, record.model_dump_json()),
            )

    async def get_repository(self, repository_id: str) -> RepositoryRecord | None:
        row = self._conn.execute(
            "SELECT data FROM repositories WHERE id = ?", (repository_id,)
        ).fetchone()
        if row is None:
            return None
        return RepositoryRecord.model_validate_json(row[0])

    def _load(self, pipeline_id: str, header: str) -> DeploymentPipeline:
        pipeline = DeploymentPipeline.model_validate_json(header)
        rows = self._conn.execute(
            "SELECT data FROM pipeline_steps WHERE pipeline_id = ? ORDER BY position",
            (pipeline_id,),
        ).fetchall()
        pipeline.steps = [PipelineStep.model_validate_json(r[0]) for r in rows]
        return pipeline

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
