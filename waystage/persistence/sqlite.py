"""SQLite implementation of the instance repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from ..errors import AlreadyInitialized
from .models import ActivityRecord, InstanceRecord
from .repository import InstanceRepository


class SQLiteInstanceRepository(InstanceRepository):
    """Persist instance state using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS instances (
                instance_id TEXT PRIMARY KEY,
                workflow_type TEXT NOT NULL,
                state TEXT NOT NULL,
                status TEXT NOT NULL,
                last_polled_at TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS activity_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                instance_id TEXT NOT NULL,
                stage TEXT NOT NULL,
                activity_code TEXT NOT NULL,
                status TEXT NOT NULL,
                recorded_at TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    @staticmethod
    def _to_record(row: sqlite3.Row, history: list[ActivityRecord] | None = None) -> InstanceRecord:
        return InstanceRecord(
            instance_id=row["instance_id"],
            workflow_type=row["workflow_type"],
            state=json.loads(row["state"]),
            status=row["status"],
            last_polled_at=(
                datetime.fromisoformat(row["last_polled_at"]) if row["last_polled_at"] else None
            ),
            history=history or [],
        )

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Repository API
    async def create_instance(
        self, instance_id: str, workflow_type: str, state: dict
    ) -> None:
        try:
            await asyncio.to_thread(
                self._execute,
                "INSERT INTO instances (instance_id, workflow_type, state, status) VALUES (?, ?, ?, ?)",
                instance_id,
                workflow_type,
                json.dumps(state),
                "in_progress",
            )
        except sqlite3.IntegrityError as e:
            raise AlreadyInitialized(instance_id) from e

    async def save_state(self, instance_id: str, state: dict) -> None:
        await asyncio.to_thread(
            self._execute,
            "UPDATE instances SET state = ? WHERE instance_id = ?",
            json.dumps(state),
            instance_id,
        )

    async def record_activity(
        self, instance_id: str, stage: str, activity_code: str, status: str
    ) -> None:
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO activity_history (instance_id, stage, activity_code, status, recorded_at) VALUES (?, ?, ?, ?, ?)",
            instance_id,
            stage,
            activity_code,
            status,
            datetime.now(timezone.utc).isoformat(),
        )

    async def mark_polled(self, instance_id: str, polled_at: datetime) -> None:
        await asyncio.to_thread(
            self._execute,
            "UPDATE instances SET last_polled_at = ? WHERE instance_id = ?",
            polled_at.isoformat(),
            instance_id,
        )

    async def mark_instance_finished(
        self, instance_id: str, status: str = "completed"
    ) -> None:
        await asyncio.to_thread(
            self._execute,
            "UPDATE instances SET status = ? WHERE instance_id = ?",
            status,
            instance_id,
        )

    async def get_instance(self, instance_id: str) -> InstanceRecord | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT instance_id, workflow_type, state, status, last_polled_at FROM instances WHERE instance_id = ?",
            instance_id,
        )
        if not row:
            return None
        history_rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT id, instance_id, stage, activity_code, status, recorded_at FROM activity_history WHERE instance_id = ? ORDER BY id",
            instance_id,
        )
        history = [
            ActivityRecord(
                id=r["id"],
                instance_id=r["instance_id"],
                stage=r["stage"],
                activity_code=r["activity_code"],
                status=r["status"],
                recorded_at=datetime.fromisoformat(r["recorded_at"]),
            )
            for r in history_rows
        ]
        return self._to_record(row, history)

    async def list_instances(self, status: Optional[str] = None) -> list[InstanceRecord]:
        query = "SELECT instance_id, workflow_type, state, status, last_polled_at FROM instances"
        params: tuple[Any, ...] = ()
        if status is not None:
            query += " WHERE status = ?"
            params = (status,)
        rows = await asyncio.to_thread(self._fetchall, query, *params)
        return [self._to_record(row) for row in rows]
