"""PostgreSQL implementation of the instance repository."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Optional

import asyncpg

from ..errors import AlreadyInitialized
from .models import ActivityRecord, InstanceRecord
from .repository import InstanceRepository


class PostgresInstanceRepository(InstanceRepository):
    """Persist instance state using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS instances (
                instance_id TEXT PRIMARY KEY,
                workflow_type TEXT NOT NULL,
                state JSONB NOT NULL,
                status TEXT NOT NULL,
                last_polled_at TIMESTAMPTZ
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS activity_history (
                id SERIAL PRIMARY KEY,
                instance_id TEXT NOT NULL,
                stage TEXT NOT NULL,
                activity_code TEXT NOT NULL,
                status TEXT NOT NULL,
                recorded_at TIMESTAMPTZ NOT NULL
            )
            """
        )

    @staticmethod
    def _to_record(row: asyncpg.Record, history: list[ActivityRecord] | None = None) -> InstanceRecord:
        state = row["state"]
        return InstanceRecord(
            instance_id=row["instance_id"],
            workflow_type=row["workflow_type"],
            state=json.loads(state) if isinstance(state, str) else state,
            status=row["status"],
            last_polled_at=row["last_polled_at"],
            history=history or [],
        )

    # ------------------------------------------------------------------
    async def create_instance(
        self, instance_id: str, workflow_type: str, state: dict
    ) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "INSERT INTO instances (instance_id, workflow_type, state, status) VALUES ($1, $2, $3, $4)",
                instance_id,
                workflow_type,
                json.dumps(state),
                "in_progress",
            )
        except asyncpg.UniqueViolationError as e:
            raise AlreadyInitialized(instance_id) from e
        finally:
            await conn.close()

    async def save_state(self, instance_id: str, state: dict) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "UPDATE instances SET state = $1 WHERE instance_id = $2",
                json.dumps(state),
                instance_id,
            )
        finally:
            await conn.close()

    async def record_activity(
        self, instance_id: str, stage: str, activity_code: str, status: str
    ) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "INSERT INTO activity_history (instance_id, stage, activity_code, status, recorded_at) VALUES ($1, $2, $3, $4, $5)",
                instance_id,
                stage,
                activity_code,
                status,
                datetime.now(timezone.utc),
            )
        finally:
            await conn.close()

    async def mark_polled(self, instance_id: str, polled_at: datetime) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "UPDATE instances SET last_polled_at = $1 WHERE instance_id = $2",
                polled_at,
                instance_id,
            )
        finally:
            await conn.close()

    async def mark_instance_finished(
        self, instance_id: str, status: str = "completed"
    ) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "UPDATE instances SET status = $1 WHERE instance_id = $2",
                status,
                instance_id,
            )
        finally:
            await conn.close()

    async def get_instance(self, instance_id: str) -> InstanceRecord | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT instance_id, workflow_type, state, status, last_polled_at FROM instances WHERE instance_id = $1",
                instance_id,
            )
            if not row:
                return None
            history_rows = await conn.fetch(
                "SELECT id, instance_id, stage, activity_code, status, recorded_at FROM activity_history WHERE instance_id = $1 ORDER BY id",
                instance_id,
            )
        finally:
            await conn.close()
        history = [
            ActivityRecord(
                id=r["id"],
                instance_id=r["instance_id"],
                stage=r["stage"],
                activity_code=r["activity_code"],
                status=r["status"],
                recorded_at=r["recorded_at"],
            )
            for r in history_rows
        ]
        return self._to_record(row, history)

    async def list_instances(self, status: Optional[str] = None) -> list[InstanceRecord]:
        conn = await self._connect()
        try:
            if status is None:
                rows = await conn.fetch(
                    "SELECT instance_id, workflow_type, state, status, last_polled_at FROM instances"
                )
            else:
                rows = await conn.fetch(
                    "SELECT instance_id, workflow_type, state, status, last_polled_at FROM instances WHERE status = $1",
                    status,
                )
        finally:
            await conn.close()
        return [self._to_record(r) for r in rows]
