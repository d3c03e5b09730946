"""Cassandra access for learner progress.

All reads and writes of one learner hit the same user_progress
partition. ``write`` sends several records as one LOGGED batch, which
Cassandra applies atomically and in isolation for a single partition.
"""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from cassandra.query import BatchStatement, BatchType

from .models import (
    GLOBAL_RECORD_ID,
    GlobalProgress,
    LessonProgress,
    RecordType,
    UnitProgress,
)


if TYPE_CHECKING:
    from cassandra.cluster import Session

ProgressRecord = LessonProgress | UnitProgress | GlobalProgress


class ProgressRepository:
    """Reads and writes user_progress rows."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        ks = self.keyspace

        self._get_record = self.session.prepare(f"""
            SELECT * FROM {ks}.user_progress
            WHERE tenant_id = ? AND user_id = ? AND record_type = ? AND record_id = ?
        """)

        self._list_records = self.session.prepare(f"""
            SELECT * FROM {ks}.user_progress
            WHERE tenant_id = ? AND user_id = ? AND record_type = ?
        """)

        # One upsert per record type; each only touches its own columns
        self._upsert_lesson = self.session.prepare(f"""
            INSERT INTO {ks}.user_progress
            (tenant_id, user_id, record_type, record_id, unit_id, completed,
             completed_at, current_time_sec, duration_sec, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._upsert_unit = self.session.prepare(f"""
            INSERT INTO {ks}.user_progress
            (tenant_id, user_id, record_type, record_id, completed_lessons_count,
             total_lesson_videos, progress_percent, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._upsert_global = self.session.prepare(f"""
            INSERT INTO {ks}.user_progress
            (tenant_id, user_id, record_type, record_id, completed_lessons_count,
             progress_percent, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """)

        # Lookup table
        self._register_user = self.session.prepare(f"""
            INSERT INTO {ks}.progress_users_by_tenant
            (tenant_id, user_id, first_seen_at)
            VALUES (?, ?, ?)
            IF NOT EXISTS
        """)

        self._list_users = self.session.prepare(f"""
            SELECT user_id FROM {ks}.progress_users_by_tenant
            WHERE tenant_id = ?
        """)

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def get_lesson_progress(
        self, tenant_id: str, user_id: str, lesson_id: UUID
    ) -> LessonProgress | None:
        row = await self._get(tenant_id, user_id, RecordType.LESSON, lesson_id)
        return LessonProgress.from_row(row) if row else None

    async def list_lesson_progress(
        self, tenant_id: str, user_id: str
    ) -> list[LessonProgress]:
        rows = await self._list(tenant_id, user_id, RecordType.LESSON)
        return [LessonProgress.from_row(row) for row in rows]

    async def get_unit_progress(
        self, tenant_id: str, user_id: str, unit_id: UUID
    ) -> UnitProgress | None:
        row = await self._get(tenant_id, user_id, RecordType.UNIT, unit_id)
        return UnitProgress.from_row(row) if row else None

    async def list_unit_progress(self, tenant_id: str, user_id: str) -> list[UnitProgress]:
        rows = await self._list(tenant_id, user_id, RecordType.UNIT)
        return [UnitProgress.from_row(row) for row in rows]

    async def get_global_progress(
        self, tenant_id: str, user_id: str
    ) -> GlobalProgress | None:
        row = await self._get(tenant_id, user_id, RecordType.GLOBAL, GLOBAL_RECORD_ID)
        return GlobalProgress.from_row(row) if row else None

    async def list_user_ids(self, tenant_id: str) -> list[str]:
        """Learners with any recorded progress in the tenant."""
        rows = await self.session.aexecute(self._list_users, [tenant_id])
        return [row.user_id for row in rows]

    async def _get(
        self, tenant_id: str, user_id: str, record_type: RecordType, record_id: UUID
    ):
        result = await self.session.aexecute(
            self._get_record, [tenant_id, user_id, record_type.value, record_id]
        )
        return result.one()

    async def _list(self, tenant_id: str, user_id: str, record_type: RecordType):
        return await self.session.aexecute(
            self._list_records, [tenant_id, user_id, record_type.value]
        )

    # ==========================================================================
    # Writes
    # ==========================================================================

    async def write(self, *records: ProgressRecord) -> None:
        """Persist records of one learner as a single atomic write.

        Raises:
            ValueError: If records span more than one learner partition
        """
        if not records:
            return

        partitions = {(r.tenant_id, r.user_id) for r in records}
        if len(partitions) > 1:
            raise ValueError("Progress records must belong to one learner")

        if len(records) == 1:
            statement, params = self._bind(records[0])
            await self.session.aexecute(statement, params)
            return

        batch = BatchStatement(batch_type=BatchType.LOGGED)
        for record in records:
            statement, params = self._bind(record)
            batch.add(statement, params)
        await self.session.aexecute(batch)

    async def register_user(
        self, tenant_id: str, user_id: str, first_seen_at: datetime
    ) -> None:
        """Record that the learner has progress in the tenant."""
        await self.session.aexecute(
            self._register_user, [tenant_id, user_id, first_seen_at]
        )

    def _bind(self, record: ProgressRecord):
        key = [
            record.tenant_id,
            record.user_id,
            record.record_type.value,
            record.record_id,
        ]

        if isinstance(record, LessonProgress):
            return self._upsert_lesson, [
                *key,
                record.unit_id,
                record.completed,
                record.completed_at,
                record.current_time_sec,
                record.duration_sec,
                record.updated_at,
            ]

        if isinstance(record, UnitProgress):
            return self._upsert_unit, [
                *key,
                record.completed_lessons_count,
                record.total_lesson_videos,
                record.progress_percent,
                record.updated_at,
            ]

        return self._upsert_global, [
            *key,
            record.completed_lessons_count,
            record.progress_percent,
            record.updated_at,
        ]
