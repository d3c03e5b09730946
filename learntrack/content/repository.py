"""Cassandra access for the content inventory.

Statements are prepared once per repository; every statement binds
tenant_id as (part of) the partition key.
"""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from .models import Category, ContentStatistics, Lesson, Unit


if TYPE_CHECKING:
    from cassandra.cluster import Session


class ContentRepository:
    """Reads and writes categories, units, lessons and the counter cache."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        ks = self.keyspace

        # Categories
        self._get_category = self.session.prepare(
            f"SELECT * FROM {ks}.categories WHERE tenant_id = ? AND category_id = ?"
        )
        self._list_categories = self.session.prepare(
            f"SELECT * FROM {ks}.categories WHERE tenant_id = ?"
        )
        self._upsert_category = self.session.prepare(f"""
            INSERT INTO {ks}.categories
            (tenant_id, category_id, title, is_published, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """)
        self._delete_category = self.session.prepare(
            f"DELETE FROM {ks}.categories WHERE tenant_id = ? AND category_id = ?"
        )

        # Units
        self._get_unit = self.session.prepare(
            f"SELECT * FROM {ks}.units WHERE tenant_id = ? AND unit_id = ?"
        )
        self._list_units = self.session.prepare(
            f"SELECT * FROM {ks}.units WHERE tenant_id = ?"
        )
        self._upsert_unit = self.session.prepare(f"""
            INSERT INTO {ks}.units
            (tenant_id, unit_id, category_id, title, is_published,
             total_lesson_videos, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._set_unit_lesson_count = self.session.prepare(f"""
            UPDATE {ks}.units SET total_lesson_videos = ?, updated_at = ?
            WHERE tenant_id = ? AND unit_id = ?
        """)
        self._delete_unit = self.session.prepare(
            f"DELETE FROM {ks}.units WHERE tenant_id = ? AND unit_id = ?"
        )

        # Lessons
        self._get_lesson = self.session.prepare(
            f"SELECT * FROM {ks}.lessons WHERE tenant_id = ? AND lesson_id = ?"
        )
        self._list_lessons = self.session.prepare(
            f"SELECT * FROM {ks}.lessons WHERE tenant_id = ?"
        )
        self._upsert_lesson = self.session.prepare(f"""
            INSERT INTO {ks}.lessons
            (tenant_id, lesson_id, unit_id, title, duration_seconds,
             is_published, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._delete_lesson = self.session.prepare(
            f"DELETE FROM {ks}.lessons WHERE tenant_id = ? AND lesson_id = ?"
        )

        # Statistics cache
        self._get_statistics = self.session.prepare(
            f"SELECT * FROM {ks}.content_statistics WHERE tenant_id = ?"
        )
        self._upsert_statistics = self.session.prepare(f"""
            INSERT INTO {ks}.content_statistics
            (tenant_id, total_lessons, total_units, total_categories, updated_at)
            VALUES (?, ?, ?, ?, ?)
        """)

    # ==========================================================================
    # Categories
    # ==========================================================================

    async def get_category(self, tenant_id: str, category_id: UUID) -> Category | None:
        result = await self.session.aexecute(self._get_category, [tenant_id, category_id])
        row = result.one()
        return Category.from_row(row) if row else None

    async def list_categories(self, tenant_id: str) -> list[Category]:
        rows = await self.session.aexecute(self._list_categories, [tenant_id])
        return [Category.from_row(row) for row in rows]

    async def save_category(self, category: Category) -> None:
        await self.session.aexecute(
            self._upsert_category,
            [
                category.tenant_id,
                category.category_id,
                category.title,
                category.is_published,
                category.created_at,
                category.updated_at,
            ],
        )

    async def delete_category(self, tenant_id: str, category_id: UUID) -> None:
        await self.session.aexecute(self._delete_category, [tenant_id, category_id])

    # ==========================================================================
    # Units
    # ==========================================================================

    async def get_unit(self, tenant_id: str, unit_id: UUID) -> Unit | None:
        result = await self.session.aexecute(self._get_unit, [tenant_id, unit_id])
        row = result.one()
        return Unit.from_row(row) if row else None

    async def list_units(self, tenant_id: str) -> list[Unit]:
        rows = await self.session.aexecute(self._list_units, [tenant_id])
        return [Unit.from_row(row) for row in rows]

    async def save_unit(self, unit: Unit) -> None:
        await self.session.aexecute(
            self._upsert_unit,
            [
                unit.tenant_id,
                unit.unit_id,
                unit.category_id,
                unit.title,
                unit.is_published,
                unit.total_lesson_videos,
                unit.created_at,
                unit.updated_at,
            ],
        )

    async def set_unit_lesson_count(
        self, tenant_id: str, unit_id: UUID, count: int, updated_at: datetime
    ) -> None:
        await self.session.aexecute(
            self._set_unit_lesson_count, [count, updated_at, tenant_id, unit_id]
        )

    async def delete_unit(self, tenant_id: str, unit_id: UUID) -> None:
        await self.session.aexecute(self._delete_unit, [tenant_id, unit_id])

    # ==========================================================================
    # Lessons
    # ==========================================================================

    async def get_lesson(self, tenant_id: str, lesson_id: UUID) -> Lesson | None:
        result = await self.session.aexecute(self._get_lesson, [tenant_id, lesson_id])
        row = result.one()
        return Lesson.from_row(row) if row else None

    async def list_lessons(self, tenant_id: str) -> list[Lesson]:
        rows = await self.session.aexecute(self._list_lessons, [tenant_id])
        return [Lesson.from_row(row) for row in rows]

    async def save_lesson(self, lesson: Lesson) -> None:
        await self.session.aexecute(
            self._upsert_lesson,
            [
                lesson.tenant_id,
                lesson.lesson_id,
                lesson.unit_id,
                lesson.title,
                lesson.duration_seconds,
                lesson.is_published,
                lesson.created_at,
                lesson.updated_at,
            ],
        )

    async def delete_lesson(self, tenant_id: str, lesson_id: UUID) -> None:
        await self.session.aexecute(self._delete_lesson, [tenant_id, lesson_id])

    # ==========================================================================
    # Statistics cache
    # ==========================================================================

    async def get_statistics(self, tenant_id: str) -> ContentStatistics | None:
        result = await self.session.aexecute(self._get_statistics, [tenant_id])
        row = result.one()
        return ContentStatistics.from_row(row) if row else None

    async def save_statistics(self, stats: ContentStatistics) -> None:
        await self.session.aexecute(
            self._upsert_statistics,
            [
                stats.tenant_id,
                stats.total_lessons,
                stats.total_units,
                stats.total_categories,
                stats.updated_at,
            ],
        )
