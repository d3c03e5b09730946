"""Content inventory service layer.

Business logic for:
- Category, unit and lesson authoring hooks
- Unit lesson counts (total_lesson_videos)
- Tenant content statistics (recount on read, stored counter cache)
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from learntrack.core.locks import LockManager, LockTimeoutError
from learntrack.core.redis import content_stats_lock_key, unit_lock_key
from learntrack.utils.time import utc_now

from .models import Category, ContentStatistics, Lesson, Unit


if TYPE_CHECKING:
    from .repository import ContentRepository

logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class ContentError(Exception):
    """Base content error."""

    def __init__(self, message: str, code: str = "content_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class CategoryNotFoundError(ContentError):
    """Category not found in tenant."""

    def __init__(self, message: str = "Categoria nao encontrada"):
        super().__init__(message, "category_not_found")


class UnitNotFoundError(ContentError):
    """Unit not found in tenant."""

    def __init__(self, message: str = "Unidade nao encontrada"):
        super().__init__(message, "unit_not_found")


class LessonNotFoundError(ContentError):
    """Lesson not found in tenant."""

    def __init__(self, message: str = "Aula nao encontrada"):
        super().__init__(message, "lesson_not_found")


class ContentInUseError(ContentError):
    """Content still has children and cannot be deleted."""

    def __init__(self, message: str = "Conteudo possui itens vinculados"):
        super().__init__(message, "content_in_use")


class InvalidContentError(ContentError):
    """Content payload is invalid."""

    def __init__(self, message: str = "Conteudo invalido"):
        super().__init__(message, "invalid_content")


class ContentConflictError(ContentError):
    """Concurrent update of the same counters; caller should retry."""

    def __init__(self, message: str = "Atualizacao concorrente, tente novamente"):
        super().__init__(message, "conflict")


# ==============================================================================
# Content Statistics Service
# ==============================================================================


class ContentStatisticsService:
    """Tenant-wide totals of published lessons, units and categories.

    Clients always get a fresh recount from ``get``. The stored row is a
    counter cache kept in step by the authoring hooks and repaired by
    ``recalculate``.
    """

    def __init__(self, repository: "ContentRepository", locks: LockManager):
        self.repository = repository
        self.locks = locks

    async def get(self, tenant_id: str) -> ContentStatistics:
        """Recount published content of the tenant."""
        lessons = await self.repository.list_lessons(tenant_id)
        units = await self.repository.list_units(tenant_id)
        categories = await self.repository.list_categories(tenant_id)

        return ContentStatistics(
            tenant_id=tenant_id,
            total_lessons=sum(1 for lesson in lessons if lesson.is_published),
            total_units=sum(1 for unit in units if unit.is_published),
            total_categories=sum(1 for cat in categories if cat.is_published),
            updated_at=utc_now(),
        )

    async def get_stored(self, tenant_id: str) -> ContentStatistics | None:
        """Stored counter cache, as maintained by the authoring hooks."""
        return await self.repository.get_statistics(tenant_id)

    async def recalculate(self, tenant_id: str) -> ContentStatistics:
        """Overwrite the stored counters with a full recount."""
        async with self._hold(tenant_id):
            fresh = await self.get(tenant_id)
            stored = await self.repository.get_statistics(tenant_id)
            await self.repository.save_statistics(fresh)

        if stored is None or stored.totals() != fresh.totals():
            logger.warning(
                "content_stats_drift_repaired",
                tenant_id=tenant_id,
                stored=stored.totals() if stored else None,
                recounted=fresh.totals(),
            )
        else:
            logger.info("content_stats_recalculated", tenant_id=tenant_id)

        return fresh

    # Counter cache maintenance

    async def increment_lessons(self, tenant_id: str, amount: int = 1) -> None:
        await self._adjust(tenant_id, "total_lessons", amount)

    async def decrement_lessons(self, tenant_id: str, amount: int = 1) -> None:
        await self._adjust(tenant_id, "total_lessons", -amount)

    async def increment_units(self, tenant_id: str, amount: int = 1) -> None:
        await self._adjust(tenant_id, "total_units", amount)

    async def decrement_units(self, tenant_id: str, amount: int = 1) -> None:
        await self._adjust(tenant_id, "total_units", -amount)

    async def increment_categories(self, tenant_id: str, amount: int = 1) -> None:
        await self._adjust(tenant_id, "total_categories", amount)

    async def decrement_categories(self, tenant_id: str, amount: int = 1) -> None:
        await self._adjust(tenant_id, "total_categories", -amount)

    async def _adjust(self, tenant_id: str, field: str, delta: int) -> None:
        """Apply a delta to one stored counter.

        A missing row is initialized on increment and left alone on
        decrement. Counters never go below zero.
        """
        async with self._hold(tenant_id):
            stats = await self.repository.get_statistics(tenant_id)
            if stats is None:
                if delta <= 0:
                    return
                stats = ContentStatistics(tenant_id=tenant_id)

            setattr(stats, field, max(0, getattr(stats, field) + delta))
            stats.updated_at = utc_now()
            await self.repository.save_statistics(stats)

        logger.debug("content_stats_adjusted", tenant_id=tenant_id, field=field, delta=delta)

    def _hold(self, tenant_id: str):
        return _conflict_on_timeout(self.locks, content_stats_lock_key(tenant_id))


@asynccontextmanager
async def _conflict_on_timeout(locks: LockManager, key: str) -> AsyncIterator[None]:
    """Hold a lock, translating acquisition timeouts to ContentConflictError."""
    try:
        async with locks.hold(key):
            yield
    except LockTimeoutError as e:
        raise ContentConflictError from e


# ==============================================================================
# Content Service
# ==============================================================================


class ContentService:
    """Authoring hooks for the content inventory.

    Every mutation keeps the unit lesson counts and the stored content
    statistics in step with the inventory.
    """

    def __init__(
        self,
        repository: "ContentRepository",
        statistics: ContentStatisticsService,
        locks: LockManager,
    ):
        self.repository = repository
        self.statistics = statistics
        self.locks = locks

    # ==========================================================================
    # Lookups
    # ==========================================================================

    async def get_category(self, tenant_id: str, category_id: UUID) -> Category:
        category = await self.repository.get_category(tenant_id, category_id)
        if not category:
            raise CategoryNotFoundError
        return category

    async def get_unit(self, tenant_id: str, unit_id: UUID) -> Unit:
        unit = await self.repository.get_unit(tenant_id, unit_id)
        if not unit:
            raise UnitNotFoundError
        return unit

    async def get_lesson(self, tenant_id: str, lesson_id: UUID) -> Lesson:
        lesson = await self.repository.get_lesson(tenant_id, lesson_id)
        if not lesson:
            raise LessonNotFoundError
        return lesson

    async def list_categories(self, tenant_id: str) -> list[Category]:
        return await self.repository.list_categories(tenant_id)

    async def list_units(
        self, tenant_id: str, category_id: UUID | None = None
    ) -> list[Unit]:
        """List units of the tenant, optionally only those of one category."""
        units = await self.repository.list_units(tenant_id)
        if category_id is not None:
            units = [unit for unit in units if unit.category_id == category_id]
        return units

    async def list_lessons(
        self,
        tenant_id: str,
        unit_id: UUID | None = None,
        category_id: UUID | None = None,
    ) -> list[Lesson]:
        """List lessons of the tenant, optionally filtered by unit or category."""
        lessons = await self.repository.list_lessons(tenant_id)
        if unit_id is not None:
            lessons = [lesson for lesson in lessons if lesson.unit_id == unit_id]
        if category_id is not None:
            unit_ids = {u.unit_id for u in await self.list_units(tenant_id, category_id)}
            lessons = [lesson for lesson in lessons if lesson.unit_id in unit_ids]
        return lessons

    # ==========================================================================
    # Categories
    # ==========================================================================

    async def create_category(
        self, tenant_id: str, title: str, is_published: bool = False
    ) -> Category:
        """Create a category.

        Raises:
            InvalidContentError: If title is blank
        """
        _require_title(title)
        category = Category(tenant_id=tenant_id, title=title, is_published=is_published)
        await self.repository.save_category(category)
        if category.is_published:
            await self.statistics.increment_categories(tenant_id)

        logger.info(
            "category_created",
            tenant_id=tenant_id,
            category_id=str(category.category_id),
        )
        return category

    async def set_category_published(
        self, tenant_id: str, category_id: UUID, is_published: bool
    ) -> Category:
        category = await self.get_category(tenant_id, category_id)
        if category.is_published == is_published:
            return category

        category.is_published = is_published
        category.updated_at = utc_now()
        await self.repository.save_category(category)
        if is_published:
            await self.statistics.increment_categories(tenant_id)
        else:
            await self.statistics.decrement_categories(tenant_id)
        return category

    async def delete_category(self, tenant_id: str, category_id: UUID) -> None:
        """Delete a category with no units.

        Raises:
            CategoryNotFoundError: If category does not exist
            ContentInUseError: If the category still has units
        """
        category = await self.get_category(tenant_id, category_id)
        if await self.list_units(tenant_id, category_id):
            raise ContentInUseError("Categoria possui unidades vinculadas")

        await self.repository.delete_category(tenant_id, category_id)
        if category.is_published:
            await self.statistics.decrement_categories(tenant_id)

        logger.info("category_deleted", tenant_id=tenant_id, category_id=str(category_id))

    # ==========================================================================
    # Units
    # ==========================================================================

    async def create_unit(
        self,
        tenant_id: str,
        category_id: UUID,
        title: str,
        is_published: bool = False,
    ) -> Unit:
        """Create a unit inside an existing category.

        Raises:
            CategoryNotFoundError: If category does not exist
            InvalidContentError: If title is blank
        """
        _require_title(title)
        await self.get_category(tenant_id, category_id)

        unit = Unit(
            tenant_id=tenant_id,
            category_id=category_id,
            title=title,
            is_published=is_published,
        )
        await self.repository.save_unit(unit)
        if unit.is_published:
            await self.statistics.increment_units(tenant_id)

        logger.info(
            "unit_created",
            tenant_id=tenant_id,
            unit_id=str(unit.unit_id),
            category_id=str(category_id),
        )
        return unit

    async def set_unit_published(
        self, tenant_id: str, unit_id: UUID, is_published: bool
    ) -> Unit:
        unit = await self.get_unit(tenant_id, unit_id)
        if unit.is_published == is_published:
            return unit

        unit.is_published = is_published
        unit.updated_at = utc_now()
        await self.repository.save_unit(unit)
        if is_published:
            await self.statistics.increment_units(tenant_id)
        else:
            await self.statistics.decrement_units(tenant_id)
        return unit

    async def delete_unit(self, tenant_id: str, unit_id: UUID) -> None:
        """Delete a unit with no lessons.

        Raises:
            UnitNotFoundError: If unit does not exist
            ContentInUseError: If the unit still has lessons
        """
        unit = await self.get_unit(tenant_id, unit_id)
        if await self.list_lessons(tenant_id, unit_id=unit_id):
            raise ContentInUseError("Unidade possui aulas vinculadas")

        await self.repository.delete_unit(tenant_id, unit_id)
        if unit.is_published:
            await self.statistics.decrement_units(tenant_id)

        logger.info("unit_deleted", tenant_id=tenant_id, unit_id=str(unit_id))

    async def recalculate_unit_lesson_count(self, tenant_id: str, unit_id: UUID) -> Unit:
        """Repair a unit's total_lesson_videos from its lessons."""
        async with self._hold_unit(tenant_id, unit_id):
            unit = await self.get_unit(tenant_id, unit_id)
            count = len(await self.list_lessons(tenant_id, unit_id=unit_id))
            if count != unit.total_lesson_videos:
                logger.warning(
                    "unit_lesson_count_repaired",
                    tenant_id=tenant_id,
                    unit_id=str(unit_id),
                    stored=unit.total_lesson_videos,
                    recounted=count,
                )
                unit.total_lesson_videos = count
                unit.updated_at = utc_now()
                await self.repository.set_unit_lesson_count(
                    tenant_id, unit_id, count, unit.updated_at
                )
        return unit

    # ==========================================================================
    # Lessons
    # ==========================================================================

    async def create_lesson(
        self,
        tenant_id: str,
        unit_id: UUID,
        title: str,
        duration_seconds: int = 0,
        is_published: bool = False,
    ) -> Lesson:
        """Create a lesson and bump its unit's lesson count.

        Raises:
            UnitNotFoundError: If unit does not exist
            InvalidContentError: If title is blank or duration negative
        """
        _require_title(title)
        if duration_seconds < 0:
            raise InvalidContentError("Duracao da aula nao pode ser negativa")

        async with self._hold_unit(tenant_id, unit_id):
            unit = await self.get_unit(tenant_id, unit_id)
            lesson = Lesson(
                tenant_id=tenant_id,
                unit_id=unit_id,
                title=title,
                duration_seconds=duration_seconds,
                is_published=is_published,
            )
            await self.repository.save_lesson(lesson)
            await self.repository.set_unit_lesson_count(
                tenant_id, unit_id, unit.total_lesson_videos + 1, utc_now()
            )

        if lesson.is_published:
            await self.statistics.increment_lessons(tenant_id)

        logger.info(
            "lesson_created",
            tenant_id=tenant_id,
            lesson_id=str(lesson.lesson_id),
            unit_id=str(unit_id),
        )
        return lesson

    async def set_lesson_published(
        self, tenant_id: str, lesson_id: UUID, is_published: bool
    ) -> Lesson:
        """Publish or unpublish a lesson, adjusting the lesson counter."""
        lesson = await self.get_lesson(tenant_id, lesson_id)
        if lesson.is_published == is_published:
            return lesson

        lesson.is_published = is_published
        lesson.updated_at = utc_now()
        await self.repository.save_lesson(lesson)
        if is_published:
            await self.statistics.increment_lessons(tenant_id)
        else:
            await self.statistics.decrement_lessons(tenant_id)

        logger.info(
            "lesson_publish_changed",
            tenant_id=tenant_id,
            lesson_id=str(lesson_id),
            is_published=is_published,
        )
        return lesson

    async def delete_lesson(self, tenant_id: str, lesson_id: UUID) -> None:
        """Delete a lesson and decrement its unit's lesson count.

        Progress rows of learners are left in place; aggregates stop
        counting the lesson on their next recount.
        """
        lesson = await self.get_lesson(tenant_id, lesson_id)

        async with self._hold_unit(tenant_id, lesson.unit_id):
            await self.repository.delete_lesson(tenant_id, lesson_id)
            unit = await self.repository.get_unit(tenant_id, lesson.unit_id)
            if unit:
                await self.repository.set_unit_lesson_count(
                    tenant_id,
                    unit.unit_id,
                    max(0, unit.total_lesson_videos - 1),
                    utc_now(),
                )

        if lesson.is_published:
            await self.statistics.decrement_lessons(tenant_id)

        logger.info("lesson_deleted", tenant_id=tenant_id, lesson_id=str(lesson_id))

    def _hold_unit(self, tenant_id: str, unit_id: UUID):
        return _conflict_on_timeout(self.locks, unit_lock_key(tenant_id, str(unit_id)))


def _require_title(title: str) -> None:
    if not title or not title.strip():
        raise InvalidContentError("Titulo obrigatorio")
