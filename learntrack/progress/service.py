"""Learner progress service layer.

Business logic for:
- Video progress updates with auto-completion
- Manual lesson completion and reset
- Unit and global progress aggregation (always by full recount)
- Progress repair
- Progress queries

Every mutation of a learner runs under that learner's lock: existing
rows are read, aggregates recounted from the lesson rows and the result
written as one batch.
"""

import math
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from learntrack.core.locks import LockManager, LockTimeoutError
from learntrack.core.redis import progress_lock_key
from learntrack.utils.percent import calculate_percent
from learntrack.utils.time import utc_now

from .models import GlobalProgress, LessonProgress, UnitProgress


if TYPE_CHECKING:
    from learntrack.content.models import Lesson, Unit
    from learntrack.content.repository import ContentRepository
    from learntrack.content.service import ContentStatisticsService

    from .repository import ProgressRepository

logger = structlog.get_logger(__name__)

# Ratio of the video watched that completes a lesson
DEFAULT_COMPLETION_THRESHOLD = 0.9


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class ProgressError(Exception):
    """Base progress error."""

    def __init__(self, message: str, code: str = "progress_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class LessonNotFoundError(ProgressError):
    """Lesson does not exist in tenant."""

    def __init__(self, message: str = "Aula nao encontrada"):
        super().__init__(message, "lesson_not_found")


class UnitNotFoundError(ProgressError):
    """Unit does not exist in tenant."""

    def __init__(self, message: str = "Unidade nao encontrada"):
        super().__init__(message, "unit_not_found")


class InvalidProgressError(ProgressError):
    """Reported progress values are invalid."""

    def __init__(self, message: str = "Progresso invalido"):
        super().__init__(message, "invalid_state")


class ProgressConflictError(ProgressError):
    """Another update of the same learner is running; retry."""

    def __init__(self, message: str = "Atualizacao concorrente, tente novamente"):
        super().__init__(message, "conflict")


# ==============================================================================
# Progress Service
# ==============================================================================


class ProgressService:
    """Keeps lesson, unit and global progress of learners consistent."""

    def __init__(
        self,
        repository: "ProgressRepository",
        content: "ContentRepository",
        statistics: "ContentStatisticsService",
        locks: LockManager,
        completion_threshold: float = DEFAULT_COMPLETION_THRESHOLD,
    ):
        self.repository = repository
        self.content = content
        self.statistics = statistics
        self.locks = locks
        self.completion_threshold = completion_threshold

    # ==========================================================================
    # Lesson Completion Operations
    # ==========================================================================

    async def mark_lesson_completed(
        self, tenant_id: str, user_id: str, lesson_id: UUID
    ) -> LessonProgress:
        """Mark a lesson as completed and cascade to unit and global progress.

        Idempotent: an already completed lesson causes no writes.

        Raises:
            LessonNotFoundError: If lesson does not exist
            UnitNotFoundError: If the lesson's unit does not exist
            ProgressConflictError: If the learner lock is not acquired
        """
        async with self._hold(tenant_id, user_id):
            lesson = await self._require_lesson(tenant_id, lesson_id)
            unit = await self._require_unit(tenant_id, lesson.unit_id)

            existing = await self.repository.get_lesson_progress(
                tenant_id, user_id, lesson_id
            )
            if existing and existing.completed:
                return existing

            now = utc_now()
            progress = existing or self._new_lesson_progress(tenant_id, user_id, lesson)
            progress.completed = True
            progress.completed_at = now
            progress.updated_at = now

            await self._write_cascade(progress, unit, now, is_new=existing is None)

        logger.info(
            "lesson_marked_complete",
            tenant_id=tenant_id,
            user_id=user_id,
            lesson_id=str(lesson_id),
        )
        return progress

    async def mark_lesson_incomplete(
        self, tenant_id: str, user_id: str, lesson_id: UUID
    ) -> LessonProgress | None:
        """Reset a completed lesson and cascade the recount.

        No-op when the learner has no progress on the lesson or it is not
        completed.

        Raises:
            LessonNotFoundError: If lesson does not exist
            UnitNotFoundError: If the lesson's unit does not exist
            ProgressConflictError: If the learner lock is not acquired
        """
        async with self._hold(tenant_id, user_id):
            lesson = await self._require_lesson(tenant_id, lesson_id)

            existing = await self.repository.get_lesson_progress(
                tenant_id, user_id, lesson_id
            )
            if not existing or not existing.completed:
                return existing

            unit = await self._require_unit(tenant_id, lesson.unit_id)

            now = utc_now()
            existing.completed = False
            existing.completed_at = None
            existing.updated_at = now

            await self._write_cascade(existing, unit, now)

        logger.info(
            "lesson_marked_incomplete",
            tenant_id=tenant_id,
            user_id=user_id,
            lesson_id=str(lesson_id),
        )
        return existing

    # ==========================================================================
    # Video Progress Operations
    # ==========================================================================

    async def save_video_progress(
        self,
        tenant_id: str,
        user_id: str,
        lesson_id: UUID,
        current_time_sec: float,
        duration_sec: float,
    ) -> LessonProgress:
        """Store playback telemetry, auto-completing past the threshold.

        Completion is monotonic: seeking back never un-completes a lesson.

        Raises:
            InvalidProgressError: If time or duration is negative or not finite
            LessonNotFoundError: If lesson does not exist
            UnitNotFoundError: If auto-completion finds no unit
            ProgressConflictError: If the learner lock is not acquired
        """
        if not (math.isfinite(current_time_sec) and math.isfinite(duration_sec)):
            raise InvalidProgressError("Tempo e duracao devem ser numeros finitos")
        if current_time_sec < 0 or duration_sec < 0:
            raise InvalidProgressError("Tempo e duracao nao podem ser negativos")

        ratio = current_time_sec / duration_sec if duration_sec > 0 else 0.0

        async with self._hold(tenant_id, user_id):
            lesson = await self._require_lesson(tenant_id, lesson_id)

            existing = await self.repository.get_lesson_progress(
                tenant_id, user_id, lesson_id
            )
            now = utc_now()
            progress = existing or self._new_lesson_progress(tenant_id, user_id, lesson)
            progress.current_time_sec = current_time_sec
            progress.duration_sec = duration_sec
            progress.updated_at = now

            auto_complete = ratio >= self.completion_threshold and not progress.completed
            if auto_complete:
                unit = await self._require_unit(tenant_id, lesson.unit_id)
                progress.completed = True
                progress.completed_at = now
                await self._write_cascade(progress, unit, now, is_new=existing is None)
            else:
                if existing is None:
                    await self.repository.register_user(tenant_id, user_id, now)
                await self.repository.write(progress)

        if auto_complete:
            logger.info(
                "lesson_auto_completed",
                tenant_id=tenant_id,
                user_id=user_id,
                lesson_id=str(lesson_id),
                ratio=round(ratio, 4),
            )

        return progress

    # ==========================================================================
    # Recalculation / Repair
    # ==========================================================================

    async def recalculate_global_progress(
        self, tenant_id: str, user_id: str
    ) -> GlobalProgress:
        """Overwrite global progress from lesson rows and current content."""
        async with self._hold(tenant_id, user_id):
            rows = await self.repository.list_lesson_progress(tenant_id, user_id)
            lessons = await self.content.list_lessons(tenant_id)
            global_progress = await self._recount_global(
                tenant_id, user_id, rows, lessons, utc_now()
            )
            await self.repository.write(global_progress)

        logger.info(
            "global_progress_recalculated",
            tenant_id=tenant_id,
            user_id=user_id,
            completed=global_progress.completed_lessons_count,
            percent=global_progress.progress_percent,
        )
        return global_progress

    async def recalculate_unit_progress(
        self, tenant_id: str, user_id: str, unit_id: UUID
    ) -> UnitProgress:
        """Overwrite one unit's progress from lesson rows.

        Raises:
            UnitNotFoundError: If unit does not exist
        """
        async with self._hold(tenant_id, user_id):
            unit = await self._require_unit(tenant_id, unit_id)
            rows = await self.repository.list_lesson_progress(tenant_id, user_id)
            lessons = await self.content.list_lessons(tenant_id)
            unit_progress = self._recount_unit(user_id, unit, rows, lessons, utc_now())
            await self.repository.write(unit_progress)

        logger.info(
            "unit_progress_recalculated",
            tenant_id=tenant_id,
            user_id=user_id,
            unit_id=str(unit_id),
            completed=unit_progress.completed_lessons_count,
        )
        return unit_progress

    async def recalculate_user_progress(
        self, tenant_id: str, user_id: str
    ) -> tuple[list[UnitProgress], GlobalProgress]:
        """Repair every unit the learner touched plus the global row, atomically.

        Units that no longer exist are skipped; their rows are left as is.
        """
        async with self._hold(tenant_id, user_id):
            now = utc_now()
            rows = await self.repository.list_lesson_progress(tenant_id, user_id)
            stored_units = await self.repository.list_unit_progress(tenant_id, user_id)
            lessons = await self.content.list_lessons(tenant_id)

            lesson_units = {lesson.lesson_id: lesson.unit_id for lesson in lessons}
            unit_ids = {up.unit_id for up in stored_units}
            unit_ids.update(
                lesson_units[row.lesson_id] for row in rows if row.lesson_id in lesson_units
            )

            unit_progress = []
            for unit_id in sorted(unit_ids):
                unit = await self.content.get_unit(tenant_id, unit_id)
                if unit:
                    unit_progress.append(
                        self._recount_unit(user_id, unit, rows, lessons, now)
                    )

            global_progress = await self._recount_global(
                tenant_id, user_id, rows, lessons, now
            )
            await self.repository.write(*unit_progress, global_progress)

        logger.info(
            "user_progress_recalculated",
            tenant_id=tenant_id,
            user_id=user_id,
            units=len(unit_progress),
            percent=global_progress.progress_percent,
        )
        return unit_progress, global_progress

    async def list_user_ids(self, tenant_id: str) -> list[str]:
        """Learners with recorded progress in the tenant."""
        return await self.repository.list_user_ids(tenant_id)

    # ==========================================================================
    # Progress Queries
    # ==========================================================================

    async def get_lesson_progress(
        self, tenant_id: str, user_id: str, lesson_id: UUID
    ) -> LessonProgress | None:
        """Get progress for a specific lesson."""
        return await self.repository.get_lesson_progress(tenant_id, user_id, lesson_id)

    async def get_unit_progress(
        self, tenant_id: str, user_id: str, unit_id: UUID
    ) -> UnitProgress:
        """Get unit progress; an untouched unit reads as zero."""
        progress = await self.repository.get_unit_progress(tenant_id, user_id, unit_id)
        return progress or UnitProgress(tenant_id=tenant_id, user_id=user_id, unit_id=unit_id)

    async def get_global_progress(self, tenant_id: str, user_id: str) -> GlobalProgress:
        """Get global progress; a learner with no progress reads as zero."""
        progress = await self.repository.get_global_progress(tenant_id, user_id)
        return progress or GlobalProgress(tenant_id=tenant_id, user_id=user_id)

    async def get_unit_lessons_progress(
        self, tenant_id: str, user_id: str, unit_id: UUID
    ) -> list[LessonProgress]:
        """Lesson rows recorded under the given unit."""
        rows = await self.repository.list_lesson_progress(tenant_id, user_id)
        return [row for row in rows if row.unit_id == unit_id]

    async def get_all_unit_progress(
        self, tenant_id: str, user_id: str
    ) -> list[UnitProgress]:
        return await self.repository.list_unit_progress(tenant_id, user_id)

    async def get_completed_lessons(
        self, tenant_id: str, user_id: str
    ) -> list[LessonProgress]:
        rows = await self.repository.list_lesson_progress(tenant_id, user_id)
        return [row for row in rows if row.completed]

    async def get_completed_published_lessons_count(
        self, tenant_id: str, user_id: str
    ) -> int:
        """Completed published lessons, as kept in the global aggregate."""
        progress = await self.repository.get_global_progress(tenant_id, user_id)
        return progress.completed_lessons_count if progress else 0

    async def get_unit_progress_by_category(
        self, tenant_id: str, user_id: str, category_id: UUID
    ) -> list[UnitProgress]:
        """Unit progress of the category's units; empty for unknown categories."""
        unit_ids = await self._category_unit_ids(tenant_id, category_id)
        if not unit_ids:
            return []
        rows = await self.repository.list_unit_progress(tenant_id, user_id)
        return [row for row in rows if row.unit_id in unit_ids]

    async def get_completed_lessons_by_category(
        self, tenant_id: str, user_id: str, category_id: UUID
    ) -> list[LessonProgress]:
        """Completed lessons of the category's units; empty for unknown categories."""
        unit_ids = await self._category_unit_ids(tenant_id, category_id)
        if not unit_ids:
            return []
        lesson_ids = {
            lesson.lesson_id
            for lesson in await self.content.list_lessons(tenant_id)
            if lesson.unit_id in unit_ids
        }
        completed = await self.get_completed_lessons(tenant_id, user_id)
        return [row for row in completed if row.lesson_id in lesson_ids]

    async def _category_unit_ids(self, tenant_id: str, category_id: UUID) -> set[UUID]:
        if not await self.content.get_category(tenant_id, category_id):
            return set()
        units = await self.content.list_units(tenant_id)
        return {unit.unit_id for unit in units if unit.category_id == category_id}

    # ==========================================================================
    # Aggregation
    # ==========================================================================

    async def _write_cascade(
        self,
        progress: LessonProgress,
        unit: "Unit",
        now: datetime,
        is_new: bool = False,
    ) -> None:
        """Recount unit and global progress and write them with the lesson row."""
        tenant_id, user_id = progress.tenant_id, progress.user_id

        stored = await self.repository.list_lesson_progress(tenant_id, user_id)
        rows = [row for row in stored if row.lesson_id != progress.lesson_id]
        rows.append(progress)

        lessons = await self.content.list_lessons(tenant_id)
        unit_progress = self._recount_unit(user_id, unit, rows, lessons, now)
        global_progress = await self._recount_global(tenant_id, user_id, rows, lessons, now)

        # Registered first so a stored row is always reachable by tenant repair
        if is_new:
            await self.repository.register_user(tenant_id, user_id, now)
        await self.repository.write(progress, unit_progress, global_progress)

        logger.debug(
            "progress_cascade_written",
            tenant_id=tenant_id,
            user_id=user_id,
            unit_id=str(unit.unit_id),
            unit_percent=unit_progress.progress_percent,
            global_percent=global_progress.progress_percent,
        )

    def _recount_unit(
        self,
        user_id: str,
        unit: "Unit",
        rows: Iterable[LessonProgress],
        lessons: Iterable["Lesson"],
        now: datetime,
    ) -> UnitProgress:
        """Count completed rows whose lesson currently belongs to the unit."""
        unit_lessons = {lesson.lesson_id for lesson in lessons if lesson.unit_id == unit.unit_id}
        completed = sum(1 for row in rows if row.completed and row.lesson_id in unit_lessons)

        return UnitProgress(
            tenant_id=unit.tenant_id,
            user_id=user_id,
            unit_id=unit.unit_id,
            completed_lessons_count=completed,
            total_lesson_videos=unit.total_lesson_videos,
            progress_percent=calculate_percent(completed, unit.total_lesson_videos),
            updated_at=now,
        )

    async def _recount_global(
        self,
        tenant_id: str,
        user_id: str,
        rows: Iterable[LessonProgress],
        lessons: Iterable["Lesson"],
        now: datetime,
    ) -> GlobalProgress:
        """Count completed rows whose lesson exists and is published."""
        published = {lesson.lesson_id for lesson in lessons if lesson.is_published}
        completed = sum(1 for row in rows if row.completed and row.lesson_id in published)
        stats = await self.statistics.get(tenant_id)

        return GlobalProgress(
            tenant_id=tenant_id,
            user_id=user_id,
            completed_lessons_count=completed,
            progress_percent=calculate_percent(completed, stats.total_lessons),
            updated_at=now,
        )

    # ==========================================================================
    # Helpers
    # ==========================================================================

    async def _require_lesson(self, tenant_id: str, lesson_id: UUID) -> "Lesson":
        lesson = await self.content.get_lesson(tenant_id, lesson_id)
        if not lesson:
            raise LessonNotFoundError
        return lesson

    async def _require_unit(self, tenant_id: str, unit_id: UUID) -> "Unit":
        unit = await self.content.get_unit(tenant_id, unit_id)
        if not unit:
            raise UnitNotFoundError
        return unit

    def _new_lesson_progress(
        self, tenant_id: str, user_id: str, lesson: "Lesson"
    ) -> LessonProgress:
        return LessonProgress(
            tenant_id=tenant_id,
            user_id=user_id,
            lesson_id=lesson.lesson_id,
            unit_id=lesson.unit_id,
        )

    @asynccontextmanager
    async def _hold(self, tenant_id: str, user_id: str) -> AsyncIterator[None]:
        try:
            async with self.locks.hold(progress_lock_key(tenant_id, user_id)):
                yield
        except LockTimeoutError as e:
            logger.warning("progress_lock_timeout", tenant_id=tenant_id, user_id=user_id)
            raise ProgressConflictError from e
