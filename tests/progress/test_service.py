"""Tests for the progress engine.

Covers:
- Completion cascade (lesson -> unit -> global)
- Idempotence and monotonicity
- Aggregate invariants after deleted/unpublished lessons
- Repair of corrupted aggregates
- Error paths leaving no writes
- Concurrent writers of one learner
"""

import asyncio
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from learntrack.content.service import ContentService
from learntrack.progress.models import GlobalProgress, UnitProgress
from learntrack.progress.service import (
    InvalidProgressError,
    LessonNotFoundError,
    ProgressConflictError,
    ProgressService,
    UnitNotFoundError,
)


OTHER_TENANT_ID = "tenant-b"


async def build_catalog(content_service: ContentService, tenant_id: str):
    """Unit U1 with 3 lessons plus unit U2 with 7: 10 published lessons."""
    category = await content_service.create_category(tenant_id, "Farmacologia", True)
    unit_1 = await content_service.create_unit(tenant_id, category.category_id, "U1", True)
    unit_2 = await content_service.create_unit(tenant_id, category.category_id, "U2", True)
    lessons_1 = [
        await content_service.create_lesson(
            tenant_id, unit_1.unit_id, f"Aula {i}", 100, is_published=True
        )
        for i in range(3)
    ]
    lessons_2 = [
        await content_service.create_lesson(
            tenant_id, unit_2.unit_id, f"Aula extra {i}", 100, is_published=True
        )
        for i in range(7)
    ]
    return category, unit_1, unit_2, lessons_1, lessons_2


class TestCompletionScenario:
    """Mark complete / incomplete across one unit."""

    @pytest.mark.asyncio
    async def test_complete_two_then_reset_one(
        self,
        content_service: ContentService,
        progress_service: ProgressService,
        tenant_id: str,
        user_id: str,
    ):
        """Unit and global aggregates follow each completion change."""
        _, unit, _, lessons, _ = await build_catalog(content_service, tenant_id)
        l1, l2, _ = lessons

        await progress_service.mark_lesson_completed(tenant_id, user_id, l1.lesson_id)
        unit_progress = await progress_service.get_unit_progress(
            tenant_id, user_id, unit.unit_id
        )
        global_progress = await progress_service.get_global_progress(tenant_id, user_id)
        assert (
            unit_progress.completed_lessons_count,
            unit_progress.total_lesson_videos,
            unit_progress.progress_percent,
        ) == (1, 3, 33)
        assert (global_progress.completed_lessons_count, global_progress.progress_percent) == (
            1,
            10,
        )

        await progress_service.mark_lesson_completed(tenant_id, user_id, l2.lesson_id)
        unit_progress = await progress_service.get_unit_progress(
            tenant_id, user_id, unit.unit_id
        )
        global_progress = await progress_service.get_global_progress(tenant_id, user_id)
        assert (unit_progress.completed_lessons_count, unit_progress.progress_percent) == (2, 67)
        assert (global_progress.completed_lessons_count, global_progress.progress_percent) == (
            2,
            20,
        )

        await progress_service.mark_lesson_incomplete(tenant_id, user_id, l1.lesson_id)
        unit_progress = await progress_service.get_unit_progress(
            tenant_id, user_id, unit.unit_id
        )
        global_progress = await progress_service.get_global_progress(tenant_id, user_id)
        assert (unit_progress.completed_lessons_count, unit_progress.progress_percent) == (1, 33)
        assert (global_progress.completed_lessons_count, global_progress.progress_percent) == (
            1,
            10,
        )

        reset = await progress_service.get_lesson_progress(tenant_id, user_id, l1.lesson_id)
        assert reset.completed is False
        assert reset.completed_at is None

    @pytest.mark.asyncio
    async def test_cascade_is_one_write(
        self,
        content_service,
        progress_service,
        progress_repository,
        tenant_id,
        user_id,
    ):
        """Lesson, unit and global rows are written together."""
        _, _, _, lessons, _ = await build_catalog(content_service, tenant_id)

        await progress_service.mark_lesson_completed(
            tenant_id, user_id, lessons[0].lesson_id
        )

        assert len(progress_repository.writes) == 1
        kinds = [record.record_type.value for record in progress_repository.writes[0]]
        assert kinds == ["lesson", "unit", "global"]
        assert await progress_repository.list_user_ids(tenant_id) == [user_id]


class TestIdempotence:
    """Repeated completion changes nothing."""

    @pytest.mark.asyncio
    async def test_mark_completed_twice(
        self,
        content_service,
        progress_service,
        progress_repository,
        tenant_id,
        user_id,
    ):
        _, unit, _, lessons, _ = await build_catalog(content_service, tenant_id)
        lesson_id = lessons[0].lesson_id

        first = await progress_service.mark_lesson_completed(tenant_id, user_id, lesson_id)
        writes_after_first = len(progress_repository.writes)
        second = await progress_service.mark_lesson_completed(tenant_id, user_id, lesson_id)

        assert len(progress_repository.writes) == writes_after_first
        assert second.completed_at == first.completed_at
        unit_progress = await progress_service.get_unit_progress(
            tenant_id, user_id, unit.unit_id
        )
        assert unit_progress.completed_lessons_count == 1

    @pytest.mark.asyncio
    async def test_mark_incomplete_without_progress_is_noop(
        self,
        content_service,
        progress_service,
        progress_repository,
        tenant_id,
        user_id,
    ):
        _, _, _, lessons, _ = await build_catalog(content_service, tenant_id)

        result = await progress_service.mark_lesson_incomplete(
            tenant_id, user_id, lessons[0].lesson_id
        )

        assert result is None
        assert progress_repository.writes == []


class TestVideoProgress:
    """Telemetry, auto-completion and monotonicity."""

    @pytest.mark.asyncio
    async def test_auto_complete_then_seek_back(
        self, content_service, progress_service, tenant_id, user_id
    ):
        """Crossing the threshold completes; seeking back keeps completion."""
        _, unit, _, lessons, _ = await build_catalog(content_service, tenant_id)
        l3 = lessons[2]

        progress = await progress_service.save_video_progress(
            tenant_id, user_id, l3.lesson_id, current_time_sec=95, duration_sec=100
        )
        assert progress.completed is True
        assert progress.completed_at is not None

        progress = await progress_service.save_video_progress(
            tenant_id, user_id, l3.lesson_id, current_time_sec=10, duration_sec=100
        )
        assert progress.completed is True
        assert progress.current_time_sec == 10

        unit_progress = await progress_service.get_unit_progress(
            tenant_id, user_id, unit.unit_id
        )
        assert unit_progress.completed_lessons_count == 1

    @pytest.mark.asyncio
    async def test_below_threshold_only_stores_telemetry(
        self,
        content_service,
        progress_service,
        progress_repository,
        tenant_id,
        user_id,
    ):
        _, unit, _, lessons, _ = await build_catalog(content_service, tenant_id)

        progress = await progress_service.save_video_progress(
            tenant_id, user_id, lessons[0].lesson_id, current_time_sec=50, duration_sec=100
        )

        assert progress.completed is False
        assert progress.duration_sec == 100
        assert len(progress_repository.writes) == 1
        assert len(progress_repository.writes[0]) == 1
        assert await progress_repository.get_unit_progress(
            tenant_id, user_id, unit.unit_id
        ) is None

    @pytest.mark.asyncio
    async def test_exact_threshold_completes(
        self, content_service, progress_service, tenant_id, user_id
    ):
        _, _, _, lessons, _ = await build_catalog(content_service, tenant_id)

        progress = await progress_service.save_video_progress(
            tenant_id, user_id, lessons[0].lesson_id, current_time_sec=90, duration_sec=100
        )

        assert progress.completed is True

    @pytest.mark.asyncio
    async def test_zero_duration_never_completes(
        self, content_service, progress_service, tenant_id, user_id
    ):
        _, _, _, lessons, _ = await build_catalog(content_service, tenant_id)

        progress = await progress_service.save_video_progress(
            tenant_id, user_id, lessons[0].lesson_id, current_time_sec=30, duration_sec=0
        )

        assert progress.completed is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("current", "duration"), [(-1, 100), (10, -5)])
    async def test_negative_values_rejected_before_io(
        self, progress_service, progress_repository, tenant_id, user_id, current, duration
    ):
        """Validation happens before the lesson is even looked up."""
        with pytest.raises(InvalidProgressError) as exc_info:
            await progress_service.save_video_progress(
                tenant_id, user_id, uuid4(), current_time_sec=current, duration_sec=duration
            )

        assert exc_info.value.code == "invalid_state"
        assert progress_repository.writes == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("current", "duration"),
        [
            (float("nan"), 100),
            (10, float("nan")),
            (float("inf"), 100),
            (10, float("inf")),
        ],
    )
    async def test_non_finite_values_rejected_before_io(
        self,
        content_service,
        progress_service,
        progress_repository,
        tenant_id,
        user_id,
        current,
        duration,
    ):
        """NaN never reaches a row and infinity never auto-completes."""
        _, _, _, lessons, _ = await build_catalog(content_service, tenant_id)
        lesson_id = lessons[0].lesson_id

        with pytest.raises(InvalidProgressError) as exc_info:
            await progress_service.save_video_progress(
                tenant_id, user_id, lesson_id, current_time_sec=current, duration_sec=duration
            )

        assert exc_info.value.code == "invalid_state"
        assert progress_repository.writes == []
        assert await progress_service.get_lesson_progress(tenant_id, user_id, lesson_id) is None


class TestNotFound:
    """Unresolvable references abort without writes."""

    @pytest.mark.asyncio
    async def test_unknown_lesson(
        self, progress_service, progress_repository, tenant_id, user_id
    ):
        with pytest.raises(LessonNotFoundError) as exc_info:
            await progress_service.mark_lesson_completed(tenant_id, user_id, uuid4())

        assert exc_info.value.code == "lesson_not_found"
        assert progress_repository.writes == []

    @pytest.mark.asyncio
    async def test_lesson_of_another_tenant(
        self, content_service, progress_service, progress_repository, user_id
    ):
        """A lesson id from tenant B does not resolve in tenant A."""
        _, _, _, lessons, _ = await build_catalog(content_service, OTHER_TENANT_ID)

        with pytest.raises(LessonNotFoundError):
            await progress_service.mark_lesson_completed(
                "tenant-a", user_id, lessons[0].lesson_id
            )

        assert progress_repository.writes == []

    @pytest.mark.asyncio
    async def test_missing_unit(
        self,
        content_service,
        content_repository,
        progress_service,
        progress_repository,
        tenant_id,
        user_id,
    ):
        _, unit, _, lessons, _ = await build_catalog(content_service, tenant_id)
        await content_repository.delete_unit(tenant_id, unit.unit_id)

        with pytest.raises(UnitNotFoundError):
            await progress_service.mark_lesson_completed(
                tenant_id, user_id, lessons[0].lesson_id
            )

        assert progress_repository.writes == []

    @pytest.mark.asyncio
    async def test_recalculate_unknown_unit(self, progress_service, tenant_id, user_id):
        with pytest.raises(UnitNotFoundError):
            await progress_service.recalculate_unit_progress(tenant_id, user_id, uuid4())


class TestInvariants:
    """Aggregates only count lessons that still exist (and, globally, are published)."""

    @pytest.mark.asyncio
    async def test_deleted_lesson_drops_out_of_aggregates(
        self, content_service, progress_service, tenant_id, user_id
    ):
        _, unit, _, lessons, _ = await build_catalog(content_service, tenant_id)
        l1, l2, _ = lessons
        await progress_service.mark_lesson_completed(tenant_id, user_id, l1.lesson_id)

        await content_service.delete_lesson(tenant_id, l1.lesson_id)
        await progress_service.mark_lesson_completed(tenant_id, user_id, l2.lesson_id)

        unit_progress = await progress_service.get_unit_progress(
            tenant_id, user_id, unit.unit_id
        )
        global_progress = await progress_service.get_global_progress(tenant_id, user_id)
        assert unit_progress.completed_lessons_count == 1
        assert unit_progress.total_lesson_videos == 2
        assert unit_progress.progress_percent == 50
        assert global_progress.completed_lessons_count == 1
        # 9 published lessons remain
        assert global_progress.progress_percent == 11

    @pytest.mark.asyncio
    async def test_unpublished_lesson_counts_for_unit_only(
        self, content_service, progress_service, tenant_id, user_id
    ):
        _, unit, _, lessons, _ = await build_catalog(content_service, tenant_id)
        l1, l2, _ = lessons
        await content_service.set_lesson_published(tenant_id, l1.lesson_id, False)

        await progress_service.mark_lesson_completed(tenant_id, user_id, l1.lesson_id)
        await progress_service.mark_lesson_completed(tenant_id, user_id, l2.lesson_id)

        unit_progress = await progress_service.get_unit_progress(
            tenant_id, user_id, unit.unit_id
        )
        global_progress = await progress_service.get_global_progress(tenant_id, user_id)
        assert unit_progress.completed_lessons_count == 2
        assert global_progress.completed_lessons_count == 1
        assert global_progress.progress_percent == 11

    @pytest.mark.asyncio
    async def test_empty_unit_yields_zero_percent(
        self, content_service, progress_service, tenant_id, user_id
    ):
        category = await content_service.create_category(tenant_id, "Vazia", True)
        unit = await content_service.create_unit(tenant_id, category.category_id, "Sem aulas")

        unit_progress = await progress_service.recalculate_unit_progress(
            tenant_id, user_id, unit.unit_id
        )
        global_progress = await progress_service.recalculate_global_progress(
            tenant_id, user_id
        )

        assert unit_progress.progress_percent == 0
        assert global_progress.progress_percent == 0


class TestRepair:
    """Recalculation rebuilds aggregates from lesson rows."""

    @pytest.mark.asyncio
    async def test_recalculate_global_fixes_corrupted_row(
        self,
        content_service,
        progress_service,
        progress_repository,
        tenant_id,
        user_id,
    ):
        _, _, _, lessons, _ = await build_catalog(content_service, tenant_id)
        await progress_service.mark_lesson_completed(
            tenant_id, user_id, lessons[0].lesson_id
        )
        progress_repository.put(
            GlobalProgress(
                tenant_id=tenant_id,
                user_id=user_id,
                completed_lessons_count=42,
                progress_percent=99,
            )
        )

        repaired = await progress_service.recalculate_global_progress(tenant_id, user_id)

        assert (repaired.completed_lessons_count, repaired.progress_percent) == (1, 10)
        stored = await progress_service.get_global_progress(tenant_id, user_id)
        assert stored.completed_lessons_count == 1

    @pytest.mark.asyncio
    async def test_recalculate_user_fixes_every_unit(
        self,
        content_service,
        progress_service,
        progress_repository,
        tenant_id,
        user_id,
    ):
        _, unit_1, unit_2, lessons_1, lessons_2 = await build_catalog(
            content_service, tenant_id
        )
        await progress_service.mark_lesson_completed(
            tenant_id, user_id, lessons_1[0].lesson_id
        )
        await progress_service.mark_lesson_completed(
            tenant_id, user_id, lessons_2[0].lesson_id
        )
        for unit in (unit_1, unit_2):
            progress_repository.put(
                UnitProgress(
                    tenant_id=tenant_id,
                    user_id=user_id,
                    unit_id=unit.unit_id,
                    completed_lessons_count=5,
                    progress_percent=100,
                )
            )
        writes_before = len(progress_repository.writes)

        units, global_progress = await progress_service.recalculate_user_progress(
            tenant_id, user_id
        )

        by_unit = {row.unit_id: row for row in units}
        assert by_unit[unit_1.unit_id].progress_percent == 33
        assert by_unit[unit_2.unit_id].progress_percent == 14
        assert global_progress.completed_lessons_count == 2
        assert len(progress_repository.writes) == writes_before + 1


class TestQueries:
    """Read paths."""

    @pytest.mark.asyncio
    async def test_absent_aggregates_read_as_zero(self, progress_service, tenant_id, user_id):
        unit_id = uuid4()

        unit_progress = await progress_service.get_unit_progress(tenant_id, user_id, unit_id)
        global_progress = await progress_service.get_global_progress(tenant_id, user_id)

        assert unit_progress.unit_id == unit_id
        assert unit_progress.completed_lessons_count == 0
        assert unit_progress.progress_percent == 0
        assert global_progress.completed_lessons_count == 0
        assert await progress_service.get_completed_published_lessons_count(
            tenant_id, user_id
        ) == 0

    @pytest.mark.asyncio
    async def test_category_queries(
        self, content_service, progress_service, tenant_id, user_id
    ):
        category, unit_1, _, lessons_1, _ = await build_catalog(content_service, tenant_id)
        other = await content_service.create_category(tenant_id, "Outra", True)
        other_unit = await content_service.create_unit(tenant_id, other.category_id, "U3", True)
        other_lesson = await content_service.create_lesson(
            tenant_id, other_unit.unit_id, "Aula fora", is_published=True
        )
        await progress_service.mark_lesson_completed(
            tenant_id, user_id, lessons_1[0].lesson_id
        )
        await progress_service.mark_lesson_completed(
            tenant_id, user_id, other_lesson.lesson_id
        )

        units = await progress_service.get_unit_progress_by_category(
            tenant_id, user_id, category.category_id
        )
        completed = await progress_service.get_completed_lessons_by_category(
            tenant_id, user_id, category.category_id
        )

        assert [row.unit_id for row in units] == [unit_1.unit_id]
        assert [row.lesson_id for row in completed] == [lessons_1[0].lesson_id]
        assert await progress_service.get_unit_progress_by_category(
            tenant_id, user_id, uuid4()
        ) == []
        assert await progress_service.get_completed_lessons_by_category(
            tenant_id, user_id, uuid4()
        ) == []

    @pytest.mark.asyncio
    async def test_unit_lessons_and_completed_lists(
        self, content_service, progress_service, tenant_id, user_id
    ):
        _, unit_1, _, lessons_1, _ = await build_catalog(content_service, tenant_id)
        await progress_service.mark_lesson_completed(
            tenant_id, user_id, lessons_1[0].lesson_id
        )
        await progress_service.save_video_progress(
            tenant_id, user_id, lessons_1[1].lesson_id, current_time_sec=5, duration_sec=100
        )

        unit_lessons = await progress_service.get_unit_lessons_progress(
            tenant_id, user_id, unit_1.unit_id
        )
        completed = await progress_service.get_completed_lessons(tenant_id, user_id)

        assert len(unit_lessons) == 2
        assert [row.lesson_id for row in completed] == [lessons_1[0].lesson_id]
        assert await progress_service.get_completed_published_lessons_count(
            tenant_id, user_id
        ) == 1
        assert len(await progress_service.get_all_unit_progress(tenant_id, user_id)) == 1


class TestTenantIsolation:
    """Progress of the same user id in two tenants is independent."""

    @pytest.mark.asyncio
    async def test_same_user_two_tenants(
        self, content_service, progress_service, tenant_id, user_id
    ):
        _, _, _, lessons_a, _ = await build_catalog(content_service, tenant_id)
        await build_catalog(content_service, OTHER_TENANT_ID)

        await progress_service.mark_lesson_completed(
            tenant_id, user_id, lessons_a[0].lesson_id
        )

        other = await progress_service.get_global_progress(OTHER_TENANT_ID, user_id)
        assert other.completed_lessons_count == 0
        assert await progress_service.get_completed_lessons(OTHER_TENANT_ID, user_id) == []


class TestConcurrency:
    """Learner lock contention."""

    @pytest.mark.asyncio
    async def test_lock_timeout_raises_conflict(
        self,
        content_service,
        progress_service,
        progress_repository,
        locks,
        tenant_id,
        user_id,
    ):
        _, _, _, lessons, _ = await build_catalog(content_service, tenant_id)

        async with locks.hold(f"locks:progress:{tenant_id}:{user_id}"):
            with pytest.raises(ProgressConflictError) as exc_info:
                await progress_service.mark_lesson_completed(
                    tenant_id, user_id, lessons[0].lesson_id
                )

        assert exc_info.value.code == "conflict"
        assert progress_repository.writes == []

    @pytest.mark.asyncio
    async def test_concurrent_completions_and_heartbeats(
        self, content_service, progress_service, tenant_id, user_id
    ):
        """Sibling completions interleaved with low-ratio heartbeats lose nothing."""
        _, unit, _, lessons, _ = await build_catalog(content_service, tenant_id)

        await asyncio.gather(
            *(
                progress_service.mark_lesson_completed(tenant_id, user_id, lesson.lesson_id)
                for lesson in lessons
            ),
            *(
                progress_service.save_video_progress(
                    tenant_id, user_id, lesson.lesson_id, current_time_sec=5, duration_sec=100
                )
                for lesson in reversed(lessons)
            ),
        )

        unit_progress = await progress_service.get_unit_progress(
            tenant_id, user_id, unit.unit_id
        )
        global_progress = await progress_service.get_global_progress(tenant_id, user_id)
        assert (unit_progress.completed_lessons_count, unit_progress.progress_percent) == (
            len(lessons),
            100,
        )
        assert (global_progress.completed_lessons_count, global_progress.progress_percent) == (
            3,
            30,
        )
        for lesson in lessons:
            progress = await progress_service.get_lesson_progress(
                tenant_id, user_id, lesson.lesson_id
            )
            assert progress.completed is True


class TestLearnerRegistry:
    """Learners are enumerable for tenant repair."""

    @pytest.mark.asyncio
    async def test_learner_registered_before_batch(
        self, content_service, progress_service, progress_repository, tenant_id, user_id
    ):
        """A failed batch still leaves the learner listed for repair."""
        _, _, _, lessons, _ = await build_catalog(content_service, tenant_id)
        progress_repository.write = AsyncMock(side_effect=RuntimeError("write timeout"))

        with pytest.raises(RuntimeError):
            await progress_service.mark_lesson_completed(
                tenant_id, user_id, lessons[0].lesson_id
            )

        assert await progress_service.list_user_ids(tenant_id) == [user_id]
