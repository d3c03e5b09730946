"""Learner progress API endpoints.

Provides routes for:
- Video progress updates (throttled from the player)
- Manual lesson completion and reset
- Progress queries for profile and dashboards
- Progress repair
"""

from uuid import UUID

from fastapi import APIRouter, status

from learntrack.core.tenancy import CurrentUserId, TenantId

from .dependencies import ProgressServiceDep, handle_progress_error
from .schemas import (
    CategoryProgressResponse,
    GlobalProgressResponse,
    LessonCompletionRequest,
    LessonProgressResponse,
    RecalculateProgressResponse,
    SaveVideoProgressRequest,
    UnitProgressResponse,
)
from .service import ProgressError


router = APIRouter(prefix="/v1/progress", tags=["progress"])


# ==============================================================================
# Video Progress Endpoints
# ==============================================================================


@router.put(
    "/video",
    response_model=LessonProgressResponse,
    summary="Save video progress",
)
async def save_video_progress(
    data: SaveVideoProgressRequest,
    tenant_id: TenantId,
    user_id: CurrentUserId,
    progress_service: ProgressServiceDep,
) -> LessonProgressResponse:
    """Store playback position.

    Called by the player on a timer and on pause/end. Completes the
    lesson once the watched ratio reaches the configured threshold.
    """
    try:
        progress = await progress_service.save_video_progress(
            tenant_id=tenant_id,
            user_id=user_id,
            lesson_id=data.lesson_id,
            current_time_sec=data.current_time_sec,
            duration_sec=data.duration_sec,
        )
        return LessonProgressResponse.from_entity(progress)
    except ProgressError as e:
        raise handle_progress_error(e) from e


# ==============================================================================
# Lesson Completion Endpoints
# ==============================================================================


@router.post(
    "/lesson/complete",
    response_model=LessonProgressResponse,
    status_code=status.HTTP_200_OK,
    summary="Mark lesson as complete",
)
async def mark_lesson_complete(
    data: LessonCompletionRequest,
    tenant_id: TenantId,
    user_id: CurrentUserId,
    progress_service: ProgressServiceDep,
) -> LessonProgressResponse:
    """Mark a lesson as complete. Repeating the call changes nothing."""
    try:
        progress = await progress_service.mark_lesson_completed(
            tenant_id, user_id, data.lesson_id
        )
        return LessonProgressResponse.from_entity(progress)
    except ProgressError as e:
        raise handle_progress_error(e) from e


@router.post(
    "/lesson/incomplete",
    response_model=LessonProgressResponse,
    status_code=status.HTTP_200_OK,
    summary="Mark lesson as incomplete",
)
async def mark_lesson_incomplete(
    data: LessonCompletionRequest,
    tenant_id: TenantId,
    user_id: CurrentUserId,
    progress_service: ProgressServiceDep,
) -> LessonProgressResponse:
    """Clear completion of a lesson (for rewatching)."""
    try:
        progress = await progress_service.mark_lesson_incomplete(
            tenant_id, user_id, data.lesson_id
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e

    if progress is None:
        return LessonProgressResponse.not_started(data.lesson_id)
    return LessonProgressResponse.from_entity(progress)


# ==============================================================================
# Progress Query Endpoints
# ==============================================================================


@router.get(
    "/global",
    response_model=GlobalProgressResponse,
    summary="Get global progress",
)
async def get_global_progress(
    tenant_id: TenantId,
    user_id: CurrentUserId,
    progress_service: ProgressServiceDep,
) -> GlobalProgressResponse:
    """Completed published lessons across the tenant."""
    progress = await progress_service.get_global_progress(tenant_id, user_id)
    return GlobalProgressResponse.from_entity(progress)


@router.get(
    "/units",
    response_model=list[UnitProgressResponse],
    summary="List unit progress",
)
async def list_unit_progress(
    tenant_id: TenantId,
    user_id: CurrentUserId,
    progress_service: ProgressServiceDep,
) -> list[UnitProgressResponse]:
    rows = await progress_service.get_all_unit_progress(tenant_id, user_id)
    return [UnitProgressResponse.from_entity(row) for row in rows]


@router.get(
    "/unit/{unit_id}",
    response_model=UnitProgressResponse,
    summary="Get unit progress",
)
async def get_unit_progress(
    unit_id: UUID,
    tenant_id: TenantId,
    user_id: CurrentUserId,
    progress_service: ProgressServiceDep,
) -> UnitProgressResponse:
    progress = await progress_service.get_unit_progress(tenant_id, user_id, unit_id)
    return UnitProgressResponse.from_entity(progress)


@router.get(
    "/unit/{unit_id}/lessons",
    response_model=list[LessonProgressResponse],
    summary="List lesson progress of a unit",
)
async def get_unit_lessons_progress(
    unit_id: UUID,
    tenant_id: TenantId,
    user_id: CurrentUserId,
    progress_service: ProgressServiceDep,
) -> list[LessonProgressResponse]:
    rows = await progress_service.get_unit_lessons_progress(tenant_id, user_id, unit_id)
    return [LessonProgressResponse.from_entity(row) for row in rows]


@router.get(
    "/lesson/{lesson_id}",
    response_model=LessonProgressResponse,
    summary="Get lesson progress",
)
async def get_lesson_progress(
    lesson_id: UUID,
    tenant_id: TenantId,
    user_id: CurrentUserId,
    progress_service: ProgressServiceDep,
) -> LessonProgressResponse:
    """Resume point and completion of one lesson."""
    progress = await progress_service.get_lesson_progress(tenant_id, user_id, lesson_id)
    if progress is None:
        return LessonProgressResponse.not_started(lesson_id)
    return LessonProgressResponse.from_entity(progress)


@router.get(
    "/completed",
    response_model=list[LessonProgressResponse],
    summary="List completed lessons",
)
async def get_completed_lessons(
    tenant_id: TenantId,
    user_id: CurrentUserId,
    progress_service: ProgressServiceDep,
) -> list[LessonProgressResponse]:
    rows = await progress_service.get_completed_lessons(tenant_id, user_id)
    return [LessonProgressResponse.from_entity(row) for row in rows]


@router.get(
    "/category/{category_id}",
    response_model=CategoryProgressResponse,
    summary="Get progress inside a category",
)
async def get_category_progress(
    category_id: UUID,
    tenant_id: TenantId,
    user_id: CurrentUserId,
    progress_service: ProgressServiceDep,
) -> CategoryProgressResponse:
    """Unit progress and completed lessons of a category (empty if unknown)."""
    units = await progress_service.get_unit_progress_by_category(
        tenant_id, user_id, category_id
    )
    lessons = await progress_service.get_completed_lessons_by_category(
        tenant_id, user_id, category_id
    )
    return CategoryProgressResponse(
        category_id=category_id,
        units=[UnitProgressResponse.from_entity(row) for row in units],
        completed_lessons=[LessonProgressResponse.from_entity(row) for row in lessons],
    )


# ==============================================================================
# Repair Endpoints
# ==============================================================================


@router.post(
    "/recalculate",
    response_model=RecalculateProgressResponse,
    summary="Recalculate learner progress",
)
async def recalculate_progress(
    tenant_id: TenantId,
    user_id: CurrentUserId,
    progress_service: ProgressServiceDep,
) -> RecalculateProgressResponse:
    """Rebuild unit and global progress from lesson rows."""
    try:
        units, global_progress = await progress_service.recalculate_user_progress(
            tenant_id, user_id
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e

    return RecalculateProgressResponse(
        units=[UnitProgressResponse.from_entity(row) for row in units],
        global_progress=GlobalProgressResponse.from_entity(global_progress),
    )
