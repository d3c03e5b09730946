"""Pydantic schemas for learner progress.

Request and response models for:
- Video progress updates
- Lesson completion (manual and automatic)
- Progress queries and repair
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .models import GlobalProgress, LessonProgress, UnitProgress


# ==============================================================================
# Video Progress Schemas
# ==============================================================================


class SaveVideoProgressRequest(BaseModel):
    """Playback telemetry sent periodically and on pause/end."""

    lesson_id: UUID = Field(..., description="Lesson UUID")
    current_time_sec: float = Field(
        ..., ge=0, allow_inf_nan=False, description="Playback position in seconds"
    )
    duration_sec: float = Field(
        ..., ge=0, allow_inf_nan=False, description="Video duration in seconds"
    )


class LessonProgressResponse(BaseModel):
    """Lesson progress response."""

    model_config = ConfigDict(from_attributes=True)

    lesson_id: UUID
    unit_id: UUID | None = None
    completed: bool = False
    completed_at: datetime | None = None
    current_time_sec: float | None = Field(default=None, description="Resume position")
    duration_sec: float | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: LessonProgress) -> "LessonProgressResponse":
        """Create response from entity."""
        return cls(
            lesson_id=entity.lesson_id,
            unit_id=entity.unit_id,
            completed=entity.completed,
            completed_at=entity.completed_at,
            current_time_sec=entity.current_time_sec,
            duration_sec=entity.duration_sec,
            updated_at=entity.updated_at,
        )

    @classmethod
    def not_started(cls, lesson_id: UUID) -> "LessonProgressResponse":
        """Response for a lesson the learner never touched."""
        return cls(lesson_id=lesson_id)


# ==============================================================================
# Lesson Completion Schemas
# ==============================================================================


class LessonCompletionRequest(BaseModel):
    """Request to mark a lesson as complete or incomplete."""

    lesson_id: UUID = Field(..., description="Lesson UUID")


# ==============================================================================
# Aggregate Schemas
# ==============================================================================


class UnitProgressResponse(BaseModel):
    """Unit progress response."""

    unit_id: UUID
    completed_lessons_count: int = 0
    total_lesson_videos: int = 0
    progress_percent: int = Field(default=0, ge=0, le=100)
    updated_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: UnitProgress) -> "UnitProgressResponse":
        """Create response from entity."""
        return cls(
            unit_id=entity.unit_id,
            completed_lessons_count=entity.completed_lessons_count,
            total_lesson_videos=entity.total_lesson_videos,
            progress_percent=entity.progress_percent,
            updated_at=entity.updated_at,
        )


class GlobalProgressResponse(BaseModel):
    """Global progress response."""

    completed_lessons_count: int = 0
    progress_percent: int = Field(default=0, ge=0, le=100)
    updated_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: GlobalProgress) -> "GlobalProgressResponse":
        """Create response from entity."""
        return cls(
            completed_lessons_count=entity.completed_lessons_count,
            progress_percent=entity.progress_percent,
            updated_at=entity.updated_at,
        )


class CategoryProgressResponse(BaseModel):
    """Learner progress inside one category."""

    category_id: UUID
    units: list[UnitProgressResponse]
    completed_lessons: list[LessonProgressResponse]


class RecalculateProgressResponse(BaseModel):
    """Result of a learner progress repair."""

    units: list[UnitProgressResponse]
    global_progress: GlobalProgressResponse
