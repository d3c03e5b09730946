"""Database models for learner progress.

Cassandra table definitions for:
- User progress: lesson, unit and global records of one learner
- Lookup table: learners with progress in a tenant (repair jobs)

Architecture: the three progress levels of a learner share one
partition ((tenant_id, user_id)), told apart by record_type. A lesson
update and the unit/global recount it causes are written as a single
partition LOGGED batch, so they land together or not at all.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from learntrack.utils.time import ensure_utc_aware


class RecordType(str, Enum):
    """Progress level stored in a user_progress row."""

    LESSON = "lesson"
    UNIT = "unit"
    GLOBAL = "global"


# Clustering id of the single global row in a learner's partition
GLOBAL_RECORD_ID = UUID(int=0)


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Progresso do usuario (aula, unidade e global)
# Partition key: (tenant_id, user_id) - toda a cascata numa so particao
# Clustering: record_type, record_id
USER_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.user_progress (
    tenant_id TEXT,
    user_id TEXT,
    record_type TEXT,
    record_id UUID,
    unit_id UUID,
    completed BOOLEAN,
    completed_at TIMESTAMP,
    current_time_sec DOUBLE,
    duration_sec DOUBLE,
    completed_lessons_count INT,
    total_lesson_videos INT,
    progress_percent INT,
    updated_at TIMESTAMP,
    PRIMARY KEY ((tenant_id, user_id), record_type, record_id)
)
"""

# Learners with any progress in the tenant
PROGRESS_USERS_BY_TENANT_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.progress_users_by_tenant (
    tenant_id TEXT,
    user_id TEXT,
    first_seen_at TIMESTAMP,
    PRIMARY KEY ((tenant_id), user_id)
)
"""

PROGRESS_TABLES_CQL = [
    USER_PROGRESS_TABLE_CQL,
    PROGRESS_USERS_BY_TENANT_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class LessonProgress:
    """Progress of one learner on one lesson.

    Attributes:
        tenant_id: Tenant
        user_id: Learner
        lesson_id: Lesson UUID
        unit_id: Unit the lesson belonged to at first interaction
        completed: Completion flag
        completed_at: Set when completed, cleared when reset
        current_time_sec: Last reported playback position
        duration_sec: Last reported video duration
        updated_at: Last write
    """

    record_type = RecordType.LESSON

    def __init__(
        self,
        tenant_id: str,
        user_id: str,
        lesson_id: UUID,
        unit_id: UUID,
        completed: bool = False,
        completed_at: datetime | None = None,
        current_time_sec: float | None = None,
        duration_sec: float | None = None,
        updated_at: datetime | None = None,
    ):
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.lesson_id = lesson_id
        self.unit_id = unit_id
        self.completed = completed
        self.completed_at = ensure_utc_aware(completed_at)
        self.current_time_sec = current_time_sec
        self.duration_sec = duration_sec
        self.updated_at = ensure_utc_aware(updated_at)

    @property
    def record_id(self) -> UUID:
        return self.lesson_id

    @classmethod
    def from_row(cls, row: Any) -> "LessonProgress":
        """Create LessonProgress instance from Cassandra row."""
        return cls(
            tenant_id=row.tenant_id,
            user_id=row.user_id,
            lesson_id=row.record_id,
            unit_id=row.unit_id,
            completed=bool(row.completed),
            completed_at=row.completed_at,
            current_time_sec=row.current_time_sec,
            duration_sec=row.duration_sec,
            updated_at=row.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "lesson_id": str(self.lesson_id),
            "unit_id": str(self.unit_id),
            "completed": self.completed,
            "completed_at": self.completed_at,
            "current_time_sec": self.current_time_sec,
            "duration_sec": self.duration_sec,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        state = "completed" if self.completed else "open"
        return f"<LessonProgress {self.user_id}:{self.lesson_id} {state}>"


class UnitProgress:
    """Completed lesson count of one learner inside one unit."""

    record_type = RecordType.UNIT

    def __init__(
        self,
        tenant_id: str,
        user_id: str,
        unit_id: UUID,
        completed_lessons_count: int = 0,
        total_lesson_videos: int = 0,
        progress_percent: int = 0,
        updated_at: datetime | None = None,
    ):
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.unit_id = unit_id
        self.completed_lessons_count = completed_lessons_count
        self.total_lesson_videos = total_lesson_videos
        self.progress_percent = progress_percent
        self.updated_at = ensure_utc_aware(updated_at)

    @property
    def record_id(self) -> UUID:
        return self.unit_id

    @classmethod
    def from_row(cls, row: Any) -> "UnitProgress":
        """Create UnitProgress instance from Cassandra row."""
        return cls(
            tenant_id=row.tenant_id,
            user_id=row.user_id,
            unit_id=row.record_id,
            completed_lessons_count=row.completed_lessons_count or 0,
            total_lesson_videos=row.total_lesson_videos or 0,
            progress_percent=row.progress_percent or 0,
            updated_at=row.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "unit_id": str(self.unit_id),
            "completed_lessons_count": self.completed_lessons_count,
            "total_lesson_videos": self.total_lesson_videos,
            "progress_percent": self.progress_percent,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return (
            f"<UnitProgress {self.user_id}:{self.unit_id} "
            f"{self.completed_lessons_count}/{self.total_lesson_videos}>"
        )


class GlobalProgress:
    """Completed published lessons of one learner across the tenant."""

    record_type = RecordType.GLOBAL
    record_id = GLOBAL_RECORD_ID

    def __init__(
        self,
        tenant_id: str,
        user_id: str,
        completed_lessons_count: int = 0,
        progress_percent: int = 0,
        updated_at: datetime | None = None,
    ):
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.completed_lessons_count = completed_lessons_count
        self.progress_percent = progress_percent
        self.updated_at = ensure_utc_aware(updated_at)

    @classmethod
    def from_row(cls, row: Any) -> "GlobalProgress":
        """Create GlobalProgress instance from Cassandra row."""
        return cls(
            tenant_id=row.tenant_id,
            user_id=row.user_id,
            completed_lessons_count=row.completed_lessons_count or 0,
            progress_percent=row.progress_percent or 0,
            updated_at=row.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "completed_lessons_count": self.completed_lessons_count,
            "progress_percent": self.progress_percent,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return f"<GlobalProgress {self.user_id} {self.progress_percent}%>"
