"""Database models for the content inventory.

Cassandra table definitions for:
- Categories, units and lessons (Category -> Unit -> Lesson)
- Content statistics: per-tenant counter cache

Every table is partitioned by tenant_id, so one tenant's catalogue of a
given entity type is a single partition and recounts never scan across
tenants.
"""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from learntrack.utils.time import ensure_utc_aware, utc_now


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

CATEGORIES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.categories (
    tenant_id TEXT,
    category_id UUID,
    title TEXT,
    is_published BOOLEAN,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY ((tenant_id), category_id)
)
"""

# total_lesson_videos is maintained by the lesson create/delete hooks
UNITS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.units (
    tenant_id TEXT,
    unit_id UUID,
    category_id UUID,
    title TEXT,
    is_published BOOLEAN,
    total_lesson_videos INT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY ((tenant_id), unit_id)
)
"""

LESSONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lessons (
    tenant_id TEXT,
    lesson_id UUID,
    unit_id UUID,
    title TEXT,
    duration_seconds INT,
    is_published BOOLEAN,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY ((tenant_id), lesson_id)
)
"""

# Counter cache; clients read recounted values, never this row
CONTENT_STATISTICS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.content_statistics (
    tenant_id TEXT PRIMARY KEY,
    total_lessons INT,
    total_units INT,
    total_categories INT,
    updated_at TIMESTAMP
)
"""

CONTENT_TABLES_CQL = [
    CATEGORIES_TABLE_CQL,
    UNITS_TABLE_CQL,
    LESSONS_TABLE_CQL,
    CONTENT_STATISTICS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class Category:
    """Top-level grouping of units."""

    def __init__(
        self,
        tenant_id: str,
        category_id: UUID | None = None,
        title: str = "",
        is_published: bool = False,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.tenant_id = tenant_id
        self.category_id = category_id or uuid4()
        self.title = title.strip()
        self.is_published = is_published
        self.created_at = ensure_utc_aware(created_at) or utc_now()
        self.updated_at = ensure_utc_aware(updated_at)

    @classmethod
    def from_row(cls, row: Any) -> "Category":
        """Create Category instance from Cassandra row."""
        return cls(
            tenant_id=row.tenant_id,
            category_id=row.category_id,
            title=row.title or "",
            is_published=bool(row.is_published),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def __repr__(self) -> str:
        return f"<Category {self.title} tenant={self.tenant_id}>"


class Unit:
    """Grouping of lessons inside a category.

    Attributes:
        tenant_id: Owning tenant
        unit_id: Unit UUID
        category_id: Parent category UUID
        title: Display title
        is_published: Visible to learners
        total_lesson_videos: Denormalized count of the unit's lessons
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    def __init__(
        self,
        tenant_id: str,
        category_id: UUID,
        unit_id: UUID | None = None,
        title: str = "",
        is_published: bool = False,
        total_lesson_videos: int = 0,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.tenant_id = tenant_id
        self.unit_id = unit_id or uuid4()
        self.category_id = category_id
        self.title = title.strip()
        self.is_published = is_published
        self.total_lesson_videos = total_lesson_videos
        self.created_at = ensure_utc_aware(created_at) or utc_now()
        self.updated_at = ensure_utc_aware(updated_at)

    @classmethod
    def from_row(cls, row: Any) -> "Unit":
        """Create Unit instance from Cassandra row."""
        return cls(
            tenant_id=row.tenant_id,
            unit_id=row.unit_id,
            category_id=row.category_id,
            title=row.title or "",
            is_published=bool(row.is_published),
            total_lesson_videos=row.total_lesson_videos or 0,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def __repr__(self) -> str:
        return f"<Unit {self.title} lessons={self.total_lesson_videos}>"


class Lesson:
    """Single video lesson belonging to one unit."""

    def __init__(
        self,
        tenant_id: str,
        unit_id: UUID,
        lesson_id: UUID | None = None,
        title: str = "",
        duration_seconds: int = 0,
        is_published: bool = False,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.tenant_id = tenant_id
        self.lesson_id = lesson_id or uuid4()
        self.unit_id = unit_id
        self.title = title.strip()
        self.duration_seconds = duration_seconds
        self.is_published = is_published
        self.created_at = ensure_utc_aware(created_at) or utc_now()
        self.updated_at = ensure_utc_aware(updated_at)

    @classmethod
    def from_row(cls, row: Any) -> "Lesson":
        """Create Lesson instance from Cassandra row."""
        return cls(
            tenant_id=row.tenant_id,
            lesson_id=row.lesson_id,
            unit_id=row.unit_id,
            title=row.title or "",
            duration_seconds=row.duration_seconds or 0,
            is_published=bool(row.is_published),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def __repr__(self) -> str:
        state = "published" if self.is_published else "draft"
        return f"<Lesson {self.title} unit={self.unit_id} {state}>"


class ContentStatistics:
    """Tenant-wide totals used as the global progress denominator."""

    def __init__(
        self,
        tenant_id: str,
        total_lessons: int = 0,
        total_units: int = 0,
        total_categories: int = 0,
        updated_at: datetime | None = None,
    ):
        self.tenant_id = tenant_id
        self.total_lessons = total_lessons
        self.total_units = total_units
        self.total_categories = total_categories
        self.updated_at = ensure_utc_aware(updated_at) or utc_now()

    @classmethod
    def from_row(cls, row: Any) -> "ContentStatistics":
        """Create ContentStatistics instance from Cassandra row."""
        return cls(
            tenant_id=row.tenant_id,
            total_lessons=row.total_lessons or 0,
            total_units=row.total_units or 0,
            total_categories=row.total_categories or 0,
            updated_at=row.updated_at,
        )

    def totals(self) -> tuple[int, int, int]:
        return (self.total_lessons, self.total_units, self.total_categories)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "tenant_id": self.tenant_id,
            "total_lessons": self.total_lessons,
            "total_units": self.total_units,
            "total_categories": self.total_categories,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return (
            f"<ContentStatistics tenant={self.tenant_id} lessons={self.total_lessons} "
            f"units={self.total_units} categories={self.total_categories}>"
        )
