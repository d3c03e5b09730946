"""Pydantic schemas for the content inventory."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .models import ContentStatistics


class ContentStatisticsResponse(BaseModel):
    """Tenant content totals (published items only)."""

    model_config = ConfigDict(from_attributes=True)

    total_lessons: int = Field(ge=0, description="Published lessons")
    total_units: int = Field(ge=0, description="Published units")
    total_categories: int = Field(ge=0, description="Published categories")
    updated_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: ContentStatistics) -> "ContentStatisticsResponse":
        """Create response from entity."""
        return cls(
            total_lessons=entity.total_lessons,
            total_units=entity.total_units,
            total_categories=entity.total_categories,
            updated_at=entity.updated_at,
        )
