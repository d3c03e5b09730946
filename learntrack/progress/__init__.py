"""Learner progress tracking module.

Provides:
- Video progress tracking with resume support
- Lesson completion (automatic and manual)
- Unit and global progress aggregation
- Progress repair
"""

from .models import (
    PROGRESS_TABLES_CQL,
    GlobalProgress,
    LessonProgress,
    RecordType,
    UnitProgress,
)


__all__ = [
    "PROGRESS_TABLES_CQL",
    "GlobalProgress",
    "LessonProgress",
    "RecordType",
    "UnitProgress",
]
