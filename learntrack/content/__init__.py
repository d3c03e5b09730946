"""Content inventory module.

Provides:
- Category, unit and lesson records per tenant
- Authoring hooks that keep unit lesson counts in step
- Tenant content statistics
"""

from .models import (
    CONTENT_TABLES_CQL,
    Category,
    ContentStatistics,
    Lesson,
    Unit,
)


__all__ = [
    "CONTENT_TABLES_CQL",
    "Category",
    "ContentStatistics",
    "Lesson",
    "Unit",
]
