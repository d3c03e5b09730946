"""Shared fixtures: in-memory repositories, services and an API client."""

import copy
import os
import tempfile
from uuid import UUID

import pytest

# Settings are cached on first use; point them at a test environment first
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="learntrack-logs-"))
os.environ.setdefault("LOG_REQUESTS", "false")

from fastapi.testclient import TestClient  # noqa: E402

from learntrack.content.models import (  # noqa: E402
    Category,
    ContentStatistics,
    Lesson,
    Unit,
)
from learntrack.content.service import (  # noqa: E402
    ContentService,
    ContentStatisticsService,
)
from learntrack.core.locks import LockManager  # noqa: E402
from learntrack.progress.models import (  # noqa: E402
    GlobalProgress,
    LessonProgress,
    RecordType,
    UnitProgress,
)
from learntrack.progress.service import ProgressService  # noqa: E402


TENANT_ID = "tenant-a"
USER_ID = "user-1"


# ==============================================================================
# In-memory repositories
# ==============================================================================


class InMemoryContentRepository:
    """Dict-backed stand-in for ContentRepository."""

    def __init__(self):
        self.categories: dict[tuple[str, UUID], Category] = {}
        self.units: dict[tuple[str, UUID], Unit] = {}
        self.lessons: dict[tuple[str, UUID], Lesson] = {}
        self.statistics: dict[str, ContentStatistics] = {}

    async def get_category(self, tenant_id, category_id):
        return copy.copy(self.categories.get((tenant_id, category_id)))

    async def list_categories(self, tenant_id):
        return [copy.copy(c) for (t, _), c in self.categories.items() if t == tenant_id]

    async def save_category(self, category):
        self.categories[(category.tenant_id, category.category_id)] = copy.copy(category)

    async def delete_category(self, tenant_id, category_id):
        self.categories.pop((tenant_id, category_id), None)

    async def get_unit(self, tenant_id, unit_id):
        return copy.copy(self.units.get((tenant_id, unit_id)))

    async def list_units(self, tenant_id):
        return [copy.copy(u) for (t, _), u in self.units.items() if t == tenant_id]

    async def save_unit(self, unit):
        self.units[(unit.tenant_id, unit.unit_id)] = copy.copy(unit)

    async def set_unit_lesson_count(self, tenant_id, unit_id, count, updated_at):
        unit = self.units[(tenant_id, unit_id)]
        unit.total_lesson_videos = count
        unit.updated_at = updated_at

    async def delete_unit(self, tenant_id, unit_id):
        self.units.pop((tenant_id, unit_id), None)

    async def get_lesson(self, tenant_id, lesson_id):
        return copy.copy(self.lessons.get((tenant_id, lesson_id)))

    async def list_lessons(self, tenant_id):
        return [copy.copy(le) for (t, _), le in self.lessons.items() if t == tenant_id]

    async def save_lesson(self, lesson):
        self.lessons[(lesson.tenant_id, lesson.lesson_id)] = copy.copy(lesson)

    async def delete_lesson(self, tenant_id, lesson_id):
        self.lessons.pop((tenant_id, lesson_id), None)

    async def get_statistics(self, tenant_id):
        return copy.copy(self.statistics.get(tenant_id))

    async def save_statistics(self, stats):
        self.statistics[stats.tenant_id] = copy.copy(stats)


class InMemoryProgressRepository:
    """Dict-backed stand-in for ProgressRepository.

    ``writes`` records every write call (one entry per batch) so tests
    can assert that failed operations wrote nothing.
    """

    def __init__(self):
        self.records: dict[tuple, object] = {}
        self.users: dict[str, set[str]] = {}
        self.writes: list[tuple] = []

    def _get(self, tenant_id, user_id, record_type, record_id):
        return copy.copy(self.records.get((tenant_id, user_id, record_type, record_id)))

    def _list(self, tenant_id, user_id, record_type):
        return [
            copy.copy(record)
            for (t, u, rt, _), record in self.records.items()
            if (t, u, rt) == (tenant_id, user_id, record_type)
        ]

    async def get_lesson_progress(self, tenant_id, user_id, lesson_id):
        return self._get(tenant_id, user_id, RecordType.LESSON, lesson_id)

    async def list_lesson_progress(self, tenant_id, user_id):
        return self._list(tenant_id, user_id, RecordType.LESSON)

    async def get_unit_progress(self, tenant_id, user_id, unit_id):
        return self._get(tenant_id, user_id, RecordType.UNIT, unit_id)

    async def list_unit_progress(self, tenant_id, user_id):
        return self._list(tenant_id, user_id, RecordType.UNIT)

    async def get_global_progress(self, tenant_id, user_id):
        return self._get(
            tenant_id, user_id, RecordType.GLOBAL, GlobalProgress.record_id
        )

    async def list_user_ids(self, tenant_id):
        return sorted(self.users.get(tenant_id, set()))

    async def write(self, *records):
        if not records:
            return
        self.writes.append(records)
        for record in records:
            key = (record.tenant_id, record.user_id, record.record_type, record.record_id)
            self.records[key] = copy.copy(record)

    async def register_user(self, tenant_id, user_id, first_seen_at):
        self.users.setdefault(tenant_id, set()).add(user_id)

    # Test helpers

    def put(self, record: LessonProgress | UnitProgress | GlobalProgress) -> None:
        """Seed a record without counting it as a write."""
        key = (record.tenant_id, record.user_id, record.record_type, record.record_id)
        self.records[key] = copy.copy(record)


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def content_repository() -> InMemoryContentRepository:
    return InMemoryContentRepository()


@pytest.fixture
def progress_repository() -> InMemoryProgressRepository:
    return InMemoryProgressRepository()


@pytest.fixture
def locks() -> LockManager:
    """In-process locks with a short wait."""
    return LockManager(redis=None, timeout=5.0, blocking_timeout=0.5)


@pytest.fixture
def statistics(content_repository, locks) -> ContentStatisticsService:
    return ContentStatisticsService(content_repository, locks)


@pytest.fixture
def content_service(content_repository, statistics, locks) -> ContentService:
    return ContentService(content_repository, statistics, locks)


@pytest.fixture
def progress_service(
    progress_repository, content_repository, statistics, locks
) -> ProgressService:
    return ProgressService(
        repository=progress_repository,
        content=content_repository,
        statistics=statistics,
        locks=locks,
        completion_threshold=0.9,
    )


@pytest.fixture
def tenant_id() -> str:
    return TENANT_ID


@pytest.fixture
def user_id() -> str:
    return USER_ID


@pytest.fixture
def app(content_service, statistics, progress_service, locks):
    """Application wired to in-memory services (lifespan not run)."""
    from learntrack.main import create_app

    application = create_app()
    application.state.lock_manager = locks
    application.state.content_service = content_service
    application.state.content_statistics_service = statistics
    application.state.progress_service = progress_service
    return application


@pytest.fixture
def client(app) -> TestClient:
    """Test client without tenant or user headers."""
    return TestClient(app)


@pytest.fixture
def headers() -> dict[str, str]:
    """Trusted gateway headers for the default learner."""
    return {"X-Tenant-ID": TENANT_ID, "X-User-ID": USER_ID}
