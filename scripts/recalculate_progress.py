"""Recalculate derived progress data of a tenant.

Rebuilds, from the leaf records:
- Stored content statistics (counter cache)
- total_lesson_videos of every unit
- Unit and global progress of every learner with recorded progress

Safe to run repeatedly; every step is a full recount that overwrites
the derived values.

Usage:
    python -m scripts.recalculate_progress --tenant <tenant_id> [--user <user_id>]
"""

import argparse
import asyncio
from pathlib import Path

import structlog

from learntrack.config.settings import get_settings
from learntrack.content.repository import ContentRepository
from learntrack.content.service import ContentService, ContentStatisticsService
from learntrack.core.context import RequestContext
from learntrack.core.database import AsyncCassandraConnection
from learntrack.core.locks import LockManager
from learntrack.core.logging import configure_structlog
from learntrack.core.redis import init_redis, shutdown_redis
from learntrack.progress.repository import ProgressRepository
from learntrack.progress.service import ProgressService


logger = structlog.get_logger(__name__)


async def recalculate_tenant(
    content_service: ContentService,
    progress_service: ProgressService,
    tenant_id: str,
    user_ids: list[str] | None = None,
) -> dict[str, int]:
    """Repair content counters and learner progress of one tenant.

    Args:
        content_service: Content authoring service
        progress_service: Progress engine
        tenant_id: Tenant to repair
        user_ids: Learners to repair (default: every learner with progress)

    Returns:
        Counts of repaired units and learners
    """
    await content_service.statistics.recalculate(tenant_id)

    units = await content_service.list_units(tenant_id)
    for unit in units:
        await content_service.recalculate_unit_lesson_count(tenant_id, unit.unit_id)

    if user_ids is None:
        user_ids = await progress_service.list_user_ids(tenant_id)

    for user_id in user_ids:
        await progress_service.recalculate_user_progress(tenant_id, user_id)

    return {"units": len(units), "users": len(user_ids)}


def build_services(session, keyspace: str, redis_client=None):
    """Create the content and progress services for a session."""
    settings = get_settings()
    locks = LockManager(
        redis=redis_client,
        timeout=settings.progress_lock_timeout_seconds,
        blocking_timeout=settings.progress_lock_blocking_timeout_seconds,
    )
    content_repository = ContentRepository(session, keyspace)
    statistics = ContentStatisticsService(content_repository, locks)
    content_service = ContentService(content_repository, statistics, locks)
    progress_service = ProgressService(
        repository=ProgressRepository(session, keyspace),
        content=content_repository,
        statistics=statistics,
        locks=locks,
        completion_threshold=settings.progress_completion_threshold,
    )
    return content_service, progress_service


async def run(tenant_id: str, user_id: str | None = None) -> None:
    """Connect, repair and disconnect."""
    settings = get_settings()
    keyspace = settings.cassandra_keyspace

    logger.info(
        "recalculation_starting",
        tenant_id=tenant_id,
        user_id=user_id,
        keyspace=keyspace,
        hosts=settings.cassandra_hosts,
    )

    # Redis is optional; without it this process must be the only writer
    redis_client = None
    try:
        redis_client = await init_redis()
    except Exception as e:
        logger.warning("recalculation_without_redis", error=str(e))

    session = AsyncCassandraConnection.connect()
    session.set_keyspace(keyspace)

    try:
        content_service, progress_service = build_services(
            session, keyspace, redis_client
        )
        counts = await recalculate_tenant(
            content_service,
            progress_service,
            tenant_id,
            user_ids=[user_id] if user_id else None,
        )
        logger.info("recalculation_completed", tenant_id=tenant_id, **counts)
    finally:
        AsyncCassandraConnection.disconnect()
        await shutdown_redis()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--tenant", required=True, help="Tenant identifier")
    parser.add_argument("--user", default=None, help="Only repair this learner")
    return parser.parse_args(argv)


if __name__ == "__main__":
    args = parse_args()
    settings = get_settings()
    configure_structlog(settings, log_dir=Path(settings.log_dir))
    with RequestContext(tenant_id=args.tenant, user_id=args.user):
        asyncio.run(run(args.tenant, args.user))
