"""Content statistics API endpoints."""

from fastapi import APIRouter

from learntrack.core.tenancy import TenantId

from .dependencies import ContentStatisticsServiceDep, handle_content_error
from .schemas import ContentStatisticsResponse
from .service import ContentError


router = APIRouter(prefix="/v1/content", tags=["content"])


@router.get(
    "/stats",
    response_model=ContentStatisticsResponse,
    summary="Get content statistics",
)
async def get_content_statistics(
    tenant_id: TenantId,
    statistics: ContentStatisticsServiceDep,
) -> ContentStatisticsResponse:
    """Totals of published lessons, units and categories.

    Always a fresh recount of the inventory.
    """
    stats = await statistics.get(tenant_id)
    return ContentStatisticsResponse.from_entity(stats)


@router.post(
    "/stats/recalculate",
    response_model=ContentStatisticsResponse,
    summary="Recalculate stored content statistics",
)
async def recalculate_content_statistics(
    tenant_id: TenantId,
    statistics: ContentStatisticsServiceDep,
) -> ContentStatisticsResponse:
    """Repair the stored counter cache from a full recount."""
    try:
        stats = await statistics.recalculate(tenant_id)
        return ContentStatisticsResponse.from_entity(stats)
    except ContentError as e:
        raise handle_content_error(e) from e
