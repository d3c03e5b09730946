"""FastAPI dependencies for the content inventory.

Provides dependency injection for:
- Content statistics service
- Error handlers
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import ContentError, ContentStatisticsService


async def get_content_statistics_service(request: Request) -> ContentStatisticsService:
    """Get content statistics service from app state."""
    statistics = getattr(request.app.state, "content_statistics_service", None)
    if not statistics:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Servico de estatisticas nao disponivel",
        )
    return statistics


# Type aliases for dependency injection
ContentStatisticsServiceDep = Annotated[
    ContentStatisticsService, Depends(get_content_statistics_service)
]


def handle_content_error(error: ContentError) -> HTTPException:
    """Convert content errors to HTTP exceptions.

    Args:
        error: Content error

    Returns:
        HTTPException with appropriate status code
    """
    status_map = {
        "category_not_found": status.HTTP_404_NOT_FOUND,
        "unit_not_found": status.HTTP_404_NOT_FOUND,
        "lesson_not_found": status.HTTP_404_NOT_FOUND,
        "content_in_use": status.HTTP_409_CONFLICT,
        "invalid_content": status.HTTP_422_UNPROCESSABLE_ENTITY,
        "conflict": status.HTTP_409_CONFLICT,
    }

    status_code = status_map.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    return HTTPException(
        status_code=status_code,
        detail=error.message,
    )
