"""Tenant and user scoping for API routes.

The tenant resolver and the identity provider sit in front of this
service; they forward validated identifiers as headers. Routes only
check that the headers are present.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from learntrack.config import get_settings


def _required_header(request: Request, name: str, label: str) -> str:
    value = (request.headers.get(name) or "").strip()
    if not value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cabecalho {name} obrigatorio ({label})",
        )
    return value


async def get_tenant_id(request: Request) -> str:
    """Tenant identifier of the current request."""
    return _required_header(request, get_settings().tenant_header, "tenant")


async def get_current_user_id(request: Request) -> str:
    """Identifier of the learner the request acts on."""
    return _required_header(request, get_settings().user_header, "usuario")


TenantId = Annotated[str, Depends(get_tenant_id)]
CurrentUserId = Annotated[str, Depends(get_current_user_id)]
