# Core infrastructure
from learntrack.core.context import (
    RequestContext,
    clear_context,
    get_context,
    get_request_id,
    get_tenant_id,
    get_user_id,
    set_request_id,
    set_tenant_id,
    set_user_id,
)
from learntrack.core.locks import LockManager, LockTimeoutError
from learntrack.core.logging import configure_structlog, get_logger


__all__ = [
    "LockManager",
    "LockTimeoutError",
    "RequestContext",
    "clear_context",
    "configure_structlog",
    "get_context",
    "get_logger",
    "get_request_id",
    "get_tenant_id",
    "get_user_id",
    "set_request_id",
    "set_tenant_id",
    "set_user_id",
]
