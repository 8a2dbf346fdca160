"""
Wiring applied to every runtime server the engine creates.

``configure_server()`` installs the ``KeelError`` handler and mounts the
system router. ``App`` calls it from its ``on_server_init`` hook, so each
context rebuild gets the same routes.

Tags:
    api, error-handling, FastAPI, keel
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from keel.core.errors import (
    EntityNotFoundError,
    ErrorCategory,
    KeelError,
    ModuleNotFoundError,
    MutationNotAllowedError,
)
from keel.core.logging import get_logger

log = get_logger(__name__)

# ── Error category → HTTP status mapping ─────────────────────────────────

CATEGORY_TO_STATUS: dict[ErrorCategory, int] = {
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.CONFIG: 400,
    ErrorCategory.AUTH: 403,
    ErrorCategory.DATABASE: 500,
    ErrorCategory.INTERNAL: 500,
    ErrorCategory.UNKNOWN: 500,
}


def status_for_error(exc: KeelError) -> int:
    if isinstance(exc, (ModuleNotFoundError, EntityNotFoundError)):
        return 404
    if isinstance(exc, MutationNotAllowedError):
        return 405
    return CATEGORY_TO_STATUS.get(exc.category, 500)


async def keel_error_handler(request: Request, exc: KeelError) -> JSONResponse:
    """Answer with the error's ``to_dict()`` and the status its type maps to."""
    status = status_for_error(exc)
    if status >= 500:
        log.error("api.error", path=request.url.path, **exc.to_dict())
    else:
        log.info("api.rejected", path=request.url.path, error_type=type(exc).__name__)
    return JSONResponse(status_code=status, content=exc.to_dict())


def configure_server(server: FastAPI, *, base_path: str = "") -> FastAPI:
    from keel.api.routers import system

    server.add_exception_handler(KeelError, keel_error_handler)
    server.include_router(system.router, prefix=f"{base_path}/system", tags=["system"])
    return server
