"""Map engine failures onto HTTP responses."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.integrations.fastapi import register_exception_handlers

from marketplace.order.errors import ConcurrentModification, Forbidden, InvalidTransition, OrderLocked, TransientError
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)

_STATUS_CODES = {
    InvalidTransition: 409,
    ConcurrentModification: 409,
    Forbidden: 403,
    OrderLocked: 423,
    TransientError: 503,
}


async def _engine_error(request: Request, exc: Exception) -> JSONResponse:
    status_code = next(code for cls, code in _STATUS_CODES.items() if isinstance(exc, cls))
    logger.info("request_rejected", path=request.url.path, status_code=status_code, error=type(exc).__name__)
    headers = {"Retry-After": "1"} if isinstance(exc, TransientError) else None
    return JSONResponse(status_code=status_code, content=exc.to_dict(), headers=headers)


async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "ValidationError", "messages": exc.messages})


async def _not_found(request: Request, exc: ObjectNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": "NotFound", "message": str(exc)})


def register_error_handlers(app: FastAPI) -> None:
    """Register Protean's default handlers, then the marketplace mappings on top."""
    register_exception_handlers(app)
    app.add_exception_handler(ValidationError, _validation_error)
    app.add_exception_handler(ObjectNotFoundError, _not_found)
    for exc_class in _STATUS_CODES:
        app.add_exception_handler(exc_class, _engine_error)
