"""Global exception handlers giving services one error envelope.

Domain errors expose ``status_code``, ``code`` and ``message``; they are
rendered as ``{"success": false, "code": ..., "error": ...}``.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from libs.common.logging import get_logger, get_request_id

logger = get_logger(__name__)


def _envelope(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "code": code,
            "error": message,
            "request_id": get_request_id(),
        },
    )


def add_exception_handlers(app: FastAPI, *domain_errors: type[Exception]) -> None:
    """Register envelope handlers for the given domain error classes."""

    async def handle_domain_error(request: Request, exc: Exception) -> JSONResponse:
        status_code = getattr(exc, "status_code", 400)
        code = getattr(exc, "code", "error")
        message = getattr(exc, "message", str(exc))
        if status_code >= 500:
            logger.error("%s %s failed: %s (%s)", request.method, request.url.path, message, code)
        else:
            logger.info("%s %s rejected: %s (%s)", request.method, request.url.path, message, code)
        return _envelope(status_code, code, message)

    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _envelope(500, "system_error", "Internal server error")

    for error_type in domain_errors:
        app.add_exception_handler(error_type, handle_domain_error)
    app.add_exception_handler(Exception, handle_unexpected)
