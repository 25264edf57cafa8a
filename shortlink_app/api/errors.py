from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from shortlink_app.exceptions import ShortenerError
from shortlink_app.logging_config import get_logger

logger = get_logger(__name__)


async def shortener_error_handler(request: Request, exc: ShortenerError) -> JSONResponse:
    """Typed failures become ``{"detail", "kind"}`` with their HTTP status"""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.kind)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "kind": exc.kind},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ShortenerError, shortener_error_handler)
