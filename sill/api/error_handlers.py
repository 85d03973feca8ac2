import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from sill.domain.errors import SillError

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    """Map the typed failures of the core onto HTTP responses."""

    @app.exception_handler(SillError)
    async def sill_error_handler(request: Request, exc: SillError):
        logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.http_status, content=exc.to_response())
