"""Rendering of engine errors as API responses."""

import logging
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from pgmanager.services.errors import EngineError

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = 5


def error_response(error: EngineError) -> Dict[str, Any]:
    """Create a standardized error response."""
    return {
        "error": {
            "code": error.code,
            "message": error.message,
        }
    }


async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    headers = {"Retry-After": str(RETRY_AFTER_SECONDS)} if exc.retryable else None
    if exc.http_status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.http_status} {exc.code}")
    return JSONResponse(
        status_code=exc.http_status, content=error_response(exc), headers=headers
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(EngineError, engine_error_handler)
