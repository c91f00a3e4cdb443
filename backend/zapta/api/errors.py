import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from zapta.errors import MessageLimitError, NotFoundError, PolicyViolationError, ZaptaError
from zapta.providers.base import ProviderError

logger = logging.getLogger(__name__)


def status_for(exc: Exception) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, MessageLimitError):
        return 429
    if isinstance(exc, PolicyViolationError):
        return 402
    if isinstance(exc, ProviderError):
        return 502
    return 500


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ZaptaError)
    async def zapta_error_handler(request: Request, exc: ZaptaError):
        code = status_for(exc)
        if code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=code, content={"detail": str(exc)})
