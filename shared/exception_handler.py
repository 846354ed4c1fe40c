import logging
from typing import Dict, Type

from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from shared.helpers.json_response_helper import failure_payload
from shared.utils.app_status_code import AppStatusCode

logger = logging.getLogger(__name__)


def _failure(message: str, status_code: str, http_status: int) -> JSONResponse:
    return JSONResponse(content=failure_payload(message, status_code), status_code=http_status)


def setup_exception_handlers(
    app: FastAPI,
    domain_error: Type[Exception] = None,
    domain_status: Dict = None,
):
    """Register the failure envelopes.

    ``domain_status`` maps a domain error's ``code`` to
    ``(http_status, app_status_code)``; unmapped codes answer 400.
    """
    domain_status = domain_status or {}

    if domain_error is not None:
        @app.exception_handler(domain_error)
        async def domain_exception_handler(request: Request, exc):
            http_status, status_code = domain_status.get(
                exc.code, (400, AppStatusCode.OPERATION_FAILED))
            if http_status >= 500:
                logger.error(f"{request.method} {request.url.path}: {exc}")
            else:
                logger.info(f"{request.method} {request.url.path} rejected: {exc}")
            return _failure(exc.message, status_code, http_status)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        # error_response() already built the envelope
        if isinstance(exc.detail, dict) and "status_code" in exc.detail:
            return JSONResponse(content=exc.detail, status_code=exc.status_code)
        return _failure(str(exc.detail), str(exc.status_code or AppStatusCode.OPERATION_FAILED),
                        exc.status_code or 400)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return _failure(str(exc), AppStatusCode.INVALID_INPUT, 422)

    # Catch all unhandled exceptions
    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception on {request.method} {request.url.path}")
        return _failure(str(exc), AppStatusCode.OPERATION_FAILED, 500)

