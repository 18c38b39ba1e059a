from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from scm_backend.app.core.time_utils import utcnow
from scm_backend.services.errors import ServiceError, NotFoundError, ConflictError

logger = logging.getLogger("scm_backend.api")


def _payload(request: Request, status_code: int, message, **extra) -> JSONResponse:
    body = {
        "success": False,
        "message": message,
        "timestamp": utcnow().isoformat() + "Z",
        "path": request.url.path,
    }
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body)


def service_error_status(exc: ServiceError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ConflictError):
        return 409
    return 400


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def _service_error(request: Request, exc: ServiceError):
        status = service_error_status(exc)
        logger.warning("%s %s -> %s: %s", request.method, request.url.path, status, exc)
        return _payload(request, status, str(exc))

    @app.exception_handler(HTTPException)
    async def _http_error(request: Request, exc: HTTPException):
        if exc.status_code >= 500:
            logger.error("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.detail)
        return _payload(request, exc.status_code, exc.detail)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        return _payload(request, 422, "Validation failed", errors=jsonable_errors(exc))

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _payload(request, 500, "Internal server error")


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
