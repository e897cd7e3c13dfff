"""Translate registry exceptions into the JSON error envelope."""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..core.errors import (
    ConflictError,
    EditorialError,
    IllegalTransitionError,
    NotFoundError,
    RemoteUnavailableError,
    ValidationError,
)
from ..utils.log import get_logger

log = get_logger(__name__)

STATUS_BY_ERROR: dict[type[EditorialError], int] = {
    ValidationError: 400,
    IllegalTransitionError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    RemoteUnavailableError: 503,
}


def error_body(code: str, message: str) -> dict:
    return {"success": False, "error": {"code": code, "message": message}}


def status_for(exc: EditorialError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    return 500


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(EditorialError)
    async def _editorial_error(request: Request, exc: EditorialError) -> JSONResponse:
        status = status_for(exc)
        log.info(
            "request_failed",
            method=request.method,
            path=request.url.path,
            status=status,
            code=exc.code,
            error=exc.message,
        )
        return JSONResponse(status_code=status, content=error_body(exc.code, exc.message))

    @app.exception_handler(RequestValidationError)
    async def _request_invalid(request: Request, exc: RequestValidationError) -> JSONResponse:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
        )
        return JSONResponse(status_code=400, content=error_body("VALIDATION_ERROR", problems))
