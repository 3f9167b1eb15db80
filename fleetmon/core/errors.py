from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from .logging import get_logger


class AppError(Exception):
    def __init__(self, code: str, message: str, status_code: int = 400, *, extra: Optional[Dict[str, Any]] = None) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.extra = extra or {}
        super().__init__(message)


class InvalidEventError(AppError):
    def __init__(self, message: str = "Invalid telemetry payload.") -> None:
        super().__init__(code="INVALID_EVENT", message=message, status_code=400)


class AgentNotFoundError(AppError):
    def __init__(self, agent_id: str) -> None:
        super().__init__(
            code="AGENT_NOT_FOUND",
            message="Agent not found",
            status_code=404,
            extra={"agent_id": agent_id},
        )


class StoreError(AppError):
    """A store write failed on a path whose failure is reported to the caller."""

    def __init__(self, message: str = "Aggregate store operation failed.") -> None:
        super().__init__(code="STORE_ERROR", message=message, status_code=500)


class AgentUnreachableError(AppError):
    def __init__(self, message: str = "Agent did not accept the request.") -> None:
        super().__init__(code="AGENT_UNREACHABLE", message=message, status_code=502)


class AuthenticationError(AppError):
    def __init__(self, message: str = "Invalid credentials") -> None:
        super().__init__(code="UNAUTHORIZED", message=message, status_code=401)


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    code: str


def _error_body(code: str, message: Any, details: Any = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "error": message, "code": code}
    if details:
        body["details"] = details
    return body


def setup_exception_handlers(app: FastAPI) -> None:
    logger = get_logger("exception-handler")

    @app.exception_handler(AppError)
    async def app_error_handler(_: Request, exc: AppError) -> JSONResponse:
        logger.warning("AppError", code=exc.code, message=exc.message, extra=exc.extra)
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.code, exc.message, exc.extra))

    @app.exception_handler(HTTPException)
    async def http_exception_handler(_: Request, exc: HTTPException) -> JSONResponse:
        logger.warning("HTTPException", status_code=exc.status_code, detail=exc.detail)
        return JSONResponse(status_code=exc.status_code, content=_error_body("HTTP_ERROR", exc.detail))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
        logger.warning("RequestValidationError", errors=exc.errors())
        return JSONResponse(
            status_code=400,
            content=_error_body("VALIDATION_ERROR", "Request validation failed.", jsonable_errors(exc.errors())),
        )

    @app.exception_handler(ValidationError)
    async def pydantic_validation_handler(_: Request, exc: ValidationError) -> JSONResponse:
        logger.warning("ValidationError", errors=exc.errors())
        return JSONResponse(
            status_code=422,
            content=_error_body("VALIDATION_ERROR", "Validation failed.", jsonable_errors(exc.errors())),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(_: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled exception", exc_info=exc)
        return JSONResponse(status_code=500, content=_error_body("INTERNAL_ERROR", "Unexpected error occurred."))


def jsonable_errors(errors: Any) -> list:
    cleaned = []
    for err in errors:
        cleaned.append({"loc": list(err.get("loc", ())), "msg": str(err.get("msg", "")), "type": err.get("type")})
    return cleaned
