"""Stable error codes and the JSON error envelope shared by every service.

Services raise ``ApiError`` directly, the same way they would raise
``HTTPException``; the handlers installed by ``add_exception_handlers`` render
it as ``{"ok": false, "error": "<CODE>"}``.
"""

import enum
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from libs.common.logging import get_logger

logger = get_logger(__name__)


class ErrorCode(str, enum.Enum):
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    FROZEN = "FROZEN"
    NOT_FOUND = "NOT_FOUND"
    INVALID_BODY = "INVALID_BODY"
    INVALID_ACTION = "INVALID_ACTION"
    INVALID_COURSE = "INVALID_COURSE"
    INVALID_TARGET_ROLE = "INVALID_TARGET_ROLE"
    INVALID_COACH_ROLE = "INVALID_COACH_ROLE"
    COACH_NOT_FOUND = "COACH_NOT_FOUND"
    MISSING_CONTENT = "MISSING_CONTENT"
    NOT_SUBMITTED = "NOT_SUBMITTED"
    NO_ACCESS = "NO_ACCESS"
    NOT_APPROVED = "NOT_APPROVED"
    PREREQUISITE_BLOCKED = "PREREQUISITE_BLOCKED"
    ALREADY_REVIEWED = "ALREADY_REVIEWED"
    ALREADY_ARCHIVED = "ALREADY_ARCHIVED"
    ALREADY_PENDING = "ALREADY_PENDING"
    NOTIFY_FAILED = "NOTIFY_FAILED"
    SIGN_FAILED = "SIGN_FAILED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    DB_ERROR = "DB_ERROR"


ERROR_STATUS: dict[ErrorCode, int] = {
    ErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCode.FROZEN: status.HTTP_403_FORBIDDEN,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.INVALID_BODY: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_ACTION: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_COURSE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_TARGET_ROLE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_COACH_ROLE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.COACH_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.MISSING_CONTENT: status.HTTP_400_BAD_REQUEST,
    ErrorCode.NOT_SUBMITTED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.NO_ACCESS: status.HTTP_403_FORBIDDEN,
    ErrorCode.NOT_APPROVED: status.HTTP_403_FORBIDDEN,
    ErrorCode.PREREQUISITE_BLOCKED: status.HTTP_409_CONFLICT,
    ErrorCode.ALREADY_REVIEWED: status.HTTP_409_CONFLICT,
    ErrorCode.ALREADY_ARCHIVED: status.HTTP_409_CONFLICT,
    ErrorCode.ALREADY_PENDING: status.HTTP_409_CONFLICT,
    ErrorCode.NOTIFY_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.SIGN_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.SERVICE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.DB_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class ApiError(HTTPException):
    """HTTPException carrying one of the stable ``ErrorCode`` values."""

    def __init__(self, code: ErrorCode, message: Optional[str] = None):
        super().__init__(status_code=ERROR_STATUS[code], detail=code.value)
        self.code = code
        self.message = message

    def __repr__(self) -> str:
        return f"ApiError({self.code.value})"


def error_payload(code: ErrorCode, message: Optional[str] = None) -> dict:
    payload = {"ok": False, "error": code.value}
    if message:
        payload["message"] = message
    return payload


def _json(payload: dict, status_code: int) -> JSONResponse:
    return JSONResponse(
        payload, status_code=status_code, headers={"Cache-Control": "no-store"}
    )


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return _json(error_payload(exc.code, exc.message), exc.status_code)


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.info("Rejected request body on %s: %s", request.url.path, exc.errors())
    return _json(
        error_payload(ErrorCode.INVALID_BODY),
        ERROR_STATUS[ErrorCode.INVALID_BODY],
    )


async def database_error_handler(
    request: Request, exc: SQLAlchemyError
) -> JSONResponse:
    logger.exception("Database error on %s", request.url.path)
    return _json(error_payload(ErrorCode.DB_ERROR), ERROR_STATUS[ErrorCode.DB_ERROR])


def add_exception_handlers(app: FastAPI) -> None:
    """Install the shared error envelope on a FastAPI app."""
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
