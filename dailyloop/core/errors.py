"""Error normalization and handlers."""

import logging
from typing import Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.responses import JSONResponse
from starlette.requests import Request

from dailyloop.core.logging import get_request_id

logger = logging.getLogger("dailyloop")


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None, request_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class NotFoundError(AppError, ValueError):
    code = "not_found"
    status_code = 404


class ConflictError(AppError):
    code = "conflict"
    status_code = 409


class UnconfirmedHabitsError(ConflictError):
    """Raised when a confirmation step is left with unanswered habits."""
    code = "unconfirmed_habits"

    def __init__(self, habit_ids, *, request_id: Optional[str] = None):
        self.habit_ids = list(habit_ids)
        super().__init__(
            f"Confirm Yes/No for every listed habit before continuing ({len(self.habit_ids)} left)",
            request_id=request_id,
        )


class ConfigurationError(AppError):
    code = "configuration_error"
    status_code = 503


class SessionInitError(AppError):
    code = "session_init_failed"
    status_code = 503


class PersistenceError(AppError):
    """Raised by the persistence collaborator when a read or write fails."""
    code = "persistence_error"
    status_code = 502


class SubmitError(AppError):
    code = "submit_failed"
    status_code = 502


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def _render(status_code: int, code: str, message: str, rid: str, **details) -> JSONResponse:
    """``{"error": {...}, "detail": message}`` with the request id echoed in the header."""
    error = {"code": code, "message": message, "request_id": rid, **details}
    response = JSONResponse(status_code=status_code, content={"error": error, "detail": message})
    response.headers["x-request-id"] = rid
    return response


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    details = {"habit_ids": exc.habit_ids} if isinstance(exc, UnconfirmedHabitsError) else {}
    logger.log(
        logging.ERROR if exc.status_code >= 500 else logging.WARNING,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "error_message": exc.message, "status": exc.status_code},
    )
    return _render(exc.status_code, exc.code, exc.message, rid, **details)


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    code = "not_found" if exc.status_code == 404 else "http_error"
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    return _render(exc.status_code, code, exc.detail or "HTTP error", rid)


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger.error("unhandled.exception", exc_info=exc, extra={"request_id": rid, "error_code": "internal_error"})
    return _render(500, "internal_error", "Unexpected error", rid)
