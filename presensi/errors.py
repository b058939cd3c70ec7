from __future__ import annotations

import enum
from typing import TypeVar

from fastapi import Request
from fastapi.responses import JSONResponse

E = TypeVar("E", bound=enum.Enum)


class ApiError(Exception):
    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


class StoreUnavailableError(Exception):
    """Raised by the ephemeral store when Redis cannot be reached."""


def store_unavailable() -> ApiError:
    return ApiError(
        status_code=503,
        code="STORE_UNAVAILABLE",
        message="Ephemeral store is unavailable. Please retry later.",
    )


def parse_enum(enum_cls: type[E], raw: str | None, field: str) -> E:
    if raw is None:
        raise ApiError(status_code=422, code="VALIDATION_ERROR", message=f"{field} is required.")
    value = raw.strip().upper() if isinstance(raw, str) else raw
    try:
        return enum_cls(value)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ApiError(
            status_code=422,
            code="VALIDATION_ERROR",
            message=f"{field}: unknown value {raw!r} (allowed: {allowed}).",
        ) from exc


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(request: Request, *, status_code: int, code: str, message: str) -> JSONResponse:
    payload = {
        "error": {
            "code": code,
            "message": message,
            "request_id": get_request_id(request),
        }
    }
    return JSONResponse(status_code=status_code, content=payload)
