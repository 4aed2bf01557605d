from __future__ import annotations

import logging
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, ClassVar

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException


logger = logging.getLogger(__name__)


@dataclass(eq=False)
class DomainError(ValueError):
    """Base class for errors raised by the service layer.

    Each subclass carries the HTTP status it is rendered with, so routers can
    let these propagate to the registered handler instead of translating them
    one by one.
    """

    message: str
    code: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    status_code: ClassVar[int] = 400
    default_code: ClassVar[str] = "bad_request"

    def __post_init__(self) -> None:
        # Not frozen: unwinding through yield dependencies assigns __traceback__.
        if not self.code:
            self.code = self.default_code
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


@dataclass(eq=False)
class Unauthorized(DomainError):
    status_code: ClassVar[int] = 401
    default_code: ClassVar[str] = "unauthorized"


@dataclass(eq=False)
class Forbidden(DomainError):
    status_code: ClassVar[int] = 403
    default_code: ClassVar[str] = "forbidden"


@dataclass(eq=False)
class NotFound(DomainError):
    status_code: ClassVar[int] = 404
    default_code: ClassVar[str] = "not_found"


@dataclass(eq=False)
class ValidationError(DomainError):
    status_code: ClassVar[int] = 422
    default_code: ClassVar[str] = "validation_error"

    @classmethod
    def for_field(cls, field_name: str, message: str) -> "ValidationError":
        return cls(message=message, details={"errors": [{"field": field_name, "message": message}]})

    @classmethod
    def for_fields(cls, errors: list[dict[str, str]], message: str = "Validation failed") -> "ValidationError":
        return cls(message=message, details={"errors": errors})

    @classmethod
    def from_pydantic(cls, exc: PydanticValidationError) -> "ValidationError":
        errors = []
        for error in exc.errors():
            loc = ".".join(str(part) for part in error.get("loc") or [])
            errors.append({"field": loc or "body", "message": error.get("msg") or "Invalid value"})
        message = "Validation failed"
        if errors:
            message = f"{errors[0]['field']}: {errors[0]['message']}"
        return cls(message=message, details={"errors": errors})


@dataclass(eq=False)
class InvalidTransition(DomainError):
    status_code: ClassVar[int] = 409
    default_code: ClassVar[str] = "invalid_transition"


@dataclass(eq=False)
class ConcurrentModification(DomainError):
    status_code: ClassVar[int] = 409
    default_code: ClassVar[str] = "concurrent_modification"


@dataclass(eq=False)
class UpstreamFailure(DomainError):
    status_code: ClassVar[int] = 500
    default_code: ClassVar[str] = "upstream_failure"


def _default_code(status_code: int) -> str:
    mapping = {
        400: "bad_request",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        409: "conflict",
        422: "unprocessable_entity",
        429: "rate_limited",
    }
    return mapping.get(status_code, "http_error")


def _default_message(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Request failed"


def _normalize_details(details: Any) -> dict:
    if details is None:
        return {}
    if isinstance(details, dict):
        return details
    if isinstance(details, list):
        return {"errors": details}
    if isinstance(details, str):
        return {"detail": details}
    return {"detail": str(details)}


def _build_response(
    status_code: int,
    code: str,
    message: str,
    details: Any | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    payload = {
        "code": code,
        "message": message,
        "data": None,
        "details": _normalize_details(details),
    }
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload), headers=headers)


def _parse_http_exception_detail(detail: Any, status_code: int) -> tuple[str, str, dict]:
    code = _default_code(status_code)
    message = _default_message(status_code)
    details: dict = {}

    if isinstance(detail, dict):
        code = detail.get("code") or code
        message = detail.get("message") or detail.get("detail") or detail.get("error") or message
        if "details" in detail:
            details = _normalize_details(detail.get("details"))
        else:
            remainder = {
                k: v for k, v in detail.items() if k not in {"code", "message", "detail", "error"}
            }
            details = remainder or {
                "detail": detail.get("detail") or detail.get("error") or message
            }
        return code, message, details

    if isinstance(detail, list):
        return code, message, {"errors": detail}

    if isinstance(detail, str):
        return code, detail, {"detail": detail}

    return code, message, {"detail": str(detail)}


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code, message, details = _parse_http_exception_detail(exc.detail, exc.status_code)
    headers = getattr(exc, "headers", None)
    return _build_response(exc.status_code, code, message, details, headers=headers)


async def domain_exception_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Domain error %s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return _build_response(exc.status_code, exc.code, exc.message, exc.details, headers=headers)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    message = "Validation failed"
    if errors:
        first = errors[0] or {}
        loc = first.get("loc") or []
        msg = first.get("msg") or "Validation failed"
        # Drop the request section (body/query/path) from the location
        loc_parts = [str(part) for part in loc if part not in {"body", "query", "path", "form"}]
        if loc_parts:
            message = f"{'.'.join(loc_parts)}: {msg}"
        else:
            message = str(msg)
    return _build_response(
        status_code=422,
        code="validation_error",
        message=message,
        details={"errors": errors},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _build_response(
        status_code=500,
        code="internal_server_error",
        message="Internal server error",
        details={},
    )


async def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    details = getattr(exc, "detail", None)
    response = _build_response(
        status_code=429,
        code="rate_limited",
        message=_default_message(429),
        details=details,
    )
    headers = getattr(exc, "headers", None)
    if isinstance(headers, dict):
        response.headers.update(headers)
    return response


def register_exception_handlers(app) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)
    app.add_exception_handler(DomainError, domain_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
