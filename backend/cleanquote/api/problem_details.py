"""RFC 7807 problem responses for the quote API."""

import uuid
from http import HTTPStatus
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from cleanquote.domain.errors import DomainError, problem_type

_STATUS_SLUGS = {
    status.HTTP_404_NOT_FOUND: "not-found",
    status.HTTP_422_UNPROCESSABLE_ENTITY: "validation-error",
    status.HTTP_503_SERVICE_UNAVAILABLE: "pricing-unavailable",
}
_REQUEST_LOCATIONS = {"body", "query", "path"}


def _resolve_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None) or request.headers.get("X-Request-ID")
    if not request_id:
        request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    return request_id


def _resolve_title(status_code: int, fallback: str | None) -> str:
    if fallback:
        return fallback
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


def _status_type(status_code: int) -> str:
    slug = _STATUS_SLUGS.get(status_code)
    if slug is None:
        slug = "server-error" if status_code >= 500 else "domain-error"
    return problem_type(slug)


def problem_details(
    request: Request,
    *,
    status: int,
    title: str | None,
    detail: str,
    errors: list[dict[str, Any]] | None = None,
    type_: str | None = None,
    headers: dict[str, str] | None = None,
    extensions: dict[str, Any] | None = None,
) -> JSONResponse:
    request_id = _resolve_request_id(request)
    content = {
        "type": type_ or _status_type(status),
        "title": _resolve_title(status, title),
        "status": status,
        "detail": detail,
        "request_id": request_id,
        "errors": errors or [],
    }
    if extensions:
        content.update(extensions)
    response = JSONResponse(
        status_code=status,
        content=content,
        headers=headers,
        media_type="application/problem+json",
    )
    response.headers.setdefault("X-Request-ID", request_id)
    return response


def domain_problem(request: Request, exc: DomainError) -> JSONResponse:
    """Formula and pricing errors are client errors; syntax errors carry the failing position."""
    position = getattr(exc, "position", None)
    return problem_details(
        request,
        status=status.HTTP_400_BAD_REQUEST,
        title=exc.title,
        detail=exc.detail,
        errors=exc.errors,
        type_=exc.type,
        extensions={"position": position} if position is not None else None,
    )


def validation_problem(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = []
    for error in exc.errors():
        loc = error.get("loc", [])
        field = ".".join(str(part) for part in loc if part not in _REQUEST_LOCATIONS) or "body"
        errors.append({"field": field, "message": error.get("msg", "Invalid value")})
    return problem_details(
        request,
        status=status.HTTP_422_UNPROCESSABLE_ENTITY,
        title="Validation Error",
        detail="Request validation failed",
        errors=errors,
    )


def http_problem(request: Request, exc: HTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else None
    return problem_details(
        request,
        status=exc.status_code,
        title=message or "HTTP Error",
        detail=message or "Request failed",
        headers=exc.headers,
    )


def server_problem(request: Request) -> JSONResponse:
    return problem_details(
        request,
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        title="Internal Server Error",
        detail="Unexpected error",
    )
