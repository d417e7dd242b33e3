"""RFC 7807 Problem Details exception handlers for FastAPI.

Translates tenancy and provisioning errors into
``application/problem+json`` responses. Identification failures and
central-domain access to tenant routes render as 404 so a host never
reveals which tenant routes exist.

Usage:
    from tenantforge.infra.fastapi.error_handlers import register_exception_handlers

    app = FastAPI()
    register_exception_handlers(app)
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from typing import TYPE_CHECKING, Any

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from tenantforge.foundation.exceptions import (
    AccessFromCentralDomainError,
    ConflictError,
    DomainError,
    JobPipelineError,
    NotFoundError,
    TenantCouldNotBeIdentifiedError,
    ValidationError,
)
from tenantforge.infra.fastapi.middleware.request_id import get_request_id

if TYPE_CHECKING:
    from fastapi import FastAPI, Request

logger = logging.getLogger(__name__)

PROBLEM_MEDIA_TYPE = "application/problem+json"


class ProblemDetail(BaseModel):
    """RFC 7807 Problem Details response model.

    ``error_code``, ``context`` and ``correlation_id`` are extension
    members; ``correlation_id`` is only set on 5xx responses.
    """

    type: str = Field(
        ...,
        description="URI reference identifying problem type",
        examples=["/errors/not-found", "/errors/tenant-not-identified"],
    )
    title: str = Field(..., description="Short human-readable summary")
    status: int = Field(..., ge=400, le=599, description="HTTP status code")
    detail: str = Field(..., description="Human-readable explanation")
    instance: str | None = Field(
        default=None,
        description="URI reference to specific occurrence (request path)",
    )
    error_code: str | None = Field(
        default=None,
        description="Machine-readable error code",
        examples=["TENANT_NOT_IDENTIFIED", "CONFLICT"],
    )
    context: dict[str, Any] | None = Field(
        default=None,
        description="Structured debugging information",
    )
    correlation_id: str | None = Field(
        default=None,
        description="Request correlation ID for support requests",
    )


_SENSITIVE_PATTERNS = [
    (
        re.compile(r"postgresql(\+\w+)?://[^@]*@[^/\s]*"),
        "postgresql://[REDACTED]@[REDACTED]",
    ),
    (
        re.compile(r"password\s*=\s*['\"]?[^'\"\s]+['\"]?", re.IGNORECASE),
        "password=[REDACTED]",
    ),
    (
        re.compile(r"secret\s*=\s*['\"]?[^'\"\s]+['\"]?", re.IGNORECASE),
        "secret=[REDACTED]",
    ),
]

_SENSITIVE_KEYS = frozenset({"password", "secret", "token", "api_key", "apikey", "credential"})


def _create_problem_response(problem: ProblemDetail) -> JSONResponse:
    return JSONResponse(
        status_code=problem.status,
        content=problem.model_dump(exclude_none=True),
        media_type=PROBLEM_MEDIA_TYPE,
    )


def _get_correlation_id() -> str:
    return get_request_id() or "unknown"


def _sanitize_context(context: dict[str, Any] | None) -> dict[str, Any] | None:
    """Drop sensitive keys and make values JSON-safe."""
    if context is None:
        return None

    sanitized = {
        key: _sanitize_value(value)
        for key, value in context.items()
        if key.lower() not in _SENSITIVE_KEYS
    }
    return sanitized or None


def _sanitize_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, str):
        return _redact_sensitive_strings(value)
    if isinstance(value, dict):
        return _sanitize_context(value)
    if isinstance(value, (list, tuple)):
        return [_sanitize_value(v) for v in value]
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


def _redact_sensitive_strings(text: str) -> str:
    result = text
    for pattern, replacement in _SENSITIVE_PATTERNS:
        result = pattern.sub(replacement, result)
    return result


def _problem(
    request: Request,
    exc: DomainError,
    *,
    type_: str,
    title: str,
    status: int,
) -> JSONResponse:
    problem = ProblemDetail(
        type=type_,
        title=title,
        status=status,
        detail=str(exc.message),
        instance=str(request.url.path),
        error_code=exc.error_code,
        context=_sanitize_context(exc.context),
    )
    return _create_problem_response(problem)


async def tenant_not_identified_handler(
    request: Request,
    exc: TenantCouldNotBeIdentifiedError,
) -> JSONResponse:
    """Translate a failed tenant identification to 404."""
    logger.info(
        "tenant_not_identified",
        extra={"strategy": exc.strategy, "value": exc.value, "path": str(request.url.path)},
    )
    return _problem(
        request, exc, type_="/errors/tenant-not-identified", title="Tenant Not Found", status=404
    )


async def central_domain_access_handler(
    request: Request,
    exc: AccessFromCentralDomainError,
) -> JSONResponse:
    """Tenant routes do not exist on central domains."""
    problem = ProblemDetail(
        type="/errors/not-found",
        title="Not Found",
        status=404,
        detail="Not Found",
        instance=str(request.url.path),
        error_code=exc.error_code,
    )
    return _create_problem_response(problem)


async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return _problem(request, exc, type_="/errors/not-found", title="Resource Not Found", status=404)


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return _problem(
        request, exc, type_="/errors/validation-error", title="Validation Error", status=422
    )


async def conflict_error_handler(request: Request, exc: ConflictError) -> JSONResponse:
    return _problem(request, exc, type_="/errors/conflict", title="Conflict", status=409)


async def job_pipeline_error_handler(request: Request, exc: JobPipelineError) -> JSONResponse:
    """Translate a failed provisioning pipeline to 500.

    The tenant record exists but its resources are incomplete; the
    response names the failing step and the steps that did complete.
    """
    correlation_id = _get_correlation_id()
    logger.error(
        "job_pipeline_failed",
        extra={
            "correlation_id": correlation_id,
            "step": exc.step,
            "completed": exc.completed,
            "path": str(request.url.path),
        },
    )
    problem = ProblemDetail(
        type="/errors/provisioning-failed",
        title="Provisioning Failed",
        status=500,
        detail=str(exc.message),
        instance=str(request.url.path),
        error_code=exc.error_code,
        context=_sanitize_context(exc.context),
        correlation_id=correlation_id,
    )
    return _create_problem_response(problem)


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Fallback for domain errors without a more specific handler."""
    return _problem(request, exc, type_="/errors/domain-error", title="Bad Request", status=400)


async def request_validation_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Translate FastAPI's request validation errors to 422."""
    errors = [
        {
            "loc": list(error.get("loc", [])),
            "msg": error.get("msg", ""),
            "type": error.get("type", ""),
        }
        for error in exc.errors()
    ]

    problem = ProblemDetail(
        type="/errors/request-validation-error",
        title="Request Validation Error",
        status=422,
        detail="Request validation failed",
        instance=str(request.url.path),
        error_code="REQUEST_VALIDATION_ERROR",
        context={"errors": errors},
    )
    return _create_problem_response(problem)


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Catch-all handler for unhandled exceptions.

    Logs the full exception and returns a sanitized 500 carrying the
    correlation ID. In debug mode the exception type and message are
    included.
    """
    correlation_id = _get_correlation_id()

    logger.exception(
        "unhandled_exception",
        extra={
            "correlation_id": correlation_id,
            "path": str(request.url.path),
            "method": request.method,
            "exception_type": type(exc).__name__,
        },
    )

    if getattr(request.app, "debug", False):
        detail = f"{type(exc).__name__}: {exc}"
        context: dict[str, Any] | None = {"exception_type": type(exc).__name__}
    else:
        detail = "An internal error occurred. Please contact support with the correlation ID."
        context = None

    problem = ProblemDetail(
        type="/errors/internal-error",
        title="Internal Server Error",
        status=500,
        detail=detail,
        instance=str(request.url.path),
        error_code="INTERNAL_ERROR",
        context=context,
        correlation_id=correlation_id,
    )
    return _create_problem_response(problem)


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers on a FastAPI application.

    Starlette picks the handler of the nearest class in the exception's
    MRO, so identification errors win over the generic 404 handler.

    1. TenantCouldNotBeIdentifiedError -> 404
    2. AccessFromCentralDomainError -> 404
    3. NotFoundError -> 404
    4. ValidationError -> 422
    5. ConflictError -> 409
    6. JobPipelineError -> 500
    7. DomainError -> 400
    8. RequestValidationError -> 422
    9. Exception -> 500
    """
    # Starlette's handler typing is stricter than the handlers need.
    app.add_exception_handler(
        TenantCouldNotBeIdentifiedError,
        tenant_not_identified_handler,  # type: ignore[arg-type]
    )
    app.add_exception_handler(
        AccessFromCentralDomainError,
        central_domain_access_handler,  # type: ignore[arg-type]
    )
    app.add_exception_handler(NotFoundError, not_found_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ValidationError, validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ConflictError, conflict_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(
        JobPipelineError,
        job_pipeline_error_handler,  # type: ignore[arg-type]
    )
    app.add_exception_handler(DomainError, domain_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(
        RequestValidationError,
        request_validation_handler,  # type: ignore[arg-type]
    )
    app.add_exception_handler(Exception, unhandled_exception_handler)
