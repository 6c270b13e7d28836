from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from seolens.core.errors import (
    ConfigurationError,
    CredentialMissingError,
    DecryptionError,
    LLMProviderError,
    SeoLensError,
    TenantNotFoundError,
)
from seolens.persistence.guards import TenantPredicateError


logger = logging.getLogger(__name__)


_DEFAULT_ERROR_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
    502: "BAD_GATEWAY",
}


def _default_code(status_code: int) -> str:
    return _DEFAULT_ERROR_CODES.get(status_code, "UNKNOWN_ERROR")


def error_payload(*, code: str, message: str) -> dict[str, Any]:
    return {"error": message, "code": code}


def _split_detail(detail: Any, status_code: int) -> tuple[str, str]:
    if isinstance(detail, dict):
        return str(detail.get("code") or _default_code(status_code)), str(detail.get("message") or "Request failed")
    if isinstance(detail, str):
        return _default_code(status_code), detail
    return _default_code(status_code), "Request failed"


def _map_domain_error(exc: SeoLensError) -> tuple[int, str, str]:
    # Messages here are user-facing; never interpolate keys, ciphertext or config values.
    if isinstance(exc, ConfigurationError):
        return 500, "CONFIGURATION_ERROR", "Server configuration error"
    if isinstance(exc, CredentialMissingError):
        return 400, "CREDENTIAL_MISSING", "No API key configured. Please add your API key in Settings."
    if isinstance(exc, DecryptionError):
        return 400, "CREDENTIAL_DECRYPT_FAILED", "Failed to decrypt API key. Please re-enter your key in Settings."
    if isinstance(exc, LLMProviderError):
        message = str(exc)
        provider = exc.provider or "LLM provider"
        if provider not in message:
            message = f"{provider}: {message}"
        return 502, "LLM_PROVIDER_ERROR", message
    if isinstance(exc, TenantNotFoundError):
        return 404, "USER_NOT_FOUND", "User not found"
    return 500, "INTERNAL_ERROR", "An unexpected error occurred"


async def seolens_exception_handler(request: Request, exc: SeoLensError) -> JSONResponse:
    status_code, code, message = _map_domain_error(exc)
    if status_code >= 500:
        logger.error(
            "request_failed request_id=%s code=%s error=%s",
            getattr(request.state, "request_id", None),
            code,
            type(exc).__name__,
        )
    return JSONResponse(content=error_payload(code=code, message=message), status_code=status_code)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    code, message = _split_detail(exc.detail, exc.status_code)
    return JSONResponse(content=error_payload(code=code, message=message), status_code=exc.status_code, headers=exc.headers)


async def starlette_http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code, message = _split_detail(exc.detail, exc.status_code)
    return JSONResponse(content=error_payload(code=code, message=message), status_code=exc.status_code, headers=exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        content=error_payload(code="REQUEST_VALIDATION_ERROR", message="Validation error"),
        status_code=422,
    )


async def tenant_predicate_exception_handler(request: Request, exc: TenantPredicateError) -> JSONResponse:
    return JSONResponse(
        content=error_payload(code="TENANT_PREDICATE_REQUIRED", message=exc.message),
        status_code=400,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Avoid leaking stack traces; return a stable internal error payload.
    logger.exception("unhandled_exception request_id=%s", getattr(request.state, "request_id", None))
    return JSONResponse(
        content=error_payload(code="INTERNAL_ERROR", message="An unexpected error occurred"),
        status_code=500,
    )
