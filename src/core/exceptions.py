"""
Exception hierarchy and FastAPI exception handlers.

Every error that can reach a caller carries an HTTP status code and a stable
``error_type`` so clients can tell pool exhaustion apart from their own
malformed input or an upstream rejection.
"""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from src.core.logger import logger


class PoolServiceException(Exception):
    """Base class for all service errors."""

    status_code: int = 500
    error_type: str = "internal_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.error_type, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidRequestException(PoolServiceException):
    """Malformed input, rejected before any store write."""

    status_code = 400
    error_type = "validation_error"


class InvalidUserKeyException(PoolServiceException):
    status_code = 401
    error_type = "invalid_user_key"


class NotFoundException(PoolServiceException):
    status_code = 404
    error_type = "not_found"


class DuplicateCredentialException(PoolServiceException):
    """A credential with the same secret or name already exists."""

    status_code = 409
    error_type = "duplicate_secret"

    def __init__(self, message: str, field: str = "secret") -> None:
        super().__init__(message, details={"field": field})
        self.field = field


class QuotaExceededException(PoolServiceException):
    """The caller has used up its own allowance (not the credential pool)."""

    status_code = 429
    error_type = "quota_exceeded"


class NoHealthyCredentialException(PoolServiceException):
    """No credential satisfies the status/health/quota filters.

    Retrying immediately does not help; callers should back off.
    """

    status_code = 503
    error_type = "pool_exhausted"

    def __init__(self, tier: str | None = None) -> None:
        super().__init__(
            "No healthy credential with remaining quota is available",
            details={"tier": tier} if tier else None,
        )
        self.tier = tier


class StoreUnavailableException(PoolServiceException):
    """The backing store failed or did not answer within its timeout."""

    status_code = 503
    error_type = "store_unavailable"

    def __init__(self, operation: str, reason: str = "") -> None:
        message = f"Credential store unavailable during {operation}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, details={"operation": operation})
        self.operation = operation


class UpstreamServiceException(PoolServiceException):
    """An upstream generation/synthesis provider rejected or failed the call."""

    status_code = 502
    error_type = "upstream_error"

    def __init__(self, upstream: str, reason: str, upstream_status: int | None = None) -> None:
        super().__init__(
            f"{upstream} call failed: {reason}",
            details={"upstream": upstream, "upstream_status": upstream_status},
        )
        self.upstream = upstream
        self.reason = reason
        self.upstream_status = upstream_status


class ExceptionHandlers:
    """FastAPI exception handlers producing the shared error envelope."""

    @staticmethod
    async def handle_service_exception(
        request: Request, exc: PoolServiceException
    ) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning("{} {} -> {}: {}", request.method, request.url.path, exc.error_type, exc)
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.to_dict()},
        )

    @staticmethod
    async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "success": False,
                "error": {"type": "http_error", "message": str(exc.detail)},
            },
        )

    @staticmethod
    async def handle_generic_exception(request: Request, exc: Exception) -> JSONResponse:
        logger.opt(exception=exc).error(
            "Unhandled error on {} {}", request.method, request.url.path
        )
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": {"type": "internal_error", "message": "Internal server error"},
            },
        )
