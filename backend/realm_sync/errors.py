"""Application error taxonomy.

Services raise these; the API layer renders them as
`{"code": ..., "message": ..., "details": ...}` with the mapped HTTP status.
"""
from __future__ import annotations

from typing import Any


class AppError(Exception):
    code = "internal"
    status_code = 500

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = {k: v for k, v in details.items() if v is not None}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class UnauthenticatedError(AppError):
    code = "unauthenticated"
    status_code = 401

    def __init__(self, message: str = "Unauthorized: Authentication required") -> None:
        super().__init__(message)


class UnauthorizedError(AppError):
    code = "unauthorized"
    status_code = 403

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class NotFoundError(AppError):
    code = "not_found"
    status_code = 404

    def __init__(self, resource: str, resource_id: Any = None, message: str | None = None) -> None:
        super().__init__(
            message or f"{resource[:1].upper()}{resource[1:]} not found",
            resource=resource,
            id=resource_id,
        )


class ValidationError(AppError):
    code = "validation"
    status_code = 422

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message, field=field)


class ConflictError(AppError):
    code = "conflict"
    status_code = 409

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, field=field)


class LimitError(AppError):
    code = "limit"
    status_code = 402

    def __init__(self, resource: str, limit: int, message: str | None = None) -> None:
        super().__init__(message or f"{resource} limit reached", resource=resource, limit=limit)


class ConfigurationError(AppError):
    code = "configuration"
    status_code = 500

    def __init__(self, key: str, message: str | None = None) -> None:
        super().__init__(message or f"{key} not configured", key=key)


class ExternalAPIError(AppError):
    code = "api"
    status_code = 502

    def __init__(self, upstream_status: int, message: str) -> None:
        super().__init__(message, statusCode=upstream_status)
