"""
Centralized API error handling helpers.

Maps the query error taxonomy to HTTP status codes and the flat
`{error, code, executionTime}` body the dashboard expects.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import status

from loadsim.config import settings
from loadsim.core.errors import (
    ExecutionError,
    MalformedQuery,
    QueryBlocked,
    QueryRejected,
    StoreConnectionError,
)


@dataclass(frozen=True, slots=True)
class ApiError:
    status_code: int
    code: str
    message: str
    execution_time_ms: int = 0

    def to_body(self) -> dict[str, Any]:
        return {
            "error": self.message,
            "code": self.code,
            "executionTime": self.execution_time_ms,
        }


def debug_detail(exc: BaseException) -> str | None:
    if settings.APP_DEBUG:
        return str(exc)
    return None


def classify_query_error(exc: BaseException) -> ApiError | None:
    """
    Classify a failed submission into a client-facing error.

    Returns None for exceptions outside the query error taxonomy.
    """
    if isinstance(exc, MalformedQuery):
        return ApiError(status.HTTP_400_BAD_REQUEST, exc.code, str(exc))

    if isinstance(exc, QueryBlocked):
        return ApiError(status.HTTP_403_FORBIDDEN, exc.code, str(exc))

    if isinstance(exc, QueryRejected):
        return ApiError(status.HTTP_400_BAD_REQUEST, exc.code, str(exc))

    if isinstance(exc, ExecutionError):
        return ApiError(
            status.HTTP_400_BAD_REQUEST,
            exc.code,
            exc.message,
            execution_time_ms=exc.latency_ms,
        )

    if isinstance(exc, StoreConnectionError):
        return ApiError(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            exc.code,
            "Database unavailable. Check the store connection and retry.",
        )

    return None
