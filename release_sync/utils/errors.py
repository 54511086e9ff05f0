#!/usr/bin/env python3
"""Typed errors shared by the transport and the publishing workflows.

Every error raised toward callers carries a string ``code`` so they can
branch on the failure class without parsing messages:

  - UNAUTHORIZED: 401/403 without rate-limit headers
  - NOT_FOUND: 404
  - VALIDATION: 422 (unprocessable entity) and malformed caller input
  - RATE_LIMIT: 429, or 403 with an exhausted quota
  - NETWORK: 5xx, connection failures
  - TIMEOUT: request timeout
  - CANCELLED: cancel token fired
"""

from __future__ import annotations

from typing import Optional


class GithubApiError(Exception):
    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN",
        *,
        status_code: int = 0,
        request_id: str = "",
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code
        self.request_id = request_id

    def with_context(self, message: str) -> "GithubApiError":
        """Return a copy prefixed with operation context, keeping code and status."""
        return GithubApiError(
            f"{message}: {self}",
            code=self.code,
            status_code=self.status_code,
            request_id=self.request_id,
        )

    @property
    def not_found(self) -> bool:
        return self.code == "NOT_FOUND"

    @property
    def unprocessable(self) -> bool:
        return self.status_code == 422


class OperationCancelled(GithubApiError):
    """Raised when the caller's cancel token fires."""

    def __init__(self, message: str = "operation cancelled") -> None:
        super().__init__(message, code="CANCELLED")

    def with_context(self, message: str) -> "OperationCancelled":
        return OperationCancelled(f"{message}: {self}")


class RetriableError(Exception):
    """Failure that an outer retry policy may re-attempt as a whole."""

    def __init__(self, cause: Exception) -> None:
        super().__init__(str(cause))
        self.cause = cause
        self.__cause__ = cause

    @property
    def request_id(self) -> str:
        return getattr(self.cause, "request_id", "")


class NoMilestoneFoundError(Exception):
    def __init__(self, title: str) -> None:
        super().__init__(f"no milestone found: {title}")
        self.title = title


class ConfigError(Exception):
    def __init__(self, message: str, key: Optional[str] = None) -> None:
        super().__init__(message)
        self.key = key
