"""Error definitions for the pollm translator."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ServiceErrorKind(Enum):
    """Categorises completion service failures to decide retry versus fail."""

    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    MALFORMED_RESPONSE = "malformed_response"
    TRANSPORT = "transport"


RETRYABLE_KINDS = frozenset({ServiceErrorKind.RATE_LIMIT, ServiceErrorKind.TRANSPORT})


class PollmError(Exception):
    """Base exception for all custom errors."""


class ConfigError(PollmError):
    """Raised when configuration is invalid; no job is attempted."""


class CatalogError(PollmError):
    """Raised when a catalog file cannot be read or written."""


class ServiceError(PollmError):
    """Raised when a completion call fails."""

    def __init__(self, kind: ServiceErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.args[0]}"


@dataclass(frozen=True)
class ErrorRecord:
    """Stores context for a handled error."""

    reason: str
    message: str
    details: Optional[str] = None
