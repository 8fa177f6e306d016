"""
Error taxonomy shared by the negotiation engine and the API layer.

Every failure carries a machine-checkable :class:`ErrorKind`; the API maps
kinds to HTTP status codes and renders them in the response envelope.
"""

from __future__ import annotations

import enum
from typing import Any, Optional


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    INFRASTRUCTURE = "infrastructure"


class SlideBidError(Exception):
    """Base class for all domain errors."""

    kind: ErrorKind = ErrorKind.INFRASTRUCTURE

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationFailed(SlideBidError):
    """Malformed or missing input."""

    kind = ErrorKind.VALIDATION


class NotFoundError(SlideBidError):
    """Entity absent, or not owned by the caller."""

    kind = ErrorKind.NOT_FOUND


class ForbiddenError(SlideBidError):
    kind = ErrorKind.FORBIDDEN


class ConflictError(SlideBidError):
    """State changed underneath the caller (duplicate offer, lost race)."""

    kind = ErrorKind.CONFLICT


class InfrastructureError(SlideBidError):
    kind = ErrorKind.INFRASTRUCTURE
