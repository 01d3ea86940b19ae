from __future__ import annotations
from typing import Any


class MarketError(Exception):
    """
    Base for domain errors. Each carries the HTTP status and machine code
    the API renders; services raise them, endpoints let them propagate.
    """
    status_code = 400
    code = "error"

    def __init__(self, message: str, details: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or []


class ValidationError(MarketError):
    status_code = 422
    code = "validation_error"


class InvalidStateError(MarketError):
    status_code = 409
    code = "invalid_state"


class ForbiddenError(MarketError):
    status_code = 403
    code = "forbidden"


class AlreadyResolvedError(MarketError):
    status_code = 409
    code = "already_resolved"


class QuotaExceededError(MarketError):
    status_code = 429
    code = "quota_exceeded"


class NotFoundError(MarketError):
    status_code = 404
    code = "not_found"


class ConflictError(MarketError):
    status_code = 409
    code = "conflict"
