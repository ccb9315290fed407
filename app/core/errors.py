"""
Domain error taxonomy.

Every error is an HTTPException so FastAPI renders it directly; services raise
them and endpoints never translate. Body shape: {"detail": {"code", "message"}}.
"""
from __future__ import annotations

from fastapi import HTTPException


class MarketError(HTTPException):
    status_code: int = 400
    code: str = "error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(status_code=self.status_code, detail={"code": self.code, "message": message})


class Unauthorized(MarketError):
    """Caller lacks the role (creator / winner / party) the operation requires."""
    status_code = 403
    code = "unauthorized"


class InvalidState(MarketError):
    status_code = 400
    code = "invalid_state"


class ValidationFailure(MarketError):
    status_code = 422
    code = "validation_failure"


class NotFound(MarketError):
    status_code = 404
    code = "not_found"


class Throttled(MarketError):
    status_code = 429
    code = "throttled"


class ExternalFailure(MarketError):
    """Payment gateway unreachable, timed out, or answered with a failure."""
    status_code = 502
    code = "external_failure"


class Conflict(MarketError):
    status_code = 409
    code = "conflict"
