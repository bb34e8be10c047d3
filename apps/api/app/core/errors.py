"""
Caller-visible errors.

Services raise these; main.py renders the detail dict into the error envelope
{error, message, request_id, details}. Generation and notification failures are
never raised through here, they are absorbed into durable state and logs.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import HTTPException


class WorkflowError(HTTPException):
    status_code_default = 500
    error_code = "internal_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            status_code=self.status_code_default,
            detail={"error": self.error_code, "message": message, "details": details or {}},
        )
        self.message = message
        self.details = details or {}


class ValidationFailed(WorkflowError):
    status_code_default = 400
    error_code = "validation_error"


class NotFound(WorkflowError):
    status_code_default = 404
    error_code = "not_found"


class InvalidTransition(WorkflowError):
    status_code_default = 409
    error_code = "invalid_transition"
