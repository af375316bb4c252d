"""Typed failures raised across the referral pipeline."""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class PipelineError(Exception):
    """Base class for every failure surfaced by the core services."""


class ValidationError(PipelineError):
    """Malformed code, date or amount, rejected before persistence."""

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []

    @classmethod
    def from_pydantic(cls, exc) -> "ValidationError":
        errors = [
            {
                "field": ".".join(str(part) for part in err.get("loc", ())),
                "message": err.get("msg", ""),
            }
            for err in exc.errors()
        ]
        summary = ", ".join(f"{e['field']}: {e['message']}" for e in errors)
        return cls(f"Validation failed ({summary})", errors)


class NotFoundError(PipelineError):
    """Unknown partner or lead."""


class PartnerNotFoundError(NotFoundError):
    """Raised when a partner is missing or inactive for the lookup."""


class LeadNotFoundError(NotFoundError):
    """Raised when a lead id does not exist."""


class CodeGenerationExhausted(PipelineError):
    """No unique referral code could be produced within the attempt budget."""


class PersistenceConflict(PipelineError):
    """Unique-constraint or concurrent write conflict, retried by callers."""


class TrackingFailure(PipelineError):
    """Event log write failure. Logged and swallowed, never propagated."""


__all__ = [
    "PipelineError",
    "ValidationError",
    "NotFoundError",
    "PartnerNotFoundError",
    "LeadNotFoundError",
    "CodeGenerationExhausted",
    "PersistenceConflict",
    "TrackingFailure",
]
