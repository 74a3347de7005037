"""Domain errors surfaced to callers of the adaptation engine.

Pure computation (impact window, guard, rules) never raises these; they come
from the readiness policy, the stores, and the decision flow.
"""

from __future__ import annotations

from typing import Any


class AdaptationError(Exception):
    code = "ADAPTATION_ERROR"
    retryable = False

    def __init__(self, message: str = "", **details: Any):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = dict(self.details)
        return body


class MissingReadinessError(AdaptationError):
    """Readiness is required for this request but the snapshot is absent."""

    code = "UNPROCESSABLE_DEPENDENCY"
    retryable = True

    def __init__(self, message: str = "Readiness data not available", retry_after_sec: int = 300, **details: Any):
        super().__init__(message, **details)
        self.retry_after_sec = retry_after_sec

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["fallback_hint"] = "partial"
        body["retry_after"] = f"PT{max(1, self.retry_after_sec // 60)}M"
        return body


class PlanNotFoundError(AdaptationError):
    code = "NOT_FOUND"


class PreviewNotFoundError(AdaptationError):
    code = "NOT_FOUND"


class InvalidDecisionError(AdaptationError):
    code = "VALIDATION_ERROR"


class GuardrailViolationError(AdaptationError):
    code = "GUARDRAIL_VIOLATION"


class PreviewConflictError(AdaptationError):
    """A concurrent request already created the preview row for this checksum."""

    code = "PREVIEW_CONFLICT"
    retryable = True


class StoreTimeoutError(AdaptationError):
    code = "STORE_TIMEOUT"
    retryable = True


class StalePreviewError(AdaptationError):
    """The plan moved on after the preview was made; a fresh preview is needed."""

    code = "STALE_PREVIEW"
