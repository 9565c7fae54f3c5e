"""
Exceptions raised while composing Plasa views.

Provides a hierarchy of exceptions with HTTP-like error codes so that
callers (the API layer, CLIs, indexers) can decide whether to retry.
Every error carries the context of the read that failed: entity kind,
entity id, field and anchor.
"""
from typing import Any, Dict, Optional


class PlasaViewError(Exception):
    """Base exception for all view composition errors."""

    def __init__(
        self,
        message: str,
        code: int = 500,
        retryable: bool = False,
        retry_after: Optional[float] = None,
        entity_kind: Optional[str] = None,
        entity_id: Optional[str] = None,
        field: Optional[str] = None,
        anchor: Optional[Any] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.retryable = retryable
        self.retry_after = retry_after
        self.entity_kind = entity_kind
        self.entity_id = entity_id
        self.field = field
        self.anchor = anchor

    @property
    def context(self) -> Dict[str, Any]:
        """Where the failure happened, enough to retry deterministically."""
        context: Dict[str, Any] = {}
        if self.entity_kind is not None:
            context["entity_kind"] = self.entity_kind
        if self.entity_id is not None:
            context["entity_id"] = self.entity_id
        if self.field is not None:
            context["field"] = self.field
        if self.anchor is not None:
            anchor = self.anchor
            context["anchor"] = anchor.model_dump() if hasattr(anchor, "model_dump") else anchor
        return context

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        result = {
            "error_code": self.code,
            "error_type": type(self).__name__,
            "error_message": self.message,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context = self.context
        if context:
            result["context"] = context
        return result


class NotFoundError(PlasaViewError):
    """404 Not Found - A referenced entity or required fact is absent."""

    def __init__(self, message: str = "Entity not found", **context):
        super().__init__(message, code=404, retryable=False, **context)


class MalformedFactError(PlasaViewError):
    """502 Bad Gateway - The fact source returned data violating an invariant."""

    def __init__(self, message: str = "Malformed fact", **context):
        super().__init__(message, code=502, retryable=False, **context)


class SnapshotUnavailableError(PlasaViewError):
    """503 Service Unavailable - No consistent snapshot within the attempt bound."""

    def __init__(
        self,
        message: str = "Could not read a consistent snapshot. Please try again later.",
        attempts: int = 0,
        retry_after: float = 1.0,
        **context,
    ):
        super().__init__(message, code=503, retryable=True, retry_after=retry_after, **context)
        self.attempts = attempts


class CompositionTimeoutError(PlasaViewError):
    """504 Gateway Timeout - A read or the whole composition exceeded its bound."""

    def __init__(self, message: str = "View composition timed out.", **context):
        super().__init__(message, code=504, retryable=True, **context)
