"""Pipeline error taxonomy."""

from __future__ import annotations

from typing import Optional


class PipelineError(RuntimeError):
    """Base class for collection/scoring/lifecycle failures."""


class NotFoundError(PipelineError):
    """Raised when a referenced content item, lounge or snapshot does not exist."""

    def __init__(self, kind: str, identifier: str) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind.capitalize()} {identifier} not found")


class VendorError(PipelineError):
    """Raised when the collection vendor cannot be reached or rejects a request."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class SnapshotNotFoundError(VendorError):
    """Raised when the vendor no longer knows a snapshot (expired or never existed)."""


class ClassificationError(PipelineError):
    """Raised when the classification capability times out or returns malformed output."""


class PermissionDeniedError(PipelineError):
    """Raised when the acting user's role may not perform a lifecycle action."""
