"""Error types shared by the link store, table and analyzer."""

from typing import Optional


class LinkScopeError(Exception):
    """Base class for LinkScope errors."""

    pass


class LinkValidationError(LinkScopeError):
    """Input rejected before any remote call was attempted."""

    pass


class LinkNotFoundError(LinkScopeError):
    """No record matches the (id, user) pair."""

    pass


class StorageError(LinkScopeError):
    """Link table read/write failure."""

    pass


class ExternalServiceError(LinkScopeError):
    """Non-success response from an external service."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(LinkScopeError):
    """Analyzer reply could not be parsed as JSON."""

    pass
