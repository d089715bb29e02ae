"""
Custom exceptions for the Spy Card scoring engine.

This module defines domain-specific exceptions for better error handling
and debugging throughout the application.
"""


class SpyCardAppError(Exception):
    """Base exception for all application errors."""

    pass


class NotFoundError(SpyCardAppError):
    """Raised when a required record (mission player, profile, user) is missing."""

    pass


class ValidationError(SpyCardAppError):
    """Raised when input validation fails.

    Attributes:
        field: Name of the offending field, when a single field is at fault.
    """

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class UpstreamError(SpyCardAppError):
    """Raised when a collaborator (store, catalog, judge) fails to answer."""

    pass


class DatabaseError(UpstreamError):
    """Raised when a database operation fails."""

    pass


class CatalogError(UpstreamError):
    """Raised when the content catalog cannot be queried."""

    pass


class JudgeError(UpstreamError):
    """Raised when the AI judge is unavailable or its call fails."""

    pass
