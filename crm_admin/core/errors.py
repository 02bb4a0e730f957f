"""
Domain exceptions.

Services and dependencies raise these; the exception handler in main.py
renders them into the response envelope with the matching HTTP status.
"""
from typing import Any, Optional


class DomainError(Exception):
    """Base exception for business rule violations."""
    status_code: int = 400

    def __init__(self, message: str, *, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class NotFound(DomainError):
    """Raised when an id does not resolve to an entity."""
    status_code = 404


class Conflict(DomainError):
    """Raised on uniqueness violations and deletes blocked by dependents."""
    status_code = 409


class ValidationFailed(DomainError):
    """Raised when input is malformed or violates a shape/pattern rule."""
    status_code = 400


class Unauthenticated(DomainError):
    """Raised when the bearer token is missing, invalid or revoked."""
    status_code = 401


class Forbidden(DomainError):
    """Raised when an authenticated caller lacks the required capability."""
    status_code = 403


class PropagationFailed(DomainError):
    """
    Raised when a fan-out write fails part way.

    details carries the rows already written, the failing row and the rows
    not reached. The surrounding transaction is rolled back.
    """
    status_code = 500
