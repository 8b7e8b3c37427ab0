"""Error types raised by repositories and flow loading.

Persistence failures are wrapped in ``DatabaseError`` with the original
exception kept as ``cause``.
"""

from typing import Any, Optional


class RepositoryError(Exception):
    """Base class for repository and flow loading errors."""

    def __init__(self, message: str, cause: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class ValidationError(RepositoryError):
    """Malformed flow, question, section or record input."""


class NotFoundError(RepositoryError):
    """A referenced entity does not exist."""

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} with id {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class DatabaseError(RepositoryError):
    """The record store failed."""
