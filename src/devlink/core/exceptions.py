"""Unified exception hierarchy for Devlink."""

from typing import Any


class DevlinkError(Exception):
    """Base exception for all Devlink errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}


class InvalidInputError(DevlinkError):
    """Malformed identifier or pagination parameters."""

    pass


class SelfRelationError(InvalidInputError):
    """Caller and target are the same user."""

    pass


class AuthenticationError(DevlinkError):
    """Caller identity is missing or was rejected."""

    pass


class NotFoundError(DevlinkError):
    """Base exception for resource not found errors."""

    pass


class UserNotFoundError(NotFoundError):
    """User not found."""

    pass


class RelationshipStateError(DevlinkError):
    """Follow transition attempted from the wrong state."""

    pass


class AlreadyExistsError(RelationshipStateError):
    """Caller already follows the target."""

    pass


class NotFollowingError(RelationshipStateError):
    """Caller does not follow the target."""

    pass


class ServiceError(DevlinkError):
    """Base exception for service-level errors."""

    pass


class TransientError(ServiceError):
    """Storage or transaction failure; safe to retry."""

    pass


class StorageError(DevlinkError):
    """User directory operation failed."""

    pass


class StorageTimeoutError(StorageError):
    """Transactional scope could not be acquired in time."""

    pass


class DuplicateEmailError(StorageError):
    """Another user record already owns this email."""

    pass


class ConsistencyError(DevlinkError):
    """Detected drift between relationship lists or counters.

    Logged when detected; never raised to callers.
    """

    pass
