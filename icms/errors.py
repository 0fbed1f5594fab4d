"""Exception taxonomy shared by services and route handlers."""
from __future__ import annotations

from typing import Dict, List, Optional, Union

__all__ = [
    "LifecycleError",
    "ValidationError",
    "IllegalTransitionError",
    "CapacityConflictError",
    "CollaboratorFailure",
    "NotFoundError",
    "DuplicateRegistrationError",
    "RegistrationClosedError",
]

ErrorDetails = Union[List[str], Dict[str, List[str]]]


class LifecycleError(Exception):
    """Base class for every business error raised by the service layer."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(LifecycleError):
    """Raised when input fails structural or business rules."""

    def __init__(self, errors: ErrorDetails, message: str = "Validation failed.") -> None:
        super().__init__(message)
        self.errors = errors

    @property
    def messages(self) -> List[str]:
        if isinstance(self.errors, dict):
            return [msg for messages in self.errors.values() for msg in messages]
        return list(self.errors)


class IllegalTransitionError(LifecycleError):
    """Raised when a requested state change violates the state machine."""

    def __init__(self, current: str, attempted: str, message: str) -> None:
        super().__init__(message)
        self.current = current
        self.attempted = attempted


class CapacityConflictError(LifecycleError):
    """Raised when a confirmation loses the race for the last seat."""

    def __init__(self, event_id: str, capacity: int, message: Optional[str] = None) -> None:
        super().__init__(
            message
            or f"Event {event_id} is at capacity ({capacity}); the seat was taken."
        )
        self.event_id = event_id
        self.capacity = capacity


class CollaboratorFailure(LifecycleError):
    """Raised when a persistence, notification or rendering call fails."""


class NotFoundError(LookupError):
    """Raised when a resource cannot be located."""

    def __init__(self, resource: str, identifier: str) -> None:
        super().__init__(f"{resource} {identifier} not found")
        self.resource = resource
        self.identifier = identifier


class DuplicateRegistrationError(LifecycleError):
    """Raised when an attendee is already registered for the event."""


class RegistrationClosedError(LifecycleError):
    """Raised when registrations are closed for an event."""
