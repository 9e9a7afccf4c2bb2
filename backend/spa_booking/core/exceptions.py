"""
Custom exceptions for the application.

Centralized error taxonomy for the scheduling core:
- NotFoundError: a referenced entity does not exist
- ValidationFailure: a request was rejected for a business reason
- NotificationError: an outbound message could not be delivered
"""

from typing import Any, Optional


class SchedulingError(Exception):
    """Base class for every error raised by the scheduling core."""


class NotFoundError(SchedulingError):
    """Raised when a client, staff member, treatment, appointment or
    availability block does not exist. Never retried."""

    def __init__(self, resource: str, identifier: Any):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} with ID {identifier} not found")


class ValidationFailure(SchedulingError, ValueError):
    """Raised when a request breaks a scheduling or lifecycle rule.

    ``reason`` is a short machine-comparable string such as
    ``"capacity exceeded"``; ``detail`` is the human-readable explanation.
    """

    def __init__(self, reason: str, detail: Optional[str] = None):
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason}: {detail}" if detail else reason)


class NotificationError(SchedulingError):
    """
    Raised by notification senders when the provider rejects a message
    or cannot be reached. Caught and logged by the dispatcher.
    """

    pass
