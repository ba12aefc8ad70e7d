"""
Core Exceptions
===============

One hierarchy for every failure the services raise. Each class carries the
HTTP status the API answers with; the chat router turns the user-visible
ones into a reply in the requester's channel instead.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    status_code = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Persistence failure. The step that raised it must not notify anyone."""

    status_code = 503


class ValidationException(ApplicationException):
    """Malformed input, or a team that is not assigned to the ticket."""

    status_code = 422


class ResourceNotFoundException(ApplicationException):
    """Ticket (or other resource) does not exist."""

    status_code = 404

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class PermissionDeniedException(DomainException):
    """Requester is neither the reporter nor an admin."""

    status_code = 403

    def __init__(self, user_id: str, action: str, details: Optional[dict] = None):
        self.user_id = user_id
        self.action = action
        super().__init__(
            f"User '{user_id}' is not allowed to {action}",
            details or {"user_id": user_id, "action": action}
        )


class PreconditionFailedException(DomainException):
    """Ticket is in the wrong state for the requested transition."""

    status_code = 409

    def __init__(
        self,
        ticket_id: int,
        message: str,
        state: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.ticket_id = ticket_id
        self.state = state
        super().__init__(
            message,
            details or {"ticket_id": ticket_id, "state": state}
        )


class AlreadyConfirmedException(PreconditionFailedException):
    """Team already has a confirmation on this ticket."""

    def __init__(self, ticket_id: int, team: str, details: Optional[dict] = None):
        self.team = team
        super().__init__(
            ticket_id,
            f"Team '{team}' already confirmed ticket {ticket_id}",
            details=details or {"ticket_id": ticket_id, "team": team}
        )


class ConfigurationException(ApplicationException):
    """Keyword or user directory file could not be loaded."""


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    status_code = 502

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class TransportException(ExternalServiceException):
    """A message could not be delivered to a chat channel."""

    def __init__(self, channel_id: str, message: str, details: Optional[dict] = None):
        self.channel_id = channel_id
        super().__init__(
            "Chat Transport",
            message,
            details or {"channel_id": channel_id}
        )
