"""
Core Exceptions

Error taxonomy for the SLA engine. Only ``MonitorStartupError`` is meant to
reach a caller; the others are raised by collaborators and handled inside
the breach-check pass.
"""

from typing import Optional


class IncidentDeskError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ConfigurationLoadError(IncidentDeskError):
    """Threshold or per-priority configuration could not be read or is invalid."""


class AlertPersistenceError(IncidentDeskError):
    """An SLA alert record could not be written."""

    def __init__(self, ticket_id: str, kind: str, details: Optional[dict] = None):
        self.ticket_id = ticket_id
        self.kind = kind
        super().__init__(f"Failed to record {kind} alert for ticket {ticket_id}", details)


class NotificationDeliveryError(IncidentDeskError):
    """A notification could not be delivered to a user."""

    def __init__(self, user_id: str, ticket_id: str, details: Optional[dict] = None):
        self.user_id = user_id
        self.ticket_id = ticket_id
        super().__init__(f"Failed to notify user {user_id} about ticket {ticket_id}", details)


class MonitorStartupError(IncidentDeskError):
    """The SLA monitor could not be started; no monitoring will happen."""
