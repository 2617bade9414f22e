"""
Incident Desk Services Module

Contains the SLA engine services.
"""

from incident_desk.services.sla_service import SlaService
from incident_desk.services.sla_repository import SlaRepository
from incident_desk.services.notification_service import NotificationService
from incident_desk.services.protocols import Notifier, TicketRepository

__all__ = [
    "SlaService",
    "SlaRepository",
    "NotificationService",
    "Notifier",
    "TicketRepository",
]
