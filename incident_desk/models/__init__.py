from incident_desk.core.database import Base
from incident_desk.models.user import User, UserRole
from incident_desk.models.ticket import Ticket, TicketStatus, TicketPriority, INACTIVE_STATUSES
from incident_desk.models.sla import SlaConfig, SystemSetting, SlaAlert, AlertKind
from incident_desk.models.notification import Notification, NotificationType

__all__ = [
    "Base",
    "User",
    "UserRole",
    "Ticket",
    "TicketStatus",
    "TicketPriority",
    "INACTIVE_STATUSES",
    "SlaConfig",
    "SystemSetting",
    "SlaAlert",
    "AlertKind",
    "Notification",
    "NotificationType",
]
