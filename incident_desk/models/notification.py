"""
Notification Models

In-app notifications shown to users, written by the SLA engine's notifier.
"""

from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Enum as SQLEnum, Text
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
import enum
from incident_desk.core.database import Base


class NotificationType(str, enum.Enum):
    """Types of events that can trigger notifications."""
    SLA_WARNING = "sla_warning"
    SLA_CRITICAL = "sla_critical"
    SLA_BREACH = "sla_breach"


class Notification(Base):
    """In-app notification for a single user."""
    __tablename__ = "notifications"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    ticket_id = Column(String, ForeignKey("tickets.id"), index=True)

    type = Column(SQLEnum(NotificationType), nullable=False, index=True)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)

    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    # Relationships
    user = relationship("User")
    ticket = relationship("Ticket")
