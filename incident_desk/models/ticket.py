from sqlalchemy import Column, String, DateTime, ForeignKey, Enum as SQLEnum, Text
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
import enum
from incident_desk.core.database import Base


class TicketPriority(str, enum.Enum):
    CRITICAL = "critical"  # Service down
    HIGH = "high"  # Major functionality impacted
    MEDIUM = "medium"  # Minor issue
    LOW = "low"  # Cosmetic or enhancement


class TicketStatus(str, enum.Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


# Tickets in these states are never evaluated against their SLA
INACTIVE_STATUSES = (TicketStatus.RESOLVED, TicketStatus.CLOSED)


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))

    # Ticket info
    title = Column(String, nullable=False)
    description = Column(Text)

    # Classification
    priority = Column(SQLEnum(TicketPriority), nullable=False, default=TicketPriority.MEDIUM, index=True)
    status = Column(SQLEnum(TicketStatus), nullable=False, default=TicketStatus.OPEN, index=True)

    # People
    reporter_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    assignee_id = Column(String, ForeignKey("users.id"), index=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    resolved_at = Column(DateTime)

    # SLA deadline, fixed when the ticket is created
    sla_target = Column(DateTime, index=True)

    # Relationships
    reporter = relationship("User", back_populates="reported_tickets", foreign_keys=[reporter_id])
    assignee = relationship("User", back_populates="assigned_tickets", foreign_keys=[assignee_id])
    sla_alerts = relationship("SlaAlert", back_populates="ticket", cascade="all, delete-orphan", order_by="SlaAlert.created_at")
