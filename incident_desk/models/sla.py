from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Enum as SQLEnum, Boolean, JSON, Index, Text
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
import enum
from incident_desk.core.database import Base
from incident_desk.models.ticket import TicketPriority


class AlertKind(str, enum.Enum):
    WARNING = "warning"
    CRITICAL = "critical"
    BREACH = "breach"


class SlaConfig(Base):
    """Per-priority SLA targets."""
    __tablename__ = "sla_configs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    priority = Column(SQLEnum(TicketPriority), nullable=False, index=True)

    # SLA targets (in hours)
    response_time_hours = Column(Integer, nullable=False)
    resolution_time_hours = Column(Integer, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SystemSetting(Base):
    """Key/value application settings stored as JSON."""
    __tablename__ = "settings"

    key = Column(String, primary_key=True)
    value = Column(JSON, nullable=False)
    description = Column(Text)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SlaAlert(Base):
    """Record that a ticket crossed an SLA threshold. Written once, never updated."""
    __tablename__ = "sla_alerts"
    __table_args__ = (
        Index("ix_sla_alerts_ticket_kind_created", "ticket_id", "kind", "created_at"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    ticket_id = Column(String, ForeignKey("tickets.id"), nullable=False, index=True)
    kind = Column(SQLEnum(AlertKind), nullable=False)

    # hours_remaining / hours_overdue and the deadline snapshot
    details = Column(JSON)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    ticket = relationship("Ticket", back_populates="sla_alerts")
