"""
SLA Schemas Module

Pydantic schemas for SLA thresholds, evaluations and reporting rows.
"""

from pydantic import BaseModel, Field, model_validator
from datetime import datetime
from enum import Enum
from typing import Optional


class SlaClassification(str, Enum):
    """Outcome of evaluating one ticket against its SLA deadline."""
    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"
    BREACH = "breach"


# ============================================================================
# Threshold Schemas
# ============================================================================

class SlaThresholds(BaseModel):
    """Fractions of allotted time elapsed that trigger warning/critical alerts."""
    warning_ratio: float = Field(0.8, gt=0, le=1, description="Elapsed ratio that raises a warning")
    critical_ratio: float = Field(0.95, gt=0, le=1, description="Elapsed ratio that raises a critical warning")

    @model_validator(mode="after")
    def check_order(self) -> "SlaThresholds":
        if self.warning_ratio > self.critical_ratio:
            raise ValueError("warning_ratio must not exceed critical_ratio")
        return self


# ============================================================================
# Evaluation Schemas
# ============================================================================

class SlaEvaluation(BaseModel):
    """Classification of a single ticket at a single instant."""
    ticket_id: str
    classification: SlaClassification
    sla_target: datetime
    evaluated_at: datetime
    elapsed_ratio: Optional[float] = Field(None, description="None when the allotted time is not positive")
    hours_remaining: Optional[float] = None
    hours_overdue: Optional[float] = None


# ============================================================================
# Reporting Schemas
# ============================================================================

class SlaComplianceRow(BaseModel):
    """SLA compliance for one priority."""
    priority: str
    total_tickets: int
    within_sla: int
    breached_sla: int
    currently_breached: int
    compliance_rate: int = Field(..., description="Percentage of tickets resolved within SLA")
    avg_resolution_hours: float


class CurrentBreach(BaseModel):
    """An open ticket that is past its SLA deadline."""
    id: str
    title: str
    priority: str
    status: str
    created_at: datetime
    sla_target: datetime
    hours_overdue: float
    assignee_name: Optional[str] = None
    assignee_email: Optional[str] = None


class SlaConfigUpdate(BaseModel):
    """Schema for updating a priority's SLA targets."""
    priority: str = Field(..., description="Ticket priority (critical, high, medium, low)")
    response_time_hours: int = Field(..., gt=0, description="Target response time in hours")
    resolution_time_hours: int = Field(..., gt=0, description="Target resolution time in hours")
