from incident_desk.schemas.sla import (
    SlaClassification,
    SlaThresholds,
    SlaEvaluation,
    SlaComplianceRow,
    CurrentBreach,
    SlaConfigUpdate,
)

__all__ = [
    "SlaClassification",
    "SlaThresholds",
    "SlaEvaluation",
    "SlaComplianceRow",
    "CurrentBreach",
    "SlaConfigUpdate",
]
