"""Collaborator protocols for the SLA engine."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from incident_desk.core.result import Result
from incident_desk.models.notification import NotificationType
from incident_desk.models.sla import AlertKind
from incident_desk.schemas.sla import CurrentBreach, SlaComplianceRow


@runtime_checkable
class TicketRepository(Protocol):
    """
    Storage the SLA engine reads tickets and alert records from.

    ``SlaRepository`` is the database-backed implementation; tests supply
    in-memory fakes.
    """

    async def fetch_active_tickets_with_deadline(self) -> List[Any]:
        """Tickets not resolved/closed with a deadline, earliest deadline first."""
        ...

    async def alert_exists(
        self,
        ticket_id: str,
        kind: AlertKind,
        window_hours: int = 24,
        now: Optional[datetime] = None
    ) -> bool:
        """True if an alert of this kind was recorded within the window."""
        ...

    async def record_alert(
        self,
        ticket_id: str,
        kind: AlertKind,
        details: Dict[str, Any],
        now: Optional[datetime] = None
    ) -> Any:
        """Persist one alert record. Raises AlertPersistenceError on failure."""
        ...

    async def load_threshold_config(self) -> Result[Dict[str, float]]:
        """Persisted warning/critical ratio overrides."""
        ...

    async def load_priority_resolution_hours(self) -> Result[Dict[str, int]]:
        """Persisted priority -> resolution hours."""
        ...

    async def get_sla_compliance(
        self,
        timeframe: str = "30d",
        now: Optional[datetime] = None
    ) -> List[SlaComplianceRow]:
        """Per-priority compliance over a timeframe such as "7d" or "30d"."""
        ...

    async def get_current_breaches(self, now: Optional[datetime] = None) -> List[CurrentBreach]:
        """Open tickets past their deadline, longest overdue first."""
        ...

    async def update_sla_configuration(
        self,
        priority: str,
        response_hours: int,
        resolution_hours: int
    ) -> Any:
        """Create or update the targets for one priority."""
        ...


@runtime_checkable
class Notifier(Protocol):
    """Best-effort delivery of a message to a user."""

    async def notify(
        self,
        user_id: str,
        ticket_id: str,
        kind: NotificationType,
        title: str,
        message: str
    ) -> Any:
        ...
