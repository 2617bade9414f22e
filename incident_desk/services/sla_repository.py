"""
SLA Repository Module

Database access for the SLA engine: active tickets with deadlines, alert
records used for deduplication, SLA configuration and compliance queries.
"""

from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import and_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from incident_desk.core.exceptions import AlertPersistenceError, ConfigurationLoadError
from incident_desk.core.result import Err, Ok, Result
from incident_desk.models.sla import AlertKind, SlaAlert, SlaConfig, SystemSetting
from incident_desk.models.ticket import INACTIVE_STATUSES, Ticket, TicketPriority
from incident_desk.schemas.sla import CurrentBreach, SlaComplianceRow


logger = logging.getLogger(__name__)

SLA_ALERTS_SETTING_KEY = "sla_alerts"

# Persisted setting field -> SlaThresholds field
_THRESHOLD_FIELDS = {
    "warning_threshold": "warning_ratio",
    "critical_threshold": "critical_ratio",
}

TIMEFRAME_DAYS = {"7d": 7, "30d": 30, "90d": 90}

PRIORITY_ORDER = [
    TicketPriority.CRITICAL,
    TicketPriority.HIGH,
    TicketPriority.MEDIUM,
    TicketPriority.LOW,
]


class SlaRepository:
    """
    Ticket repository used by the SLA engine.

    All methods run against the session passed in; the caller owns it.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ========================================================================
    # Breach-check reads and writes
    # ========================================================================

    async def fetch_active_tickets_with_deadline(self) -> List[Ticket]:
        """
        Get open tickets that have an SLA deadline, earliest deadline first.

        Returns:
            Tickets not resolved or closed, with assignee and reporter loaded
        """
        result = await self.db.execute(
            select(Ticket)
            .options(
                selectinload(Ticket.assignee),
                selectinload(Ticket.reporter)
            )
            .where(
                and_(
                    ~Ticket.status.in_(INACTIVE_STATUSES),
                    Ticket.sla_target.isnot(None)
                )
            )
            .order_by(Ticket.sla_target.asc(), Ticket.id.asc())
        )
        return list(result.scalars().all())

    async def alert_exists(
        self,
        ticket_id: str,
        kind: AlertKind,
        window_hours: int = 24,
        now: Optional[datetime] = None
    ) -> bool:
        """
        Check whether an alert of ``kind`` was recorded for the ticket
        within the last ``window_hours``.
        """
        since = (now or datetime.utcnow()) - timedelta(hours=window_hours)
        try:
            result = await self.db.execute(
                select(SlaAlert.id)
                .where(
                    and_(
                        SlaAlert.ticket_id == ticket_id,
                        SlaAlert.kind == kind,
                        SlaAlert.created_at > since
                    )
                )
                .limit(1)
            )
        except SQLAlchemyError:
            # Leave the session usable for the rest of the pass
            await self.db.rollback()
            raise
        return result.scalar_one_or_none() is not None

    async def record_alert(
        self,
        ticket_id: str,
        kind: AlertKind,
        details: Dict[str, Any],
        now: Optional[datetime] = None
    ) -> SlaAlert:
        """
        Persist one alert record.

        Raises:
            AlertPersistenceError: if the insert or commit fails
        """
        alert = SlaAlert(
            ticket_id=ticket_id,
            kind=kind,
            details=details,
            created_at=now or datetime.utcnow()
        )

        try:
            self.db.add(alert)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise AlertPersistenceError(ticket_id, kind.value, {"error": str(e)}) from e

        return alert

    # ========================================================================
    # Configuration reads
    # ========================================================================

    async def load_threshold_config(self) -> Result[Dict[str, float]]:
        """
        Read persisted threshold overrides from the ``sla_alerts`` setting.

        Returns:
            Ok with a (possibly empty) dict of SlaThresholds field overrides,
            or Err if the setting could not be read or is malformed
        """
        try:
            result = await self.db.execute(
                select(SystemSetting).where(SystemSetting.key == SLA_ALERTS_SETTING_KEY)
            )
            setting = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            return Err(ConfigurationLoadError("Could not read SLA alert settings", {"error": str(e)}))

        if setting is None:
            return Ok({})

        if not isinstance(setting.value, dict):
            return Err(ConfigurationLoadError(
                "SLA alert settings must be a JSON object",
                {"value": setting.value}
            ))

        overrides = {}
        for stored_name, field_name in _THRESHOLD_FIELDS.items():
            value = setting.value.get(stored_name)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                return Err(ConfigurationLoadError(
                    f"SLA setting {stored_name} must be a number",
                    {"value": value}
                ))
            overrides[field_name] = float(value)

        return Ok(overrides)

    async def load_priority_resolution_hours(self) -> Result[Dict[str, int]]:
        """
        Read resolution hours for every priority with an active SLA config.

        Returns:
            Ok with a priority -> hours dict, or Err on database failure
        """
        try:
            result = await self.db.execute(
                select(SlaConfig)
                .where(SlaConfig.is_active == True)
                .order_by(SlaConfig.id.asc())
            )
            configs = result.scalars().all()
        except SQLAlchemyError as e:
            return Err(ConfigurationLoadError("Could not read SLA configs", {"error": str(e)}))

        hours = {}
        for config in configs:
            # First active row per priority wins
            hours.setdefault(config.priority.value, config.resolution_time_hours)
        return Ok(hours)

    async def update_sla_configuration(
        self,
        priority: str,
        response_hours: int,
        resolution_hours: int
    ) -> SlaConfig:
        """
        Update the SLA targets for a priority, creating the row if needed.

        Args:
            priority: Ticket priority value
            response_hours: Target response time in hours
            resolution_hours: Target resolution time in hours

        Returns:
            The updated or created SlaConfig
        """
        priority_enum = TicketPriority(priority)
        result = await self.db.execute(
            select(SlaConfig)
            .where(SlaConfig.priority == priority_enum)
            .order_by(SlaConfig.id.asc())
        )
        configs = result.scalars().all()

        if not configs:
            config = SlaConfig(
                priority=priority_enum,
                response_time_hours=response_hours,
                resolution_time_hours=resolution_hours,
                is_active=True
            )
            self.db.add(config)
            configs = [config]

        for config in configs:
            config.response_time_hours = response_hours
            config.resolution_time_hours = resolution_hours

        await self.db.commit()

        logger.info(
            f"Updated SLA configuration: priority={priority}, "
            f"response={response_hours}h, resolution={resolution_hours}h"
        )
        return configs[0]

    # ========================================================================
    # Reporting
    # ========================================================================

    async def get_sla_compliance(
        self,
        timeframe: str = "30d",
        now: Optional[datetime] = None
    ) -> List[SlaComplianceRow]:
        """
        Summarise SLA compliance per priority.

        Args:
            timeframe: "7d", "30d" or "90d" to filter by creation date;
                anything else covers all tickets
            now: Reference time (defaults to utcnow)

        Returns:
            One row per priority that has tickets, most urgent first
        """
        now = now or datetime.utcnow()
        query = select(Ticket).where(Ticket.sla_target.isnot(None))

        days = TIMEFRAME_DAYS.get(timeframe)
        if days is not None:
            query = query.where(Ticket.created_at >= now - timedelta(days=days))

        result = await self.db.execute(query)
        tickets = result.scalars().all()

        grouped: Dict[TicketPriority, List[Ticket]] = defaultdict(list)
        for ticket in tickets:
            grouped[ticket.priority].append(ticket)

        rows = []
        for priority in PRIORITY_ORDER:
            group = grouped.get(priority)
            if not group:
                continue

            resolved = [t for t in group if t.resolved_at is not None]
            within_sla = sum(1 for t in resolved if t.resolved_at <= t.sla_target)
            breached_sla = len(resolved) - within_sla
            currently_breached = sum(
                1 for t in group if t.resolved_at is None and now > t.sla_target
            )
            avg_resolution_hours = 0.0
            if resolved:
                avg_resolution_hours = sum(
                    (t.resolved_at - t.created_at).total_seconds() / 3600 for t in resolved
                ) / len(resolved)

            rows.append(SlaComplianceRow(
                priority=priority.value,
                total_tickets=len(group),
                within_sla=within_sla,
                breached_sla=breached_sla,
                currently_breached=currently_breached,
                compliance_rate=round(within_sla / len(group) * 100),
                avg_resolution_hours=avg_resolution_hours
            ))

        return rows

    async def get_current_breaches(self, now: Optional[datetime] = None) -> List[CurrentBreach]:
        """
        List open tickets that are already past their SLA deadline.

        Returns:
            Breached tickets, longest overdue first
        """
        now = now or datetime.utcnow()
        result = await self.db.execute(
            select(Ticket)
            .options(selectinload(Ticket.assignee))
            .where(
                and_(
                    ~Ticket.status.in_(INACTIVE_STATUSES),
                    Ticket.sla_target < now
                )
            )
            .order_by(Ticket.sla_target.asc())
        )

        return [
            CurrentBreach(
                id=ticket.id,
                title=ticket.title,
                priority=ticket.priority.value,
                status=ticket.status.value,
                created_at=ticket.created_at,
                sla_target=ticket.sla_target,
                hours_overdue=round((now - ticket.sla_target).total_seconds() / 3600, 2),
                assignee_name=ticket.assignee.name if ticket.assignee else None,
                assignee_email=ticket.assignee.email if ticket.assignee else None
            )
            for ticket in result.scalars().all()
        ]
