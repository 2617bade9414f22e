"""
SLA Service Module

Runs breach-check passes over open tickets, records deduplicated SLA alerts,
dispatches notifications and computes SLA deadlines for new tickets.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from incident_desk.core.config import settings
from incident_desk.core.exceptions import AlertPersistenceError
from incident_desk.models.notification import NotificationType
from incident_desk.models.sla import AlertKind
from incident_desk.schemas.sla import (
    CurrentBreach,
    SlaClassification,
    SlaComplianceRow,
    SlaConfigUpdate,
    SlaEvaluation,
    SlaThresholds,
)
from incident_desk.services.protocols import Notifier, TicketRepository
from incident_desk.services.sla_calculator import add_business_hours, evaluate_ticket


logger = logging.getLogger(__name__)

# Used when a priority has neither persisted nor configured hours
UNKNOWN_PRIORITY_HOURS = 72

# One outbound message: (user_id, type, title, message)
OutboundMessage = Tuple[str, NotificationType, str, str]


@dataclass(frozen=True)
class TicketSnapshot:
    """
    The ticket fields a pass reads, copied out of the ORM row.

    A failed write rolls the session back and expires every loaded row, so
    the pass never touches the rows again after the fetch.
    """
    id: Any
    title: str
    created_at: Optional[datetime]
    sla_target: Optional[datetime]
    assignee_id: Optional[str]
    reporter_id: Optional[str]

    @classmethod
    def from_ticket(cls, ticket: Any) -> "TicketSnapshot":
        return cls(
            id=getattr(ticket, "id", None),
            title=getattr(ticket, "title", "") or "",
            created_at=getattr(ticket, "created_at", None),
            sla_target=getattr(ticket, "sla_target", None),
            assignee_id=getattr(ticket, "assignee_id", None),
            reporter_id=getattr(ticket, "reporter_id", None)
        )


def default_thresholds() -> SlaThresholds:
    """Thresholds from the environment, before any persisted overrides."""
    return SlaThresholds(
        warning_ratio=settings.SLA_WARNING_RATIO,
        critical_ratio=settings.SLA_CRITICAL_RATIO
    )


def format_hours(hours: float) -> str:
    """Render hours with at most two decimals (4.0 -> "4", 1.257 -> "1.26")."""
    return f"{hours:.2f}".rstrip("0").rstrip(".")


class SlaService:
    """
    Service for SLA breach detection and deadline calculation.

    Provides methods for:
    - Loading alert thresholds
    - Running a breach-check pass over open tickets
    - Dispatching SLA notifications
    - Calculating SLA deadlines for new tickets
    - SLA compliance reporting
    """

    def __init__(
        self,
        repository: TicketRepository,
        notifier: Notifier,
        thresholds: Optional[SlaThresholds] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
        dedup_window_hours: Optional[int] = None,
        default_resolution_hours: Optional[Dict[str, int]] = None
    ):
        """
        Initialize the SLA service.

        Args:
            repository: Ticket/alert storage
            notifier: Delivers messages to users
            thresholds: Alert thresholds (defaults from settings)
            clock: Returns the current naive-UTC time
            dedup_window_hours: Window in which an alert kind is not repeated
            default_resolution_hours: Priority -> hours used when nothing is persisted
        """
        self.repository = repository
        self.notifier = notifier
        self.base_thresholds = thresholds or default_thresholds()
        self.thresholds = self.base_thresholds
        self.clock = clock
        self.dedup_window_hours = dedup_window_hours or settings.SLA_ALERT_DEDUP_HOURS
        self.default_resolution_hours = default_resolution_hours or settings.default_resolution_hours

    # ========================================================================
    # Configuration
    # ========================================================================

    async def load_thresholds(self) -> SlaThresholds:
        """
        Apply persisted threshold overrides on top of the base thresholds.

        Each load starts again from the base, so overrides removed from
        storage stop applying. Unreadable or invalid configuration falls back
        to the base thresholds and is logged as a warning.

        Returns:
            The thresholds now in effect
        """
        result = await self.repository.load_threshold_config()

        if result.is_err():
            logger.warning(f"Failed to load SLA thresholds, using defaults: {result.error}")
            self.thresholds = self.base_thresholds
            return self.thresholds

        overrides = result.unwrap()
        if not overrides:
            self.thresholds = self.base_thresholds
            return self.thresholds

        try:
            self.thresholds = SlaThresholds.model_validate({**self.base_thresholds.model_dump(), **overrides})
        except ValidationError as e:
            logger.warning(f"Invalid SLA thresholds {overrides}, using defaults: {e}")
            self.thresholds = self.base_thresholds
            return self.thresholds

        logger.info(
            f"Loaded SLA thresholds: warning={self.thresholds.warning_ratio}, "
            f"critical={self.thresholds.critical_ratio}"
        )
        return self.thresholds

    # ========================================================================
    # Breach check
    # ========================================================================

    def evaluate(self, ticket: Any, now: datetime) -> SlaEvaluation:
        """Classify a ticket against the current thresholds."""
        return evaluate_ticket(
            ticket_id=ticket.id,
            created_at=ticket.created_at,
            sla_target=ticket.sla_target,
            now=now,
            thresholds=self.thresholds
        )

    async def run_breach_check(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Evaluate every open ticket with a deadline and raise new alerts.

        All tickets are judged against the same instant. A failure on one
        ticket is logged and does not stop the pass. A failure fetching the
        tickets propagates to the caller.

        Args:
            now: Instant to evaluate at (defaults to the service clock)

        Returns:
            Summary of the pass:
            - total_processed, ok, warnings, critical, breaches: int
            - alerts_raised, duplicates_skipped: int
            - notifications_sent, notifications_failed: int
            - errors: List[str]
            - processed_at: ISO timestamp of the evaluation instant
        """
        now = now or self.clock()
        tickets = await self.repository.fetch_active_tickets_with_deadline()

        summary = {
            "total_processed": 0,
            "ok": 0,
            "warnings": 0,
            "critical": 0,
            "breaches": 0,
            "alerts_raised": 0,
            "duplicates_skipped": 0,
            "notifications_sent": 0,
            "notifications_failed": 0,
            "errors": [],
            "processed_at": now.isoformat(),
        }
        counters = {
            SlaClassification.OK: "ok",
            SlaClassification.WARNING: "warnings",
            SlaClassification.CRITICAL: "critical",
            SlaClassification.BREACH: "breaches",
        }

        snapshots: List[TicketSnapshot] = []
        for ticket in tickets:
            try:
                snapshots.append(TicketSnapshot.from_ticket(ticket))
            except Exception as e:
                error_msg = f"Error reading ticket for SLA check: {str(e)}"
                logger.error(error_msg, exc_info=True)
                summary["errors"].append(error_msg)

        for ticket in snapshots:
            try:
                evaluation = self.evaluate(ticket, now)
                summary["total_processed"] += 1
                summary[counters[evaluation.classification]] += 1

                if evaluation.classification == SlaClassification.OK:
                    continue

                outcome = await self._raise_alert(ticket, evaluation, now)
                if outcome is None:
                    summary["duplicates_skipped"] += 1
                    continue

                sent, failed = outcome
                summary["alerts_raised"] += 1
                summary["notifications_sent"] += sent
                summary["notifications_failed"] += failed

            except Exception as e:
                error_msg = f"Error evaluating SLA for ticket {ticket.id}: {str(e)}"
                logger.error(error_msg, exc_info=True)
                summary["errors"].append(error_msg)

        logger.info(
            f"SLA breach check completed: processed={summary['total_processed']}, "
            f"warnings={summary['warnings']}, critical={summary['critical']}, "
            f"breaches={summary['breaches']}, alerts={summary['alerts_raised']}, "
            f"errors={len(summary['errors'])}"
        )

        return summary

    async def _raise_alert(
        self,
        ticket: Any,
        evaluation: SlaEvaluation,
        now: datetime
    ) -> Optional[Tuple[int, int]]:
        """
        Record and dispatch an alert unless one of the same kind is recent.

        Returns:
            None if deduplicated, otherwise (notifications sent, failed)
        """
        kind = AlertKind(evaluation.classification.value)

        try:
            exists = await self.repository.alert_exists(
                ticket.id, kind, window_hours=self.dedup_window_hours, now=now
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to check existing {kind.value} alert for ticket {ticket.id}: {e}")
            exists = False

        if exists:
            logger.debug(f"SLA {kind.value} alert for ticket {ticket.id} already raised, skipping")
            return None

        logger.warning(
            f"SLA {kind.value} for ticket {ticket.id}",
            extra={
                "ticket_id": ticket.id,
                "alert_kind": kind.value,
                "hours_remaining": evaluation.hours_remaining,
                "hours_overdue": evaluation.hours_overdue,
                "event_type": "sla_alert",
            }
        )

        try:
            await self.repository.record_alert(ticket.id, kind, self._alert_details(evaluation), now=now)
        except AlertPersistenceError as e:
            # Delivery does not depend on the dedup record
            logger.error(f"{e.message}; notifications will still be sent: {e.details}")

        return await self.dispatch_notifications(ticket, evaluation)

    @staticmethod
    def _alert_details(evaluation: SlaEvaluation) -> Dict[str, Any]:
        details: Dict[str, Any] = {"sla_target": evaluation.sla_target.isoformat()}
        if evaluation.classification == SlaClassification.BREACH:
            details["hours_overdue"] = evaluation.hours_overdue
        else:
            details["hours_remaining"] = evaluation.hours_remaining
        return details

    # ========================================================================
    # Notification dispatch
    # ========================================================================

    def build_messages(self, ticket: Any, evaluation: SlaEvaluation) -> List[OutboundMessage]:
        """
        Build the recipient-specific messages for a classified ticket.

        Breaches go to the assignee and, separately, to the reporter when the
        reporter is someone else. Warnings go to the assignee only.
        """
        title = getattr(ticket, "title", "")
        assignee_id = getattr(ticket, "assignee_id", None)
        reporter_id = getattr(ticket, "reporter_id", None)
        messages: List[OutboundMessage] = []

        if evaluation.classification == SlaClassification.BREACH:
            overdue = format_hours(evaluation.hours_overdue or 0.0)
            if assignee_id:
                messages.append((
                    assignee_id,
                    NotificationType.SLA_BREACH,
                    f"SLA Breach - Ticket #{ticket.id}",
                    f'Ticket "{title}" has exceeded its SLA by {overdue} hours. '
                    f"Immediate attention required."
                ))
            if reporter_id and reporter_id != assignee_id:
                messages.append((
                    reporter_id,
                    NotificationType.SLA_BREACH,
                    f"SLA Breach Alert - Your Ticket #{ticket.id}",
                    f'Your ticket "{title}" has exceeded its SLA target. '
                    f"We are working to resolve this urgently."
                ))
            return messages

        if not assignee_id:
            return messages

        remaining = format_hours(evaluation.hours_remaining or 0.0)
        if evaluation.classification == SlaClassification.CRITICAL:
            messages.append((
                assignee_id,
                NotificationType.SLA_CRITICAL,
                f"Critical SLA Warning - Ticket #{ticket.id}",
                f'Ticket "{title}" will breach SLA in {remaining} hours. Urgent action needed.'
            ))
        elif evaluation.classification == SlaClassification.WARNING:
            messages.append((
                assignee_id,
                NotificationType.SLA_WARNING,
                f"SLA Warning - Ticket #{ticket.id}",
                f'Ticket "{title}" will breach SLA in {remaining} hours.'
            ))

        return messages

    async def dispatch_notifications(self, ticket: Any, evaluation: SlaEvaluation) -> Tuple[int, int]:
        """
        Send every message for a classified ticket.

        Each recipient is attempted independently; failures are logged and
        counted, never raised.

        Returns:
            (sent, failed)
        """
        sent = 0
        failed = 0

        for user_id, notification_type, title, message in self.build_messages(ticket, evaluation):
            try:
                await self.notifier.notify(user_id, ticket.id, notification_type, title, message)
                sent += 1
            except Exception as e:
                failed += 1
                logger.error(
                    f"Failed to send {notification_type.value} notification to user {user_id} "
                    f"for ticket {ticket.id}: {e}"
                )

        return sent, failed

    # ========================================================================
    # Deadline calculation
    # ========================================================================

    async def get_resolution_hours(self, priority: Any) -> float:
        """
        Resolution hours for a priority: persisted config first, then defaults.
        """
        key = getattr(priority, "value", priority)
        result = await self.repository.load_priority_resolution_hours()

        if result.is_err():
            logger.warning(f"Failed to load SLA configs, using default hours: {result.error}")

        configured = result.unwrap_or({})
        if key in configured:
            return configured[key]
        return self.default_resolution_hours.get(key, UNKNOWN_PRIORITY_HOURS)

    async def calculate_sla_target(
        self,
        priority: Any,
        business_hours_only: bool = False,
        hours: Optional[float] = None,
        now: Optional[datetime] = None
    ) -> datetime:
        """
        Calculate the SLA deadline for a ticket opened now.

        Never raises: if anything goes wrong the deadline falls back to
        ``SLA_FALLBACK_HOURS`` wall-clock hours from now.

        Args:
            priority: Ticket priority (enum or value)
            business_hours_only: Count only weekday business hours
            hours: Explicit resolution hours, bypassing configuration
            now: Start time (defaults to the service clock)

        Returns:
            Deadline timestamp
        """
        now = now or self.clock()

        try:
            if hours is None:
                hours = await self.get_resolution_hours(priority)

            return add_business_hours(
                now,
                hours,
                business_hours_only,
                day_start_hour=settings.BUSINESS_DAY_START_HOUR,
                day_end_hour=settings.BUSINESS_DAY_END_HOUR
            )
        except Exception as e:
            logger.error(f"Failed to calculate SLA target for priority {priority}: {e}", exc_info=True)
            return now + timedelta(hours=settings.SLA_FALLBACK_HOURS)

    # ========================================================================
    # Reporting and configuration
    # ========================================================================

    async def get_sla_compliance(self, timeframe: str = "30d") -> List[SlaComplianceRow]:
        """SLA compliance per priority over the given timeframe."""
        return await self.repository.get_sla_compliance(timeframe, now=self.clock())

    async def get_current_breaches(self) -> List[CurrentBreach]:
        """Open tickets already past their deadline."""
        return await self.repository.get_current_breaches(now=self.clock())

    async def update_sla_configuration(
        self,
        priority: str,
        response_hours: int,
        resolution_hours: int
    ):
        """
        Update a priority's SLA targets.

        Raises:
            pydantic.ValidationError: if the hours are not positive
        """
        update = SlaConfigUpdate(
            priority=getattr(priority, "value", priority),
            response_time_hours=response_hours,
            resolution_time_hours=resolution_hours
        )
        return await self.repository.update_sla_configuration(
            update.priority, update.response_time_hours, update.resolution_time_hours
        )
