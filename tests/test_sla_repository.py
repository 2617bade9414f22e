"""
Tests for SLA database access

Tests cover:
- Fetching open tickets with deadlines
- Alert records and the deduplication lookup
- Reading threshold and per-priority configuration
- Updating SLA configuration
- Compliance and current-breach reporting
"""
import pytest
from datetime import timedelta
from unittest.mock import MagicMock, patch

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from incident_desk.core.exceptions import AlertPersistenceError, ConfigurationLoadError
from incident_desk.models.sla import AlertKind, SlaAlert, SlaConfig
from incident_desk.models.ticket import TicketPriority, TicketStatus
from incident_desk.models.user import User
from incident_desk.services.protocols import TicketRepository
from incident_desk.services.sla_repository import SLA_ALERTS_SETTING_KEY, SlaRepository
from tests.conftest import (
    BASE_TIME,
    SettingFactory,
    SlaAlertFactory,
    SlaConfigFactory,
    TicketFactory,
)


# -----------------------------------------------------------------------------
# Active Ticket Tests
# -----------------------------------------------------------------------------

class TestFetchActiveTickets:
    """Tests for selecting tickets to evaluate."""

    def test_implements_ticket_repository(self):
        assert isinstance(SlaRepository(MagicMock()), TicketRepository)

    def test_protocol_covers_reporting_and_configuration(self):
        for name in ("get_sla_compliance", "get_current_breaches", "update_sla_configuration"):
            assert hasattr(TicketRepository, name)

    @pytest.mark.asyncio
    async def test_only_open_tickets_with_deadline_earliest_first(
        self,
        db_session: AsyncSession,
        agent_user: User,
        reporter_user: User
    ):
        later = await TicketFactory.create(
            db_session, reporter_user.id, agent_user.id, allotted_hours=48
        )
        sooner = await TicketFactory.create(
            db_session, reporter_user.id, agent_user.id,
            status=TicketStatus.IN_PROGRESS, allotted_hours=4
        )
        await TicketFactory.create(
            db_session, reporter_user.id, status=TicketStatus.RESOLVED, allotted_hours=1
        )
        await TicketFactory.create(
            db_session, reporter_user.id, status=TicketStatus.CLOSED, allotted_hours=1
        )
        await TicketFactory.create(db_session, reporter_user.id)  # no deadline

        tickets = await SlaRepository(db_session).fetch_active_tickets_with_deadline()

        assert [t.id for t in tickets] == [sooner.id, later.id]
        assert tickets[0].assignee.email == "agent@test.com"
        assert tickets[0].reporter.email == "reporter@test.com"

    @pytest.mark.asyncio
    async def test_empty_when_nothing_is_open(self, db_session: AsyncSession):
        assert await SlaRepository(db_session).fetch_active_tickets_with_deadline() == []


# -----------------------------------------------------------------------------
# Alert Record Tests
# -----------------------------------------------------------------------------

class TestAlertRecords:
    """Tests for writing and finding SLA alerts."""

    @pytest.mark.asyncio
    async def test_record_then_exists(self, db_session: AsyncSession, reporter_user: User):
        ticket = await TicketFactory.create(db_session, reporter_user.id, allotted_hours=24)
        repository = SlaRepository(db_session)
        now = BASE_TIME + timedelta(hours=20)

        alert = await repository.record_alert(ticket.id, AlertKind.WARNING, {"hours_remaining": 4.0}, now=now)

        assert alert.id is not None
        assert await repository.alert_exists(ticket.id, AlertKind.WARNING, now=now + timedelta(hours=1))
        assert not await repository.alert_exists(ticket.id, AlertKind.CRITICAL, now=now)

        stored = (await db_session.execute(select(SlaAlert))).scalars().all()
        assert len(stored) == 1
        assert stored[0].details == {"hours_remaining": 4.0}

    @pytest.mark.asyncio
    async def test_old_alert_is_outside_window(self, db_session: AsyncSession, reporter_user: User):
        ticket = await TicketFactory.create(db_session, reporter_user.id, allotted_hours=240)
        await SlaAlertFactory.create(db_session, ticket.id, AlertKind.WARNING, created_at=BASE_TIME)
        repository = SlaRepository(db_session)

        assert await repository.alert_exists(
            ticket.id, AlertKind.WARNING, window_hours=24, now=BASE_TIME + timedelta(hours=23)
        )
        assert not await repository.alert_exists(
            ticket.id, AlertKind.WARNING, window_hours=24, now=BASE_TIME + timedelta(hours=25)
        )

    @pytest.mark.asyncio
    async def test_alerts_are_per_ticket(self, db_session: AsyncSession, reporter_user: User):
        first = await TicketFactory.create(db_session, reporter_user.id, allotted_hours=24)
        second = await TicketFactory.create(db_session, reporter_user.id, allotted_hours=24)
        await SlaAlertFactory.create(db_session, first.id, AlertKind.BREACH)

        assert not await SlaRepository(db_session).alert_exists(
            second.id, AlertKind.BREACH, now=BASE_TIME
        )

    @pytest.mark.asyncio
    async def test_record_failure_raises_persistence_error(
        self,
        db_session: AsyncSession,
        reporter_user: User
    ):
        ticket = await TicketFactory.create(db_session, reporter_user.id, allotted_hours=24)
        repository = SlaRepository(db_session)

        with patch.object(db_session, "commit", side_effect=SQLAlchemyError("disk I/O error")):
            with pytest.raises(AlertPersistenceError) as exc_info:
                await repository.record_alert(ticket.id, AlertKind.BREACH, {})

        assert exc_info.value.ticket_id == ticket.id
        assert exc_info.value.kind == "breach"
        assert "disk I/O error" in exc_info.value.details["error"]


# -----------------------------------------------------------------------------
# Configuration Tests
# -----------------------------------------------------------------------------

class TestThresholdConfig:
    """Tests for reading the sla_alerts setting."""

    @pytest.mark.asyncio
    async def test_missing_setting_is_empty(self, db_session: AsyncSession):
        result = await SlaRepository(db_session).load_threshold_config()

        assert result.is_ok()
        assert result.unwrap() == {}

    @pytest.mark.asyncio
    async def test_setting_fields_are_mapped(self, db_session: AsyncSession):
        await SettingFactory.create(
            db_session,
            SLA_ALERTS_SETTING_KEY,
            {"warning_threshold": 0.7, "critical_threshold": 0.9, "enabled": True}
        )

        result = await SlaRepository(db_session).load_threshold_config()

        assert result.unwrap() == {"warning_ratio": 0.7, "critical_ratio": 0.9}

    @pytest.mark.asyncio
    async def test_partial_setting(self, db_session: AsyncSession):
        await SettingFactory.create(db_session, SLA_ALERTS_SETTING_KEY, {"critical_threshold": 1})

        result = await SlaRepository(db_session).load_threshold_config()

        assert result.unwrap() == {"critical_ratio": 1.0}

    @pytest.mark.asyncio
    async def test_non_object_setting_is_error(self, db_session: AsyncSession):
        await SettingFactory.create(db_session, SLA_ALERTS_SETTING_KEY, [0.8, 0.95])

        result = await SlaRepository(db_session).load_threshold_config()

        assert result.is_err()
        assert isinstance(result.error, ConfigurationLoadError)

    @pytest.mark.asyncio
    async def test_non_numeric_threshold_is_error(self, db_session: AsyncSession):
        await SettingFactory.create(db_session, SLA_ALERTS_SETTING_KEY, {"warning_threshold": "high"})

        result = await SlaRepository(db_session).load_threshold_config()

        assert result.is_err()
        assert result.unwrap_or({"fallback": True}) == {"fallback": True}


class TestPriorityConfig:
    """Tests for per-priority resolution hours."""

    @pytest.mark.asyncio
    async def test_only_active_configs(self, db_session: AsyncSession):
        await SlaConfigFactory.create(db_session, TicketPriority.HIGH, resolution_time_hours=8)
        await SlaConfigFactory.create(
            db_session, TicketPriority.LOW, resolution_time_hours=200, is_active=False
        )

        result = await SlaRepository(db_session).load_priority_resolution_hours()

        assert result.unwrap() == {"high": 8}

    @pytest.mark.asyncio
    async def test_update_creates_missing_config(self, db_session: AsyncSession):
        repository = SlaRepository(db_session)

        config = await repository.update_sla_configuration("critical", 1, 2)

        assert config.priority == TicketPriority.CRITICAL
        assert config.resolution_time_hours == 2
        assert (await repository.load_priority_resolution_hours()).unwrap() == {"critical": 2}

    @pytest.mark.asyncio
    async def test_update_changes_existing_config(self, db_session: AsyncSession):
        existing = await SlaConfigFactory.create(db_session, TicketPriority.MEDIUM, 8, 72)

        config = await SlaRepository(db_session).update_sla_configuration("medium", 6, 48)

        assert config.id == existing.id
        rows = (await db_session.execute(select(SlaConfig))).scalars().all()
        assert len(rows) == 1
        assert rows[0].response_time_hours == 6
        assert rows[0].resolution_time_hours == 48

    @pytest.mark.asyncio
    async def test_update_unknown_priority_rejected(self, db_session: AsyncSession):
        with pytest.raises(ValueError):
            await SlaRepository(db_session).update_sla_configuration("urgent", 1, 2)


# -----------------------------------------------------------------------------
# Reporting Tests
# -----------------------------------------------------------------------------

class TestReporting:
    """Tests for compliance and current-breach queries."""

    async def _create_history(self, db: AsyncSession, reporter_id: str, assignee_id: str):
        now = BASE_TIME
        # High: one resolved in time, one resolved late, one open and overdue
        await TicketFactory.create(
            db, reporter_id, priority=TicketPriority.HIGH, status=TicketStatus.RESOLVED,
            created_at=now - timedelta(days=2), allotted_hours=24,
            resolved_at=now - timedelta(days=2) + timedelta(hours=10)
        )
        await TicketFactory.create(
            db, reporter_id, priority=TicketPriority.HIGH, status=TicketStatus.CLOSED,
            created_at=now - timedelta(days=3), allotted_hours=24,
            resolved_at=now - timedelta(days=3) + timedelta(hours=30)
        )
        overdue = await TicketFactory.create(
            db, reporter_id, assignee_id, title="Overdue", priority=TicketPriority.HIGH,
            created_at=now - timedelta(days=2), allotted_hours=24
        )
        # Outside the 30 day window
        await TicketFactory.create(
            db, reporter_id, priority=TicketPriority.HIGH, status=TicketStatus.RESOLVED,
            created_at=now - timedelta(days=40), allotted_hours=24,
            resolved_at=now - timedelta(days=40) + timedelta(hours=1)
        )
        # Low: resolved in time
        await TicketFactory.create(
            db, reporter_id, priority=TicketPriority.LOW, status=TicketStatus.RESOLVED,
            created_at=now - timedelta(days=1), allotted_hours=120,
            resolved_at=now - timedelta(days=1) + timedelta(hours=5)
        )
        # Open and not yet due
        await TicketFactory.create(
            db, reporter_id, priority=TicketPriority.LOW,
            created_at=now - timedelta(hours=1), allotted_hours=120
        )
        return overdue

    @pytest.mark.asyncio
    async def test_compliance_by_priority(
        self,
        db_session: AsyncSession,
        agent_user: User,
        reporter_user: User
    ):
        await self._create_history(db_session, reporter_user.id, agent_user.id)

        rows = await SlaRepository(db_session).get_sla_compliance("30d", now=BASE_TIME)

        assert [r.priority for r in rows] == ["high", "low"]
        high, low = rows
        assert high.total_tickets == 3
        assert high.within_sla == 1
        assert high.breached_sla == 1
        assert high.currently_breached == 1
        assert high.compliance_rate == 33
        assert high.avg_resolution_hours == pytest.approx(20)
        assert low.total_tickets == 2
        assert low.within_sla == 1
        assert low.compliance_rate == 50
        assert low.avg_resolution_hours == pytest.approx(5)

    @pytest.mark.asyncio
    async def test_unknown_timeframe_covers_everything(
        self,
        db_session: AsyncSession,
        agent_user: User,
        reporter_user: User
    ):
        await self._create_history(db_session, reporter_user.id, agent_user.id)

        rows = await SlaRepository(db_session).get_sla_compliance("all", now=BASE_TIME)

        assert rows[0].total_tickets == 4

    @pytest.mark.asyncio
    async def test_current_breaches(
        self,
        db_session: AsyncSession,
        agent_user: User,
        reporter_user: User
    ):
        overdue = await self._create_history(db_session, reporter_user.id, agent_user.id)

        breaches = await SlaRepository(db_session).get_current_breaches(now=BASE_TIME)

        assert len(breaches) == 1
        breach = breaches[0]
        assert breach.id == overdue.id
        assert breach.title == "Overdue"
        assert breach.priority == "high"
        assert breach.status == "open"
        assert breach.hours_overdue == pytest.approx(24)
        assert breach.assignee_name == "Agent Smith"
        assert breach.assignee_email == "agent@test.com"
