"""
Incident Desk Test Configuration

Provides shared fixtures for async testing with:
- In-memory SQLite database
- Session factory for code that opens its own sessions
- Test client with async support
- Sample data factories for users, tickets and SLA configuration
- In-memory repository and notifier fakes for the SLA engine
"""
from datetime import datetime, timedelta
from types import SimpleNamespace
from typing import AsyncGenerator, Any, Dict, List, Optional
import uuid

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from incident_desk.core.database import Base, get_db
from incident_desk.core.exceptions import AlertPersistenceError, NotificationDeliveryError
from incident_desk.core.result import Ok, Result
from incident_desk.main import app
from incident_desk.models.user import User, UserRole
from incident_desk.models.ticket import Ticket, TicketStatus, TicketPriority
from incident_desk.models.sla import AlertKind, SlaAlert, SlaConfig, SystemSetting


# Test database URL - SQLite in-memory with async support
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Wednesday, mid-morning
BASE_TIME = datetime(2024, 1, 10, 10, 0, 0)


@pytest_asyncio.fixture(scope="function")
async def async_engine():
    """Create an async engine for testing with in-memory SQLite."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False}
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client with database override."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# -----------------------------------------------------------------------------
# Data Factories
# -----------------------------------------------------------------------------

class UserFactory:
    """Factory for creating test users."""

    @staticmethod
    async def create(
        db: AsyncSession,
        name: str = "Test User",
        email: str = None,
        role: UserRole = UserRole.USER,
        is_active: bool = True
    ) -> User:
        user = User(
            id=str(uuid.uuid4()),
            name=name,
            email=email or f"user-{uuid.uuid4().hex[:8]}@test.com",
            role=role,
            is_active=is_active
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user


class TicketFactory:
    """Factory for creating test tickets."""

    @staticmethod
    async def create(
        db: AsyncSession,
        reporter_id: str,
        assignee_id: str = None,
        title: str = "Test Ticket",
        priority: TicketPriority = TicketPriority.MEDIUM,
        status: TicketStatus = TicketStatus.OPEN,
        created_at: datetime = None,
        sla_target: datetime = None,
        resolved_at: datetime = None,
        allotted_hours: float = None
    ) -> Ticket:
        created_at = created_at or BASE_TIME
        if sla_target is None and allotted_hours is not None:
            sla_target = created_at + timedelta(hours=allotted_hours)

        ticket = Ticket(
            id=str(uuid.uuid4()),
            title=title,
            description="Test ticket description",
            priority=priority,
            status=status,
            reporter_id=reporter_id,
            assignee_id=assignee_id,
            created_at=created_at,
            updated_at=created_at,
            resolved_at=resolved_at,
            sla_target=sla_target
        )
        db.add(ticket)
        await db.commit()
        await db.refresh(ticket)
        return ticket


class SlaConfigFactory:
    """Factory for creating per-priority SLA configs."""

    @staticmethod
    async def create(
        db: AsyncSession,
        priority: TicketPriority = TicketPriority.HIGH,
        response_time_hours: int = 4,
        resolution_time_hours: int = 24,
        is_active: bool = True
    ) -> SlaConfig:
        config = SlaConfig(
            priority=priority,
            response_time_hours=response_time_hours,
            resolution_time_hours=resolution_time_hours,
            is_active=is_active
        )
        db.add(config)
        await db.commit()
        await db.refresh(config)
        return config


class SettingFactory:
    """Factory for creating key/value settings."""

    @staticmethod
    async def create(db: AsyncSession, key: str, value: Any) -> SystemSetting:
        setting = SystemSetting(key=key, value=value)
        db.add(setting)
        await db.commit()
        return setting


class SlaAlertFactory:
    """Factory for creating SLA alert records."""

    @staticmethod
    async def create(
        db: AsyncSession,
        ticket_id: str,
        kind: AlertKind = AlertKind.WARNING,
        created_at: datetime = None
    ) -> SlaAlert:
        alert = SlaAlert(
            id=str(uuid.uuid4()),
            ticket_id=ticket_id,
            kind=kind,
            details={},
            created_at=created_at or BASE_TIME
        )
        db.add(alert)
        await db.commit()
        return alert


# -----------------------------------------------------------------------------
# In-memory collaborators
# -----------------------------------------------------------------------------

def make_ticket(
    ticket_id: str = "t-1",
    allotted_hours: float = 24,
    created_at: datetime = BASE_TIME,
    sla_target: datetime = None,
    assignee_id: Optional[str] = "agent-1",
    reporter_id: Optional[str] = "reporter-1",
    title: str = "Printer on fire"
) -> SimpleNamespace:
    """Plain ticket object with the attributes the SLA engine reads."""
    if sla_target is None and created_at is not None:
        sla_target = created_at + timedelta(hours=allotted_hours)
    return SimpleNamespace(
        id=ticket_id,
        title=title,
        created_at=created_at,
        sla_target=sla_target,
        assignee_id=assignee_id,
        reporter_id=reporter_id
    )


class FakeTicketRepository:
    """In-memory TicketRepository."""

    def __init__(
        self,
        tickets: List[Any] = None,
        threshold_config: Result = None,
        resolution_hours: Result = None,
        fail_record: bool = False,
        fail_exists: bool = False
    ):
        self.tickets = list(tickets or [])
        self.alerts: List[Dict[str, Any]] = []
        self.threshold_config = threshold_config or Ok({})
        self.resolution_hours = resolution_hours or Ok({})
        self.fail_record = fail_record
        self.fail_exists = fail_exists
        self.record_attempts = 0
        self.priority_hours: Dict[str, Any] = {}

    async def fetch_active_tickets_with_deadline(self) -> List[Any]:
        return list(self.tickets)

    async def alert_exists(self, ticket_id, kind, window_hours=24, now=None) -> bool:
        if self.fail_exists:
            raise SQLAlchemyError("database is locked")
        since = (now or datetime.utcnow()) - timedelta(hours=window_hours)
        return any(
            a["ticket_id"] == ticket_id and a["kind"] == kind and a["created_at"] > since
            for a in self.alerts
        )

    async def record_alert(self, ticket_id, kind, details, now=None):
        self.record_attempts += 1
        if self.fail_record:
            raise AlertPersistenceError(ticket_id, kind.value, {"error": "disk full"})
        alert = {"ticket_id": ticket_id, "kind": kind, "details": details, "created_at": now}
        self.alerts.append(alert)
        return alert

    async def load_threshold_config(self) -> Result:
        return self.threshold_config

    async def load_priority_resolution_hours(self) -> Result:
        return self.resolution_hours

    async def get_sla_compliance(self, timeframe="30d", now=None) -> List[Any]:
        return []

    async def get_current_breaches(self, now=None) -> List[Any]:
        return []

    async def update_sla_configuration(self, priority, response_hours, resolution_hours):
        self.priority_hours[priority] = (response_hours, resolution_hours)
        return self.priority_hours[priority]


class RecordingNotifier:
    """Notifier that records every message and can fail for chosen users."""

    def __init__(self, fail_for: tuple = ()):
        self.sent: List[Dict[str, Any]] = []
        self.fail_for = fail_for

    async def notify(self, user_id, ticket_id, kind, title, message):
        if user_id in self.fail_for:
            raise NotificationDeliveryError(user_id, ticket_id, {"error": "mailbox unavailable"})
        self.sent.append({
            "user_id": user_id,
            "ticket_id": ticket_id,
            "kind": kind,
            "title": title,
            "message": message,
        })
        return {"notification_id": str(uuid.uuid4()), "email": None}


# -----------------------------------------------------------------------------
# Pre-configured Test Data Fixtures
# -----------------------------------------------------------------------------

@pytest_asyncio.fixture
async def agent_user(db_session: AsyncSession) -> User:
    """Create an agent test user."""
    return await UserFactory.create(
        db_session,
        name="Agent Smith",
        email="agent@test.com",
        role=UserRole.AGENT
    )


@pytest_asyncio.fixture
async def reporter_user(db_session: AsyncSession) -> User:
    """Create a reporting test user."""
    return await UserFactory.create(
        db_session,
        name="Rita Reporter",
        email="reporter@test.com",
        role=UserRole.USER
    )


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()
