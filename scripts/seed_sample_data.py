"""
Sample data seeding script for Incident Desk.
Creates users, SLA configuration and a spread of open and resolved tickets
whose SLA deadlines are computed the same way new tickets get them.
"""
import asyncio
import sys
from pathlib import Path
from datetime import datetime, timedelta
import random

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from incident_desk.core.config import settings
from incident_desk.core.database import AsyncSessionLocal, init_models
from incident_desk.models.user import User, UserRole
from incident_desk.models.ticket import Ticket, TicketStatus, TicketPriority
from incident_desk.models.sla import SlaConfig, SystemSetting
from incident_desk.services.notification_service import NotificationService
from incident_desk.services.sla_repository import SLA_ALERTS_SETTING_KEY, SlaRepository
from incident_desk.services.sla_service import SlaService


USERS_DATA = [
    {"name": "Admin", "email": "admin@incident-desk.local", "role": UserRole.ADMIN},
    {"name": "Dana Agent", "email": "dana@incident-desk.local", "role": UserRole.AGENT},
    {"name": "Lee Agent", "email": "lee@incident-desk.local", "role": UserRole.AGENT},
    {"name": "Sam Reporter", "email": "sam@example.com", "role": UserRole.USER},
    {"name": "Kim Reporter", "email": "kim@example.com", "role": UserRole.USER},
]

# priority -> (response hours, resolution hours)
SLA_CONFIGS_DATA = {
    TicketPriority.CRITICAL: (1, 4),
    TicketPriority.HIGH: (4, 24),
    TicketPriority.MEDIUM: (8, 72),
    TicketPriority.LOW: (24, 120),
}

TICKET_TITLES = [
    "Email server not responding",
    "VPN connection drops every hour",
    "Printer on floor 3 jammed",
    "Cannot log in to payroll portal",
    "Laptop battery swelling",
    "Shared drive permissions missing",
    "Database backup job failed",
    "Website returns 502 errors",
    "New hire account request",
    "Monitor flickering",
]


async def create_users(db: AsyncSession):
    """Create sample users."""
    print("Creating users...")

    users = []
    for data in USERS_DATA:
        result = await db.execute(select(User).where(User.email == data["email"]))
        user = result.scalar_one_or_none()

        if not user:
            user = User(**data)
            db.add(user)
            print(f"  ✓ Created user: {data['email']}")
        else:
            print(f"  ✓ User already exists: {data['email']}")
        users.append(user)

    await db.commit()
    return users


async def create_sla_configuration(db: AsyncSession):
    """Create per-priority SLA configs and the alert threshold setting."""
    print("\nCreating SLA configuration...")

    repository = SlaRepository(db)
    for priority, (response_hours, resolution_hours) in SLA_CONFIGS_DATA.items():
        await repository.update_sla_configuration(priority.value, response_hours, resolution_hours)
        print(f"  ✓ {priority.value}: respond {response_hours}h, resolve {resolution_hours}h")

    setting = await db.get(SystemSetting, SLA_ALERTS_SETTING_KEY)
    if not setting:
        db.add(SystemSetting(
            key=SLA_ALERTS_SETTING_KEY,
            value={
                "warning_threshold": settings.SLA_WARNING_RATIO,
                "critical_threshold": settings.SLA_CRITICAL_RATIO,
            },
            description="SLA alert thresholds as fractions of the allotted time"
        ))
        await db.commit()
        print(f"  ✓ Created setting: {SLA_ALERTS_SETTING_KEY}")


async def create_tickets(db: AsyncSession, users: list, num_tickets: int = 30):
    """Create sample tickets with SLA deadlines."""
    print(f"\nCreating {num_tickets} sample tickets...")

    agents = [u for u in users if u.role == UserRole.AGENT]
    reporters = [u for u in users if u.role == UserRole.USER]

    sla_service = SlaService(SlaRepository(db), NotificationService(db))
    tickets = []
    now = datetime.utcnow()

    for i in range(num_tickets):
        # Random creation time within the last 6 days
        created_at = now - timedelta(hours=random.randint(0, 144), minutes=random.randint(0, 59))

        priority_weights = [0.1, 0.2, 0.4, 0.3]  # critical, high, medium, low
        priority = random.choices(list(TicketPriority), weights=priority_weights)[0]

        status_weights = [0.4, 0.3, 0.2, 0.1]  # open, in_progress, resolved, closed
        status = random.choices(list(TicketStatus), weights=status_weights)[0]

        sla_target = await sla_service.calculate_sla_target(
            priority,
            business_hours_only=random.random() < 0.2,
            now=created_at
        )

        resolved_at = None
        if status in (TicketStatus.RESOLVED, TicketStatus.CLOSED):
            resolved_at = min(now, created_at + timedelta(hours=random.randint(1, 96)))

        # Some tickets stay unassigned
        assignee = random.choice(agents) if random.random() < 0.8 else None

        ticket = Ticket(
            title=random.choice(TICKET_TITLES),
            description="Sample ticket created by the seeding script.",
            priority=priority,
            status=status,
            reporter_id=random.choice(reporters).id,
            assignee_id=assignee.id if assignee else None,
            created_at=created_at,
            updated_at=created_at,
            resolved_at=resolved_at,
            sla_target=sla_target
        )

        db.add(ticket)
        tickets.append(ticket)

        if (i + 1) % 10 == 0:
            print(f"  ✓ Created {i + 1}/{num_tickets} tickets...")

    await db.commit()
    print(f"✓ Created {len(tickets)} tickets")
    return tickets


async def main():
    """Main seeding function."""
    print("=" * 60)
    print("Incident Desk - Sample Data Seeding Script")
    print("=" * 60)

    await init_models()

    async with AsyncSessionLocal() as db:
        try:
            users = await create_users(db)
            await create_sla_configuration(db)
            tickets = await create_tickets(db, users)

            print("\n" + "=" * 60)
            print("✓ Sample data seeding completed successfully!")
            print("=" * 60)
            print(f"\nCreated:")
            print(f"  - {len(users)} users")
            print(f"  - {len(SLA_CONFIGS_DATA)} SLA configs")
            print(f"  - {len(tickets)} tickets")
            print("=" * 60)

        except Exception as e:
            print(f"\n✗ Error during seeding: {str(e)}")
            import traceback
            traceback.print_exc()
            await db.rollback()
            raise


if __name__ == "__main__":
    asyncio.run(main())
