"""Create SLA monitoring tables

Revision ID: create_sla_tables
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'create_sla_tables'
down_revision = None
branch_labels = None
depends_on = None

# SQLAlchemy Enum columns store member names
priority_enum = sa.Enum('CRITICAL', 'HIGH', 'MEDIUM', 'LOW', name='ticketpriority')
status_enum = sa.Enum('OPEN', 'IN_PROGRESS', 'RESOLVED', 'CLOSED', name='ticketstatus')
role_enum = sa.Enum('ADMIN', 'AGENT', 'USER', name='userrole')
alert_kind_enum = sa.Enum('WARNING', 'CRITICAL', 'BREACH', name='alertkind')
notification_type_enum = sa.Enum('SLA_WARNING', 'SLA_CRITICAL', 'SLA_BREACH', name='notificationtype')


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('role', role_enum, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'tickets',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('priority', priority_enum, nullable=False),
        sa.Column('status', status_enum, nullable=False),
        sa.Column('reporter_id', sa.String(), nullable=False),
        sa.Column('assignee_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('sla_target', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['reporter_id'], ['users.id']),
        sa.ForeignKeyConstraint(['assignee_id'], ['users.id'])
    )
    op.create_index('ix_tickets_priority', 'tickets', ['priority'])
    op.create_index('ix_tickets_status', 'tickets', ['status'])
    op.create_index('ix_tickets_reporter_id', 'tickets', ['reporter_id'])
    op.create_index('ix_tickets_assignee_id', 'tickets', ['assignee_id'])
    op.create_index('ix_tickets_created_at', 'tickets', ['created_at'])
    op.create_index('ix_tickets_sla_target', 'tickets', ['sla_target'])

    op.create_table(
        'sla_configs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('priority', priority_enum, nullable=False),
        sa.Column('response_time_hours', sa.Integer(), nullable=False),
        sa.Column('resolution_time_hours', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_sla_configs_priority', 'sla_configs', ['priority'])

    op.create_table(
        'settings',
        sa.Column('key', sa.String(), nullable=False),
        sa.Column('value', sa.JSON(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('key')
    )

    op.create_table(
        'sla_alerts',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('ticket_id', sa.String(), nullable=False),
        sa.Column('kind', alert_kind_enum, nullable=False),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['ticket_id'], ['tickets.id'])
    )
    op.create_index('ix_sla_alerts_ticket_id', 'sla_alerts', ['ticket_id'])
    op.create_index('ix_sla_alerts_ticket_kind_created', 'sla_alerts', ['ticket_id', 'kind', 'created_at'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('ticket_id', sa.String(), nullable=True),
        sa.Column('type', notification_type_enum, nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['ticket_id'], ['tickets.id'], ondelete='CASCADE')
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_ticket_id', 'notifications', ['ticket_id'])
    op.create_index('ix_notifications_type', 'notifications', ['type'])
    op.create_index('ix_notifications_created_at', 'notifications', ['created_at'])


def downgrade() -> None:
    op.drop_index('ix_notifications_created_at', table_name='notifications')
    op.drop_index('ix_notifications_type', table_name='notifications')
    op.drop_index('ix_notifications_ticket_id', table_name='notifications')
    op.drop_index('ix_notifications_user_id', table_name='notifications')
    op.drop_table('notifications')

    op.drop_index('ix_sla_alerts_ticket_kind_created', table_name='sla_alerts')
    op.drop_index('ix_sla_alerts_ticket_id', table_name='sla_alerts')
    op.drop_table('sla_alerts')

    op.drop_table('settings')

    op.drop_index('ix_sla_configs_priority', table_name='sla_configs')
    op.drop_table('sla_configs')

    op.drop_index('ix_tickets_sla_target', table_name='tickets')
    op.drop_index('ix_tickets_created_at', table_name='tickets')
    op.drop_index('ix_tickets_assignee_id', table_name='tickets')
    op.drop_index('ix_tickets_reporter_id', table_name='tickets')
    op.drop_index('ix_tickets_status', table_name='tickets')
    op.drop_index('ix_tickets_priority', table_name='tickets')
    op.drop_table('tickets')

    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')

    notification_type_enum.drop(op.get_bind(), checkfirst=True)
    alert_kind_enum.drop(op.get_bind(), checkfirst=True)
    role_enum.drop(op.get_bind(), checkfirst=True)
    status_enum.drop(op.get_bind(), checkfirst=True)
    priority_enum.drop(op.get_bind(), checkfirst=True)
