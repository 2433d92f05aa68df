"""Initial schema - tenants, tickets, companies, billing

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18

Creates the organization/auth tables, ticketing tables (tickets, tags,
notes, activity log, counters), client companies and the subscription
and payment tables.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ==========================================================================
    # Auth / tenants
    # ==========================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=True),
        sa.Column('token_version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_login_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        'organizations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('domain', sa.String(255), nullable=True),
        sa.Column('owner_user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('deadline_settings', sa.JSON(), nullable=False),
        sa.Column('address', sa.String(500), nullable=True),
        sa.Column('mobile', sa.String(50), nullable=True),
        sa.Column('landline', sa.String(50), nullable=True),
        sa.Column('website', sa.String(255), nullable=True),
        sa.Column('graph_tenant_id', sa.String(255), nullable=True),
        sa.Column('graph_client_id', sa.String(255), nullable=True),
        sa.Column('graph_client_secret', sa.String(255), nullable=True),
        sa.Column('graph_mailbox', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        'organization_members',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('organization_id', sa.Uuid(), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('address', sa.String(500), nullable=True),
        sa.Column('mobile', sa.String(50), nullable=True),
        sa.Column('landline', sa.String(50), nullable=True),
        sa.Column('is_client', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('has_license', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', sa.String(20), nullable=False, server_default='UNINVITED'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('organization_id', 'email', name='uq_member_org_email'),
    )
    op.create_index('idx_members_org_license', 'organization_members', ['organization_id', 'is_client', 'has_license'])

    op.create_table(
        'login_attempts',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('idx_login_attempts_email_time', 'login_attempts', ['email', 'created_at'])

    # ==========================================================================
    # Companies
    # ==========================================================================
    op.create_table(
        'companies',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('organization_id', sa.Uuid(), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('address', sa.String(500), nullable=True),
        sa.Column('mobile', sa.String(50), nullable=True),
        sa.Column('landline', sa.String(50), nullable=True),
        sa.Column('website', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('organization_id', 'name', name='uq_company_org_name'),
    )

    op.create_table(
        'employees',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('company_id', sa.Uuid(), sa.ForeignKey('companies.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('address', sa.String(500), nullable=True),
        sa.Column('mobile', sa.String(50), nullable=True),
        sa.Column('landline', sa.String(50), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='UNINVITED'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('company_id', 'email', name='uq_employee_company_email'),
    )
    op.create_index('idx_employees_email', 'employees', ['email'])

    # ==========================================================================
    # Ticketing
    # ==========================================================================
    op.create_table(
        'org_counters',
        sa.Column('organization_id', sa.Uuid(), sa.ForeignKey('organizations.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('counter_type', sa.String(50), primary_key=True),
        sa.Column('current_value', sa.Integer(), nullable=False, server_default='0'),
    )

    op.create_table(
        'tickets',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('organization_id', sa.Uuid(), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('ticket_number', sa.Integer(), nullable=False),
        sa.Column('subject', sa.String(500), nullable=False),
        sa.Column('sender_email', sa.String(255), nullable=False),
        sa.Column('sender_name', sa.String(255), nullable=True),
        sa.Column('body_preview', sa.Text(), nullable=True),
        sa.Column('body', sa.Text(), nullable=True),
        sa.Column('received_at', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='Open'),
        sa.Column('priority', sa.String(20), nullable=False, server_default='None'),
        sa.Column('type', sa.String(30), nullable=False, server_default='Incident'),
        sa.Column('assignee_id', sa.Uuid(), sa.ForeignKey('organization_members.id', ondelete='SET NULL'), nullable=True),
        sa.Column('deadline', sa.DateTime(), nullable=True),
        sa.Column('closed_at', sa.DateTime(), nullable=True),
        sa.Column('archived_at', sa.DateTime(), nullable=True),
        sa.Column('company_id', sa.Uuid(), sa.ForeignKey('companies.id', ondelete='SET NULL'), nullable=True),
        sa.Column('conversation_id', sa.String(500), nullable=True),
        sa.Column('creator_user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('last_replier', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('organization_id', 'ticket_number', name='uq_ticket_org_number'),
    )
    op.create_index('idx_tickets_org_status', 'tickets', ['organization_id', 'status'])
    op.create_index('idx_tickets_org_updated', 'tickets', ['organization_id', 'updated_at'])
    op.create_index('idx_tickets_conversation', 'tickets', ['organization_id', 'conversation_id'])

    op.create_table(
        'ticket_tags',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('ticket_id', sa.Uuid(), sa.ForeignKey('tickets.id', ondelete='CASCADE'), nullable=False),
        sa.Column('tag', sa.String(255), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.UniqueConstraint('ticket_id', 'tag', name='uq_ticket_tag'),
    )

    op.create_table(
        'ticket_notes',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('organization_id', sa.Uuid(), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('ticket_id', sa.Uuid(), sa.ForeignKey('tickets.id', ondelete='CASCADE'), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('author_name', sa.String(255), nullable=True),
        sa.Column('author_email', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('idx_ticket_notes_ticket', 'ticket_notes', ['ticket_id', 'created_at'])

    op.create_table(
        'ticket_messages',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('organization_id', sa.Uuid(), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('ticket_id', sa.Uuid(), sa.ForeignKey('tickets.id', ondelete='CASCADE'), nullable=False),
        sa.Column('graph_message_id', sa.String(500), nullable=True),
        sa.Column('sender_email', sa.String(255), nullable=True),
        sa.Column('sender_name', sa.String(255), nullable=True),
        sa.Column('to_recipients', sa.JSON(), nullable=False),
        sa.Column('cc_recipients', sa.JSON(), nullable=False),
        sa.Column('subject', sa.String(500), nullable=True),
        sa.Column('body', sa.Text(), nullable=True),
        sa.Column('is_reply', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('from_agent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('attachments', sa.JSON(), nullable=False),
        sa.Column('received_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('ticket_id', 'graph_message_id', name='uq_ticket_message_graph_id'),
    )
    op.create_index('idx_ticket_messages_ticket', 'ticket_messages', ['ticket_id', 'received_at'])

    # No FK on ticket_id: the timeline outlives the ticket
    op.create_table(
        'activity_logs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('organization_id', sa.Uuid(), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('ticket_id', sa.Uuid(), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('details', sa.Text(), nullable=False),
        sa.Column('ticket_subject', sa.String(500), nullable=True),
        sa.Column('date', sa.DateTime(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('user_name', sa.String(255), nullable=True),
        sa.Column('user_email', sa.String(255), nullable=True),
        sa.UniqueConstraint('ticket_id', 'sequence', name='uq_activity_ticket_sequence'),
    )
    op.create_index('idx_activity_org_date', 'activity_logs', ['organization_id', 'date'])

    # ==========================================================================
    # Billing
    # ==========================================================================
    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('organization_id', sa.Uuid(), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='TRIAL'),
        sa.Column('agent_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('agent_slots', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('price_per_agent', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('trial_ends_at', sa.DateTime(), nullable=True),
        sa.Column('current_period_start', sa.DateTime(), nullable=True),
        sa.Column('current_period_end', sa.DateTime(), nullable=True),
        sa.Column('canceled_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'payments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('organization_id', sa.Uuid(), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('subscription_id', sa.Uuid(), sa.ForeignKey('subscriptions.id', ondelete='SET NULL'), nullable=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('agent_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('billing_period', sa.String(50), nullable=True),
        sa.Column('paymongo_link_id', sa.String(255), nullable=True),
        sa.Column('paymongo_payment_id', sa.String(255), nullable=True),
        sa.Column('payment_method', sa.String(50), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('idx_payments_org_status', 'payments', ['organization_id', 'status'])


def downgrade() -> None:
    op.drop_index('idx_payments_org_status', table_name='payments')
    op.drop_table('payments')
    op.drop_table('subscriptions')
    op.drop_index('idx_activity_org_date', table_name='activity_logs')
    op.drop_table('activity_logs')
    op.drop_index('idx_ticket_messages_ticket', table_name='ticket_messages')
    op.drop_table('ticket_messages')
    op.drop_index('idx_ticket_notes_ticket', table_name='ticket_notes')
    op.drop_table('ticket_notes')
    op.drop_table('ticket_tags')
    op.drop_index('idx_tickets_conversation', table_name='tickets')
    op.drop_index('idx_tickets_org_updated', table_name='tickets')
    op.drop_index('idx_tickets_org_status', table_name='tickets')
    op.drop_table('tickets')
    op.drop_table('org_counters')
    op.drop_index('idx_employees_email', table_name='employees')
    op.drop_table('employees')
    op.drop_table('companies')
    op.drop_index('idx_login_attempts_email_time', table_name='login_attempts')
    op.drop_table('login_attempts')
    op.drop_index('idx_members_org_license', table_name='organization_members')
    op.drop_table('organization_members')
    op.drop_table('organizations')
    op.drop_table('users')
