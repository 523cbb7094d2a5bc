"""initial marketplace schema

Revision ID: 0001_initial_marketplace
Revises: 
Create Date: 2026-10-18
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_initial_marketplace'
down_revision = None
branch_labels = None
depends_on = None


def _updated_at():
    return sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True)


def upgrade():
    op.create_table('organizations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=150), nullable=False, unique=True),
        sa.Column('contact_email', sa.String(length=150), nullable=True),
        _updated_at(),
    )

    op.create_table('maintenance_vendors',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=150), nullable=False, unique=True),
        sa.Column('contact_email', sa.String(length=150), nullable=True),
        sa.Column('tiers', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='ACTIVE'),
        _updated_at(),
    )
    op.create_index('ix_maintenance_vendors_name', 'maintenance_vendors', ['name'])
    op.create_index('ix_maintenance_vendors_contact_email', 'maintenance_vendors', ['contact_email'])
    op.create_index('ix_maintenance_vendors_status', 'maintenance_vendors', ['status'])

    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=128), nullable=False, unique=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=True),
        sa.Column('maintenance_vendor_id', sa.Integer(), sa.ForeignKey('maintenance_vendors.id'), nullable=True),
        sa.Column('tiers', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True, server_default=sa.text('1')),
        _updated_at(),
    )
    op.create_index('ix_users_email', 'users', ['email'])
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_organization_id', 'users', ['organization_id'])
    op.create_index('ix_users_maintenance_vendor_id', 'users', ['maintenance_vendor_id'])

    op.create_table('tickets',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('priority', sa.String(length=16), nullable=False, server_default='medium'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='open'),
        sa.Column('reporter_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('maintenance_vendor_id', sa.Integer(), sa.ForeignKey('maintenance_vendors.id'), nullable=True),
        sa.Column('assignee_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('is_marketplace', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('scheduled_start', sa.DateTime(), nullable=True),
        sa.Column('scheduled_end', sa.DateTime(), nullable=True),
        sa.Column('estimated_duration_minutes', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        _updated_at(),
    )
    op.create_index('ix_tickets_organization_id', 'tickets', ['organization_id'])
    op.create_index('ix_tickets_status', 'tickets', ['status'])
    op.create_index('ix_tickets_maintenance_vendor_id', 'tickets', ['maintenance_vendor_id'])
    op.create_index('ix_tickets_assignee_id', 'tickets', ['assignee_id'])
    op.create_index('ix_tickets_is_marketplace', 'tickets', ['is_marketplace'])

    op.create_table('marketplace_bids',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('ticket_id', sa.Integer(), sa.ForeignKey('tickets.id'), nullable=False),
        sa.Column('maintenance_vendor_id', sa.Integer(), sa.ForeignKey('maintenance_vendors.id'), nullable=False),
        sa.Column('submitted_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('hourly_rate_cents', sa.Integer(), nullable=True),
        sa.Column('estimated_hours', sa.Numeric(8, 2), nullable=True),
        sa.Column('response_time', sa.String(length=64), nullable=True),
        sa.Column('parts', sa.JSON(), nullable=True),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False),
        sa.Column('additional_notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('counter_offer_cents', sa.Integer(), nullable=True),
        sa.Column('counter_notes', sa.Text(), nullable=True),
        sa.Column('decided_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('decided_at', sa.DateTime(), nullable=True),
        sa.Column('approved', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('approved_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('is_superseded', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('superseded_by_bid_id', sa.Integer(), sa.ForeignKey('marketplace_bids.id'), nullable=True),
        sa.Column('previous_bid_id', sa.Integer(), sa.ForeignKey('marketplace_bids.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        _updated_at(),
    )
    op.create_index('ix_marketplace_bids_ticket_id', 'marketplace_bids', ['ticket_id'])
    op.create_index('ix_marketplace_bids_maintenance_vendor_id', 'marketplace_bids', ['maintenance_vendor_id'])
    op.create_index('ix_marketplace_bids_status', 'marketplace_bids', ['status'])
    op.create_index('ix_marketplace_bids_is_superseded', 'marketplace_bids', ['is_superseded'])
    # At most one live version per (ticket, vendor)
    op.create_index(
        'uq_marketplace_bids_active_version', 'marketplace_bids', ['ticket_id', 'maintenance_vendor_id'],
        unique=True,
        sqlite_where=sa.text('is_superseded = 0'),
        postgresql_where=sa.text('NOT is_superseded'),
    )

    op.create_table('work_orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('ticket_id', sa.Integer(), sa.ForeignKey('tickets.id'), nullable=False),
        sa.Column('technician_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('technician_name', sa.String(length=128), nullable=False),
        sa.Column('work_description', sa.Text(), nullable=False),
        sa.Column('completion_status', sa.String(length=16), nullable=False),
        sa.Column('hours_worked', sa.Numeric(8, 2), nullable=False, server_default='0'),
        sa.Column('hourly_rate_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('parts', sa.JSON(), nullable=True),
        sa.Column('other_charges', sa.JSON(), nullable=True),
        sa.Column('labor_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('parts_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('other_charges_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('completion_notes', sa.Text(), nullable=True),
        sa.Column('images', sa.JSON(), nullable=True),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_work_orders_ticket_id', 'work_orders', ['ticket_id'])

    op.create_table('parts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('maintenance_vendor_id', sa.Integer(), sa.ForeignKey('maintenance_vendors.id'), nullable=False),
        sa.Column('name', sa.String(length=150), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('markup_percentage', sa.Numeric(7, 2), nullable=False, server_default='0'),
        sa.Column('round_to_ninety_nine', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        _updated_at(),
    )
    op.create_index('ix_parts_maintenance_vendor_id', 'parts', ['maintenance_vendor_id'])
    op.create_index('ix_parts_name', 'parts', ['name'])

    op.create_table('part_price_history',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('part_id', sa.Integer(), sa.ForeignKey('parts.id'), nullable=False),
        sa.Column('old_cost_cents', sa.Integer(), nullable=False),
        sa.Column('new_cost_cents', sa.Integer(), nullable=False),
        sa.Column('old_price_cents', sa.Integer(), nullable=False),
        sa.Column('new_price_cents', sa.Integer(), nullable=False),
        sa.Column('markup_percentage', sa.Numeric(7, 2), nullable=False),
        sa.Column('round_to_ninety_nine', sa.Boolean(), nullable=False),
        sa.Column('changed_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('changed_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_part_price_history_part_id', 'part_price_history', ['part_id'])

    op.create_table('invoices',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('invoice_number', sa.String(length=32), nullable=False, unique=True),
        sa.Column('ticket_id', sa.Integer(), sa.ForeignKey('tickets.id'), nullable=False),
        sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('maintenance_vendor_id', sa.Integer(), sa.ForeignKey('maintenance_vendors.id'), nullable=True),
        sa.Column('work_order_ids', sa.JSON(), nullable=True),
        sa.Column('lines', sa.JSON(), nullable=True),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tax_scope', sa.String(length=16), nullable=False),
        sa.Column('tax_percentage', sa.Numeric(6, 3), nullable=False, server_default='0'),
        sa.Column('tax_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('net_days', sa.Integer(), nullable=False),
        sa.Column('payment_terms', sa.String(length=32), nullable=False),
        sa.Column('issued_on', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='sent'),
        sa.Column('payment_method', sa.String(length=32), nullable=True),
        sa.Column('payment_type', sa.String(length=32), nullable=True),
        sa.Column('check_number', sa.String(length=64), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        _updated_at(),
    )
    op.create_index('ix_invoices_invoice_number', 'invoices', ['invoice_number'])
    op.create_index('ix_invoices_ticket_id', 'invoices', ['ticket_id'])
    op.create_index('ix_invoices_organization_id', 'invoices', ['organization_id'])
    op.create_index('ix_invoices_maintenance_vendor_id', 'invoices', ['maintenance_vendor_id'])
    op.create_index('ix_invoices_status', 'invoices', ['status'])

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('actor_user_id', sa.Integer(), nullable=False),
        sa.Column('actor_role', sa.String(length=32), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity', sa.String(length=64), nullable=True),
        sa.Column('entity_id', sa.String(length=64), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    )
    op.create_index('ix_audit_logs_actor_user_id', 'audit_logs', ['actor_user_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_entity_id', 'audit_logs', ['entity_id'])


def downgrade():
    for table in ('audit_logs', 'invoices', 'part_price_history', 'parts', 'work_orders',
                  'marketplace_bids', 'tickets', 'users', 'maintenance_vendors', 'organizations'):
        op.drop_table(table)
