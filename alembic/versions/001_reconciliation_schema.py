"""Reconciliation schema

Revision ID: 001_reconciliation_schema
Revises:
Create Date: 2026-10-19

Creates channel mappings, PMS calendar days, reconciliation runs and the
audit/notification tables the reconciliation engine writes to.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_reconciliation_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'channel_mappings',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('channel_name', sa.String(50), nullable=False),
        sa.Column('internal_property_id', sa.String(36), nullable=False),
        sa.Column('external_id', sa.String(255), nullable=False),
        sa.Column('organization_id', sa.String(36), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('channel_name', 'external_id', name='uq_channel_mapping_external'),
    )
    op.create_index('ix_channel_mapping_property', 'channel_mappings', ['internal_property_id'])
    op.create_index('ix_channel_mapping_active', 'channel_mappings', ['is_active', 'channel_name'])

    op.create_table(
        'calendar_days',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('property_id', sa.String(36), nullable=False),
        sa.Column('organization_id', sa.String(36), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='AVAILABLE'),
        sa.Column('booking_id', sa.String(36), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('property_id', 'date', 'organization_id', name='uq_calendar_property_date'),
    )
    op.create_index('ix_calendar_property_date', 'calendar_days', ['property_id', 'organization_id', 'date'])

    op.create_table(
        'reconciliation_runs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('mapping_id', sa.String(36), nullable=True),
        sa.Column('property_id', sa.String(36), nullable=False),
        sa.Column('organization_id', sa.String(36), nullable=True),
        sa.Column('channel_name', sa.String(50), nullable=False),
        sa.Column('window_start', sa.Date(), nullable=True),
        sa.Column('window_end', sa.Date(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='RUNNING'),
        sa.Column('channel_days_checked', sa.Integer(), server_default='0'),
        sa.Column('pms_days_checked', sa.Integer(), server_default='0'),
        sa.Column('discrepancies_found', sa.Integer(), server_default='0'),
        sa.Column('discrepancies_fixed', sa.Integer(), server_default='0'),
        sa.Column('divergence_pct', sa.Numeric(5, 2), server_default='0'),
        sa.Column('details_json', sa.Text(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_reconciliation_property', 'reconciliation_runs', ['property_id', 'started_at'])
    op.create_index('ix_reconciliation_status', 'reconciliation_runs', ['status', 'started_at'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=True),
        sa.Column('source', sa.String(20), nullable=False, server_default='CRON'),
        sa.Column('activity_type', sa.String(50), nullable=False),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.String(36), nullable=True),
        sa.Column('old_value', sa.Text(), nullable=True),
        sa.Column('new_value', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_audit_entity', 'audit_logs', ['entity_type', 'entity_id'])
    op.create_index('ix_audit_created', 'audit_logs', ['created_at'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=True, index=True),
        sa.Column('type', sa.String(50), nullable=False, index=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('link', sa.String(500), nullable=True),
        sa.Column('is_read', sa.Boolean(), server_default=sa.false(), index=True),
        sa.Column('read_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), index=True),
    )


def downgrade() -> None:
    op.drop_table('notifications')
    op.drop_index('ix_audit_created', table_name='audit_logs')
    op.drop_index('ix_audit_entity', table_name='audit_logs')
    op.drop_table('audit_logs')
    op.drop_index('ix_reconciliation_status', table_name='reconciliation_runs')
    op.drop_index('ix_reconciliation_property', table_name='reconciliation_runs')
    op.drop_table('reconciliation_runs')
    op.drop_index('ix_calendar_property_date', table_name='calendar_days')
    op.drop_table('calendar_days')
    op.drop_index('ix_channel_mapping_active', table_name='channel_mappings')
    op.drop_index('ix_channel_mapping_property', table_name='channel_mappings')
    op.drop_table('channel_mappings')
