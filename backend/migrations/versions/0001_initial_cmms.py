"""initial cmms tables: tenants, role assignments, permission sources, work orders

Revision ID: 0001_initial_cmms
Revises: 
Create Date: 2026-10-17
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_initial_cmms'
down_revision = None
branch_labels = None
depends_on = None

def _ts(name, **kw):
    return sa.Column(name, sa.DateTime(timezone=True), **kw)


def upgrade():
    op.create_table('hospitals',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1'))
    )

    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=128), nullable=False, unique=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        _ts('updated_at', server_default=sa.text('CURRENT_TIMESTAMP'))
    )
    op.create_index('ix_users_email', 'users', ['email'])

    op.create_table('user_roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role_code', sa.String(length=64), nullable=False),
        sa.Column('hospital_id', sa.Integer(), sa.ForeignKey('hospitals.id', ondelete='CASCADE'), nullable=True)
    )
    op.create_index('ix_user_roles_user_id', 'user_roles', ['user_id'])
    # unique constraint handled via batch for sqlite
    with op.batch_alter_table('user_roles') as batch_op:
        batch_op.create_unique_constraint('uq_user_role_scope', ['user_id', 'role_code', 'hospital_id'])

    op.create_table('role_permissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('role_code', sa.String(length=64), nullable=False),
        sa.Column('permission_key', sa.String(length=96), nullable=False),
        sa.Column('allowed', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('hospital_id', sa.Integer(), sa.ForeignKey('hospitals.id', ondelete='CASCADE'), nullable=True),
        _ts('updated_at', server_default=sa.text('CURRENT_TIMESTAMP'))
    )
    op.create_index('ix_role_permissions_role_code', 'role_permissions', ['role_code'])
    op.create_index('ix_role_permissions_permission_key', 'role_permissions', ['permission_key'])
    with op.batch_alter_table('role_permissions') as batch_op:
        batch_op.create_unique_constraint('uq_role_permission_scope', ['role_code', 'permission_key', 'hospital_id'])

    op.create_table('user_permissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('permission_key', sa.String(length=96), nullable=False),
        sa.Column('effect', sa.String(length=8), nullable=False)
    )
    op.create_index('ix_user_permissions_user_id', 'user_permissions', ['user_id'])
    with op.batch_alter_table('user_permissions') as batch_op:
        batch_op.create_unique_constraint('uq_user_permission', ['user_id', 'permission_key'])

    op.create_table('work_orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('hospital_id', sa.Integer(), sa.ForeignKey('hospitals.id', ondelete='CASCADE'), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('status', sa.String(length=40), nullable=False, server_default='pending'),
        sa.Column('reported_by', sa.Integer(), nullable=False),
        sa.Column('assigned_to', sa.Integer(), nullable=True),
        sa.Column('assigned_team', sa.Integer(), nullable=True),
        _ts('start_time'), sa.Column('started_by', sa.Integer()),
        _ts('technician_completed_at'), sa.Column('technician_completed_by', sa.Integer()),
        sa.Column('technician_notes', sa.Text()),
        _ts('supervisor_approved_at'), sa.Column('supervisor_approved_by', sa.Integer()),
        sa.Column('supervisor_notes', sa.Text()),
        _ts('engineer_approved_at'), sa.Column('engineer_approved_by', sa.Integer()),
        sa.Column('engineer_notes', sa.Text()),
        _ts('customer_reviewed_at'), sa.Column('customer_reviewed_by', sa.Integer()),
        sa.Column('reporter_notes', sa.Text()),
        _ts('maintenance_manager_approved_at'), sa.Column('maintenance_manager_approved_by', sa.Integer()),
        sa.Column('maintenance_manager_notes', sa.Text()),
        _ts('rejected_at'), sa.Column('rejected_by', sa.Integer()),
        sa.Column('rejection_stage', sa.String(length=32)),
        sa.Column('rejection_reason', sa.Text()),
        _ts('pending_closure_since'),
        _ts('auto_closed_at'),
        _ts('created_at', server_default=sa.text('CURRENT_TIMESTAMP')),
        _ts('updated_at', server_default=sa.text('CURRENT_TIMESTAMP'))
    )
    op.create_index('ix_work_orders_hospital_id', 'work_orders', ['hospital_id'])
    op.create_index('ix_work_orders_code', 'work_orders', ['code'])
    op.create_index('ix_work_orders_status', 'work_orders', ['status'])
    op.create_index('ix_work_orders_reported_by', 'work_orders', ['reported_by'])
    op.create_index('ix_work_orders_assigned_team', 'work_orders', ['assigned_team'])

    op.create_table('work_order_operations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('work_order_id', sa.Integer(), sa.ForeignKey('work_orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('action', sa.String(length=40), nullable=False),
        sa.Column('from_status', sa.String(length=40), nullable=False),
        sa.Column('to_status', sa.String(length=40), nullable=False),
        sa.Column('performed_by', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        _ts('created_at', server_default=sa.text('CURRENT_TIMESTAMP'))
    )
    op.create_index('ix_work_order_operations_work_order_id', 'work_order_operations', ['work_order_id'])

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('actor_user_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity', sa.String(length=64)),
        sa.Column('entity_id', sa.String(length=96)),
        sa.Column('meta', sa.JSON(), nullable=True),
        _ts('created_at', server_default=sa.text('CURRENT_TIMESTAMP'))
    )
    op.create_index('ix_audit_logs_actor_user_id', 'audit_logs', ['actor_user_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])


def downgrade():
    for tbl in ['audit_logs', 'work_order_operations', 'work_orders', 'user_permissions',
                'role_permissions', 'user_roles', 'users', 'hospitals']:
        op.drop_table(tbl)
