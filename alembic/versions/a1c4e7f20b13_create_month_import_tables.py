"""Create projects, project_import_months and sync_logs

Month-by-month import status: one row per (project, year, month).

Revision ID: a1c4e7f20b13
Revises:
Create Date: 2025-12-30
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = 'a1c4e7f20b13'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'projects',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('ad_account_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        'project_import_months',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('project_id', sa.String(36), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('records_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('project_id', 'year', 'month', name='uq_project_import_months_project_year_month'),
        sa.CheckConstraint('month >= 1 AND month <= 12', name='ck_project_import_months_month'),
        sa.CheckConstraint(
            "status IN ('pending', 'importing', 'success', 'error', 'skipped')",
            name='ck_project_import_months_status',
        ),
    )
    op.create_index('ix_project_import_months_id', 'project_import_months', ['id'])
    op.create_index('ix_project_import_months_project_id', 'project_import_months', ['project_id'])
    op.create_index('ix_project_import_months_status', 'project_import_months', ['status'])

    op.create_table(
        'sync_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('project_id', sa.String(36), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_sync_logs_id', 'sync_logs', ['id'])
    op.create_index('ix_sync_logs_project_id', 'sync_logs', ['project_id'])
    op.create_index('ix_sync_logs_status', 'sync_logs', ['status'])
    op.create_index('ix_sync_logs_created_at', 'sync_logs', ['created_at'])


def downgrade() -> None:
    op.drop_table('sync_logs')
    op.drop_table('project_import_months')
    op.drop_table('projects')
