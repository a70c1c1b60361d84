"""automation_engine_schema

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19 09:00:00.000000

Webhook definitions and delivery history, automations with ordered steps,
execution history, and the system event log.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'a1b2c3d4e5f6'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'webhooks',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('url', sa.String(2048), nullable=False),
        sa.Column('method', sa.String(10), nullable=False, server_default='POST'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('retry_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('retry_delay_seconds', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('timeout_seconds', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('headers', sa.JSON(), nullable=False),
        sa.Column('payload_type', sa.String(20), nullable=False, server_default='json'),
        sa.Column('payload_template', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('retry_count >= 0', name='ck_webhooks_retry_count'),
        sa.CheckConstraint('retry_delay_seconds >= 0', name='ck_webhooks_retry_delay'),
        sa.CheckConstraint('timeout_seconds > 0', name='ck_webhooks_timeout'),
    )

    op.create_table(
        'webhook_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('webhook_id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(64), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('attempt_count', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('response_status', sa.Integer(), nullable=True),
        sa.Column('response_body', sa.Text(), nullable=True),
        sa.Column('last_attempt_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['webhook_id'], ['webhooks.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_webhook_events_webhook_id', 'webhook_events', ['webhook_id'])

    op.create_table(
        'automations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('trigger_type', sa.String(32), nullable=False, server_default='manual'),
        sa.Column('trigger_config', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_automations_id', 'automations', ['id'])

    op.create_table(
        'automation_steps',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('automation_id', sa.Integer(), nullable=False),
        sa.Column('webhook_id', sa.Integer(), nullable=False),
        sa.Column('step_order', sa.Integer(), nullable=False),
        sa.Column('is_conditional', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('condition_config', sa.JSON(), nullable=True),
        sa.Column('delay_seconds', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('retry_on_failure', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('continue_on_failure', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['automation_id'], ['automations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['webhook_id'], ['webhooks.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('automation_id', 'step_order', name='uq_automation_steps_order'),
        sa.CheckConstraint('delay_seconds >= 0', name='ck_automation_steps_delay'),
    )
    op.create_index('ix_automation_steps_id', 'automation_steps', ['id'])

    op.create_table(
        'automation_executions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('automation_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='running'),
        sa.Column('trigger_data', sa.JSON(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['automation_id'], ['automations.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_automation_executions_id', 'automation_executions', ['id'])
    op.create_index('ix_automation_executions_automation_id', 'automation_executions', ['automation_id'])

    op.create_table(
        'automation_step_executions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('automation_execution_id', sa.Integer(), nullable=False),
        sa.Column('automation_step_id', sa.Integer(), nullable=False),
        sa.Column('webhook_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='running'),
        sa.Column('webhook_response_status', sa.Integer(), nullable=True),
        sa.Column('webhook_response_body', sa.Text(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['automation_execution_id'], ['automation_executions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['automation_step_id'], ['automation_steps.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['webhook_id'], ['webhooks.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_automation_step_executions_id', 'automation_step_executions', ['id'])
    op.create_index('ix_automation_step_executions_automation_execution_id',
                    'automation_step_executions', ['automation_execution_id'])

    op.create_table(
        'system_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('event_type', sa.String(64), nullable=False),
        sa.Column('event_category', sa.String(64), nullable=False),
        sa.Column('event_name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('session_id', sa.String(128), nullable=True),
        sa.Column('user_id', sa.String(128), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_system_events_event_type', 'system_events', ['event_type'])
    op.create_index('ix_system_events_event_category', 'system_events', ['event_category'])
    op.create_index('ix_system_events_session_id', 'system_events', ['session_id'])
    op.create_index('ix_system_events_user_id', 'system_events', ['user_id'])
    op.create_index('ix_system_events_created_at', 'system_events', ['created_at'])

    op.create_table(
        'event_sessions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('session_id', sa.String(128), nullable=False),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('first_event_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_event_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('total_events', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_event_sessions_session_id', 'event_sessions', ['session_id'], unique=True)


def downgrade() -> None:
    op.drop_index('ix_event_sessions_session_id', table_name='event_sessions')
    op.drop_table('event_sessions')

    for name in ('created_at', 'user_id', 'session_id', 'event_category', 'event_type'):
        op.drop_index(f'ix_system_events_{name}', table_name='system_events')
    op.drop_table('system_events')

    op.drop_index('ix_automation_step_executions_automation_execution_id',
                  table_name='automation_step_executions')
    op.drop_index('ix_automation_step_executions_id', table_name='automation_step_executions')
    op.drop_table('automation_step_executions')

    op.drop_index('ix_automation_executions_automation_id', table_name='automation_executions')
    op.drop_index('ix_automation_executions_id', table_name='automation_executions')
    op.drop_table('automation_executions')

    op.drop_index('ix_automation_steps_id', table_name='automation_steps')
    op.drop_table('automation_steps')

    op.drop_index('ix_automations_id', table_name='automations')
    op.drop_table('automations')

    op.drop_index('ix_webhook_events_webhook_id', table_name='webhook_events')
    op.drop_table('webhook_events')

    op.drop_table('webhooks')
