"""Initial schema: leads, pipelines, stages, checklist, entries, events, appointments, notifications, audit, imports

Revision ID: 3f1a9c7d2e54
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c7d2e54'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

NOW = sa.text('(CURRENT_TIMESTAMP)')


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('leads',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('whatsapp', sa.Text(), nullable=True),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('origin', sa.Text(), nullable=True),
        sa.Column('segment', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=True),
        sa.Column('closer', sa.Text(), nullable=True),
        sa.Column('session_goal', sa.Text(), nullable=True),
        sa.Column('main_objection', sa.Text(), nullable=True),
        sa.Column('objection_notes', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('last_session_result', sa.Text(), nullable=True),
        sa.Column('last_session_result_notes', sa.Text(), nullable=True),
        sa.Column('has_sold_online', sa.Boolean(), nullable=True),
        sa.Column('followers', sa.Integer(), nullable=True),
        sa.Column('avg_revenue', sa.Float(), nullable=True),
        sa.Column('revenue_goal', sa.Float(), nullable=True),
        sa.Column('lead_score', sa.Integer(), nullable=True),
        sa.Column('lead_value', sa.Integer(), nullable=True),
        sa.Column('score_classification', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_leads_whatsapp', 'leads', ['whatsapp'])
    op.create_index('ix_leads_email', 'leads', ['email'])

    op.create_table('tags',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('color', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )

    op.create_table('lead_tags',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('lead_id', sa.Text(), nullable=False),
        sa.Column('tag_id', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.ForeignKeyConstraint(['lead_id'], ['leads.id']),
        sa.ForeignKeyConstraint(['tag_id'], ['tags.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('lead_id', 'tag_id', name='uq_lead_tag'),
    )
    op.create_index('ix_lead_tags_lead_id', 'lead_tags', ['lead_id'])

    op.create_table('pipelines',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=True),
        sa.Column('is_default', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('pipeline_stages',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('pipeline_id', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False),
        sa.Column('sla_days', sa.Integer(), nullable=True),
        sa.Column('wip_limit', sa.Integer(), nullable=True),
        sa.Column('is_final', sa.Boolean(), nullable=True),
        sa.ForeignKeyConstraint(['pipeline_id'], ['pipelines.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_pipeline_stages_pipeline_id', 'pipeline_stages', ['pipeline_id'])

    op.create_table('stage_checklist_items',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('stage_id', sa.Text(), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('required', sa.Boolean(), nullable=True),
        sa.Column('order', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['stage_id'], ['pipeline_stages.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_stage_checklist_items_stage_id', 'stage_checklist_items', ['stage_id'])

    op.create_table('lead_pipeline_entries',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('lead_id', sa.Text(), nullable=False),
        sa.Column('pipeline_id', sa.Text(), nullable=False),
        sa.Column('current_stage_id', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('stage_entered_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('health', sa.Text(), nullable=True),
        sa.Column('stage_note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.ForeignKeyConstraint(['lead_id'], ['leads.id']),
        sa.ForeignKeyConstraint(['pipeline_id'], ['pipelines.id']),
        sa.ForeignKeyConstraint(['current_stage_id'], ['pipeline_stages.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_lead_pipeline_entries_lead_id', 'lead_pipeline_entries', ['lead_id'])
    op.create_index('ix_lead_pipeline_entries_pipeline_id', 'lead_pipeline_entries', ['pipeline_id'])
    op.create_index('ix_lead_pipeline_entries_current_stage_id', 'lead_pipeline_entries', ['current_stage_id'])

    op.create_table('checklist_states',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('lead_id', sa.Text(), nullable=False),
        sa.Column('item_id', sa.Text(), nullable=False),
        sa.Column('completed', sa.Boolean(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.ForeignKeyConstraint(['lead_id'], ['leads.id']),
        sa.ForeignKeyConstraint(['item_id'], ['stage_checklist_items.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('lead_id', 'item_id', name='uq_checklist_state_lead_item'),
    )
    op.create_index('ix_checklist_states_lead_id', 'checklist_states', ['lead_id'])

    op.create_table('pipeline_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('entry_id', sa.Text(), nullable=False),
        sa.Column('event_type', sa.Text(), nullable=False),
        sa.Column('from_stage_id', sa.Text(), nullable=True),
        sa.Column('to_stage_id', sa.Text(), nullable=True),
        sa.Column('actor', sa.Text(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.ForeignKeyConstraint(['entry_id'], ['lead_pipeline_entries.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_pipeline_events_entry_id', 'pipeline_events', ['entry_id'])

    op.create_table('appointments',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('lead_id', sa.Text(), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('start_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.ForeignKeyConstraint(['lead_id'], ['leads.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_appointments_lead_id', 'appointments', ['lead_id'])
    op.create_index('ix_appointments_start_at', 'appointments', ['start_at'])

    op.create_table('notifications',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('subject_id', sa.Text(), nullable=False),
        sa.Column('kind', sa.Text(), nullable=False),
        sa.Column('priority', sa.Text(), nullable=True),
        sa.Column('title', sa.Text(), nullable=True),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('read', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_notifications_subject_id', 'notifications', ['subject_id'])

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('entity_type', sa.Text(), nullable=False),
        sa.Column('entity_id', sa.Text(), nullable=False),
        sa.Column('change_set', sa.JSON(), nullable=True),
        sa.Column('actor', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_logs_entity_id', 'audit_logs', ['entity_id'])

    op.create_table('import_logs',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('actor', sa.Text(), nullable=True),
        sa.Column('total_records', sa.Integer(), nullable=True),
        sa.Column('success_count', sa.Integer(), nullable=True),
        sa.Column('error_count', sa.Integer(), nullable=True),
        sa.Column('created_count', sa.Integer(), nullable=True),
        sa.Column('updated_count', sa.Integer(), nullable=True),
        sa.Column('errors', sa.JSON(), nullable=True),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('import_logs')
    op.drop_index('ix_audit_logs_entity_id', table_name='audit_logs')
    op.drop_table('audit_logs')
    op.drop_index('ix_notifications_subject_id', table_name='notifications')
    op.drop_table('notifications')
    op.drop_index('ix_appointments_start_at', table_name='appointments')
    op.drop_index('ix_appointments_lead_id', table_name='appointments')
    op.drop_table('appointments')
    op.drop_index('ix_pipeline_events_entry_id', table_name='pipeline_events')
    op.drop_table('pipeline_events')
    op.drop_index('ix_checklist_states_lead_id', table_name='checklist_states')
    op.drop_table('checklist_states')
    op.drop_index('ix_lead_pipeline_entries_current_stage_id', table_name='lead_pipeline_entries')
    op.drop_index('ix_lead_pipeline_entries_pipeline_id', table_name='lead_pipeline_entries')
    op.drop_index('ix_lead_pipeline_entries_lead_id', table_name='lead_pipeline_entries')
    op.drop_table('lead_pipeline_entries')
    op.drop_index('ix_stage_checklist_items_stage_id', table_name='stage_checklist_items')
    op.drop_table('stage_checklist_items')
    op.drop_index('ix_pipeline_stages_pipeline_id', table_name='pipeline_stages')
    op.drop_table('pipeline_stages')
    op.drop_table('pipelines')
    op.drop_index('ix_lead_tags_lead_id', table_name='lead_tags')
    op.drop_table('lead_tags')
    op.drop_table('tags')
    op.drop_index('ix_leads_email', table_name='leads')
    op.drop_index('ix_leads_whatsapp', table_name='leads')
    op.drop_table('leads')
