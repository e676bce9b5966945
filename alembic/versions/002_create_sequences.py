"""Create sequence, enrollment, execution and notification tables

Revision ID: 002_create_sequences
Revises: 001_create_businesses_and_leads
Create Date: 2026-10-05 09:30:00

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = '002_create_sequences'
down_revision = '001_create_businesses_and_leads'
branch_labels = None
depends_on = None

NOTIFICATION_TYPES = ('SEQUENCE', 'DELIVERY_FAILURE', 'LEAD')


def upgrade():
    op.create_table(
        'sequences',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('business_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('trigger_type', sa.String(length=50), nullable=False, server_default='custom'),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('stop_on_reply', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('stop_on_booking', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_sequences_business_id'), 'sequences', ['business_id'], unique=False)
    op.create_index(op.f('ix_sequences_trigger_type'), 'sequences', ['trigger_type'], unique=False)

    op.create_table(
        'sequence_steps',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('sequence_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('step_order', sa.Integer(), nullable=False),
        sa.Column('step_type', sa.String(length=30), nullable=False),
        sa.Column('delay_value', sa.Integer(), nullable=True),
        sa.Column('delay_unit', sa.String(length=20), nullable=True),
        sa.Column('subject', sa.String(length=255), nullable=True),
        sa.Column('message_template', sa.Text(), nullable=False, server_default=''),
        sa.Column('tag_name', sa.String(length=100), nullable=True),
        sa.Column('status_value', sa.String(length=30), nullable=True),
        sa.Column('notification_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['sequence_id'], ['sequences.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sequence_id', 'step_order', name='uq_sequence_steps_sequence_order')
    )
    op.create_index(op.f('ix_sequence_steps_sequence_id'), 'sequence_steps', ['sequence_id'], unique=False)

    op.create_table(
        'sequence_enrollments',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('lead_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('sequence_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('business_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('current_step_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('enrolled_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('canceled_at', sa.DateTime(), nullable=True),
        sa.Column('cancel_reason', sa.String(length=30), nullable=True),
        sa.ForeignKeyConstraint(['lead_id'], ['leads.id'], ),
        sa.ForeignKeyConstraint(['sequence_id'], ['sequences.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_sequence_enrollments_lead_id'), 'sequence_enrollments', ['lead_id'], unique=False)
    op.create_index(op.f('ix_sequence_enrollments_sequence_id'), 'sequence_enrollments', ['sequence_id'], unique=False)
    op.create_index(op.f('ix_sequence_enrollments_business_id'), 'sequence_enrollments', ['business_id'], unique=False)
    op.create_index(op.f('ix_sequence_enrollments_status'), 'sequence_enrollments', ['status'], unique=False)
    op.create_index(
        'uq_sequence_enrollments_active_lead_sequence',
        'sequence_enrollments',
        ['lead_id', 'sequence_id'],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )

    op.create_table(
        'sequence_step_executions',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('enrollment_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('step_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('message_sent', sa.Text(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('provider_message_id', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['enrollment_id'], ['sequence_enrollments.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['step_id'], ['sequence_steps.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_sequence_step_executions_enrollment_id'), 'sequence_step_executions', ['enrollment_id'], unique=False)
    op.create_index(op.f('ix_sequence_step_executions_step_id'), 'sequence_step_executions', ['step_id'], unique=False)
    op.create_index(op.f('ix_sequence_step_executions_created_at'), 'sequence_step_executions', ['created_at'], unique=False)
    op.create_index(
        'uq_sequence_step_executions_sent',
        'sequence_step_executions',
        ['enrollment_id', 'step_id'],
        unique=True,
        postgresql_where=sa.text("status = 'sent'"),
    )

    notification_type_enum = postgresql.ENUM(*NOTIFICATION_TYPES, name='notification_type', create_type=False)
    notification_type_enum.create(op.get_bind(), checkfirst=True)

    op.create_table(
        'notifications',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('business_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('lead_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('type', notification_type_enum, nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['lead_id'], ['leads.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_notifications_id'), 'notifications', ['id'], unique=False)
    op.create_index(op.f('ix_notifications_business_id'), 'notifications', ['business_id'], unique=False)


def downgrade():
    op.drop_index(op.f('ix_notifications_business_id'), table_name='notifications')
    op.drop_index(op.f('ix_notifications_id'), table_name='notifications')
    op.drop_table('notifications')
    postgresql.ENUM(*NOTIFICATION_TYPES, name='notification_type').drop(op.get_bind(), checkfirst=True)

    op.drop_index('uq_sequence_step_executions_sent', table_name='sequence_step_executions')
    op.drop_index(op.f('ix_sequence_step_executions_created_at'), table_name='sequence_step_executions')
    op.drop_index(op.f('ix_sequence_step_executions_step_id'), table_name='sequence_step_executions')
    op.drop_index(op.f('ix_sequence_step_executions_enrollment_id'), table_name='sequence_step_executions')
    op.drop_table('sequence_step_executions')

    op.drop_index('uq_sequence_enrollments_active_lead_sequence', table_name='sequence_enrollments')
    op.drop_index(op.f('ix_sequence_enrollments_status'), table_name='sequence_enrollments')
    op.drop_index(op.f('ix_sequence_enrollments_business_id'), table_name='sequence_enrollments')
    op.drop_index(op.f('ix_sequence_enrollments_sequence_id'), table_name='sequence_enrollments')
    op.drop_index(op.f('ix_sequence_enrollments_lead_id'), table_name='sequence_enrollments')
    op.drop_table('sequence_enrollments')

    op.drop_index(op.f('ix_sequence_steps_sequence_id'), table_name='sequence_steps')
    op.drop_table('sequence_steps')

    op.drop_index(op.f('ix_sequences_trigger_type'), table_name='sequences')
    op.drop_index(op.f('ix_sequences_business_id'), table_name='sequences')
    op.drop_table('sequences')
