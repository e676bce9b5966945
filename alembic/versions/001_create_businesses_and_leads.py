"""Create businesses, leads and lead_interactions tables

Revision ID: 001_create_businesses_and_leads
Revises:
Create Date: 2026-10-05 09:00:00

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = '001_create_businesses_and_leads'
down_revision = None
branch_labels = None
depends_on = None

# SQLAlchemy Enum columns store member names
MESSAGE_TONES = ('FRIENDLY', 'PREMIUM', 'DIRECT')
SMS_PROVIDERS = ('TWILIO', 'GATEWAY')
LEAD_SOURCES = ('MANUAL', 'ONLINE_BOOKING', 'CALL', 'WEB', 'WEBHOOK', 'REFERRAL')
LEAD_STATUSES = ('NEW', 'IN_PROGRESS', 'QUOTED', 'NURTURING', 'BOOKED', 'LOST')
LEAD_SCORES = ('HOT', 'WARM', 'COLD')
INTERACTION_TYPES = ('CALL', 'SMS', 'EMAIL', 'NOTE')
INTERACTION_DIRECTIONS = ('INBOUND', 'OUTBOUND')


def upgrade():
    message_tone_enum = postgresql.ENUM(*MESSAGE_TONES, name='message_tone_enum', create_type=False)
    message_tone_enum.create(op.get_bind(), checkfirst=True)
    sms_provider_enum = postgresql.ENUM(*SMS_PROVIDERS, name='sms_provider_enum', create_type=False)
    sms_provider_enum.create(op.get_bind(), checkfirst=True)
    lead_source_enum = postgresql.ENUM(*LEAD_SOURCES, name='leadsource', create_type=False)
    lead_source_enum.create(op.get_bind(), checkfirst=True)
    lead_status_enum = postgresql.ENUM(*LEAD_STATUSES, name='leadstatus', create_type=False)
    lead_status_enum.create(op.get_bind(), checkfirst=True)
    lead_score_enum = postgresql.ENUM(*LEAD_SCORES, name='leadscore', create_type=False)
    lead_score_enum.create(op.get_bind(), checkfirst=True)
    interaction_type_enum = postgresql.ENUM(*INTERACTION_TYPES, name='interactiontype', create_type=False)
    interaction_type_enum.create(op.get_bind(), checkfirst=True)
    interaction_direction_enum = postgresql.ENUM(*INTERACTION_DIRECTIONS, name='interactiondirection', create_type=False)
    interaction_direction_enum.create(op.get_bind(), checkfirst=True)

    op.create_table(
        'businesses',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('owner_name', sa.String(), nullable=True),
        sa.Column('owner_phone', sa.String(), nullable=True),
        sa.Column('owner_email', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('sender_name', sa.String(), nullable=True),
        sa.Column('default_tone', message_tone_enum, nullable=False, server_default='FRIENDLY'),
        sa.Column('sms_provider', sms_provider_enum, nullable=False, server_default='TWILIO'),
        sa.Column('twilio_account_sid', sa.String(), nullable=True),
        sa.Column('twilio_phone_number', sa.String(), nullable=True),
        sa.Column('sms_gateway_url', sa.String(), nullable=True),
        sa.Column('sms_gateway_api_key', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'leads',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('business_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('source', lead_source_enum, nullable=False),
        sa.Column('interested_service', sa.String(length=255), nullable=True),
        sa.Column('estimated_value', sa.Float(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('score', lead_score_enum, nullable=False),
        sa.Column('status', lead_status_enum, nullable=False),
        sa.Column('follow_up_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_contacted_at', sa.DateTime(), nullable=True),
        sa.Column('unsubscribed_at', sa.DateTime(), nullable=True),
        sa.Column('converted_at', sa.DateTime(), nullable=True),
        sa.Column('converted_to_client_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_leads_business_id'), 'leads', ['business_id'], unique=False)
    op.create_index(op.f('ix_leads_score'), 'leads', ['score'], unique=False)
    op.create_index(op.f('ix_leads_status'), 'leads', ['status'], unique=False)
    op.create_index('ix_leads_phone', 'leads', ['phone'], unique=False)

    op.create_table(
        'lead_interactions',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('lead_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('business_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('type', interaction_type_enum, nullable=False),
        sa.Column('direction', interaction_direction_enum, nullable=False),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('outcome', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['lead_id'], ['leads.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_lead_interactions_lead_id'), 'lead_interactions', ['lead_id'], unique=False)
    op.create_index(op.f('ix_lead_interactions_business_id'), 'lead_interactions', ['business_id'], unique=False)


def downgrade():
    op.drop_index(op.f('ix_lead_interactions_business_id'), table_name='lead_interactions')
    op.drop_index(op.f('ix_lead_interactions_lead_id'), table_name='lead_interactions')
    op.drop_table('lead_interactions')

    op.drop_index('ix_leads_phone', table_name='leads')
    op.drop_index(op.f('ix_leads_status'), table_name='leads')
    op.drop_index(op.f('ix_leads_score'), table_name='leads')
    op.drop_index(op.f('ix_leads_business_id'), table_name='leads')
    op.drop_table('leads')
    op.drop_table('businesses')

    for name, values in (
        ('interactiondirection', INTERACTION_DIRECTIONS),
        ('interactiontype', INTERACTION_TYPES),
        ('leadscore', LEAD_SCORES),
        ('leadstatus', LEAD_STATUSES),
        ('leadsource', LEAD_SOURCES),
        ('sms_provider_enum', SMS_PROVIDERS),
        ('message_tone_enum', MESSAGE_TONES),
    ):
        postgresql.ENUM(*values, name=name).drop(op.get_bind(), checkfirst=True)
