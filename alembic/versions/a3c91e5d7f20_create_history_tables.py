"""create history tables

Revision ID: a3c91e5d7f20
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'a3c91e5d7f20'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('risk_assessments',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('assessment_id', sa.String(length=100), nullable=False),
    sa.Column('farm_id', sa.String(length=100), nullable=False),
    sa.Column('assessed_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('overall_severity', sa.String(length=20), nullable=True),
    sa.Column('data_quality_score', sa.Float(), nullable=False),
    sa.Column('uncertain', sa.Boolean(), nullable=False, server_default='false'),
    sa.Column('threshold_version', sa.DateTime(timezone=True), nullable=True),
    sa.Column('predictions', sa.Text(), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('assessment_id')
    )
    op.create_index('idx_risk_assessments_farm_id', 'risk_assessments', ['farm_id'], unique=False)
    op.create_index('idx_risk_assessments_assessed_at', 'risk_assessments', ['assessed_at'], unique=False, postgresql_ops={'assessed_at': 'DESC'})

    op.create_table('alerts',
    sa.Column('alert_id', sa.String(length=100), nullable=False),
    sa.Column('farm_id', sa.String(length=100), nullable=False),
    sa.Column('risk_type', sa.String(length=30), nullable=False),
    sa.Column('severity', sa.String(length=20), nullable=False),
    sa.Column('probability', sa.Float(), nullable=False),
    sa.Column('confidence', sa.Float(), nullable=False),
    sa.Column('priority', sa.Float(), nullable=False),
    sa.Column('state', sa.String(length=20), nullable=False),
    sa.Column('event_time', sa.DateTime(timezone=True), nullable=False),
    sa.Column('delivery_time', sa.DateTime(timezone=True), nullable=True),
    sa.Column('expiration_time', sa.DateTime(timezone=True), nullable=False),
    sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('uncertain', sa.Boolean(), nullable=False, server_default='false'),
    sa.Column('best_effort', sa.Boolean(), nullable=False, server_default='false'),
    sa.Column('refresh_count', sa.Integer(), nullable=False, server_default='0'),
    sa.Column('cycle_id', sa.String(length=100), nullable=True),
    sa.Column('message', sa.Text(), nullable=True),
    sa.Column('recommendations', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    sa.PrimaryKeyConstraint('alert_id')
    )
    op.create_index('idx_alerts_farm_id', 'alerts', ['farm_id'], unique=False)
    op.create_index('idx_alerts_state', 'alerts', ['state'], unique=False)

    op.create_table('delivery_tickets',
    sa.Column('ticket_id', sa.String(length=100), nullable=False),
    sa.Column('alert_id', sa.String(length=100), nullable=False),
    sa.Column('channel', sa.String(length=20), nullable=False),
    sa.Column('attempt_count', sa.Integer(), nullable=False, server_default='0'),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('message_id', sa.String(length=200), nullable=True),
    sa.Column('last_error', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    sa.PrimaryKeyConstraint('ticket_id')
    )
    op.create_index('idx_delivery_tickets_alert_id', 'delivery_tickets', ['alert_id'], unique=False)


def downgrade() -> None:
    op.drop_index('idx_delivery_tickets_alert_id', table_name='delivery_tickets')
    op.drop_table('delivery_tickets')

    op.drop_index('idx_alerts_state', table_name='alerts')
    op.drop_index('idx_alerts_farm_id', table_name='alerts')
    op.drop_table('alerts')

    op.drop_index('idx_risk_assessments_assessed_at', table_name='risk_assessments', postgresql_ops={'assessed_at': 'DESC'})
    op.drop_index('idx_risk_assessments_farm_id', table_name='risk_assessments')
    op.drop_table('risk_assessments')
