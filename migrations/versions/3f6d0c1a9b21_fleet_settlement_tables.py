"""fleet settlement tables

Revision ID: 3f6d0c1a9b21
Revises:
Create Date: 2025-07-07 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f6d0c1a9b21'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

shift_enum = postgresql.ENUM('morning', 'evening', name='shift_enum', create_type=False)
settlement_status_enum = postgresql.ENUM('settled', 'resettled', name='settlement_status_enum', create_type=False)


def upgrade() -> None:
    bind = op.get_bind()
    if bind.dialect.name == 'postgresql':
        # shared by trip_logs and substitute_drivers, so create once up front
        shift_enum.create(bind, checkfirst=True)
        settlement_status_enum.create(bind, checkfirst=True)

    op.create_table(
        'vehicles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('vehicle_number', sa.String(length=32), nullable=False, unique=True),
        sa.Column('company', sa.String(length=32), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('deleted_at', sa.DateTime(timezone=True)),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_table(
        'drivers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False, server_default=''),
        sa.Column('has_accommodation', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_table(
        'vehicle_driver_assignments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('vehicle_id', sa.Integer(), sa.ForeignKey('vehicles.id', ondelete='CASCADE'),
                  nullable=False, unique=True),
        sa.Column('morning_driver_id', sa.Integer(), sa.ForeignKey('drivers.id', ondelete='SET NULL')),
        sa.Column('evening_driver_id', sa.Integer(), sa.ForeignKey('drivers.id', ondelete='SET NULL')),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_table(
        'trip_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('driver_id', sa.Integer(), sa.ForeignKey('drivers.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('vehicle_id', sa.Integer(), sa.ForeignKey('vehicles.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('trip_date', sa.Date(), nullable=False),
        sa.Column('shift', shift_enum, nullable=False),
        sa.Column('trip_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('collected_cash', sa.Integer()),
        sa.Column('fuel_expense', sa.Integer()),
        sa.Column('paid', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('driver_id', 'trip_date', 'shift', name='uq_trip_log_driver_date_shift'),
    )
    op.create_index('ix_trip_logs_driver_id', 'trip_logs', ['driver_id'])
    op.create_index('ix_trip_logs_vehicle_id', 'trip_logs', ['vehicle_id'])
    op.create_index('ix_trip_logs_trip_date', 'trip_logs', ['trip_date'])
    op.create_index('ix_trip_logs_vehicle_date', 'trip_logs', ['vehicle_id', 'trip_date'])

    op.create_table(
        'substitute_drivers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('vehicle_id', sa.Integer(), sa.ForeignKey('vehicles.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('work_date', sa.Date(), nullable=False),
        sa.Column('shift', shift_enum, nullable=False),
        sa.Column('shift_hours', sa.Integer(), nullable=False),
        sa.Column('trip_count', sa.Integer()),
        sa.Column('charge', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_substitute_drivers_vehicle_id', 'substitute_drivers', ['vehicle_id'])
    op.create_index('ix_substitute_drivers_work_date', 'substitute_drivers', ['work_date'])

    op.create_table(
        'weekly_settlements',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('scope_key', sa.String(length=32), nullable=False),
        sa.Column('vehicle_id', sa.Integer(), sa.ForeignKey('vehicles.id', ondelete='SET NULL')),
        sa.Column('week_start', sa.Date(), nullable=False),
        sa.Column('week_end', sa.Date(), nullable=False),
        sa.Column('total_trips', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rental_rate', sa.Integer()),
        sa.Column('company_rent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('driver_rent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('substitute_rent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_income', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('profit', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('driver_details', sa.JSON()),
        sa.Column('substitute_details', sa.JSON()),
        sa.Column('status', settlement_status_enum, nullable=False, server_default='settled'),
        sa.Column('processed_by', sa.String(length=120)),
        sa.Column('notes', sa.Text()),
        sa.Column('paid', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('scope_key', 'week_start', name='uq_settlement_scope_week'),
    )
    op.create_index('ix_weekly_settlements_vehicle_id', 'weekly_settlements', ['vehicle_id'])


def downgrade() -> None:
    op.drop_index('ix_weekly_settlements_vehicle_id', table_name='weekly_settlements')
    op.drop_table('weekly_settlements')
    op.drop_index('ix_substitute_drivers_work_date', table_name='substitute_drivers')
    op.drop_index('ix_substitute_drivers_vehicle_id', table_name='substitute_drivers')
    op.drop_table('substitute_drivers')
    op.drop_index('ix_trip_logs_vehicle_date', table_name='trip_logs')
    op.drop_index('ix_trip_logs_trip_date', table_name='trip_logs')
    op.drop_index('ix_trip_logs_vehicle_id', table_name='trip_logs')
    op.drop_index('ix_trip_logs_driver_id', table_name='trip_logs')
    op.drop_table('trip_logs')
    op.drop_table('vehicle_driver_assignments')
    op.drop_table('drivers')
    op.drop_table('vehicles')

    bind = op.get_bind()
    if bind.dialect.name == 'postgresql':
        settlement_status_enum.drop(bind, checkfirst=True)
        shift_enum.drop(bind, checkfirst=True)
