"""Initial migration

Revision ID: 001
Revises:
Create Date: 2024-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create evse table
    op.create_table(
        'evse',
        sa.Column('uid', sa.String(100), primary_key=True),
        sa.Column('qr_code', sa.Integer(), unique=True, nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('model', sa.String(100)),
        sa.Column('vendor', sa.String(100)),
        sa.Column('status', sa.String(50), default='AVAILABLE'),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
    )

    # Create evse_connectors table
    op.create_table(
        'evse_connectors',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('evse_uid', sa.String(100), sa.ForeignKey('evse.uid'), nullable=False),
        sa.Column('connector_id', sa.String(20), nullable=False),
        sa.Column('standard', sa.String(50)),
        sa.Column('power_type', sa.String(20)),
        sa.Column('max_power', sa.Integer()),
        sa.Column('status', sa.String(50), default='AVAILABLE'),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
    )

    # Create evse_qr_rates table
    op.create_table(
        'evse_qr_rates',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('evse_uid', sa.String(100), sa.ForeignKey('evse.uid'), nullable=False),
        sa.Column('label', sa.String(100)),
        sa.Column('charge_mins', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
    )

    # Create user_driver_guests table
    op.create_table(
        'user_driver_guests',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('mobile_number', sa.String(20), nullable=False),
        sa.Column('rfid', sa.String(12), unique=True, nullable=False),
        sa.Column('otp', sa.String(10)),
        sa.Column('otp_verified', sa.Boolean(), default=False),
        sa.Column('is_free', sa.Boolean(), default=False),
        sa.Column('paid_charge_mins', sa.Integer(), default=0),
        sa.Column('home_link', sa.String(500)),
        sa.Column('charging_status', sa.String(50), default='RESERVED'),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
    )

    # Create user_driver_guest_reservations table
    op.create_table(
        'user_driver_guest_reservations',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('guest_id', sa.Integer(), sa.ForeignKey('user_driver_guests.id'), unique=True, nullable=False),
        sa.Column('timeslot_id', sa.Integer(), nullable=False),
        sa.Column('next_timeslot_id', sa.Integer(), nullable=False),
        sa.Column('requested_time', sa.String(8), nullable=False),
        sa.Column('requested_date', sa.String(10), nullable=False),
        sa.Column('timeslot_time', sa.String(8)),
        sa.Column('next_timeslot_date', sa.String(10)),
        sa.Column('status', sa.String(50), default='RESERVED'),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
    )

    # Create user_driver_qr_payment_records table
    op.create_table(
        'user_driver_qr_payment_records',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('guest_id', sa.Integer(), sa.ForeignKey('user_driver_guests.id'), nullable=False),
        sa.Column('evse_qr_rate_id', sa.Integer(), sa.ForeignKey('evse_qr_rates.id')),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('payment_type', sa.String(20), nullable=False),
        sa.Column('payment_status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('provider_status', sa.String(50)),
        sa.Column('transaction_id', sa.String(255)),
        sa.Column('maya_client_key', sa.String(255)),
        sa.Column('description', sa.Text()),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
    )

    # Create indexes
    op.create_index('ix_user_driver_guests_mobile_number', 'user_driver_guests', ['mobile_number'])
    op.create_index(
        'ix_user_driver_guest_reservations_timeslot_id',
        'user_driver_guest_reservations',
        ['timeslot_id'],
    )
    op.create_index(
        'uq_reservation_active_timeslot',
        'user_driver_guest_reservations',
        ['timeslot_id', 'requested_date'],
        unique=True,
        postgresql_where=sa.text("status <> 'CANCELLED'"),
    )
    op.create_index(
        'ix_user_driver_qr_payment_records_transaction_id',
        'user_driver_qr_payment_records',
        ['transaction_id'],
    )


def downgrade() -> None:
    op.drop_table('user_driver_qr_payment_records')
    op.drop_table('user_driver_guest_reservations')
    op.drop_table('user_driver_guests')
    op.drop_table('evse_qr_rates')
    op.drop_table('evse_connectors')
    op.drop_table('evse')
