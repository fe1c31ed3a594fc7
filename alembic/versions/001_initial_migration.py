"""Initial migration

Revision ID: 001
Revises: 
Create Date: 2026-10-16 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None

user_role = sa.Enum(
    'USER', 'STAFF', 'LAB_TECHNICIAN', 'XRAY_TECHNICIAN', 'LOCAL_ADMIN', 'ADMIN', name='userrole'
)
booking_status = sa.Enum(
    'PENDING', 'CONFIRMED', 'IN_PROGRESS', 'SAMPLE_COLLECTED', 'REPORT_UPLOADED',
    'RESULT_PUBLISHED', 'COMPLETED', 'CANCELLED', name='bookingstatus'
)
payment_method = sa.Enum('PAY_NOW', 'PAY_LATER', name='paymentmethod')
payment_status = sa.Enum('PENDING', 'COMPLETED', 'FAILED', 'REFUNDED', name='paymentstatus')


def upgrade() -> None:
    # Create labs table
    op.create_table(
        'labs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('address', sa.JSON(), nullable=True),
        sa.Column('contact', sa.JSON(), nullable=True),
        sa.Column('operating_hours', sa.JSON(), nullable=True),
        sa.Column('facilities', sa.JSON(), nullable=True),
        sa.Column('image', sa.String(length=500), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_labs_name', 'labs', ['name'], unique=False)
    op.create_index('ix_labs_is_active', 'labs', ['is_active'], unique=False)

    # Create diagnostic tests table
    op.create_table(
        'diagnostic_tests',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('category', sa.String(length=32), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('duration', sa.String(length=50), nullable=True),
        sa.Column('preparation', sa.Text(), nullable=True),
        sa.Column('result_fields', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    # Create health packages table
    op.create_table(
        'health_packages',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('discount', sa.Float(), nullable=True),
        sa.Column('duration', sa.String(length=50), nullable=True),
        sa.Column('benefits', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    # Catalog association tables
    op.create_table(
        'lab_available_tests',
        sa.Column('lab_id', sa.String(length=36), nullable=False),
        sa.Column('test_id', sa.String(length=36), nullable=False),
        sa.ForeignKeyConstraint(['lab_id'], ['labs.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['test_id'], ['diagnostic_tests.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('lab_id', 'test_id')
    )
    op.create_table(
        'lab_available_packages',
        sa.Column('lab_id', sa.String(length=36), nullable=False),
        sa.Column('package_id', sa.String(length=36), nullable=False),
        sa.ForeignKeyConstraint(['lab_id'], ['labs.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['package_id'], ['health_packages.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('lab_id', 'package_id')
    )
    op.create_table(
        'package_tests',
        sa.Column('package_id', sa.String(length=36), nullable=False),
        sa.Column('test_id', sa.String(length=36), nullable=False),
        sa.ForeignKeyConstraint(['package_id'], ['health_packages.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['test_id'], ['diagnostic_tests.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('package_id', 'test_id')
    )

    # Create users table
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=50), nullable=False),
        sa.Column('last_name', sa.String(length=50), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('role', user_role, nullable=False),
        sa.Column('assigned_lab_id', sa.String(length=36), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('is_blocked', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.Column('last_login_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['assigned_lab_id'], ['labs.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_assigned_lab_id', 'users', ['assigned_lab_id'], unique=False)

    # Create bookings table
    op.create_table(
        'bookings',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('lab_id', sa.String(length=36), nullable=False),
        sa.Column('selected_tests', sa.JSON(), nullable=False),
        sa.Column('selected_packages', sa.JSON(), nullable=False),
        sa.Column('appointment_date', sa.DateTime(), nullable=False),
        sa.Column('appointment_time', sa.String(length=32), nullable=False),
        sa.Column('payment_method', payment_method, nullable=False),
        sa.Column('payment_status', payment_status, nullable=False),
        sa.Column('gateway_order_id', sa.String(length=100), nullable=True),
        sa.Column('gateway_payment_id', sa.String(length=100), nullable=True),
        sa.Column('gateway_signature', sa.String(length=255), nullable=True),
        sa.Column('total_amount', sa.Float(), nullable=False),
        sa.Column('paid_amount', sa.Float(), nullable=False),
        sa.Column('payment_date', sa.DateTime(), nullable=True),
        sa.Column('report_file', sa.String(length=500), nullable=True),
        sa.Column('report_upload_date', sa.DateTime(), nullable=True),
        sa.Column('test_results', sa.JSON(), nullable=False),
        sa.Column('status', booking_status, nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('user_location', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['lab_id'], ['labs.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_bookings_user_created', 'bookings', ['user_id', 'created_at'], unique=False)
    op.create_index('ix_bookings_lab_appointment', 'bookings', ['lab_id', 'appointment_date'], unique=False)
    op.create_index('ix_bookings_status_appointment', 'bookings', ['status', 'appointment_date'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_bookings_status_appointment', table_name='bookings')
    op.drop_index('ix_bookings_lab_appointment', table_name='bookings')
    op.drop_index('ix_bookings_user_created', table_name='bookings')
    op.drop_table('bookings')
    op.drop_index('ix_users_assigned_lab_id', table_name='users')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
    op.drop_table('package_tests')
    op.drop_table('lab_available_packages')
    op.drop_table('lab_available_tests')
    op.drop_table('health_packages')
    op.drop_table('diagnostic_tests')
    op.drop_index('ix_labs_is_active', table_name='labs')
    op.drop_index('ix_labs_name', table_name='labs')
    op.drop_table('labs')

    # Drop enum types
    op.execute('DROP TYPE IF EXISTS bookingstatus')
    op.execute('DROP TYPE IF EXISTS paymentstatus')
    op.execute('DROP TYPE IF EXISTS paymentmethod')
    op.execute('DROP TYPE IF EXISTS userrole')
