"""guest_course_purchases

Revision ID: 0001_guest_purchases
Revises: 
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_guest_purchases'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the catalog, user and guest purchase tables."""

    # Instructors table (courses reference it)
    op.create_table(
        'instructors',
        sa.Column('instructor_id', sa.String(length=36), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('instructor_id'),
        sa.UniqueConstraint('email')
    )

    # Courses table
    op.create_table(
        'courses',
        sa.Column('course_id', sa.String(length=36), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('thumbnail_url', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('instructor_id', sa.String(length=36), nullable=True),
        sa.Column('duration_hours', sa.Integer(), nullable=True),
        sa.Column('level', sa.String(length=20), nullable=True),
        sa.Column('is_published', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('video_series', sa.String(length=255), nullable=True),
        sa.Column('video_part', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('price >= 0', name='ck_courses_price_non_negative'),
        sa.ForeignKeyConstraint(['instructor_id'], ['instructors.instructor_id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('course_id')
    )
    op.create_index(op.f('ix_courses_is_published'), 'courses', ['is_published'], unique=False)
    op.create_index(op.f('ix_courses_video_series'), 'courses', ['video_series'], unique=False)

    # Users table
    op.create_table(
        'users',
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=True),
        sa.Column('salt', sa.String(length=255), nullable=True),
        sa.Column('first_name', sa.String(length=100), nullable=False, server_default=''),
        sa.Column('last_name', sa.String(length=100), nullable=False, server_default=''),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='STUDENT'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint("role IN ('STUDENT', 'ADMIN', 'GUEST')", name='ck_users_role'),
        sa.PrimaryKeyConstraint('user_id')
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_role'), 'users', ['role'], unique=False)

    # Guest course purchases table
    op.create_table(
        'guest_course_purchases',
        sa.Column('purchase_id', sa.String(length=36), nullable=False),
        sa.Column('course_id', sa.String(length=36), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=False),
        sa.Column('customer_email', sa.String(length=255), nullable=False),
        sa.Column('customer_phone', sa.String(length=50), nullable=True),
        sa.Column('course_price', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('payment_status', sa.String(length=20), nullable=False, server_default='PENDING'),
        sa.Column('payment_method', sa.String(length=50), nullable=True),
        sa.Column('transaction_id', sa.String(length=255), nullable=True),
        sa.Column('payment_intent_id', sa.String(length=255), nullable=True),
        sa.Column('access_code', sa.String(length=50), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('fulfilled_at', sa.DateTime(), nullable=True),
        sa.Column('fulfillment_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "payment_status IN ('PENDING', 'PAID', 'FAILED', 'REFUNDED', 'CANCELLED')",
            name='ck_guest_course_purchases_status'),
        sa.ForeignKeyConstraint(['course_id'], ['courses.course_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('purchase_id')
    )
    op.create_index(op.f('ix_guest_course_purchases_course_id'), 'guest_course_purchases',
                    ['course_id'], unique=False)
    op.create_index(op.f('ix_guest_course_purchases_customer_email'), 'guest_course_purchases',
                    ['customer_email'], unique=False)
    op.create_index(op.f('ix_guest_course_purchases_payment_status'), 'guest_course_purchases',
                    ['payment_status'], unique=False)
    op.create_index(op.f('ix_guest_course_purchases_payment_intent_id'), 'guest_course_purchases',
                    ['payment_intent_id'], unique=False)
    op.create_index(op.f('ix_guest_course_purchases_access_code'), 'guest_course_purchases',
                    ['access_code'], unique=True)
    # reconciliation scans PAID rows that were never fulfilled
    op.create_index('ix_guest_course_purchases_unfulfilled', 'guest_course_purchases',
                    ['payment_status', 'fulfilled_at'], unique=False)


def downgrade() -> None:
    op.drop_table('guest_course_purchases')
    op.drop_table('users')
    op.drop_table('courses')
    op.drop_table('instructors')
