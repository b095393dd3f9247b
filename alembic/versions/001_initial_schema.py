"""Initial schema: users, courses, coupons, carts, orders, enrollments, notifications, webhook log

Revision ID: 001_initial
Revises:
Create Date: 2026-01-05 00:00:00.000000

Tags: schema, initial
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = ('schema',)
depends_on: Union[str, Sequence[str], None] = None

ORDER_STATUSES = ('pending', 'paid', 'failed', 'cancelled')
PAYMENT_METHODS = ('manual', 'stripe', 'razorpay')
ORDER_SOURCES = ('cart', 'single')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    connection = op.get_bind()
    inspector = sa.inspect(connection)
    existing = set(inspector.get_table_names())

    if 'users' not in existing:
        op.create_table(
            'users',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=255), nullable=True),
            sa.Column('email', sa.String(length=255), nullable=False),
            sa.Column('role', sa.String(length=20), nullable=False, server_default='student'),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
            sa.Column('is_active', sa.Boolean(), nullable=True),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_users_id', 'users', ['id'])
        op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # pending_courses.course_id -> courses is added after both tables exist
    if 'pending_courses' not in existing:
        op.create_table(
            'pending_courses',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('title', sa.String(length=255), nullable=False),
            sa.Column('price', sa.Float(), nullable=False, server_default='0.0'),
            sa.Column('instructor_id', sa.Integer(), nullable=True),
            sa.Column('status', sa.String(length=20), nullable=False, server_default='draft'),
            sa.Column('course_id', sa.Integer(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(['instructor_id'], ['users.id'], ondelete='SET NULL'),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_pending_courses_id', 'pending_courses', ['id'])
        op.create_index('ix_pending_courses_instructor_id', 'pending_courses', ['instructor_id'])
        op.create_index('ix_pending_courses_course_id', 'pending_courses', ['course_id'])

    if 'courses' not in existing:
        op.create_table(
            'courses',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('title', sa.String(length=255), nullable=False),
            sa.Column('landing_title', sa.String(length=255), nullable=True),
            sa.Column('price', sa.Float(), nullable=False, server_default='0.0'),
            sa.Column('published', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('instructor_id', sa.Integer(), nullable=True),
            sa.Column('pending_course_id', sa.Integer(), nullable=True),
            sa.Column('learner_count', sa.Integer(), nullable=False, server_default='0'),
            *_timestamps(),
            sa.ForeignKeyConstraint(['instructor_id'], ['users.id'], ondelete='SET NULL'),
            sa.ForeignKeyConstraint(['pending_course_id'], ['pending_courses.id'], ondelete='SET NULL'),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_courses_id', 'courses', ['id'])
        op.create_index('ix_courses_published', 'courses', ['published'])
        op.create_index('ix_courses_instructor_id', 'courses', ['instructor_id'])
        op.create_index('ix_courses_pending_course_id', 'courses', ['pending_course_id'])

        # SQLite cannot add constraints to an existing table
        if connection.dialect.name != 'sqlite':
            op.create_foreign_key(
                'fk_pending_courses_course_id', 'pending_courses', 'courses',
                ['course_id'], ['id'], ondelete='SET NULL'
            )

    if 'coupons' not in existing:
        op.create_table(
            'coupons',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('code', sa.String(length=50), nullable=False),
            sa.Column('description', sa.String(length=500), nullable=True),
            sa.Column('discount_percentage', sa.Float(), nullable=False),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('valid_until', sa.DateTime(timezone=True), nullable=True),
            sa.Column('max_uses', sa.Integer(), nullable=True),
            sa.Column('used_count', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('minimum_purchase', sa.Float(), nullable=False, server_default='0.0'),
            sa.Column('applicable_courses', sa.JSON(), nullable=False),
            sa.Column('applicable_pending_courses', sa.JSON(), nullable=False),
            sa.Column('created_by', sa.Integer(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(['created_by'], ['users.id'], ondelete='SET NULL'),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_coupons_id', 'coupons', ['id'])
        op.create_index('ix_coupons_code', 'coupons', ['code'], unique=True)
        op.create_index('ix_coupons_is_active', 'coupons', ['is_active'])
        op.create_index('ix_coupons_created_by', 'coupons', ['created_by'])

    if 'carts' not in existing:
        op.create_table(
            'carts',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('coupon_code', sa.String(length=50), nullable=True),
            sa.Column('discount_percentage', sa.Float(), nullable=False, server_default='0.0'),
            sa.Column('total_before_discount', sa.Float(), nullable=False, server_default='0.0'),
            sa.Column('total_after_discount', sa.Float(), nullable=False, server_default='0.0'),
            *_timestamps(),
            sa.Column('last_activity_at', sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_carts_id', 'carts', ['id'])
        op.create_index('ix_carts_user_id', 'carts', ['user_id'], unique=True)

    if 'cart_items' not in existing:
        op.create_table(
            'cart_items',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('cart_id', sa.Integer(), nullable=False),
            sa.Column('course_id', sa.Integer(), nullable=False),
            sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
            sa.ForeignKeyConstraint(['cart_id'], ['carts.id'], ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['course_id'], ['courses.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('cart_id', 'course_id', name='uq_cart_items_cart_course'),
        )
        op.create_index('ix_cart_items_id', 'cart_items', ['id'])
        op.create_index('ix_cart_items_cart_id', 'cart_items', ['cart_id'])
        op.create_index('ix_cart_items_course_id', 'cart_items', ['course_id'])

    if 'orders' not in existing:
        op.create_table(
            'orders',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('order_number', sa.String(length=50), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('currency', sa.String(length=3), nullable=False, server_default='INR'),
            sa.Column('base_currency', sa.String(length=3), nullable=False, server_default='INR'),
            sa.Column('exchange_rate', sa.Float(), nullable=False, server_default='1.0'),
            sa.Column('coupon_code', sa.String(length=50), nullable=True),
            sa.Column('discount_percentage', sa.Float(), nullable=False, server_default='0.0'),
            sa.Column('subtotal', sa.Float(), nullable=False),
            sa.Column('discount_amount', sa.Float(), nullable=False, server_default='0.0'),
            sa.Column('total', sa.Float(), nullable=False),
            sa.Column('base_subtotal', sa.Float(), nullable=False),
            sa.Column('base_discount_amount', sa.Float(), nullable=False, server_default='0.0'),
            sa.Column('base_total', sa.Float(), nullable=False),
            sa.Column('status', sa.Enum(*ORDER_STATUSES, name='orderstatus'), nullable=False, server_default='pending'),
            sa.Column('payment_method', sa.Enum(*PAYMENT_METHODS, name='paymentmethod'), nullable=False, server_default='manual'),
            sa.Column('payment_reference', sa.String(length=255), nullable=True),
            sa.Column('gateway_order_id', sa.String(length=255), nullable=True),
            sa.Column('checkout_url', sa.Text(), nullable=True),
            sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('source', sa.Enum(*ORDER_SOURCES, name='ordersource'), nullable=False, server_default='cart'),
            *_timestamps(),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_orders_id', 'orders', ['id'])
        op.create_index('ix_orders_order_number', 'orders', ['order_number'], unique=True)
        op.create_index('ix_orders_user_id', 'orders', ['user_id'])
        op.create_index('ix_orders_coupon_code', 'orders', ['coupon_code'])
        op.create_index('ix_orders_status', 'orders', ['status'])
        op.create_index('ix_orders_payment_reference', 'orders', ['payment_reference'], unique=True)
        op.create_index('ix_orders_gateway_order_id', 'orders', ['gateway_order_id'])
        op.create_index('ix_orders_created_at', 'orders', ['created_at'])

    if 'order_items' not in existing:
        op.create_table(
            'order_items',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('order_id', sa.Integer(), nullable=False),
            sa.Column('course_id', sa.Integer(), nullable=True),
            sa.Column('title', sa.String(length=255), nullable=False),
            sa.Column('unit_price', sa.Float(), nullable=False),
            sa.Column('base_unit_price', sa.Float(), nullable=False),
            sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
            sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['course_id'], ['courses.id'], ondelete='SET NULL'),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_order_items_id', 'order_items', ['id'])
        op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
        op.create_index('ix_order_items_course_id', 'order_items', ['course_id'])

    if 'order_status_history' not in existing:
        op.create_table(
            'order_status_history',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('order_id', sa.Integer(), nullable=False),
            sa.Column('status', sa.String(length=20), nullable=False),
            sa.Column('previous_status', sa.String(length=20), nullable=True),
            sa.Column('notes', sa.Text(), nullable=False),
            sa.Column('changed_by', sa.String(length=100), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
            sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_order_status_history_id', 'order_status_history', ['id'])
        op.create_index('ix_order_status_history_order_id', 'order_status_history', ['order_id'])
        op.create_index('ix_order_status_history_status', 'order_status_history', ['status'])
        op.create_index('ix_order_status_history_created_at', 'order_status_history', ['created_at'])

    if 'enrollments' not in existing:
        op.create_table(
            'enrollments',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('course_id', sa.Integer(), nullable=False),
            sa.Column('enrolled_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
            sa.Column('payment_method', sa.String(length=20), nullable=True),
            sa.Column('amount_paid', sa.Float(), nullable=False, server_default='0.0'),
            sa.Column('currency', sa.String(length=3), nullable=True),
            sa.Column('payment_id', sa.String(length=255), nullable=True),
            sa.Column('order_id', sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['course_id'], ['courses.id'], ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='SET NULL'),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('user_id', 'course_id', name='uq_enrollments_user_course'),
        )
        op.create_index('ix_enrollments_id', 'enrollments', ['id'])
        op.create_index('ix_enrollments_user_id', 'enrollments', ['user_id'])
        op.create_index('ix_enrollments_course_id', 'enrollments', ['course_id'])
        op.create_index('ix_enrollments_payment_id', 'enrollments', ['payment_id'])
        op.create_index('ix_enrollments_order_id', 'enrollments', ['order_id'])

    if 'course_progress' not in existing:
        op.create_table(
            'course_progress',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('enrollment_id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('course_id', sa.Integer(), nullable=False),
            sa.Column('completed_lessons', sa.JSON(), nullable=False),
            sa.Column('progress_percentage', sa.Float(), nullable=False, server_default='0.0'),
            sa.Column('last_accessed_at', sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(['enrollment_id'], ['enrollments.id'], ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['course_id'], ['courses.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_course_progress_id', 'course_progress', ['id'])
        op.create_index('ix_course_progress_enrollment_id', 'course_progress', ['enrollment_id'], unique=True)
        op.create_index('ix_course_progress_user_id', 'course_progress', ['user_id'])
        op.create_index('ix_course_progress_course_id', 'course_progress', ['course_id'])

    if 'notifications' not in existing:
        op.create_table(
            'notifications',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('type', sa.String(length=50), nullable=True),
            sa.Column('title', sa.String(length=255), nullable=False),
            sa.Column('message', sa.Text(), nullable=False),
            sa.Column('metadata', sa.JSON(), nullable=True),
            sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_notifications_id', 'notifications', ['id'])
        op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])

    if 'webhook_events' not in existing:
        op.create_table(
            'webhook_events',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('provider', sa.String(length=20), nullable=False),
            sa.Column('event_id', sa.String(length=255), nullable=False),
            sa.Column('event_type', sa.String(length=100), nullable=False),
            sa.Column('status', sa.String(length=20), nullable=False, server_default='received'),
            sa.Column('attempts', sa.Integer(), nullable=False, server_default='1'),
            sa.Column('error', sa.Text(), nullable=True),
            sa.Column('received_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
            sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('provider', 'event_id', name='uq_webhook_events_provider_event'),
        )
        op.create_index('ix_webhook_events_id', 'webhook_events', ['id'])
        op.create_index('ix_webhook_events_provider', 'webhook_events', ['provider'])
        op.create_index('ix_webhook_events_event_id', 'webhook_events', ['event_id'])
        op.create_index('ix_webhook_events_status', 'webhook_events', ['status'])


def downgrade() -> None:
    connection = op.get_bind()
    if connection.dialect.name != 'sqlite':
        op.drop_constraint('fk_pending_courses_course_id', 'pending_courses', type_='foreignkey')

    for table in (
        'webhook_events',
        'notifications',
        'course_progress',
        'enrollments',
        'order_status_history',
        'order_items',
        'orders',
        'cart_items',
        'carts',
        'coupons',
        'courses',
        'pending_courses',
        'users',
    ):
        op.drop_table(table)

    if connection.dialect.name == 'postgresql':
        for enum_name in ('orderstatus', 'paymentmethod', 'ordersource'):
            sa.Enum(name=enum_name).drop(connection, checkfirst=True)
