"""initial_schema

Revision ID: 5b7e1d2c9a40
Revises:
Create Date: 2026-10-18 09:00:00.000000

Schema for the VOSC shop:
- Catalog and delivery zones
- Customers, orders, delivery history and payment transactions
- Checkout conversations, messages and analytics events
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '5b7e1d2c9a40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Enum types store member names, as the models do
productstatus = postgresql.ENUM('ACTIVE', 'DRAFT', 'ARCHIVED', name='productstatus', create_type=False)
orderstatus = postgresql.ENUM(
    'PENDING', 'CONFIRMED', 'PAID', 'SHIPPED', 'DELIVERED', 'CANCELLED',
    name='orderstatus', create_type=False,
)
paymentstatus = postgresql.ENUM(
    'PENDING', 'PROCESSING', 'COMPLETED', 'FAILED', 'CANCELLED', 'EXPIRED', 'REFUNDED',
    name='paymentstatus', create_type=False,
)
paymentprovider = postgresql.ENUM(
    'STRIPE', 'WAVE', 'ORANGE_MONEY', 'CASH', name='paymentprovider', create_type=False
)
deliverystatus = postgresql.ENUM(
    'PENDING', 'ASSIGNED', 'IN_TRANSIT', 'DELIVERED', 'FAILED',
    name='deliverystatus', create_type=False,
)
conversationstatus = postgresql.ENUM(
    'ACTIVE', 'COMPLETED', 'ABANDONED', 'ESCALATED', name='conversationstatus', create_type=False
)
messagerole = postgresql.ENUM('USER', 'ASSISTANT', 'SYSTEM', name='messagerole', create_type=False)

ENUMS = [
    productstatus,
    orderstatus,
    paymentstatus,
    paymentprovider,
    deliverystatus,
    conversationstatus,
    messagerole,
]


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ENUMS:
        enum_type.create(bind, checkfirst=True)

    # ==========================================================================
    # Core tables (no foreign keys)
    # ==========================================================================

    op.create_table('products',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('slug', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Integer(), nullable=False),
        sa.Column('compare_at_price', sa.Integer(), nullable=True),
        sa.Column('stock_quantity', sa.Integer(), nullable=False),
        sa.Column('status', productstatus, nullable=False),
        sa.Column('images', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_products_slug', 'products', ['slug'], unique=True)
    op.create_index('ix_products_status', 'products', ['status'], unique=False)

    op.create_table('customers',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('city', sa.String(length=100), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_customers_phone', 'customers', ['phone'], unique=True)

    op.create_table('delivery_zones',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('cities', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('cost', sa.Integer(), nullable=False),
        sa.Column('free_delivery_threshold', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('analytics_events',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('session_id', sa.String(length=100), nullable=True),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('event_data', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_analytics_events_session_id', 'analytics_events', ['session_id'], unique=False)
    op.create_index('ix_analytics_events_event_type', 'analytics_events', ['event_type'], unique=False)
    op.create_index('ix_analytics_events_created_at', 'analytics_events', ['created_at'], unique=False)

    # ==========================================================================
    # Orders and payments
    # ==========================================================================

    op.create_table('orders',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('customer_id', sa.UUID(), nullable=True),
        sa.Column('session_id', sa.String(length=100), nullable=True),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=False),
        sa.Column('city', sa.String(length=100), nullable=False),
        sa.Column('address', sa.Text(), nullable=False),
        sa.Column('items', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('subtotal', sa.Integer(), nullable=False),
        sa.Column('delivery_cost', sa.Integer(), nullable=False),
        sa.Column('total_amount', sa.Integer(), nullable=False),
        sa.Column('payment_method', paymentprovider, nullable=True),
        sa.Column('status', orderstatus, nullable=False),
        sa.Column('payment_status', paymentstatus, nullable=False),
        sa.Column('delivery_status', deliverystatus, nullable=False),
        sa.Column('wave_transaction_id', sa.String(length=50), nullable=True),
        sa.Column('payment_validated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('wave_transaction_id')
    )
    op.create_index('ix_orders_customer_id', 'orders', ['customer_id'], unique=False)
    op.create_index('ix_orders_session_id', 'orders', ['session_id'], unique=False)
    op.create_index('ix_orders_phone', 'orders', ['phone'], unique=False)
    op.create_index('ix_orders_status', 'orders', ['status'], unique=False)
    op.create_index('ix_orders_delivery_status', 'orders', ['delivery_status'], unique=False)
    op.create_index('ix_orders_created_at', 'orders', ['created_at'], unique=False)

    op.create_table('delivery_status_history',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('order_id', sa.UUID(), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_delivery_status_history_order_id', 'delivery_status_history', ['order_id'], unique=False)
    op.create_index('ix_delivery_status_history_created_at', 'delivery_status_history', ['created_at'], unique=False)

    op.create_table('payment_transactions',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('order_id', sa.UUID(), nullable=False),
        sa.Column('provider', paymentprovider, nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', paymentstatus, nullable=False),
        sa.Column('reference', sa.String(length=255), nullable=True),
        sa.Column('payment_url', sa.Text(), nullable=True),
        sa.Column('client_secret', sa.String(length=255), nullable=True),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_payment_transactions_order_id', 'payment_transactions', ['order_id'], unique=False)
    op.create_index('ix_payment_transactions_status', 'payment_transactions', ['status'], unique=False)
    op.create_index('ix_payment_transactions_reference', 'payment_transactions', ['reference'], unique=False)
    op.create_index('ix_payment_transactions_created_at', 'payment_transactions', ['created_at'], unique=False)

    # ==========================================================================
    # Checkout conversations
    # ==========================================================================

    op.create_table('conversations',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('session_id', sa.String(length=100), nullable=False),
        sa.Column('product_id', sa.UUID(), nullable=True),
        sa.Column('customer_id', sa.UUID(), nullable=True),
        sa.Column('order_id', sa.UUID(), nullable=True),
        sa.Column('status', conversationstatus, nullable=False),
        sa.Column('step', sa.String(length=50), nullable=True),
        sa.Column('session_data', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_conversations_session_id', 'conversations', ['session_id'], unique=True)
    op.create_index('ix_conversations_customer_id', 'conversations', ['customer_id'], unique=False)
    op.create_index('ix_conversations_order_id', 'conversations', ['order_id'], unique=False)
    op.create_index('ix_conversations_status', 'conversations', ['status'], unique=False)
    op.create_index('ix_conversations_started_at', 'conversations', ['started_at'], unique=False)

    op.create_table('messages',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('conversation_id', sa.UUID(), nullable=False),
        sa.Column('role', messagerole, nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('choices', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_messages_conversation_id', 'messages', ['conversation_id'], unique=False)
    op.create_index('ix_messages_created_at', 'messages', ['created_at'], unique=False)


def downgrade() -> None:
    op.drop_table('messages')
    op.drop_table('conversations')
    op.drop_table('payment_transactions')
    op.drop_table('delivery_status_history')
    op.drop_table('orders')
    op.drop_table('analytics_events')
    op.drop_table('delivery_zones')
    op.drop_table('customers')
    op.drop_table('products')

    bind = op.get_bind()
    for enum_type in reversed(ENUMS):
        enum_type.drop(bind, checkfirst=True)
