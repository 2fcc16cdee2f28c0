"""Create pricing and promotions tables

Revision ID: 001_pricing
Revises:
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB

# revision identifiers
revision = '001_pricing'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create coupon, gift card, loyalty and restaurant settings tables"""

    # ====================
    # COUPONS
    # ====================
    op.create_table(
        'coupons',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('code', sa.String(50), unique=True, nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('type', sa.String(50), server_default='PERCENTAGE', nullable=False),
        sa.Column('discount_value', sa.Numeric(10, 2), nullable=True),
        sa.Column('max_discount_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('buy_x_get_y', JSONB, nullable=True),
        sa.Column('min_order_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('usage_limit', sa.Integer, nullable=True),
        sa.Column('usage_limit_per_user', sa.Integer, nullable=True),
        sa.Column('usage_count', sa.Integer, server_default='0', nullable=False),
        sa.Column('valid_from', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(50), server_default='ACTIVE', nullable=False),
        sa.Column('created_by', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.CheckConstraint('usage_limit IS NULL OR usage_count <= usage_limit', name='coupons_usage_within_limit'),
        sa.CheckConstraint('usage_count >= 0', name='coupons_usage_non_negative'),
    )

    op.create_index('ix_coupons_code', 'coupons', ['code'])
    op.create_index('ix_coupons_status', 'coupons', ['status'])
    op.create_index('ix_coupons_validity', 'coupons', ['valid_from', 'valid_until'])

    op.create_table(
        'coupon_usages',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('coupon_id', UUID(as_uuid=True), nullable=False),
        sa.Column('order_id', sa.String(100), nullable=False),
        sa.Column('user_id', sa.String(100), nullable=True),
        sa.Column('discount_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('used_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )

    op.create_index('ix_coupon_usages_coupon_id', 'coupon_usages', ['coupon_id'])
    op.create_index('ix_coupon_usages_order_id', 'coupon_usages', ['order_id'])
    op.create_index('ix_coupon_usages_user_id', 'coupon_usages', ['user_id'])

    # ====================
    # GIFT CARDS
    # ====================
    op.create_table(
        'gift_cards',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('code', sa.String(20), unique=True, nullable=False),
        sa.Column('pin', sa.String(255), nullable=True),
        sa.Column('original_balance', sa.Numeric(10, 2), nullable=False),
        sa.Column('current_balance', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(3), server_default='USD', nullable=False),
        sa.Column('status', sa.String(20), server_default='ACTIVE', nullable=False),
        sa.Column('purchased_by', sa.String(100), nullable=True),
        sa.Column('purchased_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.CheckConstraint(
            'current_balance >= 0 AND current_balance <= original_balance',
            name='gift_cards_balance_bounds',
        ),
    )

    op.create_index('ix_gift_cards_code', 'gift_cards', ['code'])
    op.create_index('ix_gift_cards_purchased_by', 'gift_cards', ['purchased_by'])

    op.create_table(
        'gift_card_transactions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('gift_card_id', UUID(as_uuid=True), nullable=False),
        sa.Column('order_id', sa.String(100), nullable=True),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('balance_after', sa.Numeric(10, 2), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )

    op.create_index('ix_gift_card_transactions_gift_card_id', 'gift_card_transactions', ['gift_card_id'])
    op.create_index('ix_gift_card_transactions_order_id', 'gift_card_transactions', ['order_id'])

    # ====================
    # LOYALTY
    # ====================
    op.create_table(
        'loyalty_accounts',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', sa.String(100), unique=True, nullable=False),
        sa.Column('points', sa.Integer, server_default='0', nullable=False),
        sa.Column('lifetime_points', sa.Integer, server_default='0', nullable=False),
        sa.Column('tier', sa.String(20), server_default='BRONZE', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.CheckConstraint('points >= 0', name='loyalty_points_non_negative'),
    )

    op.create_index('ix_loyalty_accounts_user_id', 'loyalty_accounts', ['user_id'])

    op.create_table(
        'loyalty_transactions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('loyalty_account_id', UUID(as_uuid=True), nullable=False),
        sa.Column('order_id', sa.String(100), nullable=True),
        sa.Column('points', sa.Integer, nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )

    op.create_index('ix_loyalty_transactions_loyalty_account_id', 'loyalty_transactions', ['loyalty_account_id'])
    op.create_index('ix_loyalty_transactions_order_id', 'loyalty_transactions', ['order_id'])

    # ====================
    # RESTAURANT SETTINGS
    # ====================
    op.create_table(
        'restaurant_settings',
        sa.Column('id', sa.String(50), primary_key=True),
        sa.Column('tax_rate', sa.Numeric(6, 4), nullable=True),
        sa.Column('min_order_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('delivery_fee', sa.Numeric(10, 2), nullable=True),
        sa.Column('enable_loyalty_points', sa.Boolean, nullable=True),
        sa.Column('loyalty_points_per_dollar', sa.Numeric(6, 2), nullable=True),
        sa.Column('loyalty_points_for_free', sa.Integer, nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )


def downgrade():
    """Drop pricing and promotions tables"""
    op.drop_table('restaurant_settings')
    op.drop_table('loyalty_transactions')
    op.drop_table('loyalty_accounts')
    op.drop_table('gift_card_transactions')
    op.drop_table('gift_cards')
    op.drop_table('coupon_usages')
    op.drop_table('coupons')
