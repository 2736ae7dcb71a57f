"""membership lifecycle and bargaining settings

Revision ID: 0001_membership_bargaining
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_membership_bargaining'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

membership_status = sa.Enum('PENDING', 'ACTIVE', 'CANCELLED', name='membershipstatus')
membership_change_type = sa.Enum('UPGRADE', 'DOWNGRADE', 'SWITCH', name='membershipchangetype')
bargaining_behavior = sa.Enum('LOW', 'NORMAL', 'HIGH', name='bargainingbehavior')
store_connection_status = sa.Enum('ACTIVE', 'DISCONNECTED', name='storeconnectionstatus')


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'membership_plans',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('slug', sa.String(length=64), nullable=False, comment="Stable identifier, e.g. 'free', 'pro'"),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.DECIMAL(precision=10, scale=2), nullable=False, comment='Monthly price. 0 marks the free tier.'),
        sa.Column('product_limit', sa.Integer(), nullable=False, comment='Max distinct products with bargaining enabled. 0 = unlimited.'),
        sa.Column('trial_days', sa.Integer(), nullable=False),
        sa.Column('features', sa.JSON(), nullable=False, comment='Ordered list of marketing feature lines'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('price >= 0', name=op.f('ck_membership_plans_price_non_negative')),
        sa.CheckConstraint('product_limit >= 0', name=op.f('ck_membership_plans_product_limit_non_negative')),
        sa.CheckConstraint('trial_days >= 0', name=op.f('ck_membership_plans_trial_days_non_negative')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_membership_plans')),
    )
    op.create_index(op.f('ix_membership_plans_slug'), 'membership_plans', ['slug'], unique=True)

    op.create_table(
        'user_memberships',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('plan_id', sa.Integer(), nullable=False),
        sa.Column('status', membership_status, nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=True),
        sa.Column('next_billing_date', sa.DateTime(), nullable=True),
        sa.Column('trial_end_date', sa.DateTime(), nullable=True),
        sa.Column('billing_status', sa.String(length=32), nullable=True),
        sa.Column('billing_details', sa.JSON(), nullable=True, comment='Opaque charge payload returned by the billing provider'),
        sa.Column('external_charge_id', sa.String(length=64), nullable=True),
        sa.Column('session_id', sa.String(length=64), nullable=True, comment='Correlates one billing attempt across redirects'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['plan_id'], ['membership_plans.id'], name=op.f('fk_user_memberships_plan_id_membership_plans')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_user_memberships')),
    )
    op.create_index(op.f('ix_user_memberships_user_id'), 'user_memberships', ['user_id'], unique=False)
    op.create_index(op.f('ix_user_memberships_plan_id'), 'user_memberships', ['plan_id'], unique=False)
    op.create_index(op.f('ix_user_memberships_status'), 'user_memberships', ['status'], unique=False)
    op.create_index(op.f('ix_user_memberships_external_charge_id'), 'user_memberships', ['external_charge_id'], unique=False)
    op.create_index(op.f('ix_user_memberships_session_id'), 'user_memberships', ['session_id'], unique=False)
    op.create_index(
        'uq_user_memberships_one_active', 'user_memberships', ['user_id'], unique=True,
        postgresql_where=sa.text("status = 'ACTIVE'")
    )
    op.create_index(
        'uq_user_memberships_one_pending_per_plan', 'user_memberships', ['user_id', 'plan_id'], unique=True,
        postgresql_where=sa.text("status = 'PENDING'")
    )

    op.create_table(
        'membership_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('from_plan_id', sa.Integer(), nullable=True),
        sa.Column('to_plan_id', sa.Integer(), nullable=False),
        sa.Column('change_type', membership_change_type, nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('change_date', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['from_plan_id'], ['membership_plans.id'], name=op.f('fk_membership_history_from_plan_id_membership_plans')),
        sa.ForeignKeyConstraint(['to_plan_id'], ['membership_plans.id'], name=op.f('fk_membership_history_to_plan_id_membership_plans')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_membership_history')),
    )
    op.create_index(op.f('ix_membership_history_user_id'), 'membership_history', ['user_id'], unique=False)

    op.create_table(
        'billing_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('charge_id', sa.String(length=64), nullable=True),
        sa.Column('plan_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('session_id', sa.String(length=64), nullable=True),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['plan_id'], ['membership_plans.id'], name=op.f('fk_billing_events_plan_id_membership_plans')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_billing_events')),
    )
    op.create_index(op.f('ix_billing_events_user_id'), 'billing_events', ['user_id'], unique=False)
    op.create_index(op.f('ix_billing_events_event_type'), 'billing_events', ['event_type'], unique=False)
    op.create_index(op.f('ix_billing_events_session_id'), 'billing_events', ['session_id'], unique=False)

    op.create_table(
        'bargaining_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.String(length=64), nullable=False, comment='Storefront product id'),
        sa.Column('variant_id', sa.String(length=64), nullable=False, comment='Storefront variant id'),
        sa.Column('enabled', sa.Boolean(), nullable=False),
        sa.Column('min_price', sa.DECIMAL(precision=10, scale=2), nullable=False),
        sa.Column('original_price', sa.DECIMAL(precision=10, scale=2), nullable=False),
        sa.Column('behavior', bargaining_behavior, nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('min_price <= original_price', name=op.f('ck_bargaining_settings_min_price_le_original')),
        sa.CheckConstraint('min_price >= 0', name=op.f('ck_bargaining_settings_min_price_non_negative')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_bargaining_settings')),
        sa.UniqueConstraint('user_id', 'product_id', 'variant_id', name='uq_bargaining_settings_user_product_variant'),
    )
    op.create_index('ix_bargaining_settings_user_enabled', 'bargaining_settings', ['user_id', 'enabled'], unique=False)

    op.create_table(
        'store_connections',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('shop_domain', sa.String(length=255), nullable=False, comment="e.g. 'example.myshopify.com'"),
        sa.Column('access_token', sa.Text(), nullable=True),
        sa.Column('status', store_connection_status, nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_store_connections')),
        sa.UniqueConstraint('shop_domain', name=op.f('uq_store_connections_shop_domain')),
    )
    op.create_index(op.f('ix_store_connections_user_id'), 'store_connections', ['user_id'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_store_connections_user_id'), table_name='store_connections')
    op.drop_table('store_connections')

    op.drop_index('ix_bargaining_settings_user_enabled', table_name='bargaining_settings')
    op.drop_table('bargaining_settings')

    op.drop_index(op.f('ix_billing_events_session_id'), table_name='billing_events')
    op.drop_index(op.f('ix_billing_events_event_type'), table_name='billing_events')
    op.drop_index(op.f('ix_billing_events_user_id'), table_name='billing_events')
    op.drop_table('billing_events')

    op.drop_index(op.f('ix_membership_history_user_id'), table_name='membership_history')
    op.drop_table('membership_history')

    op.drop_index('uq_user_memberships_one_pending_per_plan', table_name='user_memberships')
    op.drop_index('uq_user_memberships_one_active', table_name='user_memberships')
    op.drop_index(op.f('ix_user_memberships_session_id'), table_name='user_memberships')
    op.drop_index(op.f('ix_user_memberships_external_charge_id'), table_name='user_memberships')
    op.drop_index(op.f('ix_user_memberships_status'), table_name='user_memberships')
    op.drop_index(op.f('ix_user_memberships_plan_id'), table_name='user_memberships')
    op.drop_index(op.f('ix_user_memberships_user_id'), table_name='user_memberships')
    op.drop_table('user_memberships')

    op.drop_index(op.f('ix_membership_plans_slug'), table_name='membership_plans')
    op.drop_table('membership_plans')

    bind = op.get_bind()
    for enum_type in (store_connection_status, bargaining_behavior, membership_change_type, membership_status):
        enum_type.drop(bind, checkfirst=True)
