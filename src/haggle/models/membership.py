# haggle/models/membership.py

import enum
from sqlalchemy import (
    Column, Integer, String, Enum, ForeignKey, DateTime, func, Text, JSON,
    DECIMAL, Index, CheckConstraint, text
)
from sqlalchemy.orm import relationship
from haggle.db.base import Base, CreatedAtMixin, TimestampMixin
from haggle.utils.datetime_utils import utcnow

class MembershipStatus(str, enum.Enum):
    PENDING = "pending"        # paid upgrade waiting for the provider's confirmation
    ACTIVE = "active"          # the user's current plan; at most one per user
    CANCELLED = "cancelled"    # terminal for that row, kept for history

class MembershipChangeType(str, enum.Enum):
    UPGRADE = "upgrade"
    DOWNGRADE = "downgrade"
    SWITCH = "switch"

class BillingEventType(str, enum.Enum):
    CHANGE_INITIATED = "membership_change_initiated"
    CHANGED = "membership_changed"
    PENDING_CREATED = "membership_pending_created"
    CHARGE_CREATED = "membership_charge_created"
    BILLING_CONFIRMED = "membership_billing_confirmed"
    CHARGE_DECLINED = "membership_charge_declined"
    ACTIVATED = "membership_activated"
    CANCELLED = "membership_cancelled"
    PENDING_EXPIRED = "pending_membership_cancelled"
    STATUS_FIXED = "membership_status_fixed"

class MembershipPlan(Base, CreatedAtMixin):
    """
    Subscription tier reference data. Seeded once, read-only at runtime.
    """
    __tablename__ = 'membership_plans'

    id = Column(Integer, primary_key=True)
    slug = Column(String(64), unique=True, nullable=False, index=True, comment="Stable identifier, e.g. 'free', 'pro'")
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(DECIMAL(10, 2), nullable=False, default=0, comment="Monthly price. 0 marks the free tier.")
    product_limit = Column(Integer, nullable=False, default=0, comment="Max distinct products with bargaining enabled. 0 = unlimited.")
    trial_days = Column(Integer, nullable=False, default=0)
    features = Column(JSON, nullable=False, default=list, comment="Ordered list of marketing feature lines")

    __table_args__ = (
        CheckConstraint('price >= 0', name='price_non_negative'),
        CheckConstraint('product_limit >= 0', name='product_limit_non_negative'),
        CheckConstraint('trial_days >= 0', name='trial_days_non_negative'),
    )

    @property
    def is_free(self) -> bool:
        return self.price <= 0

    @property
    def is_unlimited(self) -> bool:
        return self.product_limit == 0

class UserMembership(Base, TimestampMixin):
    """
    One row per subscription attempt or period. Rows only move forward
    (pending -> active -> cancelled) and are never deleted.
    """
    __tablename__ = 'user_memberships'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey('membership_plans.id'), nullable=False, index=True)

    status = Column(Enum(MembershipStatus), nullable=False, default=MembershipStatus.PENDING, index=True)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=True)

    # --- Provider-side billing state ---
    next_billing_date = Column(DateTime, nullable=True)
    trial_end_date = Column(DateTime, nullable=True)
    billing_status = Column(String(32), nullable=True)
    billing_details = Column(JSON, nullable=True, comment="Opaque charge payload returned by the billing provider")
    external_charge_id = Column(String(64), nullable=True, index=True)
    session_id = Column(String(64), nullable=True, index=True, comment="Correlates one billing attempt across redirects")


    plan = relationship("MembershipPlan", lazy="joined", innerjoin=True)

    __table_args__ = (
        # At most one active membership per user.
        Index(
            'uq_user_memberships_one_active', 'user_id', unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
        # At most one pending attempt per (user, plan).
        Index(
            'uq_user_memberships_one_pending_per_plan', 'user_id', 'plan_id', unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
    )

class MembershipHistory(Base):
    """
    Immutable log of committed plan transitions, one row per transition.
    """
    __tablename__ = 'membership_history'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False, index=True)
    from_plan_id = Column(Integer, ForeignKey('membership_plans.id'), nullable=True)
    to_plan_id = Column(Integer, ForeignKey('membership_plans.id'), nullable=False)
    change_type = Column(Enum(MembershipChangeType), nullable=False)
    reason = Column(Text, nullable=True)
    change_date = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())

    from_plan = relationship("MembershipPlan", foreign_keys=[from_plan_id], lazy="joined")
    to_plan = relationship("MembershipPlan", foreign_keys=[to_plan_id], lazy="joined")

class BillingEvent(Base, CreatedAtMixin):
    """
    Append-only audit trail of every billing step. Never updated.
    """
    __tablename__ = 'billing_events'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False, index=True)
    event_type = Column(String(64), nullable=False, index=True)
    charge_id = Column(String(64), nullable=True)
    plan_id = Column(Integer, ForeignKey('membership_plans.id'), nullable=True)
    status = Column(String(32), nullable=False)
    session_id = Column(String(64), nullable=True, index=True)
    details = Column(JSON, nullable=False, default=dict)

    plan = relationship("MembershipPlan", lazy="joined")
