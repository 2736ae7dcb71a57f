import enum
from sqlalchemy import (
    Column, Integer, String, Boolean, Enum, DECIMAL,
    UniqueConstraint, CheckConstraint, Index
)
from haggle.db.base import Base, TimestampMixin

class BargainingBehavior(str, enum.Enum):
    """How readily the downstream negotiator accepts offers. Stored and passed through."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"

class MinPriceType(str, enum.Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"

class BargainingSetting(Base, TimestampMixin):
    """
    Per (user, product, variant) bargaining switch and price floor.
    Rows are upserted and toggled, never deleted.
    """
    __tablename__ = 'bargaining_settings'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False)
    product_id = Column(String(64), nullable=False, comment="Storefront product id")
    variant_id = Column(String(64), nullable=False, comment="Storefront variant id")
    enabled = Column(Boolean, nullable=False, default=False)
    min_price = Column(DECIMAL(10, 2), nullable=False, default=0)
    original_price = Column(DECIMAL(10, 2), nullable=False, default=0)
    behavior = Column(Enum(BargainingBehavior), nullable=False, default=BargainingBehavior.NORMAL)

    __table_args__ = (
        UniqueConstraint('user_id', 'product_id', 'variant_id', name='uq_bargaining_settings_user_product_variant'),
        CheckConstraint('min_price <= original_price', name='min_price_le_original'),
        CheckConstraint('min_price >= 0', name='min_price_non_negative'),
        Index('ix_bargaining_settings_user_enabled', 'user_id', 'enabled'),
    )
