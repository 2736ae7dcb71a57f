import enum
from sqlalchemy import Column, Integer, String, Text, Enum
from haggle.db.base import Base, TimestampMixin

class StoreConnectionStatus(str, enum.Enum):
    ACTIVE = "active"
    DISCONNECTED = "disconnected"

class StoreConnection(Base, TimestampMixin):
    """
    A merchant's connected storefront and its Admin API credential.
    Written by the store-connect flow; the billing core only reads it.
    """
    __tablename__ = 'store_connections'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False, index=True)
    shop_domain = Column(String(255), nullable=False, unique=True, comment="e.g. 'example.myshopify.com'")
    access_token = Column(Text, nullable=True)
    status = Column(Enum(StoreConnectionStatus), nullable=False, default=StoreConnectionStatus.ACTIVE)

    @property
    def is_usable(self) -> bool:
        return self.status == StoreConnectionStatus.ACTIVE and bool(self.access_token)
