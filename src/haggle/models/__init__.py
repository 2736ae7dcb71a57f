# haggle/models/__init__.py

from .membership import (
    MembershipStatus,
    MembershipChangeType,
    BillingEventType,
    MembershipPlan,
    UserMembership,
    MembershipHistory,
    BillingEvent
)
from .bargaining import (
    BargainingBehavior,
    MinPriceType,
    BargainingSetting
)
from .store import (
    StoreConnectionStatus,
    StoreConnection
)
