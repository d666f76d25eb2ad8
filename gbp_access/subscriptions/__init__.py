from gbp_access.subscriptions.errors import (
    SubscriptionStoreError,
    StoreUnavailableError,
    InvalidSubscriptionRecordError,
)
from gbp_access.subscriptions.records import (
    PaymentEvent,
    SubscriptionRecord,
    SubscriptionStatus,
    normalize_status,
)
from gbp_access.subscriptions.stores import (
    SubscriptionStore,
    SqlSubscriptionStore,
    RedisSubscriptionStore,
)
from gbp_access.subscriptions.repository import SubscriptionRepository

__all__ = [
    "SubscriptionStoreError",
    "StoreUnavailableError",
    "InvalidSubscriptionRecordError",
    "PaymentEvent",
    "SubscriptionRecord",
    "SubscriptionStatus",
    "normalize_status",
    "SubscriptionStore",
    "SqlSubscriptionStore",
    "RedisSubscriptionStore",
    "SubscriptionRepository",
]
