from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from gbp_access.models.base import as_utc
from gbp_access.subscriptions.errors import InvalidSubscriptionRecordError

RECORD_SCHEMA_VERSION = 1

_DATE_FIELDS = (
    "trial_start_date",
    "trial_end_date",
    "subscription_start_date",
    "subscription_end_date",
)


class SubscriptionStatus(str, enum.Enum):
    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    ADMIN = "admin"


def normalize_status(raw: Optional[str]) -> Optional[str]:
    """Trim and lower-case a stored status; blank becomes None."""
    if raw is None:
        return None
    normalized = str(raw).strip().lower()
    return normalized or None


def _parse_datetime(raw: Any) -> Optional[datetime]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return as_utc(raw)
    return as_utc(datetime.fromisoformat(str(raw)))


@dataclass(frozen=True)
class PaymentEvent:
    """One entry of a tenant's append-only payment history."""

    amount: float
    currency: str
    status: str
    timestamp: datetime
    payment_id: Optional[str] = None
    order_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise InvalidSubscriptionRecordError("payment amount cannot be negative")
        object.__setattr__(self, "timestamp", as_utc(self.timestamp))

    def to_dict(self) -> dict:
        return {
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status,
            "timestamp": self.timestamp.isoformat(),
            "payment_id": self.payment_id,
            "order_id": self.order_id,
        }

    @classmethod
    def from_dict(cls, raw: dict) -> "PaymentEvent":
        return cls(
            amount=float(raw["amount"]),
            currency=str(raw["currency"]),
            status=str(raw["status"]),
            timestamp=_parse_datetime(raw["timestamp"]),
            payment_id=raw.get("payment_id"),
            order_id=raw.get("order_id"),
        )


@dataclass(frozen=True)
class SubscriptionRecord:
    """
    A tenant's subscription lifecycle state.

    Records are immutable; use with_changes() or apply_payment() to derive
    an updated copy. Construction enforces:
    - tenant_id is non-empty
    - profile_count >= 1 and paid locations never exceed it
    - every timestamp is timezone-aware UTC (naive values are taken as UTC)
    """

    tenant_id: str
    user_id: Optional[str] = None
    email: Optional[str] = None
    status: Optional[str] = None
    trial_start_date: Optional[datetime] = None
    trial_end_date: Optional[datetime] = None
    subscription_start_date: Optional[datetime] = None
    subscription_end_date: Optional[datetime] = None
    plan_id: Optional[str] = None
    profile_count: int = 1
    paid_location_ids: Tuple[str, ...] = ()
    payment_history: Tuple[PaymentEvent, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        tenant_id = str(self.tenant_id or "").strip()
        if not tenant_id:
            raise InvalidSubscriptionRecordError("tenant_id is required")
        object.__setattr__(self, "tenant_id", tenant_id)

        if self.profile_count < 1:
            raise InvalidSubscriptionRecordError(
                "profile_count must be at least 1", tenant_id=tenant_id
            )

        paid: List[str] = []
        for location_id in self.paid_location_ids:
            if location_id not in paid:
                paid.append(location_id)
        if len(paid) > self.profile_count:
            raise InvalidSubscriptionRecordError(
                f"{len(paid)} paid locations exceed profile_count {self.profile_count}",
                tenant_id=tenant_id,
            )
        object.__setattr__(self, "paid_location_ids", tuple(paid))
        object.__setattr__(self, "payment_history", tuple(self.payment_history))

        for name in _DATE_FIELDS:
            object.__setattr__(self, name, as_utc(getattr(self, name)))

    @property
    def normalized_status(self) -> Optional[str]:
        return normalize_status(self.status)

    @property
    def is_cancelled(self) -> bool:
        return self.normalized_status == SubscriptionStatus.CANCELLED.value

    def with_changes(self, **changes: Any) -> "SubscriptionRecord":
        """Return a validated copy with the given fields replaced."""
        if "tenant_id" in changes and changes["tenant_id"] != self.tenant_id:
            raise InvalidSubscriptionRecordError(
                "tenant_id cannot be changed", tenant_id=self.tenant_id
            )
        return replace(self, **changes)

    def apply_payment(
        self,
        event: PaymentEvent,
        *,
        period_end: Optional[datetime],
        location_ids: Sequence[str] = (),
        plan_id: Optional[str] = None,
        profile_count: Optional[int] = None,
    ) -> "SubscriptionRecord":
        """
        Record a captured payment and activate the subscription.

        Appends to payment_history, sets status to active and extends the
        paid period to period_end (None for a non-expiring plan). New
        location ids are added to the paid set; exceeding profile_count
        raises InvalidSubscriptionRecordError.
        """
        if self.is_cancelled:
            raise InvalidSubscriptionRecordError(
                "cancelled subscriptions cannot be reactivated by payment",
                tenant_id=self.tenant_id,
            )

        paid = list(self.paid_location_ids)
        for location_id in location_ids:
            if location_id not in paid:
                paid.append(location_id)

        return self.with_changes(
            status=SubscriptionStatus.ACTIVE.value,
            subscription_start_date=self.subscription_start_date or event.timestamp,
            subscription_end_date=period_end,
            plan_id=plan_id or self.plan_id,
            profile_count=profile_count or self.profile_count,
            paid_location_ids=tuple(paid),
            payment_history=self.payment_history + (event,),
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe encoding used by the backup store."""
        payload: Dict[str, Any] = {
            "schema_version": RECORD_SCHEMA_VERSION,
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
            "email": self.email,
            "status": self.status,
            "plan_id": self.plan_id,
            "profile_count": self.profile_count,
            "paid_location_ids": list(self.paid_location_ids),
            "payment_history": [event.to_dict() for event in self.payment_history],
        }
        for name in _DATE_FIELDS:
            value = getattr(self, name)
            payload[name] = value.isoformat() if value else None
        return payload

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "SubscriptionRecord":
        if raw.get("schema_version") != RECORD_SCHEMA_VERSION:
            raise InvalidSubscriptionRecordError(
                f"unsupported record schema_version {raw.get('schema_version')!r}",
                tenant_id=raw.get("tenant_id"),
            )
        return cls(
            tenant_id=raw.get("tenant_id", ""),
            user_id=raw.get("user_id"),
            email=raw.get("email"),
            status=raw.get("status"),
            plan_id=raw.get("plan_id"),
            profile_count=int(raw.get("profile_count") or 1),
            paid_location_ids=tuple(raw.get("paid_location_ids") or ()),
            payment_history=tuple(
                PaymentEvent.from_dict(event) for event in raw.get("payment_history") or ()
            ),
            **{name: _parse_datetime(raw.get(name)) for name in _DATE_FIELDS},
        )
