"""
SubscriptionRow - primary (authoritative) storage for subscription records.

One row per tenant. Payment history and paid locations are stored as JSON
arrays; writers always assign new lists so change tracking sees them.
"""

from sqlalchemy import Column, String, DateTime, Integer, JSON, Index

from gbp_access.db_base import Base
from gbp_access.models.base import TimestampMixin


class SubscriptionRow(Base, TimestampMixin):
    __tablename__ = "subscriptions"

    tenant_id = Column(
        String(255),
        primary_key=True,
        comment="Tenant (business account) identifier"
    )
    user_id = Column(
        String(255),
        nullable=True,
        comment="Owning user"
    )
    email = Column(
        String(320),
        nullable=True,
        comment="Billing contact email"
    )
    status = Column(
        String(32),
        nullable=True,
        comment="trial / active / expired / cancelled / admin, or unset"
    )
    trial_start_date = Column(DateTime(timezone=True), nullable=True)
    trial_end_date = Column(DateTime(timezone=True), nullable=True)
    subscription_start_date = Column(DateTime(timezone=True), nullable=True)
    subscription_end_date = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="NULL means the subscription does not expire"
    )
    plan_id = Column(String(100), nullable=True)
    profile_count = Column(Integer, nullable=False, default=1)
    paid_location_ids = Column(JSON, nullable=False, default=list)
    payment_history = Column(JSON, nullable=False, default=list)

    __table_args__ = (
        Index("ix_subscriptions_user_id", "user_id"),
        Index("ix_subscriptions_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<SubscriptionRow(tenant_id={self.tenant_id}, status={self.status})>"
