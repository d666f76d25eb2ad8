"""
ActivityLog - append-only audit trail.

Shared by feature enforcement (features_disabled) and the credential refresh
path (token_refresh failures). Rows are never updated.
"""

import uuid

from sqlalchemy import Column, String, DateTime, JSON, Index

from gbp_access.db_base import Base
from gbp_access.models.base import utc_now


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id = Column(
        String(255),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    user_id = Column(String(255), nullable=False)
    location_id = Column(String(255), nullable=True)
    action = Column(String(100), nullable=False)
    status = Column(String(50), nullable=False)
    # "metadata" is reserved on declarative classes
    extra_metadata = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (
        Index("ix_activity_logs_user_action", "user_id", "action"),
    )

    def __repr__(self) -> str:
        return f"<ActivityLog(user_id={self.user_id}, action={self.action}, status={self.status})>"
