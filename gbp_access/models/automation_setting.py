"""
AutomationSetting - per-location automation configuration.

The nested settings document mirrors what the automation workers read:
{"autoPosting": {"enabled": ...}, "autoReply": {"enabled": ...},
 "autoReplyEnabled": ...}.
"""

import uuid

from sqlalchemy import Column, String, Boolean, DateTime, JSON, Text, Index, UniqueConstraint

from gbp_access.db_base import Base
from gbp_access.models.base import TimestampMixin


class AutomationSetting(Base, TimestampMixin):
    __tablename__ = "automation_settings"

    id = Column(
        String(255),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    user_id = Column(String(255), nullable=False)
    location_id = Column(String(255), nullable=False)
    enabled = Column(Boolean, nullable=False, default=False)
    settings = Column(JSON, nullable=False, default=dict)
    disabled_reason = Column(Text, nullable=True)
    disabled_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_automation_settings_enabled", "enabled"),
        UniqueConstraint("user_id", "location_id", name="uq_automation_settings_user_location"),
    )

    def __repr__(self) -> str:
        return (
            f"<AutomationSetting(user_id={self.user_id}, "
            f"location_id={self.location_id}, enabled={self.enabled})>"
        )
