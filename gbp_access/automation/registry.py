"""
Automation registry.

The registry enumerates which users/locations have automation enabled and
is the write target when features are disabled. It also owns the shared
activity log used for audit and failure records.

SqlAutomationRegistry is the database-backed implementation; anything with
the AutomationRegistry shape can be injected instead.
"""

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gbp_access.models.activity_log import ActivityLog
from gbp_access.models.automation_setting import AutomationSetting
from gbp_access.models.base import utc_now

logger = logging.getLogger(__name__)

# Nested feature sections that carry their own "enabled" flag
FEATURE_SECTIONS = ("autoPosting", "autoReply")


class AutomationRegistryError(Exception):
    """Raised when the automation registry cannot be read or written."""

    def __init__(self, operation: str, cause: Optional[Exception] = None):
        self.operation = operation
        self.cause = cause
        self.error_code = "AUTOMATION_REGISTRY_ERROR"
        super().__init__(f"Automation registry failure during {operation}")

    def to_dict(self) -> dict:
        return {"error": self.error_code, "operation": self.operation}


@dataclass(frozen=True)
class AutomationConfig:
    """An enabled automation for one user/location."""

    user_id: str
    location_id: str
    settings: Dict[str, Any] = field(default_factory=dict)


def disabled_settings(
    settings: Optional[Dict[str, Any]], reason: str, disabled_at: datetime
) -> Dict[str, Any]:
    """Return a copy of settings with every feature flag switched off."""
    updated = copy.deepcopy(settings) if settings else {}
    updated["enabled"] = False
    for section in FEATURE_SECTIONS:
        nested = dict(updated.get(section) or {})
        nested["enabled"] = False
        updated[section] = nested
    updated["autoReplyEnabled"] = False
    updated["disabledReason"] = reason
    updated["disabledAt"] = disabled_at.isoformat()
    return updated


class AutomationRegistry(Protocol):
    async def list_enabled_automations_for_all_users(self) -> List[AutomationConfig]: ...

    async def disable_automation(
        self,
        user_id: str,
        location_id: str,
        reason: str,
        disabled_at: Optional[datetime] = None,
    ) -> bool: ...

    async def log_activity(
        self,
        user_id: str,
        location_id: Optional[str],
        action: str,
        status: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None: ...


class SqlAutomationRegistry:
    """Automation registry over the automation_settings / activity_logs tables."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    async def list_enabled_automations_for_all_users(self) -> List[AutomationConfig]:
        try:
            with self._session_factory() as session:
                rows = session.execute(
                    select(AutomationSetting)
                    .where(AutomationSetting.enabled.is_(True))
                    .order_by(AutomationSetting.user_id, AutomationSetting.location_id)
                ).scalars().all()
                return [
                    AutomationConfig(
                        user_id=row.user_id,
                        location_id=row.location_id,
                        settings=dict(row.settings or {}),
                    )
                    for row in rows
                ]
        except SQLAlchemyError as e:
            raise AutomationRegistryError("list_enabled", cause=e) from e

    async def list_automations_for_user(self, user_id: str) -> List[AutomationSetting]:
        try:
            with self._session_factory() as session:
                rows = session.execute(
                    select(AutomationSetting)
                    .where(AutomationSetting.user_id == user_id)
                    .order_by(AutomationSetting.location_id)
                ).scalars().all()
                return list(rows)
        except SQLAlchemyError as e:
            raise AutomationRegistryError("list_for_user", cause=e) from e

    async def upsert_automation(
        self,
        user_id: str,
        location_id: str,
        *,
        enabled: bool,
        settings: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Create or replace a user's automation for a location."""
        try:
            with self._session_factory() as session:
                row = session.execute(
                    select(AutomationSetting).where(
                        AutomationSetting.user_id == user_id,
                        AutomationSetting.location_id == location_id,
                    )
                ).scalar_one_or_none()
                if row is None:
                    row = AutomationSetting(user_id=user_id, location_id=location_id)
                    session.add(row)
                row.enabled = enabled
                row.settings = dict(settings or {})
                if enabled:
                    row.disabled_reason = None
                    row.disabled_at = None
                session.commit()
        except SQLAlchemyError as e:
            raise AutomationRegistryError("upsert", cause=e) from e

    async def disable_automation(
        self,
        user_id: str,
        location_id: str,
        reason: str,
        disabled_at: Optional[datetime] = None,
    ) -> bool:
        """
        Switch off every feature flag for a user/location.

        Returns:
            True if the automation was enabled and is now disabled,
            False if it was already disabled or does not exist
        """
        disabled_at = disabled_at or utc_now()
        try:
            with self._session_factory() as session:
                row = session.execute(
                    select(AutomationSetting).where(
                        AutomationSetting.user_id == user_id,
                        AutomationSetting.location_id == location_id,
                    )
                ).scalar_one_or_none()
                if row is None or not row.enabled:
                    return False

                row.enabled = False
                row.settings = disabled_settings(row.settings, reason, disabled_at)
                row.disabled_reason = reason
                row.disabled_at = disabled_at
                session.commit()
        except SQLAlchemyError as e:
            raise AutomationRegistryError("disable", cause=e) from e

        logger.info(
            "Automation disabled",
            extra={"user_id": user_id, "location_id": location_id, "reason": reason},
        )
        return True

    async def log_activity(
        self,
        user_id: str,
        location_id: Optional[str],
        action: str,
        status: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        try:
            with self._session_factory() as session:
                session.add(
                    ActivityLog(
                        user_id=user_id,
                        location_id=location_id,
                        action=action,
                        status=status,
                        extra_metadata=dict(metadata or {}),
                    )
                )
                session.commit()
        except SQLAlchemyError as e:
            raise AutomationRegistryError("log_activity", cause=e) from e

    async def list_activity(
        self, user_id: str, action: Optional[str] = None
    ) -> List[ActivityLog]:
        try:
            with self._session_factory() as session:
                query = select(ActivityLog).where(ActivityLog.user_id == user_id)
                if action:
                    query = query.where(ActivityLog.action == action)
                rows = session.execute(query.order_by(ActivityLog.created_at)).scalars().all()
                return list(rows)
        except SQLAlchemyError as e:
            raise AutomationRegistryError("list_activity", cause=e) from e
