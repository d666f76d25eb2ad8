"""
Feature enforcement for lapsed tenants.

FeatureEnforcer.enforce() is idempotent:
- automations already disabled are left alone
- the audit entry is only written when something was disabled
- status is set to expired only when it is not expired already
Cancelled records are never rewritten.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from gbp_access.automation.registry import AutomationRegistry
from gbp_access.models.base import as_utc, utc_now
from gbp_access.subscriptions.records import SubscriptionRecord, SubscriptionStatus
from gbp_access.subscriptions.repository import SubscriptionRepository

logger = logging.getLogger(__name__)

FEATURES_DISABLED_ACTION = "features_disabled"


@dataclass
class EnforcementResult:
    """What a single enforcement pass changed."""

    tenant_id: str
    user_id: Optional[str]
    reason: str
    locations_affected: List[str] = field(default_factory=list)
    status_updated: bool = False
    audit_logged: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.locations_affected) or self.status_updated

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
            "reason": self.reason,
            "locations_affected": list(self.locations_affected),
            "status_updated": self.status_updated,
            "audit_logged": self.audit_logged,
        }


class FeatureEnforcer:
    """Disables a lapsed tenant's automations and marks it expired."""

    def __init__(self, registry: AutomationRegistry, repository: SubscriptionRepository):
        self.registry = registry
        self.repository = repository

    async def enforce(
        self,
        tenant_id: str,
        user_id: Optional[str],
        reason: str,
        now: Optional[datetime] = None,
        record: Optional[SubscriptionRecord] = None,
    ) -> EnforcementResult:
        now = as_utc(now) if now else utc_now()

        if record is None:
            record = await self.repository.get(tenant_id)
        if not user_id:
            user_id = (record.user_id if record else None) or await self.repository.get_user_for_tenant(tenant_id)

        result = EnforcementResult(tenant_id=tenant_id, user_id=user_id, reason=reason)

        if user_id:
            automations = await self.registry.list_enabled_automations_for_all_users()
            for automation in automations:
                if automation.user_id != user_id:
                    continue
                if await self.registry.disable_automation(
                    user_id, automation.location_id, reason, disabled_at=now
                ):
                    result.locations_affected.append(automation.location_id)
        else:
            logger.warning(
                "No user mapped to tenant; skipping automation disable",
                extra={"tenant_id": tenant_id, "reason": reason},
            )

        if result.locations_affected:
            await self.registry.log_activity(
                user_id,
                None,
                FEATURES_DISABLED_ACTION,
                "success",
                {
                    "reason": reason,
                    "tenantId": tenant_id,
                    "locationsAffected": len(result.locations_affected),
                    "timestamp": now.isoformat(),
                },
            )
            result.audit_logged = True

        if record is not None and record.normalized_status not in (
            SubscriptionStatus.EXPIRED.value,
            SubscriptionStatus.CANCELLED.value,
        ):
            await self.repository.update(tenant_id, {"status": SubscriptionStatus.EXPIRED.value})
            result.status_updated = True

        if result.changed:
            logger.info("Features disabled for lapsed tenant", extra=result.to_dict())
        return result
