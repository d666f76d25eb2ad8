"""
Access state evaluation.

AccessStateEvaluator classifies a tenant into an AccessDecision:

1. Administrators (per AdministratorPolicy) are always allowed.
2. A tenant with no record is a new tenant: a trial is provisioned.
3. active: allowed until subscription_end_date (None never expires).
4. trial: allowed until trial_end_date; a missing end date is healed.
5. unset status: a trial is provisioned on the existing record.
6. admin: allowed (record-level override).
7. expired: denied without recomputation.
8. cancelled or unrecognized: denied with invalid_status.

When an active subscription or trial is found lapsed, enforcement runs
inside the same evaluation. Evaluation never raises: unexpected failures
produce a fail-closed decision with reason evaluation_error.
"""

import enum
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from gbp_access.access.enforcement import FeatureEnforcer
from gbp_access.access.policy import AdministratorPolicy
from gbp_access.config.settings import TRIAL_LENGTH_DAYS
from gbp_access.models.base import as_utc, utc_now
from gbp_access.subscriptions.records import SubscriptionRecord, SubscriptionStatus
from gbp_access.subscriptions.repository import SubscriptionRepository

logger = logging.getLogger(__name__)

UNLIMITED_DAYS = math.inf

SECONDS_PER_DAY = 86400


class AccessState(str, enum.Enum):
    ADMIN = "admin"
    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"
    INVALID = "invalid"
    ERROR = "error"


class AccessReason(str, enum.Enum):
    ADMIN = "admin"
    TRIAL_ACTIVE = "trial_active"
    SUBSCRIPTION_ACTIVE = "subscription_active"
    TRIAL_EXPIRED = "trial_expired"
    SUBSCRIPTION_EXPIRED = "subscription_expired"
    INVALID_STATUS = "invalid_status"
    EVALUATION_ERROR = "evaluation_error"


# Denials that the enforcement action applies to
ENFORCEABLE_REASONS = frozenset(
    {AccessReason.TRIAL_EXPIRED, AccessReason.SUBSCRIPTION_EXPIRED}
)

MESSAGES = {
    AccessReason.SUBSCRIPTION_EXPIRED: "Your subscription has expired. Please renew to continue.",
    AccessReason.TRIAL_EXPIRED: "Your free trial has ended. Upgrade to continue using all features.",
    AccessReason.INVALID_STATUS: "Subscription status invalid. Please contact support.",
    AccessReason.EVALUATION_ERROR: "Unable to verify subscription status",
}


def remaining_days(end: datetime, now: datetime) -> int:
    """
    Whole days left until end.

    A positive sub-day remainder counts as one day; an end at or before
    now yields exactly 0.
    """
    seconds = (as_utc(end) - as_utc(now)).total_seconds()
    if seconds <= 0:
        return 0
    return max(1, math.floor(seconds / SECONDS_PER_DAY))


@dataclass
class AccessDecision:
    """Outcome of an access evaluation."""

    allowed: bool
    state: AccessState
    days_remaining: float
    message: str
    requires_payment: bool = False
    reason: Optional[AccessReason] = None
    enforced: bool = False
    record: Optional[SubscriptionRecord] = None

    @property
    def is_unlimited(self) -> bool:
        return math.isinf(self.days_remaining)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "state": self.state.value,
            "days_remaining": None if self.is_unlimited else int(self.days_remaining),
            "unlimited": self.is_unlimited,
            "message": self.message,
            "requires_payment": self.requires_payment,
            "reason": self.reason.value if self.reason else None,
        }


class AccessStateEvaluator:
    """
    Decides whether a tenant may use automation features.

    Collaborators are injected; the evaluator holds no global state.
    """

    def __init__(
        self,
        repository: SubscriptionRepository,
        admin_policy: AdministratorPolicy,
        enforcer: FeatureEnforcer,
        trial_length_days: int = TRIAL_LENGTH_DAYS,
    ):
        self.repository = repository
        self.admin_policy = admin_policy
        self.enforcer = enforcer
        self.trial_length_days = trial_length_days

    @property
    def trial_length(self) -> timedelta:
        return timedelta(days=self.trial_length_days)

    async def evaluate(
        self,
        tenant_id: str,
        user_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AccessDecision:
        """
        Evaluate access for a tenant.

        Args:
            tenant_id: Tenant being evaluated
            user_id: Requesting user (used for admin detection and provisioning)
            now: Evaluation time (defaults to current UTC time)

        Returns:
            AccessDecision; never raises
        """
        now = as_utc(now) if now else utc_now()

        if await self.admin_policy.is_admin(user_id):
            return AccessDecision(
                allowed=True,
                state=AccessState.ADMIN,
                days_remaining=UNLIMITED_DAYS,
                message="Admin access - unlimited",
                reason=AccessReason.ADMIN,
            )

        try:
            return await self._evaluate_record(tenant_id, user_id, now)
        except Exception:
            # Fail closed: never allow on evaluation failure
            logger.exception(
                "Access evaluation failed",
                extra={"tenant_id": tenant_id, "user_id": user_id},
            )
            return AccessDecision(
                allowed=False,
                state=AccessState.ERROR,
                days_remaining=0,
                message=MESSAGES[AccessReason.EVALUATION_ERROR],
                requires_payment=False,
                reason=AccessReason.EVALUATION_ERROR,
            )

    async def _evaluate_record(
        self, tenant_id: str, user_id: Optional[str], now: datetime
    ) -> AccessDecision:
        record = await self.repository.get(tenant_id)
        if record is None:
            return await self._provision_new_tenant(tenant_id, user_id, now)

        status = record.normalized_status

        if status == SubscriptionStatus.ACTIVE.value:
            return await self._evaluate_window(
                record,
                now,
                end=record.subscription_end_date,
                state=AccessState.ACTIVE,
                expired_reason=AccessReason.SUBSCRIPTION_EXPIRED,
            )

        if status == SubscriptionStatus.TRIAL.value:
            if record.trial_end_date is None:
                return await self._start_trial(record, user_id, now)
            return await self._evaluate_window(
                record,
                now,
                end=record.trial_end_date,
                state=AccessState.TRIAL,
                expired_reason=AccessReason.TRIAL_EXPIRED,
            )

        if status is None:
            return await self._start_trial(record, user_id, now)

        if status == SubscriptionStatus.ADMIN.value:
            return AccessDecision(
                allowed=True,
                state=AccessState.ADMIN,
                days_remaining=UNLIMITED_DAYS,
                message="Admin access - unlimited",
                reason=AccessReason.ADMIN,
                record=record,
            )

        if status == SubscriptionStatus.EXPIRED.value:
            # Already enforced; no recomputation and no side effects
            reason = (
                AccessReason.SUBSCRIPTION_EXPIRED
                if record.subscription_end_date is not None
                else AccessReason.TRIAL_EXPIRED
            )
            return AccessDecision(
                allowed=False,
                state=AccessState.EXPIRED,
                days_remaining=0,
                message=MESSAGES[reason],
                requires_payment=True,
                reason=reason,
                record=record,
            )

        logger.warning(
            "Invalid subscription status",
            extra={"tenant_id": tenant_id, "status": record.status},
        )
        return AccessDecision(
            allowed=False,
            state=AccessState.INVALID,
            days_remaining=0,
            message=MESSAGES[AccessReason.INVALID_STATUS],
            requires_payment=True,
            reason=AccessReason.INVALID_STATUS,
            record=record,
        )

    async def _evaluate_window(
        self,
        record: SubscriptionRecord,
        now: datetime,
        *,
        end: Optional[datetime],
        state: AccessState,
        expired_reason: AccessReason,
    ) -> AccessDecision:
        is_trial = state == AccessState.TRIAL

        if end is None:
            return AccessDecision(
                allowed=True,
                state=state,
                days_remaining=UNLIMITED_DAYS,
                message="Subscription active - no expiry",
                reason=AccessReason.SUBSCRIPTION_ACTIVE,
                record=record,
            )

        days = remaining_days(end, now)
        if days > 0:
            label = "Free trial" if is_trial else "Subscription active"
            return AccessDecision(
                allowed=True,
                state=state,
                days_remaining=days,
                message=f"{label} - {days} days remaining",
                reason=AccessReason.TRIAL_ACTIVE if is_trial else AccessReason.SUBSCRIPTION_ACTIVE,
                record=record,
            )

        logger.info(
            "Subscription lapsed",
            extra={
                "tenant_id": record.tenant_id,
                "reason": expired_reason.value,
                "ended_at": end.isoformat(),
            },
        )
        enforced = await self._enforce(record, expired_reason, now)
        return AccessDecision(
            allowed=False,
            state=state,
            days_remaining=0,
            message=MESSAGES[expired_reason],
            requires_payment=True,
            reason=expired_reason,
            enforced=enforced,
            record=record,
        )

    async def _enforce(
        self,
        record: SubscriptionRecord,
        reason: AccessReason,
        now: datetime,
    ) -> bool:
        # Always the tenant owner, never the requester; the enforcer falls
        # back to the tenant mapping when the record has no owner
        try:
            await self.enforcer.enforce(
                record.tenant_id,
                record.user_id,
                reason.value,
                now=now,
                record=record,
            )
            return True
        except Exception:
            # The denial stands even if enforcement could not complete
            logger.exception(
                "Enforcement during evaluation failed",
                extra={"tenant_id": record.tenant_id, "reason": reason.value},
            )
            return False

    async def _provision_new_tenant(
        self, tenant_id: str, user_id: Optional[str], now: datetime
    ) -> AccessDecision:
        record = SubscriptionRecord(
            tenant_id=tenant_id,
            user_id=user_id,
            status=SubscriptionStatus.TRIAL.value,
            trial_start_date=now,
            trial_end_date=now + self.trial_length,
        )
        await self.repository.save(record)
        if user_id:
            await self.repository.save_user_mapping(user_id, tenant_id)

        logger.info(
            "Provisioned trial for new tenant",
            extra={"tenant_id": tenant_id, "user_id": user_id},
        )
        return self._trial_started(record)

    async def _start_trial(
        self, record: SubscriptionRecord, user_id: Optional[str], now: datetime
    ) -> AccessDecision:
        changes: Dict[str, Any] = {
            "status": SubscriptionStatus.TRIAL.value,
            "trial_start_date": record.trial_start_date or now,
            "trial_end_date": now + self.trial_length,
        }
        if user_id and not record.user_id:
            changes["user_id"] = user_id

        updated = await self.repository.update(record.tenant_id, changes)
        logger.info(
            "Initialized trial window",
            extra={"tenant_id": record.tenant_id, "previous_status": record.status},
        )
        return self._trial_started(updated or record.with_changes(**changes))

    def _trial_started(self, record: SubscriptionRecord) -> AccessDecision:
        return AccessDecision(
            allowed=True,
            state=AccessState.TRIAL,
            days_remaining=self.trial_length_days,
            message=f"Free trial - {self.trial_length_days} days remaining",
            reason=AccessReason.TRIAL_ACTIVE,
            record=record,
        )

    async def check_feature(
        self,
        tenant_id: str,
        user_id: Optional[str],
        feature: str,
        now: Optional[datetime] = None,
    ) -> AccessDecision:
        """Evaluate access for a named feature and log the outcome."""
        decision = await self.evaluate(tenant_id, user_id, now)
        log_extra = {
            "tenant_id": tenant_id,
            "user_id": user_id,
            "feature": feature,
            "reason": decision.reason.value if decision.reason else None,
        }
        if decision.allowed:
            logger.debug("Feature allowed", extra=log_extra)
        else:
            logger.info("Feature blocked", extra=log_extra)
        return decision

    async def validate_before_automation(
        self,
        tenant_id: str,
        user_id: Optional[str],
        automation_type: str,
        now: Optional[datetime] = None,
    ) -> AccessDecision:
        """
        Gate a scheduled automation run.

        A lapsed tenant that was not enforced during this evaluation (for
        example an already-expired record whose automations were re-enabled)
        is enforced before the decision is returned.
        """
        decision = await self.evaluate(tenant_id, user_id, now)
        if decision.allowed:
            return decision

        logger.warning(
            "Automation blocked",
            extra={
                "tenant_id": tenant_id,
                "user_id": user_id,
                "automation_type": automation_type,
                "reason": decision.reason.value if decision.reason else None,
            },
        )
        if decision.reason in ENFORCEABLE_REASONS and not decision.enforced:
            decision.enforced = await self._enforce(
                decision.record,
                decision.reason,
                as_utc(now) if now else utc_now(),
            )
        return decision
