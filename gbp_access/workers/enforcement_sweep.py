"""
Enforcement sweep.

Re-evaluates every tenant on a fixed interval (hourly by default) and
once at startup. Tenants denied for trial_expired or subscription_expired
have their features disabled and their record marked expired. The
enforcement action is idempotent, so tenants that are already expired
are re-checked without producing new audit entries.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from gbp_access.access.enforcement import FeatureEnforcer
from gbp_access.access.evaluator import (
    ENFORCEABLE_REASONS,
    AccessReason,
    AccessState,
    AccessStateEvaluator,
)
from gbp_access.config.settings import ENFORCEMENT_SWEEP_INTERVAL_SECONDS
from gbp_access.models.base import utc_now
from gbp_access.subscriptions.repository import SubscriptionRepository
from gbp_access.workers.scheduler import PeriodicJob

logger = logging.getLogger(__name__)


@dataclass
class SweepStats:
    """Track enforcement sweep run statistics."""

    tenants_evaluated: int = 0
    tenants_allowed: int = 0
    tenants_denied: int = 0
    tenants_enforced: int = 0
    admin_bypassed: int = 0
    errors: int = 0
    start_time: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        duration = (utc_now() - self.start_time).total_seconds()
        return {
            "tenants_evaluated": self.tenants_evaluated,
            "tenants_allowed": self.tenants_allowed,
            "tenants_denied": self.tenants_denied,
            "tenants_enforced": self.tenants_enforced,
            "admin_bypassed": self.admin_bypassed,
            "errors": self.errors,
            "duration_seconds": round(duration, 2),
        }


class EnforcementSweep(PeriodicJob):
    name = "enforcement_sweep"

    def __init__(
        self,
        repository: SubscriptionRepository,
        evaluator: AccessStateEvaluator,
        enforcer: FeatureEnforcer,
        interval_seconds: float = ENFORCEMENT_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ):
        super().__init__(interval_seconds, initial_delay_seconds=0.0)
        self.repository = repository
        self.evaluator = evaluator
        self.enforcer = enforcer
        self._clock = clock
        self.last_stats: Optional[SweepStats] = None

    async def run_once(self) -> SweepStats:
        stats = SweepStats()
        now = self._clock()

        try:
            records = await self.repository.get_all()
        except Exception:
            stats.errors += 1
            logger.exception("Enforcement sweep could not list subscriptions")
            self.last_stats = stats
            return stats

        logger.info("Enforcement sweep started", extra={"tenant_count": len(records)})

        for record in records:
            stats.tenants_evaluated += 1
            try:
                decision = await self.evaluator.evaluate(record.tenant_id, record.user_id, now)

                if decision.allowed:
                    stats.tenants_allowed += 1
                    if decision.state == AccessState.ADMIN:
                        stats.admin_bypassed += 1
                    continue

                stats.tenants_denied += 1
                if decision.reason == AccessReason.EVALUATION_ERROR:
                    stats.errors += 1
                    continue
                if decision.reason not in ENFORCEABLE_REASONS:
                    continue

                if decision.enforced:
                    stats.tenants_enforced += 1
                    continue

                result = await self.enforcer.enforce(
                    record.tenant_id,
                    record.user_id,
                    decision.reason.value,
                    now=now,
                    record=decision.record,
                )
                if result.changed:
                    stats.tenants_enforced += 1

            except Exception:
                stats.errors += 1
                logger.exception(
                    "Enforcement sweep tenant error",
                    extra={"tenant_id": record.tenant_id},
                )

        self.last_stats = stats
        logger.info("Enforcement sweep completed", extra=stats.to_dict())
        return stats
