"""
Proactive credential refresh scheduler.

Every interval (30 minutes by default, first run shortly after startup)
the scheduler collects the distinct users with at least one enabled
automation and refreshes each user's credential when it is close to
expiry. Users are processed one at a time with a short pause between
them to stay under provider rate limits. A failure for one user is
logged and counted; the run always continues with the next user.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Set

from gbp_access.automation.registry import AutomationRegistry
from gbp_access.config.settings import (
    CREDENTIAL_REFRESH_INTERVAL_SECONDS,
    CREDENTIAL_REFRESH_USER_DELAY_SECONDS,
    CREDENTIAL_REFRESH_WARMUP_SECONDS,
)
from gbp_access.credentials.refresh import CredentialRefreshService, RefreshResultStatus
from gbp_access.models.base import utc_now
from gbp_access.workers.scheduler import PeriodicJob

logger = logging.getLogger(__name__)

# Placeholder ids written by legacy setups; never real users
IGNORED_USER_IDS = frozenset({"default"})


@dataclass
class RefreshStats:
    """Cumulative statistics for the scheduler lifetime."""

    total_runs: int = 0
    successful_refreshes: int = 0
    failed_refreshes: int = 0
    skipped_invalid: int = 0
    users_processed: Set[str] = field(default_factory=set)
    last_run_at: Optional[datetime] = None
    current_users: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total_runs": self.total_runs,
            "successful_refreshes": self.successful_refreshes,
            "failed_refreshes": self.failed_refreshes,
            "skipped_invalid": self.skipped_invalid,
            "users_processed": len(self.users_processed),
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "current_users": list(self.current_users),
        }


@dataclass
class RefreshRunStats:
    """Per-run outcome counts."""

    users: int = 0
    refreshed: int = 0
    not_needed: int = 0
    failed: int = 0
    skipped: int = 0
    start_time: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        duration = (utc_now() - self.start_time).total_seconds()
        return {
            "users": self.users,
            "refreshed": self.refreshed,
            "not_needed": self.not_needed,
            "failed": self.failed,
            "skipped": self.skipped,
            "duration_seconds": round(duration, 2),
        }


class CredentialRefreshScheduler(PeriodicJob):
    name = "credential_refresh"

    def __init__(
        self,
        registry: AutomationRegistry,
        refresh_service: CredentialRefreshService,
        interval_seconds: float = CREDENTIAL_REFRESH_INTERVAL_SECONDS,
        initial_delay_seconds: float = CREDENTIAL_REFRESH_WARMUP_SECONDS,
        user_delay_seconds: float = CREDENTIAL_REFRESH_USER_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now,
    ):
        super().__init__(interval_seconds, initial_delay_seconds=initial_delay_seconds)
        self.registry = registry
        self.refresh_service = refresh_service
        self.user_delay_seconds = user_delay_seconds
        self._sleep = sleep
        self._clock = clock
        self.stats = RefreshStats()

    async def collect_user_ids(self) -> List[str]:
        """Distinct users with at least one enabled automation."""
        automations = await self.registry.list_enabled_automations_for_all_users()
        user_ids = {
            automation.user_id.strip()
            for automation in automations
            if automation.user_id and automation.user_id.strip()
        }
        return sorted(user_ids - IGNORED_USER_IDS)

    async def run_once(self) -> RefreshRunStats:
        run = RefreshRunStats()
        self.stats.total_runs += 1
        self.stats.last_run_at = self._clock()

        try:
            user_ids = await self.collect_user_ids()
        except Exception:
            logger.exception("Could not enumerate automation users")
            return run

        self.stats.current_users = user_ids
        run.users = len(user_ids)
        if not user_ids:
            logger.info("No users with enabled automations; nothing to refresh")
            return run

        logger.info("Credential refresh run started", extra={"user_count": len(user_ids)})

        for index, user_id in enumerate(user_ids):
            if index > 0 and self.user_delay_seconds > 0:
                await self._sleep(self.user_delay_seconds)

            self.stats.users_processed.add(user_id)
            try:
                result = await self.refresh_service.ensure_fresh(user_id, now=self._clock())
            except Exception:
                run.failed += 1
                self.stats.failed_refreshes += 1
                logger.exception("Credential refresh error", extra={"user_id": user_id})
                continue

            if result.status == RefreshResultStatus.REFRESHED:
                run.refreshed += 1
                self.stats.successful_refreshes += 1
            elif result.status == RefreshResultStatus.NOT_NEEDED:
                run.not_needed += 1
                self.stats.successful_refreshes += 1
            elif result.skipped:
                run.skipped += 1
                self.stats.skipped_invalid += 1
            else:
                run.failed += 1
                self.stats.failed_refreshes += 1

        logger.info("Credential refresh run completed", extra=run.to_dict())
        return run

    def get_stats(self) -> dict:
        stats = self.stats.to_dict()
        stats["is_running"] = self.is_running
        return stats
