from gbp_access.workers.scheduler import PeriodicJob
from gbp_access.workers.enforcement_sweep import EnforcementSweep, SweepStats
from gbp_access.workers.credential_refresh import (
    CredentialRefreshScheduler,
    RefreshRunStats,
    RefreshStats,
)

__all__ = [
    "PeriodicJob",
    "EnforcementSweep",
    "SweepStats",
    "CredentialRefreshScheduler",
    "RefreshRunStats",
    "RefreshStats",
]
