from gbp_access.access.policy import (
    AdministratorPolicy,
    AdminPredicate,
    DirectoryFlagPredicate,
    DirectoryUser,
    StaticAllowListPredicate,
    UserDirectory,
)
from gbp_access.access.evaluator import (
    AccessDecision,
    AccessReason,
    AccessState,
    AccessStateEvaluator,
    UNLIMITED_DAYS,
    remaining_days,
)
from gbp_access.access.enforcement import EnforcementResult, FeatureEnforcer

__all__ = [
    "AdministratorPolicy",
    "AdminPredicate",
    "DirectoryFlagPredicate",
    "DirectoryUser",
    "StaticAllowListPredicate",
    "UserDirectory",
    "AccessDecision",
    "AccessReason",
    "AccessState",
    "AccessStateEvaluator",
    "UNLIMITED_DAYS",
    "remaining_days",
    "EnforcementResult",
    "FeatureEnforcer",
]
