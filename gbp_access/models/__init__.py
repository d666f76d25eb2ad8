"""
Database models for subscriptions, credentials and automation settings.
"""

from gbp_access.models.base import TimestampMixin, utc_now, as_utc
from gbp_access.models.subscription import SubscriptionRow
from gbp_access.models.user_tenant_mapping import UserTenantMapping
from gbp_access.models.oauth_credential import OAuthCredential, CredentialStatus
from gbp_access.models.automation_setting import AutomationSetting
from gbp_access.models.activity_log import ActivityLog

__all__ = [
    "TimestampMixin",
    "utc_now",
    "as_utc",
    "SubscriptionRow",
    "UserTenantMapping",
    "OAuthCredential",
    "CredentialStatus",
    "AutomationSetting",
    "ActivityLog",
]
