"""
Engine configuration.

Defaults are module constants that can be overridden per environment.
EngineSettings.from_env() gathers everything the worker process needs
and fails fast when a required value is missing.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

# Subscription lifecycle
TRIAL_LENGTH_DAYS = int(os.getenv("TRIAL_LENGTH_DAYS", "15"))

# Enforcement sweep cadence (hourly)
ENFORCEMENT_SWEEP_INTERVAL_SECONDS = int(
    os.getenv("ENFORCEMENT_SWEEP_INTERVAL_SECONDS", "3600")
)

# Credential refresh cadence
CREDENTIAL_REFRESH_INTERVAL_SECONDS = int(
    os.getenv("CREDENTIAL_REFRESH_INTERVAL_SECONDS", "1800")
)
CREDENTIAL_REFRESH_WARMUP_SECONDS = float(
    os.getenv("CREDENTIAL_REFRESH_WARMUP_SECONDS", "5")
)
CREDENTIAL_REFRESH_USER_DELAY_SECONDS = float(
    os.getenv("CREDENTIAL_REFRESH_USER_DELAY_SECONDS", "1")
)

# Google access tokens live one hour; refresh once less than
# (lifetime - safety buffer) remains.
TOKEN_LIFETIME_SECONDS = int(os.getenv("TOKEN_LIFETIME_SECONDS", "3600"))
TOKEN_REFRESH_SAFETY_BUFFER_SECONDS = int(
    os.getenv("TOKEN_REFRESH_SAFETY_BUFFER_SECONDS", "1800")
)

# Backup subscription store
DEFAULT_REDIS_URL = "redis://localhost:6379/0"

# Process-local credential cache tier
TOKEN_CACHE_TTL_SECONDS = int(os.getenv("TOKEN_CACHE_TTL_SECONDS", "120"))


class ConfigurationError(Exception):
    """Raised when the engine cannot start with the supplied configuration."""

    def __init__(self, message: str, setting: Optional[str] = None):
        self.setting = setting
        self.error_code = "ENGINE_MISCONFIGURED"
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error": self.error_code,
            "message": self.message,
            "setting": self.setting,
        }


def parse_admin_emails(raw: Optional[str]) -> List[str]:
    """Split a comma-separated allow-list into normalized addresses."""
    if not raw:
        return []
    return [email.strip().lower() for email in raw.split(",") if email.strip()]


def normalize_database_url(database_url: str) -> str:
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
    return database_url


@dataclass(frozen=True)
class EngineSettings:
    """Configuration for the engine worker process."""

    database_url: str
    redis_url: str = DEFAULT_REDIS_URL
    admin_emails: List[str] = field(default_factory=list)
    trial_length_days: int = TRIAL_LENGTH_DAYS
    sweep_interval_seconds: int = ENFORCEMENT_SWEEP_INTERVAL_SECONDS
    refresh_interval_seconds: int = CREDENTIAL_REFRESH_INTERVAL_SECONDS
    refresh_warmup_seconds: float = CREDENTIAL_REFRESH_WARMUP_SECONDS
    refresh_user_delay_seconds: float = CREDENTIAL_REFRESH_USER_DELAY_SECONDS
    token_lifetime_seconds: int = TOKEN_LIFETIME_SECONDS
    token_safety_buffer_seconds: int = TOKEN_REFRESH_SAFETY_BUFFER_SECONDS
    token_cache_ttl_seconds: int = TOKEN_CACHE_TTL_SECONDS

    def __post_init__(self):
        if self.trial_length_days < 1:
            raise ConfigurationError(
                "trial_length_days must be at least 1", setting="TRIAL_LENGTH_DAYS"
            )
        if self.token_safety_buffer_seconds >= self.token_lifetime_seconds:
            raise ConfigurationError(
                "Token safety buffer must be shorter than the token lifetime",
                setting="TOKEN_REFRESH_SAFETY_BUFFER_SECONDS",
            )

    @property
    def refresh_window_seconds(self) -> int:
        return self.token_lifetime_seconds - self.token_safety_buffer_seconds

    @classmethod
    def from_env(cls) -> "EngineSettings":
        """Load settings from environment variables."""
        database_url = os.getenv("DATABASE_URL")
        if not database_url:
            raise ConfigurationError(
                "DATABASE_URL environment variable is required",
                setting="DATABASE_URL",
            )

        return cls(
            database_url=normalize_database_url(database_url),
            redis_url=os.getenv("REDIS_URL") or DEFAULT_REDIS_URL,
            admin_emails=parse_admin_emails(os.getenv("ADMIN_EMAILS")),
        )
