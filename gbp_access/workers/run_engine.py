"""
Engine worker - runs the enforcement sweep and the credential refresh
scheduler side by side until SIGTERM/SIGINT.

Every collaborator is constructed here and injected; nothing is a
module-level singleton.

CONSTRAINTS:
- Run exactly one engine process; there is no leader election

Usage:
    python -m gbp_access.workers.run_engine
"""

import asyncio
import logging
import signal
import sys
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from gbp_access.access.enforcement import FeatureEnforcer
from gbp_access.access.evaluator import AccessStateEvaluator
from gbp_access.access.policy import AdministratorPolicy, UserDirectory
from gbp_access.automation.registry import SqlAutomationRegistry
from gbp_access.config.settings import EngineSettings
from gbp_access.credentials.cache import TokenCache
from gbp_access.credentials.encryption import validate_encryption_ready
from gbp_access.credentials.identity_provider import GoogleIdentityProvider, GoogleOAuthConfig
from gbp_access.credentials.redaction import setup_credential_logging
from gbp_access.credentials.refresh import CredentialRefreshService
from gbp_access.credentials.store import CredentialStore
from gbp_access.db_base import Base
from gbp_access.subscriptions.repository import SubscriptionRepository
from gbp_access.subscriptions.stores import RedisSubscriptionStore, SqlSubscriptionStore
from gbp_access.workers.credential_refresh import CredentialRefreshScheduler
from gbp_access.workers.enforcement_sweep import EnforcementSweep

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@dataclass
class Engine:
    """The wired-up engine: shared services plus both periodic jobs."""

    repository: SubscriptionRepository
    evaluator: AccessStateEvaluator
    credential_store: CredentialStore
    provider: GoogleIdentityProvider
    sweep: EnforcementSweep
    refresh_scheduler: CredentialRefreshScheduler

    def start(self) -> None:
        self.sweep.start()
        self.refresh_scheduler.start()

    async def stop(self) -> None:
        self.sweep.stop()
        self.refresh_scheduler.stop()
        await self.sweep.wait_stopped()
        await self.refresh_scheduler.wait_stopped()
        await self.provider.aclose()


def build_engine(
    settings: EngineSettings,
    oauth_config: GoogleOAuthConfig,
    directory: Optional[UserDirectory] = None,
) -> Engine:
    """Construct every collaborator from configuration."""
    db_engine = create_engine(settings.database_url, pool_pre_ping=True)
    Base.metadata.create_all(db_engine)
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    repository = SubscriptionRepository(
        primary=SqlSubscriptionStore(session_factory),
        secondary=RedisSubscriptionStore.from_url(settings.redis_url),
    )
    registry = SqlAutomationRegistry(session_factory)
    enforcer = FeatureEnforcer(registry, repository)
    evaluator = AccessStateEvaluator(
        repository,
        AdministratorPolicy.from_settings(settings.admin_emails, directory),
        enforcer,
        trial_length_days=settings.trial_length_days,
    )

    credential_store = CredentialStore(
        session_factory,
        TokenCache(ttl_seconds=settings.token_cache_ttl_seconds),
    )
    provider = GoogleIdentityProvider(oauth_config)
    refresh_service = CredentialRefreshService(
        credential_store,
        provider,
        refresh_window_seconds=settings.refresh_window_seconds,
    )

    return Engine(
        repository=repository,
        evaluator=evaluator,
        credential_store=credential_store,
        provider=provider,
        sweep=EnforcementSweep(
            repository,
            evaluator,
            enforcer,
            interval_seconds=settings.sweep_interval_seconds,
        ),
        refresh_scheduler=CredentialRefreshScheduler(
            registry,
            refresh_service,
            interval_seconds=settings.refresh_interval_seconds,
            initial_delay_seconds=settings.refresh_warmup_seconds,
            user_delay_seconds=settings.refresh_user_delay_seconds,
        ),
    )


def install_signal_handlers(loop: asyncio.AbstractEventLoop, shutdown_event: asyncio.Event) -> None:
    """Set shutdown_event on SIGTERM/SIGINT, waking the event loop immediately."""

    def _handle_signal(sig: signal.Signals) -> None:
        logger.info("Received signal %s, shutting down gracefully", sig.name)
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _handle_signal, sig)


async def run_engine() -> None:
    """Main engine loop. Runs until SIGTERM/SIGINT."""
    settings = EngineSettings.from_env()
    oauth_config = GoogleOAuthConfig.from_env()
    setup_credential_logging()
    validate_encryption_ready()

    engine = build_engine(settings, oauth_config)
    await engine.repository.initialize()

    shutdown_event = asyncio.Event()
    install_signal_handlers(asyncio.get_running_loop(), shutdown_event)

    logger.info(
        "Engine starting",
        extra={
            "sweep_interval_seconds": settings.sweep_interval_seconds,
            "refresh_interval_seconds": settings.refresh_interval_seconds,
            "refresh_window_seconds": settings.refresh_window_seconds,
            "trial_length_days": settings.trial_length_days,
        },
    )
    engine.start()

    await shutdown_event.wait()

    await engine.stop()
    logger.info("Engine stopped", extra=engine.refresh_scheduler.get_stats())


def main():
    """Entry point for running the engine from the command line."""
    try:
        asyncio.run(run_engine())
        sys.exit(0)
    except Exception as e:
        logger.error("Engine crashed", extra={"error": str(e)})
        sys.exit(1)


if __name__ == "__main__":
    main()
