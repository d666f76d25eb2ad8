"""
Shared fixtures: in-memory SQLite for the primary store, a fake Redis for
the backup store, and fakes for the external collaborators.
"""

from datetime import datetime, timezone
from typing import Dict, Optional

import pytest
import redis
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from gbp_access.access.enforcement import FeatureEnforcer
from gbp_access.access.evaluator import AccessStateEvaluator
from gbp_access.access.policy import AdministratorPolicy, DirectoryUser
from gbp_access.automation.registry import SqlAutomationRegistry
from gbp_access.db_base import Base
from gbp_access.subscriptions.repository import SubscriptionRepository
from gbp_access.subscriptions.stores import RedisSubscriptionStore, SqlSubscriptionStore

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


class FakeRedis:
    """Just enough of redis-py (decode_responses=True) for the backup store."""

    def __init__(self):
        self.store: Dict[str, str] = {}
        self.sets: Dict[str, set] = {}
        self.hashes: Dict[str, Dict[str, str]] = {}
        self.fail = False

    def _check(self):
        if self.fail:
            raise redis.ConnectionError("backup store offline")

    def ping(self):
        self._check()
        return True

    def get(self, key):
        self._check()
        return self.store.get(key)

    def set(self, key, value):
        self._check()
        self.store[key] = value

    def delete(self, key):
        self._check()
        return 1 if self.store.pop(key, None) is not None else 0

    def sadd(self, key, member):
        self._check()
        self.sets.setdefault(key, set()).add(member)

    def srem(self, key, member):
        self._check()
        self.sets.get(key, set()).discard(member)

    def smembers(self, key):
        self._check()
        return set(self.sets.get(key, set()))

    def hget(self, key, field):
        self._check()
        return self.hashes.get(key, {}).get(field)

    def hset(self, key, field, value):
        self._check()
        self.hashes.setdefault(key, {})[field] = value

    def hdel(self, key, field):
        self._check()
        self.hashes.get(key, {}).pop(field, None)


class FakeDirectory:
    def __init__(self, users: Optional[Dict[str, DirectoryUser]] = None):
        self.users = users or {}
        self.calls = 0

    async def get_user(self, user_id):
        self.calls += 1
        return self.users.get(user_id)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def primary_store(session_factory):
    return SqlSubscriptionStore(session_factory)


@pytest.fixture
def backup_store(fake_redis):
    return RedisSubscriptionStore(fake_redis)


@pytest.fixture
def repository(primary_store, backup_store):
    return SubscriptionRepository(primary_store, backup_store)


@pytest.fixture
def registry(session_factory):
    return SqlAutomationRegistry(session_factory)


@pytest.fixture
def enforcer(registry, repository):
    return FeatureEnforcer(registry, repository)


@pytest.fixture
def directory():
    return FakeDirectory(
        {
            "owner-admin": DirectoryUser(user_id="owner-admin", email="owner@example.com"),
            "flagged-admin": DirectoryUser(user_id="flagged-admin", is_admin=True),
            "U1": DirectoryUser(user_id="U1", email="u1@example.com"),
        }
    )


@pytest.fixture
def admin_policy(directory):
    return AdministratorPolicy.from_settings(["owner@example.com"], directory)


@pytest.fixture
def evaluator(repository, admin_policy, enforcer):
    return AccessStateEvaluator(repository, admin_policy, enforcer, trial_length_days=15)


@pytest.fixture
def encryption_key(monkeypatch):
    """Set up encryption key for testing."""
    monkeypatch.setenv("ENCRYPTION_KEY", "test-credential-encryption-key-32!")
    return "test-credential-encryption-key-32!"
