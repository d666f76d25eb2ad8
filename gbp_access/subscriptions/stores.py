"""
Subscription store backends.

SqlSubscriptionStore is the primary store and the sole source of truth.
RedisSubscriptionStore is the off-process backup used for recovery.
Both expose the same coroutine interface (SubscriptionStore) so the
repository can treat them symmetrically. Backend failures surface as
StoreUnavailableError; callers decide whether they are fatal.
"""

import json
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol

import redis
from sqlalchemy import select, delete, or_, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gbp_access.models.base import as_utc
from gbp_access.models.subscription import SubscriptionRow
from gbp_access.models.user_tenant_mapping import UserTenantMapping
from gbp_access.subscriptions.errors import (
    InvalidSubscriptionRecordError,
    StoreUnavailableError,
)
from gbp_access.subscriptions.records import PaymentEvent, SubscriptionRecord

logger = logging.getLogger(__name__)


class SubscriptionStore(Protocol):
    """Keyed subscription storage plus the user/tenant mapping."""

    name: str

    async def ping(self) -> None: ...

    async def get(self, tenant_id: str) -> Optional[SubscriptionRecord]: ...

    async def save(self, record: SubscriptionRecord) -> None: ...

    async def update(
        self, tenant_id: str, changes: Dict[str, Any]
    ) -> Optional[SubscriptionRecord]: ...

    async def delete(self, tenant_id: str) -> bool: ...

    async def get_all(self) -> List[SubscriptionRecord]: ...

    async def save_user_mapping(self, user_id: str, tenant_id: str) -> None: ...

    async def get_tenant_for_user(self, user_id: str) -> Optional[str]: ...

    async def get_user_for_tenant(self, tenant_id: str) -> Optional[str]: ...


def _row_to_record(row: SubscriptionRow) -> SubscriptionRecord:
    return SubscriptionRecord(
        tenant_id=row.tenant_id,
        user_id=row.user_id,
        email=row.email,
        status=row.status,
        trial_start_date=as_utc(row.trial_start_date),
        trial_end_date=as_utc(row.trial_end_date),
        subscription_start_date=as_utc(row.subscription_start_date),
        subscription_end_date=as_utc(row.subscription_end_date),
        plan_id=row.plan_id,
        profile_count=row.profile_count or 1,
        paid_location_ids=tuple(row.paid_location_ids or ()),
        payment_history=tuple(
            PaymentEvent.from_dict(event) for event in row.payment_history or ()
        ),
    )


def _copy_record_to_row(record: SubscriptionRecord, row: SubscriptionRow) -> None:
    row.user_id = record.user_id
    row.email = record.email
    row.status = record.status
    row.trial_start_date = record.trial_start_date
    row.trial_end_date = record.trial_end_date
    row.subscription_start_date = record.subscription_start_date
    row.subscription_end_date = record.subscription_end_date
    row.plan_id = record.plan_id
    row.profile_count = record.profile_count
    row.paid_location_ids = list(record.paid_location_ids)
    row.payment_history = [event.to_dict() for event in record.payment_history]


class SqlSubscriptionStore:
    """
    Relational subscription store (primary).

    Each operation opens its own session from the factory and commits
    before returning, so nothing is held open between scheduler runs.
    """

    name = "primary"

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def _unavailable(self, operation: str, exc: Exception) -> StoreUnavailableError:
        logger.error(
            "Primary subscription store failure",
            extra={"operation": operation, "error": str(exc)},
        )
        return StoreUnavailableError(self.name, operation, cause=exc)

    async def ping(self) -> None:
        try:
            with self._session_factory() as session:
                session.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise self._unavailable("ping", e) from e

    async def get(self, tenant_id: str) -> Optional[SubscriptionRecord]:
        try:
            with self._session_factory() as session:
                row = session.get(SubscriptionRow, tenant_id)
                return _row_to_record(row) if row else None
        except SQLAlchemyError as e:
            raise self._unavailable("get", e) from e

    async def save(self, record: SubscriptionRecord) -> None:
        try:
            with self._session_factory() as session:
                row = session.get(SubscriptionRow, record.tenant_id)
                if row is None:
                    row = SubscriptionRow(tenant_id=record.tenant_id)
                    session.add(row)
                _copy_record_to_row(record, row)
                session.commit()
        except SQLAlchemyError as e:
            raise self._unavailable("save", e) from e

    async def update(
        self, tenant_id: str, changes: Dict[str, Any]
    ) -> Optional[SubscriptionRecord]:
        try:
            with self._session_factory() as session:
                row = session.get(SubscriptionRow, tenant_id)
                if row is None:
                    return None
                updated = _row_to_record(row).with_changes(**changes)
                _copy_record_to_row(updated, row)
                session.commit()
                return updated
        except SQLAlchemyError as e:
            raise self._unavailable("update", e) from e

    async def delete(self, tenant_id: str) -> bool:
        try:
            with self._session_factory() as session:
                result = session.execute(
                    delete(SubscriptionRow).where(SubscriptionRow.tenant_id == tenant_id)
                )
                session.commit()
                return result.rowcount > 0
        except SQLAlchemyError as e:
            raise self._unavailable("delete", e) from e

    async def get_all(self) -> List[SubscriptionRecord]:
        try:
            with self._session_factory() as session:
                rows = session.execute(
                    select(SubscriptionRow).order_by(SubscriptionRow.tenant_id)
                ).scalars().all()
                return [_row_to_record(row) for row in rows]
        except SQLAlchemyError as e:
            raise self._unavailable("get_all", e) from e

    async def save_user_mapping(self, user_id: str, tenant_id: str) -> None:
        try:
            with self._session_factory() as session:
                # Drop stale pairings on either side to keep the mapping 1:1
                session.execute(
                    delete(UserTenantMapping).where(
                        or_(
                            UserTenantMapping.user_id == user_id,
                            UserTenantMapping.tenant_id == tenant_id,
                        )
                    )
                )
                session.add(UserTenantMapping(user_id=user_id, tenant_id=tenant_id))
                session.commit()
        except SQLAlchemyError as e:
            raise self._unavailable("save_user_mapping", e) from e

    async def get_tenant_for_user(self, user_id: str) -> Optional[str]:
        try:
            with self._session_factory() as session:
                mapping = session.get(UserTenantMapping, user_id)
                return mapping.tenant_id if mapping else None
        except SQLAlchemyError as e:
            raise self._unavailable("get_tenant_for_user", e) from e

    async def get_user_for_tenant(self, tenant_id: str) -> Optional[str]:
        try:
            with self._session_factory() as session:
                mapping = session.execute(
                    select(UserTenantMapping).where(UserTenantMapping.tenant_id == tenant_id)
                ).scalar_one_or_none()
                return mapping.user_id if mapping else None
        except SQLAlchemyError as e:
            raise self._unavailable("get_user_for_tenant", e) from e


class RedisSubscriptionStore:
    """
    Redis-backed subscription store (backup).

    Records are JSON documents under subscriptions:v1:{tenant_id}; an index
    set tracks every stored tenant, and two hashes hold the mapping in each
    direction. The client must be created with decode_responses=True.
    """

    name = "secondary"

    def __init__(self, redis_client, key_prefix: str = "subscriptions:v1"):
        self._redis = redis_client
        self._prefix = key_prefix

    @classmethod
    def from_url(cls, redis_url: str) -> "RedisSubscriptionStore":
        return cls(redis.from_url(redis_url, decode_responses=True))

    def _key(self, tenant_id: str) -> str:
        return f"{self._prefix}:{tenant_id}"

    @property
    def _index_key(self) -> str:
        return f"{self._prefix}:index"

    @property
    def _user_to_tenant_key(self) -> str:
        return f"{self._prefix}:user_to_tenant"

    @property
    def _tenant_to_user_key(self) -> str:
        return f"{self._prefix}:tenant_to_user"

    def _unavailable(self, operation: str, exc: Exception) -> StoreUnavailableError:
        return StoreUnavailableError(self.name, operation, cause=exc)

    def _read(self, tenant_id: str) -> Optional[SubscriptionRecord]:
        raw = self._redis.get(self._key(tenant_id))
        if not raw:
            return None
        try:
            return SubscriptionRecord.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise InvalidSubscriptionRecordError(
                f"undecodable backup record: {type(e).__name__}", tenant_id=tenant_id
            ) from e

    def _write(self, record: SubscriptionRecord) -> None:
        self._redis.set(self._key(record.tenant_id), json.dumps(record.to_dict()))
        self._redis.sadd(self._index_key, record.tenant_id)

    async def ping(self) -> None:
        try:
            self._redis.ping()
        except redis.RedisError as e:
            raise self._unavailable("ping", e) from e

    async def get(self, tenant_id: str) -> Optional[SubscriptionRecord]:
        try:
            return self._read(tenant_id)
        except redis.RedisError as e:
            raise self._unavailable("get", e) from e

    async def save(self, record: SubscriptionRecord) -> None:
        try:
            self._write(record)
        except redis.RedisError as e:
            raise self._unavailable("save", e) from e

    async def update(
        self, tenant_id: str, changes: Dict[str, Any]
    ) -> Optional[SubscriptionRecord]:
        try:
            current = self._read(tenant_id)
            if current is None:
                return None
            updated = current.with_changes(**changes)
            self._write(updated)
            return updated
        except redis.RedisError as e:
            raise self._unavailable("update", e) from e

    async def delete(self, tenant_id: str) -> bool:
        try:
            removed = self._redis.delete(self._key(tenant_id))
            self._redis.srem(self._index_key, tenant_id)
            return bool(removed)
        except redis.RedisError as e:
            raise self._unavailable("delete", e) from e

    async def get_all(self) -> List[SubscriptionRecord]:
        try:
            records = []
            for tenant_id in sorted(self._redis.smembers(self._index_key)):
                try:
                    record = self._read(tenant_id)
                except InvalidSubscriptionRecordError:
                    logger.warning(
                        "Skipping undecodable backup record",
                        extra={"tenant_id": tenant_id},
                    )
                    continue
                if record is None:
                    self._redis.srem(self._index_key, tenant_id)
                    continue
                records.append(record)
            return records
        except redis.RedisError as e:
            raise self._unavailable("get_all", e) from e

    async def save_user_mapping(self, user_id: str, tenant_id: str) -> None:
        try:
            previous_tenant = self._redis.hget(self._user_to_tenant_key, user_id)
            if previous_tenant and previous_tenant != tenant_id:
                self._redis.hdel(self._tenant_to_user_key, previous_tenant)
            previous_user = self._redis.hget(self._tenant_to_user_key, tenant_id)
            if previous_user and previous_user != user_id:
                self._redis.hdel(self._user_to_tenant_key, previous_user)
            self._redis.hset(self._user_to_tenant_key, user_id, tenant_id)
            self._redis.hset(self._tenant_to_user_key, tenant_id, user_id)
        except redis.RedisError as e:
            raise self._unavailable("save_user_mapping", e) from e

    async def get_tenant_for_user(self, user_id: str) -> Optional[str]:
        try:
            return self._redis.hget(self._user_to_tenant_key, user_id)
        except redis.RedisError as e:
            raise self._unavailable("get_tenant_for_user", e) from e

    async def get_user_for_tenant(self, tenant_id: str) -> Optional[str]:
        try:
            return self._redis.hget(self._tenant_to_user_key, tenant_id)
        except redis.RedisError as e:
            raise self._unavailable("get_user_for_tenant", e) from e
