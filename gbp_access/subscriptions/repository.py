"""
Dual-store subscription repository.

The primary store is the source of truth: writes land there first and
primary errors propagate to the caller. The secondary store is a backup
kept in sync on a best-effort basis:

- save / update / delete: primary, then secondary (secondary errors logged)
- get: primary hit repairs the secondary; primary miss falls back to the
  secondary and restores the record into the primary
- get_all: a populated primary is mirrored to the secondary; an empty
  primary is bootstrapped from the secondary

The user/tenant mapping follows the same rules.
"""

import logging
from typing import Any, Dict, List, Optional

from gbp_access.config.settings import ConfigurationError
from gbp_access.subscriptions.errors import SubscriptionStoreError
from gbp_access.subscriptions.records import SubscriptionRecord
from gbp_access.subscriptions.stores import SubscriptionStore

logger = logging.getLogger(__name__)


class SubscriptionRepository:
    """Keeps the primary and backup subscription stores consistent."""

    def __init__(self, primary: SubscriptionStore, secondary: SubscriptionStore):
        self.primary = primary
        self.secondary = secondary
        self.secondary_available = True

    async def initialize(self) -> None:
        """
        Verify connectivity at startup.

        Raises:
            ConfigurationError: If the primary store is unreachable
        """
        try:
            await self.primary.ping()
        except SubscriptionStoreError as e:
            raise ConfigurationError(
                f"Primary subscription store unreachable: {e}"
            ) from e

        try:
            await self.secondary.ping()
            self.secondary_available = True
        except SubscriptionStoreError as e:
            # Backup writes are still attempted on every operation
            self.secondary_available = False
            logger.warning(
                "Backup subscription store unreachable at startup",
                extra={"error": str(e)},
            )

    async def _backup_save(self, record: SubscriptionRecord, operation: str) -> None:
        try:
            await self.secondary.save(record)
        except SubscriptionStoreError as e:
            logger.warning(
                "Backup subscription write failed",
                extra={
                    "tenant_id": record.tenant_id,
                    "operation": operation,
                    "error": str(e),
                },
            )

    async def save(self, record: SubscriptionRecord) -> None:
        await self.primary.save(record)
        await self._backup_save(record, "save")

    async def update(
        self, tenant_id: str, changes: Dict[str, Any]
    ) -> Optional[SubscriptionRecord]:
        """Apply changes on the primary and mirror the full result to the backup."""
        updated = await self.primary.update(tenant_id, changes)
        if updated is None:
            return None
        await self._backup_save(updated, "update")
        return updated

    async def delete(self, tenant_id: str) -> bool:
        deleted = await self.primary.delete(tenant_id)
        try:
            await self.secondary.delete(tenant_id)
        except SubscriptionStoreError as e:
            logger.warning(
                "Backup subscription delete failed",
                extra={"tenant_id": tenant_id, "error": str(e)},
            )
        return deleted

    async def get(self, tenant_id: str) -> Optional[SubscriptionRecord]:
        record = await self.primary.get(tenant_id)
        if record is not None:
            await self._backup_save(record, "repair")
            return record

        try:
            record = await self.secondary.get(tenant_id)
        except SubscriptionStoreError as e:
            logger.warning(
                "Backup subscription read failed",
                extra={"tenant_id": tenant_id, "error": str(e)},
            )
            return None

        if record is None:
            return None

        logger.info(
            "Restoring subscription from backup store",
            extra={"tenant_id": tenant_id},
        )
        await self.primary.save(record)
        return record

    async def get_by_user(self, user_id: str) -> Optional[SubscriptionRecord]:
        tenant_id = await self.get_tenant_for_user(user_id)
        if not tenant_id:
            return None
        return await self.get(tenant_id)

    async def get_all(self) -> List[SubscriptionRecord]:
        records = await self.primary.get_all()
        if records:
            for record in records:
                await self._backup_save(record, "sync")
            return records

        try:
            records = await self.secondary.get_all()
        except SubscriptionStoreError as e:
            logger.warning(
                "Backup subscription listing failed",
                extra={"error": str(e)},
            )
            return []

        if records:
            logger.info(
                "Bootstrapping primary subscription store from backup",
                extra={"record_count": len(records)},
            )
            for record in records:
                await self.primary.save(record)
        return records

    async def _backup_mapping(self, user_id: str, tenant_id: str) -> None:
        try:
            await self.secondary.save_user_mapping(user_id, tenant_id)
        except SubscriptionStoreError as e:
            logger.warning(
                "Backup mapping write failed",
                extra={"user_id": user_id, "tenant_id": tenant_id, "error": str(e)},
            )

    async def save_user_mapping(self, user_id: str, tenant_id: str) -> None:
        await self.primary.save_user_mapping(user_id, tenant_id)
        await self._backup_mapping(user_id, tenant_id)

    async def get_tenant_for_user(self, user_id: str) -> Optional[str]:
        tenant_id = await self.primary.get_tenant_for_user(user_id)
        if tenant_id:
            await self._backup_mapping(user_id, tenant_id)
            return tenant_id
        try:
            tenant_id = await self.secondary.get_tenant_for_user(user_id)
        except SubscriptionStoreError as e:
            logger.warning(
                "Backup mapping read failed",
                extra={"user_id": user_id, "error": str(e)},
            )
            return None
        if tenant_id:
            await self.primary.save_user_mapping(user_id, tenant_id)
        return tenant_id

    async def get_user_for_tenant(self, tenant_id: str) -> Optional[str]:
        user_id = await self.primary.get_user_for_tenant(tenant_id)
        if user_id:
            await self._backup_mapping(user_id, tenant_id)
            return user_id
        try:
            user_id = await self.secondary.get_user_for_tenant(tenant_id)
        except SubscriptionStoreError as e:
            logger.warning(
                "Backup mapping read failed",
                extra={"tenant_id": tenant_id, "error": str(e)},
            )
            return None
        if user_id:
            await self.primary.save_user_mapping(user_id, tenant_id)
        return user_id
