"""
Subscription storage error hierarchy.

Provides:
- SubscriptionStoreError: base for all subscription storage failures
- StoreUnavailableError: a backing store could not be reached
- InvalidSubscriptionRecordError: a record violates its invariants
"""

from typing import Optional


class SubscriptionStoreError(Exception):
    """Base exception for subscription storage failures."""

    error_code = "SUBSCRIPTION_STORE_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.error_code, "message": self.message}


class StoreUnavailableError(SubscriptionStoreError):
    """Raised when a backing store cannot be reached or fails mid-operation."""

    error_code = "SUBSCRIPTION_STORE_UNAVAILABLE"

    def __init__(
        self,
        store: str,
        operation: str,
        cause: Optional[Exception] = None,
    ):
        self.store = store
        self.operation = operation
        self.cause = cause
        super().__init__(f"{store} store unavailable during {operation}")

    def to_dict(self) -> dict:
        return {
            "error": self.error_code,
            "message": self.message,
            "store": self.store,
            "operation": self.operation,
        }


class InvalidSubscriptionRecordError(SubscriptionStoreError):
    """Raised when a subscription record violates its invariants."""

    error_code = "SUBSCRIPTION_RECORD_INVALID"

    def __init__(self, detail: str, tenant_id: Optional[str] = None):
        self.detail = detail
        self.tenant_id = tenant_id
        super().__init__(detail)

    def to_dict(self) -> dict:
        return {
            "error": self.error_code,
            "message": self.detail,
            "tenant_id": self.tenant_id,
        }
