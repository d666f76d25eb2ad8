"""
UserTenantMapping - 1:1 pairing between a user and the tenant they own.

Both columns are unique so a lookup in either direction yields one row.
"""

from sqlalchemy import Column, String

from gbp_access.db_base import Base
from gbp_access.models.base import TimestampMixin


class UserTenantMapping(Base, TimestampMixin):
    __tablename__ = "user_tenant_mappings"

    user_id = Column(String(255), primary_key=True)
    tenant_id = Column(String(255), unique=True, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<UserTenantMapping(user_id={self.user_id}, tenant_id={self.tenant_id})>"
