"""
Administrator detection.

An AdministratorPolicy holds an ordered list of predicates. A user is an
administrator when any predicate says so; predicates run in order and the
first match wins. The default configuration checks the static email
allow-list first and then the user directory's is_admin flag.

A predicate that fails is logged and treated as "not an admin", so a
directory outage can never grant unlimited access.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectoryUser:
    """The slice of an identity-directory user the engine cares about."""

    user_id: str
    email: Optional[str] = None
    is_admin: bool = False
    status: Optional[str] = None


class UserDirectory(Protocol):
    """Lookup-only view of the external user directory."""

    async def get_user(self, user_id: str) -> Optional[DirectoryUser]: ...


class AdminPredicate(Protocol):
    name: str

    async def __call__(self, user_id: str) -> bool: ...


class StaticAllowListPredicate:
    """
    Matches users whose directory email is on a configured allow-list.

    The user id itself is also compared, which covers deployments that key
    users by email address.
    """

    name = "static_allow_list"

    def __init__(self, emails: Iterable[str], directory: Optional[UserDirectory] = None):
        self.emails = frozenset(email.strip().lower() for email in emails if email.strip())
        self.directory = directory

    async def __call__(self, user_id: str) -> bool:
        if not self.emails:
            return False
        if user_id.strip().lower() in self.emails:
            return True
        if self.directory is None:
            return False
        user = await self.directory.get_user(user_id)
        return bool(user and user.email and user.email.strip().lower() in self.emails)


class DirectoryFlagPredicate:
    """Matches users flagged is_admin (or with admin status) in the directory."""

    name = "directory_flag"

    def __init__(self, directory: UserDirectory):
        self.directory = directory

    async def __call__(self, user_id: str) -> bool:
        user = await self.directory.get_user(user_id)
        if user is None:
            return False
        return bool(user.is_admin) or (user.status or "").strip().lower() == "admin"


class AdministratorPolicy:
    """Evaluates admin predicates in order."""

    def __init__(self, predicates: Sequence[AdminPredicate]):
        self.predicates: List[AdminPredicate] = list(predicates)

    @classmethod
    def from_settings(
        cls,
        admin_emails: Iterable[str],
        directory: Optional[UserDirectory] = None,
    ) -> "AdministratorPolicy":
        predicates: List[AdminPredicate] = [StaticAllowListPredicate(admin_emails, directory)]
        if directory is not None:
            predicates.append(DirectoryFlagPredicate(directory))
        return cls(predicates)

    async def is_admin(self, user_id: Optional[str]) -> bool:
        if not user_id:
            return False

        for predicate in self.predicates:
            try:
                if await predicate(user_id):
                    logger.debug(
                        "Administrator match",
                        extra={"user_id": user_id, "predicate": predicate.name},
                    )
                    return True
            except Exception:
                logger.exception(
                    "Admin predicate failed",
                    extra={"user_id": user_id, "predicate": predicate.name},
                )
        return False
