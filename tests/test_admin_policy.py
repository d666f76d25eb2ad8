from unittest.mock import AsyncMock

import pytest

from gbp_access.access.policy import (
    AdministratorPolicy,
    DirectoryFlagPredicate,
    DirectoryUser,
    StaticAllowListPredicate,
)
from gbp_access.config.settings import parse_admin_emails


def test_parse_admin_emails():
    assert parse_admin_emails(" A@Example.com, ,b@example.com ") == ["a@example.com", "b@example.com"]
    assert parse_admin_emails(None) == []


@pytest.mark.asyncio
async def test_allow_list_matches_directory_email(directory):
    predicate = StaticAllowListPredicate(["OWNER@example.com"], directory)

    assert await predicate("owner-admin") is True
    assert await predicate("U1") is False


@pytest.mark.asyncio
async def test_allow_list_matches_user_id_without_directory():
    predicate = StaticAllowListPredicate(["owner@example.com"])

    assert await predicate("Owner@Example.com") is True
    assert await predicate("someone") is False


@pytest.mark.asyncio
async def test_directory_flag(directory):
    predicate = DirectoryFlagPredicate(directory)

    assert await predicate("flagged-admin") is True
    assert await predicate("U1") is False
    assert await predicate("unknown") is False


@pytest.mark.asyncio
async def test_directory_admin_status_counts():
    directory = AsyncMock()
    directory.get_user.return_value = DirectoryUser(user_id="x", status=" Admin ")

    assert await DirectoryFlagPredicate(directory)("x") is True


@pytest.mark.asyncio
async def test_predicates_run_in_order_and_short_circuit():
    first = AsyncMock(return_value=True)
    first.name = "first"
    second = AsyncMock(return_value=True)
    second.name = "second"

    policy = AdministratorPolicy([first, second])

    assert await policy.is_admin("U1") is True
    first.assert_awaited_once_with("U1")
    second.assert_not_awaited()


@pytest.mark.asyncio
async def test_failing_predicate_is_not_admin():
    broken = AsyncMock(side_effect=RuntimeError("directory timeout"))
    broken.name = "broken"
    fallback = AsyncMock(return_value=False)
    fallback.name = "fallback"

    policy = AdministratorPolicy([broken, fallback])

    assert await policy.is_admin("U1") is False
    fallback.assert_awaited_once_with("U1")


@pytest.mark.asyncio
async def test_empty_user_is_never_admin(admin_policy):
    assert await admin_policy.is_admin(None) is False
    assert await admin_policy.is_admin("") is False


@pytest.mark.asyncio
async def test_from_settings_without_directory_uses_allow_list_only():
    policy = AdministratorPolicy.from_settings(["ops@example.com"])

    assert len(policy.predicates) == 1
    assert await policy.is_admin("ops@example.com") is True
