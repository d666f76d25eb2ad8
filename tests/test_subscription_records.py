from datetime import datetime, timedelta, timezone

import pytest

from gbp_access.subscriptions.errors import InvalidSubscriptionRecordError
from gbp_access.subscriptions.records import (
    PaymentEvent,
    SubscriptionRecord,
    SubscriptionStatus,
    normalize_status,
)

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def test_blank_tenant_id_is_rejected():
    with pytest.raises(InvalidSubscriptionRecordError, match="tenant_id is required"):
        SubscriptionRecord(tenant_id="   ")


def test_tenant_id_is_stripped():
    assert SubscriptionRecord(tenant_id=" T1 ").tenant_id == "T1"


def test_profile_count_must_be_positive():
    with pytest.raises(InvalidSubscriptionRecordError):
        SubscriptionRecord(tenant_id="T1", profile_count=0)


def test_paid_locations_cannot_exceed_profile_count():
    with pytest.raises(InvalidSubscriptionRecordError, match="exceed profile_count"):
        SubscriptionRecord(tenant_id="T1", profile_count=1, paid_location_ids=("L1", "L2"))


def test_duplicate_paid_locations_are_collapsed_in_order():
    record = SubscriptionRecord(
        tenant_id="T1", profile_count=2, paid_location_ids=("L2", "L1", "L2")
    )
    assert record.paid_location_ids == ("L2", "L1")


def test_naive_dates_are_treated_as_utc():
    record = SubscriptionRecord(tenant_id="T1", trial_end_date=datetime(2026, 4, 1, 9, 30))
    assert record.trial_end_date == datetime(2026, 4, 1, 9, 30, tzinfo=timezone.utc)


def test_aware_dates_are_converted_to_utc():
    ist = timezone(timedelta(hours=5, minutes=30))
    record = SubscriptionRecord(
        tenant_id="T1", subscription_end_date=datetime(2026, 4, 1, 5, 30, tzinfo=ist)
    )
    assert record.subscription_end_date == datetime(2026, 4, 1, 0, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "raw,expected",
    [(" Trial ", "trial"), ("ACTIVE", "active"), ("", None), ("   ", None), (None, None)],
)
def test_normalize_status(raw, expected):
    assert normalize_status(raw) == expected


def test_with_changes_revalidates():
    record = SubscriptionRecord(tenant_id="T1", profile_count=2, paid_location_ids=("L1", "L2"))
    with pytest.raises(InvalidSubscriptionRecordError):
        record.with_changes(profile_count=1)


def test_with_changes_refuses_new_tenant_id():
    with pytest.raises(InvalidSubscriptionRecordError, match="cannot be changed"):
        SubscriptionRecord(tenant_id="T1").with_changes(tenant_id="T2")


def test_apply_payment_activates_and_appends_history():
    record = SubscriptionRecord(
        tenant_id="T1",
        status="trial",
        trial_start_date=NOW - timedelta(days=20),
        trial_end_date=NOW - timedelta(days=5),
        profile_count=2,
    )
    event = PaymentEvent(
        amount=1999.0, currency="INR", status="captured", timestamp=NOW, payment_id="pay_1"
    )

    paid = record.apply_payment(
        event, period_end=NOW + timedelta(days=30), location_ids=["L1"], plan_id="monthly"
    )

    assert paid.status == SubscriptionStatus.ACTIVE.value
    assert paid.subscription_start_date == NOW
    assert paid.subscription_end_date == NOW + timedelta(days=30)
    assert paid.plan_id == "monthly"
    assert paid.paid_location_ids == ("L1",)
    assert paid.payment_history == (event,)
    # original is untouched
    assert record.payment_history == ()


def test_apply_payment_keeps_existing_start_date():
    started = NOW - timedelta(days=60)
    record = SubscriptionRecord(
        tenant_id="T1", status="active", subscription_start_date=started, paid_location_ids=("L1",)
    )
    event = PaymentEvent(amount=10.0, currency="USD", status="captured", timestamp=NOW)

    renewed = record.apply_payment(event, period_end=NOW + timedelta(days=30), location_ids=["L1"])

    assert renewed.subscription_start_date == started
    assert renewed.paid_location_ids == ("L1",)


def test_apply_payment_rejects_extra_locations():
    record = SubscriptionRecord(tenant_id="T1", profile_count=1, paid_location_ids=("L1",))
    event = PaymentEvent(amount=10.0, currency="USD", status="captured", timestamp=NOW)
    with pytest.raises(InvalidSubscriptionRecordError):
        record.apply_payment(event, period_end=None, location_ids=["L2"])


def test_apply_payment_refuses_cancelled_record():
    record = SubscriptionRecord(tenant_id="T1", status="cancelled")
    event = PaymentEvent(amount=10.0, currency="USD", status="captured", timestamp=NOW)
    with pytest.raises(InvalidSubscriptionRecordError, match="cancelled"):
        record.apply_payment(event, period_end=None)


def test_negative_payment_amount_is_rejected():
    with pytest.raises(InvalidSubscriptionRecordError):
        PaymentEvent(amount=-1.0, currency="USD", status="captured", timestamp=NOW)


def test_to_dict_carries_schema_version_and_decodes():
    record = SubscriptionRecord(
        tenant_id="T1",
        user_id="U1",
        status="active",
        subscription_end_date=NOW,
        payment_history=(
            PaymentEvent(amount=5.0, currency="USD", status="captured", timestamp=NOW),
        ),
    )
    payload = record.to_dict()

    assert payload["schema_version"] == 1
    assert payload["subscription_end_date"] == NOW.isoformat()
    assert SubscriptionRecord.from_dict(payload) == record


def test_from_dict_rejects_unknown_schema_version():
    payload = SubscriptionRecord(tenant_id="T1").to_dict()
    payload["schema_version"] = 99
    with pytest.raises(InvalidSubscriptionRecordError, match="schema_version"):
        SubscriptionRecord.from_dict(payload)
