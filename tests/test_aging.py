"""Unit tests for the lead aging classifier."""
from datetime import timedelta

import pytest

from conftest import NOW, make_lead
from engine.aging import (
    AGING_BUCKETS,
    aging_overview,
    bucket_for,
    classify_lead,
    days_between,
    validate_buckets,
)
from schemas.lead import AgingBucket


@pytest.mark.parametrize(
    "days, expected",
    [(0, "Fresh"), (7, "Fresh"), (8, "Active"), (30, "Active"), (31, "Aging"),
     (60, "Aging"), (61, "Stale"), (90, "Stale"), (91, "Cold"), (4000, "Cold")],
)
def test_bucket_boundaries(days, expected):
    assert bucket_for(days).name == expected


def test_every_day_falls_in_exactly_one_bucket():
    for days in range(0, 200):
        assert sum(1 for b in AGING_BUCKETS if b.contains(days)) == 1


def test_negative_days_fall_back_to_most_urgent_bucket():
    assert bucket_for(-3).name == "Cold"


def test_validate_buckets_rejects_gaps():
    buckets = [
        AgingBucket(name="A", min_days=0, max_days=5, urgency="low"),
        AgingBucket(name="B", min_days=7, max_days=None, urgency="high"),
    ]
    with pytest.raises(ValueError):
        validate_buckets(buckets)


def test_days_between_truncates_partial_days():
    assert days_between(NOW - timedelta(days=2, hours=23), NOW) == 2


def test_never_contacted_uses_creation_date():
    lead = make_lead(created_at=NOW - timedelta(days=10))
    aging = classify_lead(lead, NOW)
    assert aging.lead_age == 10
    assert aging.days_since_contact == 10
    assert aging.bucket.name == "Active"
    assert aging.follow_up_overdue is False


def test_last_contact_drives_bucket():
    lead = make_lead(
        created_at=NOW - timedelta(days=120),
        last_contact_at=NOW - timedelta(days=3),
        next_follow_up_at=NOW - timedelta(hours=1),
    )
    aging = classify_lead(lead, NOW)
    assert aging.lead_age == 120
    assert aging.bucket.name == "Fresh"
    assert aging.follow_up_overdue is True


def test_malformed_last_contact_counts_as_absent():
    lead = make_lead(created_at=NOW - timedelta(days=40), last_contact_at="not-a-date")
    assert lead.last_contact_at is None
    assert classify_lead(lead, NOW).days_since_contact == 40


def test_aging_overview_counts_and_averages():
    leads = [
        make_lead("a", created_at=NOW - timedelta(days=2)),
        make_lead("b", created_at=NOW - timedelta(days=45)),
        make_lead("c", created_at=NOW - timedelta(days=100), assigned_to="rep-2"),
        make_lead("d", created_at=NOW - timedelta(days=5),
                  next_follow_up_at=NOW - timedelta(days=1)),
    ]
    overview = aging_overview(leads, NOW)
    assert overview.total_leads == 4
    assert overview.avg_age == 38  # 152 / 4
    assert overview.overdue_follow_ups == 1
    assert overview.stale_leads == 1
    assert overview.action_required == 3
    assert overview.leads_by_bucket == {
        "Fresh": 2, "Active": 0, "Aging": 1, "Stale": 0, "Cold": 1,
    }


def test_aging_overview_filters():
    leads = [
        make_lead("a", created_at=NOW - timedelta(days=2)),
        make_lead("b", created_at=NOW - timedelta(days=100), assigned_to="rep-2"),
    ]
    assert aging_overview(leads, NOW, assigned_to="rep-2").total_leads == 1
    assert aging_overview(leads, NOW, bucket="cold").total_leads == 1
    assert aging_overview(leads, NOW, status="contacted").total_leads == 0


def test_aging_overview_empty():
    overview = aging_overview([], NOW)
    assert overview.total_leads == 0
    assert overview.avg_age == 0
    assert set(overview.leads_by_bucket) == {b.name for b in AGING_BUCKETS}
