"""Lead aging classifier.

Maps a lead's timestamps to one of five contiguous aging buckets keyed on
days since last contact (creation date when the lead was never contacted):

    Fresh   0-7     low
    Active  8-30    low
    Aging   31-60   medium
    Stale   61-90   high
    Cold    91+     critical

Everything here is pure; callers pass `now` explicitly.
"""
import math
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Sequence

from schemas.lead import AgingBucket, AgingOverview, LeadAging, LeadSnapshot

AGING_BUCKETS: tuple[AgingBucket, ...] = (
    AgingBucket(name="Fresh", min_days=0, max_days=7, urgency="low"),
    AgingBucket(name="Active", min_days=8, max_days=30, urgency="low"),
    AgingBucket(name="Aging", min_days=31, max_days=60, urgency="medium"),
    AgingBucket(name="Stale", min_days=61, max_days=90, urgency="high"),
    AgingBucket(name="Cold", min_days=91, max_days=None, urgency="critical"),
)

_URGENCY_RANK = {"low": 0, "medium": 1, "high": 2, "critical": 3}

STALE_AFTER_DAYS = 60
ACTION_REQUIRED_AFTER_DAYS = 30


def validate_buckets(buckets: Sequence[AgingBucket]) -> None:
    """Raise ValueError unless buckets are sorted, contiguous from 0 and open-ended."""
    if not buckets:
        raise ValueError("at least one aging bucket is required")
    if buckets[0].min_days != 0:
        raise ValueError("first bucket must start at 0 days")
    for prev, nxt in zip(buckets, buckets[1:]):
        if prev.max_days is None:
            raise ValueError(f"bucket {prev.name!r} is unbounded but is not last")
        if nxt.min_days != prev.max_days + 1:
            raise ValueError(f"gap or overlap between {prev.name!r} and {nxt.name!r}")
    if buckets[-1].max_days is not None:
        raise ValueError("last bucket must be unbounded")


validate_buckets(AGING_BUCKETS)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def days_between(start: datetime, end: datetime) -> int:
    """Whole days from start to end, truncated toward zero."""
    return math.trunc((_as_utc(end) - _as_utc(start)) / timedelta(days=1))


def bucket_for(days: int, buckets: Sequence[AgingBucket] = AGING_BUCKETS) -> AgingBucket:
    """Return the bucket containing days; the most urgent one if none does."""
    for bucket in buckets:
        if bucket.contains(days):
            return bucket
    return max(buckets, key=lambda b: _URGENCY_RANK[b.urgency])


def classify_lead(
    lead: LeadSnapshot,
    now: Optional[datetime] = None,
    buckets: Sequence[AgingBucket] = AGING_BUCKETS,
) -> LeadAging:
    """Compute lead age, contact gap, aging bucket and overdue flag."""
    if now is None:
        now = datetime.now(timezone.utc)
    lead_age = days_between(lead.created_at, now)
    if lead.last_contact_at is not None:
        days_since_contact = days_between(lead.last_contact_at, now)
    else:
        days_since_contact = lead_age
    overdue = lead.next_follow_up_at is not None and _as_utc(now) > _as_utc(lead.next_follow_up_at)
    return LeadAging(
        lead_id=lead.id,
        lead_age=lead_age,
        days_since_contact=days_since_contact,
        bucket=bucket_for(days_since_contact, buckets),
        follow_up_overdue=overdue,
    )


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def aging_overview(
    leads: Iterable[LeadSnapshot],
    now: Optional[datetime] = None,
    *,
    assigned_to: Optional[str] = None,
    status: Optional[str] = None,
    bucket: Optional[str] = None,
    buckets: Sequence[AgingBucket] = AGING_BUCKETS,
) -> AgingOverview:
    """Aggregate aging metrics over the leads that pass the filters.

    bucket filters by bucket name, case-insensitive.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    selected: list[LeadAging] = []
    for lead in leads:
        if assigned_to is not None and lead.assigned_to != assigned_to:
            continue
        if status is not None and lead.status != status:
            continue
        aging = classify_lead(lead, now, buckets)
        if bucket is not None and aging.bucket.name.lower() != bucket.lower():
            continue
        selected.append(aging)

    total = len(selected)
    by_bucket = {b.name: 0 for b in buckets}
    for aging in selected:
        by_bucket[aging.bucket.name] += 1

    return AgingOverview(
        total_leads=total,
        avg_age=_round_half_up(sum(a.lead_age for a in selected) / total) if total else 0,
        avg_days_since_contact=(
            _round_half_up(sum(a.days_since_contact for a in selected) / total) if total else 0
        ),
        overdue_follow_ups=sum(1 for a in selected if a.follow_up_overdue),
        stale_leads=sum(1 for a in selected if a.days_since_contact > STALE_AFTER_DAYS),
        action_required=sum(
            1
            for a in selected
            if a.follow_up_overdue or a.days_since_contact > ACTION_REQUIRED_AFTER_DAYS
        ),
        leads_by_bucket=by_bucket,
    )
