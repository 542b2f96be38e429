"""Analytics aggregator.

Everything except a rule's triggered counter is derived from reminder rows
at read time.
"""
import math
import os
from datetime import datetime, timezone
from typing import Optional, Sequence
from zoneinfo import ZoneInfo

from db.models import FollowUpReminder, FollowUpRule
from schemas.analytics import DashboardMetrics, RuleAnalytics


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def effectiveness(triggered: int, responded: int) -> int:
    """Response percentage for a rule, 0 when it never fired."""
    return round_half_up(100 * responded / max(triggered, 1))


def local_timezone() -> ZoneInfo:
    return ZoneInfo(os.environ.get("FOLLOWUP_TIMEZONE", "UTC"))


def rule_analytics(
    rules: Sequence[FollowUpRule], reminders: Sequence[FollowUpReminder]
) -> list[RuleAnalytics]:
    responded: dict = {}
    converted: dict = {}
    for reminder in reminders:
        if reminder.responded:
            responded[reminder.rule_id] = responded.get(reminder.rule_id, 0) + 1
        if reminder.converted:
            converted[reminder.rule_id] = converted.get(reminder.rule_id, 0) + 1

    report = []
    for rule in rules:
        rule_responded = responded.get(rule.id, 0)
        report.append(
            RuleAnalytics(
                rule_id=rule.id,
                rule_name=rule.name,
                is_active=rule.is_active,
                is_deleted=rule.is_deleted,
                triggered=rule.triggered_count,
                responded=rule_responded,
                converted=converted.get(rule.id, 0),
                effectiveness=effectiveness(rule.triggered_count, rule_responded),
            )
        )
    return report


def _same_local_day(value: Optional[datetime], now: datetime, tz: ZoneInfo) -> bool:
    if value is None:
        return False
    return value.astimezone(tz).date() == now.astimezone(tz).date()


def dashboard_metrics(
    rules: Sequence[FollowUpRule],
    reminders: Sequence[FollowUpReminder],
    now: Optional[datetime] = None,
    tz: Optional[ZoneInfo] = None,
) -> DashboardMetrics:
    """System-wide counters; deleted rules are excluded, their reminders are not."""
    if now is None:
        now = datetime.now(timezone.utc)
    if tz is None:
        tz = local_timezone()
    live_rules = [r for r in rules if r.deleted_at is None]
    total = len(reminders)
    responded = sum(1 for r in reminders if r.responded)
    return DashboardMetrics(
        total_rules=len(live_rules),
        active_rules=sum(1 for r in live_rules if r.is_active),
        ai_enabled_rules=sum(1 for r in live_rules if r.ai_enabled),
        total_reminders=total,
        pending_reminders=sum(1 for r in reminders if r.status == "pending"),
        escalated_reminders=sum(1 for r in reminders if r.status == "escalated"),
        sent_today=sum(1 for r in reminders if _same_local_day(r.sent_at, now, tz)),
        overall_response_rate=round_half_up(100 * responded / max(total, 1)),
        conversions=sum(1 for r in reminders if r.converted),
    )
