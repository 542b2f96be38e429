"""Unit tests for derived analytics."""
from datetime import timedelta
from zoneinfo import ZoneInfo

from conftest import NOW, make_reminder, make_rule
from engine.analytics import dashboard_metrics, effectiveness, round_half_up, rule_analytics


def test_effectiveness():
    assert effectiveness(10, 4) == 40
    assert effectiveness(0, 0) == 0
    assert effectiveness(3, 1) == 33
    assert effectiveness(8, 1) == 13  # 12.5 rounds half up


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(0.5) == 1
    assert round_half_up(2.49) == 2


def test_rule_analytics_derives_from_reminders():
    rule = make_rule(triggered_count=10)
    other = make_rule(name="Other", triggered_count=0)
    reminders = [make_reminder(rule, lead_id=f"l{i}", responded=i < 4, converted=i < 1)
                 for i in range(10)]
    report = {r.rule_id: r for r in rule_analytics([rule, other], reminders)}
    assert report[rule.id].responded == 4
    assert report[rule.id].converted == 1
    assert report[rule.id].effectiveness == 40
    assert report[other.id].triggered == 0
    assert report[other.id].effectiveness == 0


def test_dashboard_metrics():
    active = make_rule(ai_enabled=True)
    inactive = make_rule(is_active=False)
    deleted = make_rule(is_active=False, deleted_at=NOW)
    reminders = [
        make_reminder(active, lead_id="a", status="pending"),
        make_reminder(active, lead_id="b", status="sent", sent_at=NOW - timedelta(hours=2),
                      responded=True),
        make_reminder(active, lead_id="c", status="escalated", sent_at=NOW - timedelta(days=2)),
        make_reminder(deleted, lead_id="d", status="cancelled", converted=True),
    ]
    metrics = dashboard_metrics([active, inactive, deleted], reminders, NOW, ZoneInfo("UTC"))
    assert metrics.total_rules == 2
    assert metrics.active_rules == 1
    assert metrics.ai_enabled_rules == 1
    assert metrics.total_reminders == 4
    assert metrics.pending_reminders == 1
    assert metrics.escalated_reminders == 1
    assert metrics.sent_today == 1
    assert metrics.overall_response_rate == 25
    assert metrics.conversions == 1


def test_sent_today_uses_local_day():
    rule = make_rule()
    # 2026-03-02 02:00 UTC is still 2026-03-01 in New York.
    early = NOW.replace(hour=2)
    reminder = make_reminder(rule, status="sent", sent_at=early - timedelta(hours=1))
    assert dashboard_metrics([rule], [reminder], early, ZoneInfo("UTC")).sent_today == 1
    assert dashboard_metrics(
        [rule], [reminder], early, ZoneInfo("America/New_York")
    ).sent_today == 1
    late = NOW.replace(hour=6)
    assert dashboard_metrics(
        [rule], [reminder], late, ZoneInfo("America/New_York")
    ).sent_today == 0
