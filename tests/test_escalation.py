"""Unit tests for the escalation sweep."""
from datetime import timedelta

from conftest import NOW, make_reminder, make_rule
from engine.escalation import sweep_reminders


def _escalating_rule(**overrides):
    fields = {
        "escalation_enabled": True,
        "escalation_days": 3,
        "escalation_recipients": ["manager-1"],
    }
    fields.update(overrides)
    return make_rule(**fields)


def test_sweep_escalates_due_sent_reminder():
    rule = _escalating_rule()
    reminder = make_reminder(rule, status="sent", sent_at=NOW - timedelta(days=4))
    result = sweep_reminders([reminder], {rule.id: rule}, NOW)
    assert result.escalated == [reminder]
    assert reminder.status == "escalated"
    assert reminder.escalation_level == 1
    assert reminder.escalated_to == "manager-1"


def test_sweep_skips_rules_without_escalation():
    rule = _escalating_rule(escalation_enabled=False)
    reminder = make_reminder(rule, status="sent", sent_at=NOW - timedelta(days=10))
    result = sweep_reminders([reminder], {rule.id: rule}, NOW)
    assert result.changed == 0
    assert reminder.status == "sent"


def test_sweep_never_escalates_snoozed_reminders():
    rule = _escalating_rule()
    reminder = make_reminder(
        rule,
        status="snoozed",
        sent_at=NOW - timedelta(days=10),
        snoozed_until=NOW + timedelta(days=1),
    )
    result = sweep_reminders([reminder], {rule.id: rule}, NOW)
    assert result.changed == 0
    assert reminder.status == "snoozed"


def test_sweep_wakes_expired_snooze():
    rule = _escalating_rule()
    reminder = make_reminder(rule, status="snoozed", snoozed_until=NOW - timedelta(minutes=1))
    result = sweep_reminders([reminder], {rule.id: rule}, NOW)
    assert result.woken == [reminder]
    assert reminder.status == "pending"
    assert reminder.scheduled_at == NOW


def test_sweep_is_idempotent():
    rule = _escalating_rule()
    reminders = [
        make_reminder(rule, lead_id="a", status="sent", sent_at=NOW - timedelta(days=4)),
        make_reminder(rule, lead_id="b", status="snoozed", snoozed_until=NOW - timedelta(days=1)),
    ]
    first = sweep_reminders(reminders, {rule.id: rule}, NOW)
    assert first.changed == 2
    snapshot = [(r.status, r.escalation_level, r.scheduled_at) for r in reminders]
    second = sweep_reminders(reminders, {rule.id: rule}, NOW)
    assert second.changed == 0
    assert [(r.status, r.escalation_level, r.scheduled_at) for r in reminders] == snapshot
