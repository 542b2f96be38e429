"""End-to-end scenarios through the service surface on a real (SQLite) database."""
from datetime import timedelta

import pytest
from pydantic import ValidationError

from conftest import COMPANY, NOW, lead_data, rule_input
from db.repositories import leads as leads_repo
from db.repositories import rules as rules_repo
from engine import lifecycle, service
from engine.errors import (
    DispatchFailure,
    InvalidTransition,
    LeadNotFound,
    ReminderNotFound,
    RuleNotFound,
)
from engine.matcher import match_rule
from schemas.lead import LeadSnapshot
from schemas.reminder import Recommendation


class _Channel:
    def __init__(self, error=None):
        self.error = error
        self.sent = []

    def send(self, method, recipient, subject, body):
        if self.error:
            raise self.error
        self.sent.append((method, recipient, subject))
        return {"ok": True}


async def _setup(db, rule_overrides=None, **lead_overrides):
    async with db() as session:
        await leads_repo.upsert(session, COMPANY, lead_data(**lead_overrides))
        rule = await service.create_rule(session, COMPANY, rule_input(**(rule_overrides or {})))
    return rule


async def _evaluate(db, now=NOW, adapter=None):
    async with db() as session:
        return await service.evaluate_company(session, COMPANY, adapter, now)


@pytest.mark.asyncio
async def test_contact_gap_rule_creates_one_pending_reminder(db):
    """Lead created 10 days ago, never contacted; contact-gap rule of 7 days fires once."""
    rule = await _setup(db)
    created = await _evaluate(db)
    assert len(created) == 1
    assert created[0].status == "pending"
    assert created[0].assigned_to == "rep-1"
    assert created[0].body == "Hi Jane, following up on your inquiry."

    assert await _evaluate(db, NOW + timedelta(days=1)) == []
    async with db() as session:
        stored = await rules_repo.get(session, COMPANY, rule.id)
        reminders = await service.list_reminders(session, COMPANY)
    assert stored.triggered_count == 1
    assert len(reminders) == 1


@pytest.mark.asyncio
async def test_competing_trigger_attempts_leave_one_open_reminder(db):
    """A second creator that already passed the matcher is turned into a no-op."""
    await _setup(db)
    async with db() as session:
        rule = (await service.list_rules(session, COMPANY))[0]
        lead = LeadSnapshot.model_validate(await leads_repo.get(session, COMPANY, "lead-1"))
        candidate = match_rule(lead, rule, [], NOW)
        first = await lifecycle.create_reminder(session, candidate, lead, rule, now=NOW)
        second = await lifecycle.create_reminder(session, candidate, lead, rule, now=NOW)
    assert first is not None
    assert second is None
    async with db() as session:
        reminders = await service.list_reminders(session, COMPANY)
        [report] = await service.rule_analytics_report(session, COMPANY)
    assert len(reminders) == 1
    assert report.triggered == 1


@pytest.mark.asyncio
async def test_rule_that_does_not_match_creates_nothing(db):
    await _setup(db, rule_overrides={"conditions": {"min_contact_gap": 30}})
    assert await _evaluate(db) == []


@pytest.mark.asyncio
async def test_adapter_failure_is_recorded_as_degraded(db):
    class _Broken:
        async def generate(self, context):
            raise RuntimeError("LLM unavailable")

    await _setup(db, rule_overrides={"ai_enabled": True, "ai_generate_message": True})
    created = await _evaluate(db, adapter=_Broken())
    assert len(created) == 1
    assert created[0].degraded is True
    assert created[0].ai_generated is False


@pytest.mark.asyncio
async def test_adapter_recommendation_is_cached_on_reminder(db):
    class _Advisor:
        async def generate(self, context):
            assert context.days_since_contact == 10
            assert context.aging_bucket == "Active"
            return Recommendation(
                message_text="Hi Jane, still exploring options?",
                success_probability=0.72,
                recommended_action="call",
            )

    await _setup(db, rule_overrides={"ai_enabled": True, "ai_generate_message": True})
    created = await _evaluate(db, adapter=_Advisor())
    assert created[0].body == "Hi Jane, still exploring options?"
    assert created[0].ai_generated is True
    assert created[0].success_probability == pytest.approx(0.72)
    assert created[0].recommended_action == "call"


@pytest.mark.asyncio
async def test_sent_reminder_escalates_after_sweep(db):
    """Sent 4 days ago with 3-day escalation: one sweep escalates it to level 1."""
    await _setup(
        db,
        rule_overrides={
            "escalation_enabled": True,
            "escalation_days": 3,
            "escalation_recipients": ["manager-1", "director-1"],
        },
        created_at=NOW - timedelta(days=14),
    )
    sent_at = NOW - timedelta(days=4)
    [reminder] = await _evaluate(db, sent_at)
    async with db() as session:
        await service.dispatch_reminder(session, COMPANY, reminder.id, _Channel(), sent_at)

    async with db() as session:
        result = await service.run_sweep(session, COMPANY, NOW)
    assert len(result.escalated) == 1

    async with db() as session:
        [stored] = await service.list_reminders(session, COMPANY)
        second = await service.run_sweep(session, COMPANY, NOW)
    assert stored.status == "escalated"
    assert stored.escalation_level == 1
    assert stored.escalated_to == "manager-1"
    assert second.changed == 0


@pytest.mark.asyncio
async def test_snooze_then_wake_on_sweep(db):
    await _setup(db)
    [reminder] = await _evaluate(db)
    async with db() as session:
        await service.snooze_reminder(session, COMPANY, reminder.id, 2, NOW)

    async with db() as session:
        await service.run_sweep(session, COMPANY, NOW + timedelta(days=1))
    async with db() as session:
        [stored] = await service.list_reminders(session, COMPANY)
    assert stored.status == "snoozed"

    async with db() as session:
        result = await service.run_sweep(session, COMPANY, NOW + timedelta(days=3))
    async with db() as session:
        [stored] = await service.list_reminders(session, COMPANY)
    assert len(result.woken) == 1
    assert stored.status == "pending"
    assert stored.scheduled_at == NOW + timedelta(days=3)


@pytest.mark.asyncio
async def test_invalid_transition_leaves_store_unchanged(db):
    await _setup(db)
    [reminder] = await _evaluate(db)
    with pytest.raises(InvalidTransition):
        async with db() as session:
            await service.complete_reminder(session, COMPANY, reminder.id, NOW)
    async with db() as session:
        [stored] = await service.list_reminders(session, COMPANY)
    assert stored.status == "pending"


@pytest.mark.asyncio
async def test_dispatch_due_collects_failures(db):
    await _setup(db)
    await _evaluate(db)
    async with db() as session:
        report = await service.dispatch_due(
            session, COMPANY, _Channel(error=ConnectionError("webhook down")), NOW
        )
    assert report.sent == []
    assert isinstance(report.failed[0], DispatchFailure)

    async with db() as session:
        [stored] = await service.list_reminders(session, COMPANY)
    assert stored.status == "pending"

    channel = _Channel()
    async with db() as session:
        report = await service.dispatch_due(session, COMPANY, channel, NOW)
    assert len(report.sent) == 1
    assert channel.sent == [("email", "rep-1", "Follow-up with Jane Smith")]


@pytest.mark.asyncio
async def test_deactivating_rule_cancels_open_reminders(db):
    rule = await _setup(db)
    await _evaluate(db)
    async with db() as session:
        await service.set_rule_active(session, COMPANY, rule.id, False, NOW)
    async with db() as session:
        [stored] = await service.list_reminders(session, COMPANY)
        inactive = await service.list_rules(session, COMPANY, active=False)
    assert stored.status == "cancelled"
    assert stored.cancel_reason == "rule_deactivated"
    assert [r.id for r in inactive] == [rule.id]


@pytest.mark.asyncio
async def test_deleting_rule_keeps_reminders_for_analytics(db):
    rule = await _setup(db)
    await _evaluate(db)
    async with db() as session:
        await service.delete_rule(session, COMPANY, rule.id, NOW)
    async with db() as session:
        [stored] = await service.list_reminders(session, COMPANY)
        metrics = await service.dashboard_metrics(session, COMPANY, NOW)
        with pytest.raises(RuleNotFound):
            await service.update_rule(session, COMPANY, rule.id, {"name": "x"})
    assert stored.status == "cancelled"
    assert stored.cancel_reason == "rule_deleted"
    assert metrics.total_rules == 0
    assert metrics.total_reminders == 1
    async with db() as session:
        [analytics] = await service.rule_analytics_report(session, COMPANY)
    assert analytics.rule_id == rule.id
    assert analytics.is_deleted is True
    assert analytics.triggered == 1


@pytest.mark.asyncio
async def test_deleting_lead_cancels_its_reminders(db):
    await _setup(db)
    await _evaluate(db)
    async with db() as session:
        cancelled = await service.delete_lead(session, COMPANY, "lead-1", NOW)
    assert len(cancelled) == 1
    async with db() as session:
        [stored] = await service.list_reminders(session, COMPANY)
        with pytest.raises(LeadNotFound):
            await service.evaluate_lead(session, COMPANY, "lead-1", now=NOW)
    assert stored.status == "cancelled"
    assert stored.cancel_reason == "lead_deleted"


@pytest.mark.asyncio
async def test_upsert_lead_evaluates_immediately(db):
    async with db() as session:
        await service.create_rule(
            session, COMPANY, rule_input(conditions={"lead_ratings": ["hot"]}, frequency="daily")
        )
    async with db() as session:
        created = await service.upsert_lead(session, COMPANY, lead_data(rating="cold"), now=NOW)
    assert created == []
    async with db() as session:
        created = await service.upsert_lead(session, COMPANY, lead_data(rating="hot"), now=NOW)
    assert len(created) == 1


@pytest.mark.asyncio
async def test_interaction_feeds_analytics(db):
    await _setup(db)
    [reminder] = await _evaluate(db)
    async with db() as session:
        await service.dispatch_reminder(session, COMPANY, reminder.id, _Channel(), NOW)
        await service.record_interaction(
            session, COMPANY, reminder.id, {"opened": True, "responded": True}, NOW
        )
        await service.complete_reminder(session, COMPANY, reminder.id, NOW)
    async with db() as session:
        [analytics] = await service.rule_analytics_report(session, COMPANY)
        metrics = await service.dashboard_metrics(session, COMPANY, NOW)
    assert analytics.responded == 1
    assert analytics.effectiveness == 100
    assert metrics.overall_response_rate == 100
    assert metrics.sent_today == 1


@pytest.mark.asyncio
async def test_update_rule_validates_merged_frequency(db):
    rule = await _setup(db)
    async with db() as session:
        with pytest.raises(ValueError):
            await service.update_rule(session, COMPANY, rule.id, {"frequency": "custom"})
        updated = await service.update_rule(
            session, COMPANY, rule.id, {"frequency": "custom", "custom_interval_hours": 12}
        )
    assert updated.custom_interval_hours == 12


@pytest.mark.asyncio
async def test_update_rule_rejects_null_for_required_fields(db):
    rule = await _setup(db)
    async with db() as session:
        for field in ("escalation_days", "name", "frequency"):
            with pytest.raises(ValidationError):
                await service.update_rule(session, COMPANY, rule.id, {field: None})
        updated = await service.update_rule(
            session, COMPANY, rule.id, {"description": None, "custom_interval_hours": None}
        )
    assert updated.description is None
    assert updated.escalation_days == rule.escalation_days


@pytest.mark.asyncio
async def test_malformed_rule_input_is_rejected(db):
    async with db() as session:
        with pytest.raises(ValidationError):
            await service.create_rule(session, COMPANY, rule_input(method="fax"))
        with pytest.raises(ValidationError):
            await service.create_rule(session, COMPANY, rule_input(frequency="custom"))


@pytest.mark.asyncio
async def test_unknown_reminder(db):
    import uuid

    async with db() as session:
        with pytest.raises(ReminderNotFound):
            await service.cancel_reminder(session, COMPANY, uuid.uuid4())


@pytest.mark.asyncio
async def test_aging_report(db):
    async with db() as session:
        await leads_repo.upsert(session, COMPANY, lead_data("a"))
        await leads_repo.upsert(
            session, COMPANY, lead_data("b", created_at=NOW - timedelta(days=95))
        )
    async with db() as session:
        overview = await service.aging_report(session, COMPANY, NOW)
    assert overview.total_leads == 2
    assert overview.leads_by_bucket["Cold"] == 1
    assert overview.stale_leads == 1
