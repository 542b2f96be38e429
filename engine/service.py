"""Service surface for the follow-up rule engine.

Every function takes an open AsyncSession; the caller owns the transaction
(normally `async with get_db() as db:`), so multi-step commands such as
"deactivate rule and cancel its open reminders" commit or roll back together.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from db.models import FollowUpReminder, FollowUpRule, Lead
from db.repositories import leads as leads_repo
from db.repositories import reminders as reminders_repo
from db.repositories import rules as rules_repo
from engine import analytics, escalation, lifecycle
from engine.aging import aging_overview, classify_lead
from engine.errors import (
    DispatchFailure,
    LeadNotFound,
    ReminderNotFound,
    RuleNotFound,
)
from engine.interfaces import DispatchChannel, RecommendationAdapter
from engine.matcher import match_rule
from schemas.analytics import DashboardMetrics, RuleAnalytics
from schemas.lead import AgingOverview, LeadSnapshot
from schemas.reminder import InteractionEvent
from schemas.rule import FollowUpRuleInput, FollowUpRuleUpdate

logger = logging.getLogger(__name__)

_PRIORITY_ORDER = {"critical": 0, "high": 1, "medium": 2, "low": 3}


def _now(now: Optional[datetime]) -> datetime:
    return now if now is not None else datetime.now(timezone.utc)


async def _get_rule(session: AsyncSession, company_id: str, rule_id: UUID) -> FollowUpRule:
    rule = await rules_repo.get(session, company_id, rule_id)
    if rule is None:
        raise RuleNotFound(company_id, rule_id)
    return rule


async def _get_reminder(
    session: AsyncSession, company_id: str, reminder_id: UUID
) -> FollowUpReminder:
    reminder = await reminders_repo.get(session, company_id, reminder_id)
    if reminder is None:
        raise ReminderNotFound(company_id, reminder_id)
    return reminder


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


async def dashboard_metrics(
    session: AsyncSession, company_id: str, now: Optional[datetime] = None
) -> DashboardMetrics:
    rules = await rules_repo.list_for_company(session, company_id)
    reminders = await reminders_repo.list_for_company(session, company_id)
    return analytics.dashboard_metrics(rules, reminders, _now(now))


async def rule_analytics_report(session: AsyncSession, company_id: str) -> list[RuleAnalytics]:
    """Per-rule counters, including soft-deleted rules whose reminders are kept."""
    rules = await rules_repo.list_for_company(session, company_id, include_deleted=True)
    reminders = await reminders_repo.list_for_company(session, company_id)
    return analytics.rule_analytics(rules, reminders)


async def list_reminders(
    session: AsyncSession,
    company_id: str,
    status: Optional[str] = None,
    method: Optional[str] = None,
) -> list[FollowUpReminder]:
    """Reminders filtered by status and method, latest scheduled first."""
    return await reminders_repo.list_for_company(session, company_id, status=status, method=method)


async def list_rules(
    session: AsyncSession,
    company_id: str,
    active: Optional[bool] = None,
    priority: Optional[str] = None,
) -> list[FollowUpRule]:
    rules = await rules_repo.list_for_company(
        session, company_id, active_only=bool(active), priority=priority
    )
    if active is False:
        rules = [r for r in rules if not r.is_active]
    return rules


async def aging_report(
    session: AsyncSession,
    company_id: str,
    now: Optional[datetime] = None,
    *,
    assigned_to: Optional[str] = None,
    status: Optional[str] = None,
    bucket: Optional[str] = None,
) -> AgingOverview:
    leads = await leads_repo.list_for_company(session, company_id)
    return aging_overview(
        [LeadSnapshot.model_validate(lead) for lead in leads],
        _now(now),
        assigned_to=assigned_to,
        status=status,
        bucket=bucket,
    )


# ---------------------------------------------------------------------------
# Rule commands
# ---------------------------------------------------------------------------


async def create_rule(
    session: AsyncSession,
    company_id: str,
    data: Union[FollowUpRuleInput, dict],
    created_by: Optional[str] = None,
) -> FollowUpRule:
    rule_input = (
        data if isinstance(data, FollowUpRuleInput) else FollowUpRuleInput.model_validate(data)
    )
    return await rules_repo.create(session, company_id, rule_input.to_record(), created_by)


async def update_rule(
    session: AsyncSession,
    company_id: str,
    rule_id: UUID,
    data: Union[FollowUpRuleUpdate, dict],
) -> FollowUpRule:
    """Apply a partial edit. Raises ValueError if the merged rule is inconsistent."""
    edit = data if isinstance(data, FollowUpRuleUpdate) else FollowUpRuleUpdate.model_validate(data)
    rule = await _get_rule(session, company_id, rule_id)
    changes = edit.to_changes()
    frequency = changes.get("frequency", rule.frequency)
    interval = changes.get("custom_interval_hours", rule.custom_interval_hours)
    if frequency == "custom" and interval is None:
        raise ValueError("custom frequency requires custom_interval_hours")
    rule = await rules_repo.update_fields(session, rule, changes)
    logger.info("Updated rule %s: %s", rule.id, ", ".join(sorted(changes)) or "no changes")
    return rule


async def set_rule_active(
    session: AsyncSession,
    company_id: str,
    rule_id: UUID,
    active: bool,
    now: Optional[datetime] = None,
) -> FollowUpRule:
    """Toggle a rule. Deactivation cancels every open reminder the rule owns."""
    now = _now(now)
    rule = await _get_rule(session, company_id, rule_id)
    if rule.is_active == active:
        return rule
    rule = await rules_repo.update_fields(session, rule, {"is_active": active})
    if not active:
        open_reminders = await reminders_repo.list_open_for_rule(session, company_id, rule.id)
        lifecycle.cancel_open(open_reminders, "rule_deactivated", now)
        await session.flush()
    logger.info("Rule %s %s", rule.id, "activated" if active else "deactivated")
    return rule


async def delete_rule(
    session: AsyncSession,
    company_id: str,
    rule_id: UUID,
    now: Optional[datetime] = None,
) -> FollowUpRule:
    """Soft-delete a rule and cancel its open reminders."""
    now = _now(now)
    rule = await _get_rule(session, company_id, rule_id)
    open_reminders = await reminders_repo.list_open_for_rule(session, company_id, rule.id)
    lifecycle.cancel_open(open_reminders, "rule_deleted", now)
    await rules_repo.soft_delete(session, rule, now)
    logger.info("Deleted rule %s (%s)", rule.id, rule.name)
    return rule


# ---------------------------------------------------------------------------
# Reminder commands
# ---------------------------------------------------------------------------


async def complete_reminder(
    session: AsyncSession, company_id: str, reminder_id: UUID, now: Optional[datetime] = None
) -> FollowUpReminder:
    reminder = await _get_reminder(session, company_id, reminder_id)
    lifecycle.complete(reminder, _now(now))
    await session.flush()
    logger.info("Completed reminder %s", reminder.id)
    return reminder


async def snooze_reminder(
    session: AsyncSession,
    company_id: str,
    reminder_id: UUID,
    days: int,
    now: Optional[datetime] = None,
) -> FollowUpReminder:
    reminder = await _get_reminder(session, company_id, reminder_id)
    lifecycle.snooze(reminder, days, _now(now))
    await session.flush()
    logger.info("Snoozed reminder %s until %s", reminder.id, reminder.snoozed_until)
    return reminder


async def cancel_reminder(
    session: AsyncSession,
    company_id: str,
    reminder_id: UUID,
    reason: str = "cancelled_by_user",
    now: Optional[datetime] = None,
) -> FollowUpReminder:
    reminder = await _get_reminder(session, company_id, reminder_id)
    lifecycle.cancel(reminder, reason, _now(now))
    await session.flush()
    logger.info("Cancelled reminder %s (%s)", reminder.id, reason)
    return reminder


async def record_interaction(
    session: AsyncSession,
    company_id: str,
    reminder_id: UUID,
    event: Union[InteractionEvent, dict],
    now: Optional[datetime] = None,
) -> FollowUpReminder:
    if not isinstance(event, InteractionEvent):
        event = InteractionEvent.model_validate(event)
    reminder = await _get_reminder(session, company_id, reminder_id)
    lifecycle.record_interaction(reminder, event, _now(now))
    await session.flush()
    return reminder


async def dispatch_reminder(
    session: AsyncSession,
    company_id: str,
    reminder_id: UUID,
    channel: DispatchChannel,
    now: Optional[datetime] = None,
) -> FollowUpReminder:
    """Send one pending reminder. DispatchFailure leaves it pending."""
    reminder = await _get_reminder(session, company_id, reminder_id)
    await lifecycle.dispatch(reminder, channel, _now(now))
    await session.flush()
    return reminder


@dataclass
class DispatchReport:
    sent: list[FollowUpReminder] = field(default_factory=list)
    failed: list[DispatchFailure] = field(default_factory=list)


async def dispatch_due(
    session: AsyncSession,
    company_id: str,
    channel: DispatchChannel,
    now: Optional[datetime] = None,
) -> DispatchReport:
    """Send every pending reminder that is due. Failures are collected, not retried."""
    now = _now(now)
    report = DispatchReport()
    for reminder in await reminders_repo.get_due_pending(session, company_id, now):
        try:
            await lifecycle.dispatch(reminder, channel, now)
        except DispatchFailure as exc:
            logger.warning("%s", exc)
            report.failed.append(exc)
            continue
        report.sent.append(reminder)
    await session.flush()
    logger.info(
        "Dispatch for %s: %d sent, %d failed", company_id, len(report.sent), len(report.failed)
    )
    return report


# ---------------------------------------------------------------------------
# Leads
# ---------------------------------------------------------------------------


async def upsert_lead(
    session: AsyncSession,
    company_id: str,
    data: dict,
    adapter: Optional[RecommendationAdapter] = None,
    now: Optional[datetime] = None,
) -> list[FollowUpReminder]:
    """CRM hook: store the lead, then evaluate rules for it immediately."""
    lead = await leads_repo.upsert(session, company_id, data)
    return await evaluate_lead(session, company_id, lead.id, adapter, now)


async def delete_lead(
    session: AsyncSession,
    company_id: str,
    lead_id: str,
    now: Optional[datetime] = None,
) -> list[FollowUpReminder]:
    """Delete a lead and cancel its open reminders; returns those cancelled."""
    now = _now(now)
    lead = await leads_repo.get(session, company_id, lead_id)
    if lead is None:
        raise LeadNotFound(company_id, lead_id)
    open_reminders = await reminders_repo.list_open_for_lead(session, company_id, lead_id)
    cancelled = lifecycle.cancel_open(open_reminders, "lead_deleted", now)
    await session.flush()
    await leads_repo.delete(session, company_id, lead_id)
    logger.info("Deleted lead %s", lead_id)
    return cancelled


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def _by_priority(rules: list[FollowUpRule]) -> list[FollowUpRule]:
    return sorted(rules, key=lambda r: _PRIORITY_ORDER.get(r.priority, len(_PRIORITY_ORDER)))


async def _evaluate(
    session: AsyncSession,
    leads: list[Lead],
    rules: list[FollowUpRule],
    reminders: list[FollowUpReminder],
    adapter: Optional[RecommendationAdapter],
    now: datetime,
) -> list[FollowUpReminder]:
    history: dict[tuple, list[FollowUpReminder]] = defaultdict(list)
    for reminder in reminders:
        history[(reminder.rule_id, reminder.lead_id)].append(reminder)

    created: list[FollowUpReminder] = []
    for lead_row in leads:
        lead = LeadSnapshot.model_validate(lead_row)
        aging = classify_lead(lead, now)
        for rule in rules:
            pair = history[(rule.id, lead.id)]
            candidate = match_rule(lead, rule, pair, now, aging)
            if candidate is None:
                continue
            reminder = await lifecycle.create_reminder(
                session, candidate, lead, rule, adapter, now, aging
            )
            if reminder is not None:
                pair.append(reminder)
                created.append(reminder)
    return created


async def evaluate_lead(
    session: AsyncSession,
    company_id: str,
    lead_id: str,
    adapter: Optional[RecommendationAdapter] = None,
    now: Optional[datetime] = None,
) -> list[FollowUpReminder]:
    """Evaluate every active rule against one lead."""
    now = _now(now)
    lead = await leads_repo.get(session, company_id, lead_id)
    if lead is None:
        raise LeadNotFound(company_id, lead_id)
    rules = _by_priority(await rules_repo.list_for_company(session, company_id, active_only=True))
    reminders = await reminders_repo.list_for_lead(session, company_id, lead_id)
    return await _evaluate(session, [lead], rules, reminders, adapter, now)


async def evaluate_company(
    session: AsyncSession,
    company_id: str,
    adapter: Optional[RecommendationAdapter] = None,
    now: Optional[datetime] = None,
) -> list[FollowUpReminder]:
    """Evaluate every active rule against every lead in the company."""
    now = _now(now)
    rules = _by_priority(await rules_repo.list_for_company(session, company_id, active_only=True))
    if not rules:
        logger.info("No active rules for %s", company_id)
        return []
    leads = await leads_repo.list_for_company(session, company_id)
    reminders = await reminders_repo.list_for_company(session, company_id)
    created = await _evaluate(session, leads, rules, reminders, adapter, now)
    logger.info(
        "Evaluated %d rules against %d leads for %s: %d reminders created",
        len(rules),
        len(leads),
        company_id,
        len(created),
    )
    return created


async def run_sweep(
    session: AsyncSession, company_id: str, now: Optional[datetime] = None
) -> escalation.SweepResult:
    return await escalation.run_sweep(session, company_id, _now(now))
