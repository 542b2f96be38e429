"""Reminder lifecycle manager.

State machine (completed and cancelled are terminal):

    pending   -> sent | snoozed | cancelled
    sent      -> completed | snoozed | escalated | cancelled
    snoozed   -> pending | cancelled
    escalated -> completed | cancelled

Every transition function validates against TRANSITIONS (and its own
guards) before touching the reminder, so a rejected transition leaves the
object exactly as it was.
"""
import asyncio
import logging
import os
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from db.models import FollowUpReminder, FollowUpRule
from db.repositories import reminders as reminders_repo
from engine.aging import classify_lead
from engine.errors import (
    AdapterFailure,
    AdapterTimeout,
    DispatchFailure,
    DuplicateOpenReminder,
    InvalidTransition,
)
from engine.interfaces import DispatchChannel, RecommendationAdapter
from schemas.lead import LeadAging, LeadSnapshot
from schemas.reminder import (
    InteractionEvent,
    Recommendation,
    RecommendationContext,
    ReminderContent,
    TriggerCandidate,
)

logger = logging.getLogger(__name__)

TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"sent", "snoozed", "cancelled"}),
    "sent": frozenset({"completed", "snoozed", "escalated", "cancelled"}),
    "snoozed": frozenset({"pending", "cancelled"}),
    "escalated": frozenset({"completed", "cancelled"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}

DEFAULT_ADAPTER_TIMEOUT = 10.0

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def _now(now: Optional[datetime]) -> datetime:
    return now if now is not None else datetime.now(timezone.utc)


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in TRANSITIONS.get(from_status, frozenset())


def _require(reminder: FollowUpReminder, to_status: str) -> None:
    if not can_transition(reminder.status, to_status):
        raise InvalidTransition(reminder.id, reminder.status, to_status)


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def mark_sent(reminder: FollowUpReminder, now: Optional[datetime] = None) -> FollowUpReminder:
    """pending -> sent, after the channel accepted the message."""
    _require(reminder, "sent")
    now = _now(now)
    reminder.status = "sent"
    reminder.sent_at = now
    reminder.updated_at = now
    return reminder


def snooze(
    reminder: FollowUpReminder, days: int, now: Optional[datetime] = None
) -> FollowUpReminder:
    """pending|sent -> snoozed until now + days."""
    if days <= 0:
        raise ValueError("snooze days must be positive")
    _require(reminder, "snoozed")
    now = _now(now)
    reminder.status = "snoozed"
    reminder.snoozed_until = now + timedelta(days=days)
    reminder.updated_at = now
    return reminder


def wake(reminder: FollowUpReminder, now: Optional[datetime] = None) -> FollowUpReminder:
    """snoozed -> pending once snoozed_until has passed; reschedules for now."""
    _require(reminder, "pending")
    now = _now(now)
    if reminder.snoozed_until is not None and now < reminder.snoozed_until:
        raise InvalidTransition(reminder.id, reminder.status, "pending", "still snoozed")
    reminder.status = "pending"
    reminder.scheduled_at = now
    reminder.snoozed_until = None
    reminder.updated_at = now
    return reminder


def complete(reminder: FollowUpReminder, now: Optional[datetime] = None) -> FollowUpReminder:
    """sent|escalated -> completed. A completed reminder can no longer escalate."""
    _require(reminder, "completed")
    now = _now(now)
    reminder.status = "completed"
    reminder.completed_at = now
    reminder.updated_at = now
    return reminder


def escalation_due(reminder: FollowUpReminder, rule: FollowUpRule, now: datetime) -> bool:
    if reminder.status != "sent" or reminder.sent_at is None:
        return False
    if not rule.escalation_enabled:
        return False
    return now - reminder.sent_at >= timedelta(days=rule.escalation_days)


def escalate(
    reminder: FollowUpReminder, rule: FollowUpRule, now: Optional[datetime] = None
) -> FollowUpReminder:
    """sent -> escalated; recipients are used round-robin by escalation level."""
    _require(reminder, "escalated")
    now = _now(now)
    if reminder.rule_id != rule.id:
        raise InvalidTransition(reminder.id, reminder.status, "escalated", "rule mismatch")
    if not rule.escalation_enabled:
        raise InvalidTransition(reminder.id, reminder.status, "escalated", "escalation disabled")
    if not escalation_due(reminder, rule, now):
        raise InvalidTransition(reminder.id, reminder.status, "escalated", "escalation not due")

    level = reminder.escalation_level + 1
    recipients = list(rule.escalation_recipients or [])
    reminder.status = "escalated"
    reminder.escalation_level = level
    reminder.escalated_at = now
    reminder.escalated_to = recipients[(level - 1) % len(recipients)] if recipients else None
    reminder.updated_at = now
    if not recipients:
        logger.warning("Rule %s escalates without recipients (reminder %s)", rule.id, reminder.id)
    return reminder


def cancel(
    reminder: FollowUpReminder, reason: str, now: Optional[datetime] = None
) -> FollowUpReminder:
    """Any non-terminal status -> cancelled. The row is kept for analytics."""
    _require(reminder, "cancelled")
    now = _now(now)
    reminder.status = "cancelled"
    reminder.cancelled_at = now
    reminder.cancel_reason = reason
    reminder.updated_at = now
    return reminder


def cancel_open(
    reminders: list[FollowUpReminder], reason: str, now: Optional[datetime] = None
) -> list[FollowUpReminder]:
    """Cancel every non-terminal reminder in the list; returns those cancelled."""
    now = _now(now)
    cancelled = [cancel(r, reason, now) for r in reminders if not r.is_terminal]
    if cancelled:
        logger.info("Cancelled %d open reminders (%s)", len(cancelled), reason)
    return cancelled


def record_interaction(
    reminder: FollowUpReminder, event: InteractionEvent, now: Optional[datetime] = None
) -> FollowUpReminder:
    """Apply externally reported engagement. Not a status transition."""
    changes = event.to_changes()
    for key, value in changes.items():
        setattr(reminder, key, value)
    if changes:
        reminder.updated_at = _now(now)
    return reminder


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------


def render_template(template: str, lead: LeadSnapshot) -> str:
    """Fill {{firstName}}-style placeholders; unknown placeholders are kept."""
    values = {
        "firstName": lead.first_name or lead.full_name,
        "lastName": lead.last_name or "",
        "leadName": lead.full_name,
        "companyName": lead.company_name or "",
        "email": lead.email or "",
    }

    def _sub(match: re.Match) -> str:
        key = match.group(1)
        return values[key] if key in values else match.group(0)

    return _PLACEHOLDER.sub(_sub, template)


def body_template(rule: FollowUpRule) -> str:
    if rule.method == "sms":
        return rule.sms_template
    if rule.method in ("task", "notification"):
        return rule.task_template
    return rule.email_template


def fallback_content(
    rule: FollowUpRule, lead: LeadSnapshot, now: datetime, degraded: bool = False
) -> ReminderContent:
    """Deterministic, template-only content used whenever the adapter is not."""
    return ReminderContent(
        subject=render_template(rule.subject_template, lead),
        body=render_template(body_template(rule), lead),
        ai_generated=False,
        degraded=degraded,
        success_probability=lead.score / 100,
        recommended_action="call" if lead.rating == "hot" else "email",
        scheduled_at=now,
    )


def recommendation_context(
    rule: FollowUpRule, lead: LeadSnapshot, aging: LeadAging
) -> RecommendationContext:
    return RecommendationContext(
        lead_name=lead.full_name,
        first_name=lead.first_name,
        company_name=lead.company_name,
        lead_status=lead.status,
        lead_rating=lead.rating,
        lead_score=lead.score,
        lead_age=aging.lead_age,
        days_since_contact=aging.days_since_contact,
        aging_bucket=aging.bucket.name,
        rule_name=rule.name,
        trigger_type=rule.trigger_type,
        priority=rule.priority,
        method=rule.method,
        template_subject=render_template(rule.subject_template, lead),
        template_body=render_template(body_template(rule), lead),
        generate_message=rule.ai_generate_message,
        suggest_best_time=rule.ai_suggest_best_time,
    )


def adapter_timeout() -> float:
    return float(os.environ.get("RECOMMENDATION_TIMEOUT_SECONDS", DEFAULT_ADAPTER_TIMEOUT))


async def request_recommendation(
    adapter: RecommendationAdapter,
    context: RecommendationContext,
    timeout: float,
) -> Recommendation:
    """Call the adapter under a deadline, normalising every failure."""
    try:
        result = await asyncio.wait_for(adapter.generate(context), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise AdapterTimeout(f"recommendation timed out after {timeout}s") from exc
    except Exception as exc:
        raise AdapterFailure(str(exc)) from exc
    if not isinstance(result, Recommendation):
        try:
            result = Recommendation.model_validate(result)
        except Exception as exc:
            raise AdapterFailure(f"unusable recommendation: {exc}") from exc
    return result


async def build_content(
    rule: FollowUpRule,
    lead: LeadSnapshot,
    aging: LeadAging,
    adapter: Optional[RecommendationAdapter],
    now: Optional[datetime] = None,
    timeout: Optional[float] = None,
) -> ReminderContent:
    """Reminder content from the adapter when the rule enables AI, else templates."""
    now = _now(now)
    if not rule.ai_enabled:
        return fallback_content(rule, lead, now)
    if adapter is None:
        logger.warning("Rule %s enables AI but no recommendation adapter is configured", rule.id)
        return fallback_content(rule, lead, now, degraded=True)

    context = recommendation_context(rule, lead, aging)
    try:
        rec = await request_recommendation(
            adapter, context, timeout if timeout is not None else adapter_timeout()
        )
    except AdapterFailure as exc:
        logger.warning(
            "Recommendation unavailable for rule %s / lead %s, using template: %s",
            rule.id,
            lead.id,
            exc,
        )
        return fallback_content(rule, lead, now, degraded=True)

    content = fallback_content(rule, lead, now)
    content.success_probability = rec.success_probability
    content.recommended_action = rec.recommended_action
    if rule.ai_generate_message and rec.message_text.strip():
        content.body = rec.message_text
        if rec.subject:
            content.subject = rec.subject
        content.ai_generated = True
    if rule.ai_suggest_best_time and rec.best_contact_time is not None:
        best = rec.best_contact_time
        if best.tzinfo is None:
            best = best.replace(tzinfo=timezone.utc)
        if best > now:
            content.scheduled_at = best
    return content


# ---------------------------------------------------------------------------
# Creation and dispatch
# ---------------------------------------------------------------------------


def new_reminder(
    candidate: TriggerCandidate,
    lead: LeadSnapshot,
    content: ReminderContent,
    now: Optional[datetime] = None,
) -> FollowUpReminder:
    now = _now(now)
    return FollowUpReminder(
        company_id=candidate.company_id,
        rule_id=candidate.rule_id,
        lead_id=candidate.lead_id,
        assigned_to=lead.assigned_to,
        method=candidate.method,
        status="pending",
        scheduled_at=content.scheduled_at,
        escalation_level=0,
        opened=False,
        clicked=False,
        responded=False,
        converted=False,
        subject=content.subject,
        body=content.body,
        ai_generated=content.ai_generated,
        degraded=content.degraded,
        success_probability=content.success_probability,
        recommended_action=content.recommended_action,
        created_at=now,
        updated_at=now,
    )


async def create_reminder(
    session: AsyncSession,
    candidate: TriggerCandidate,
    lead: LeadSnapshot,
    rule: FollowUpRule,
    adapter: Optional[RecommendationAdapter] = None,
    now: Optional[datetime] = None,
    aging: Optional[LeadAging] = None,
) -> Optional[FollowUpReminder]:
    """Turn a trigger candidate into a pending reminder.

    Returns None when another worker already holds an open reminder for the
    pair; that is a no-op, not an error.
    """
    now = _now(now)
    if aging is None:
        aging = classify_lead(lead, now)
    content = await build_content(rule, lead, aging, adapter, now)
    reminder = new_reminder(candidate, lead, content, now)
    try:
        await reminders_repo.create_with_trigger(session, reminder)
    except DuplicateOpenReminder:
        logger.info(
            "Skipped duplicate open reminder for rule %s / lead %s",
            candidate.rule_id,
            candidate.lead_id,
        )
        return None
    logger.info(
        "Created %s reminder %s for lead %s from rule %s (%s)",
        reminder.method,
        reminder.id,
        reminder.lead_id,
        reminder.rule_id,
        ", ".join(candidate.matched_conditions) or "no conditions",
    )
    return reminder


async def dispatch(
    reminder: FollowUpReminder,
    channel: DispatchChannel,
    now: Optional[datetime] = None,
) -> FollowUpReminder:
    """Send a pending reminder through the channel, then mark it sent.

    On channel failure DispatchFailure is raised and the reminder stays pending.
    """
    _require(reminder, "sent")
    recipient = reminder.assigned_to or ""
    try:
        result = await asyncio.to_thread(
            channel.send, reminder.method, recipient, reminder.subject, reminder.body
        )
    except Exception as exc:
        raise DispatchFailure(reminder.id, reminder.method, str(exc)) from exc
    if isinstance(result, dict) and result.get("error"):
        raise DispatchFailure(reminder.id, reminder.method, str(result["error"]))
    mark_sent(reminder, now)
    logger.info("Dispatched reminder %s via %s to %s", reminder.id, reminder.method, recipient)
    return reminder
