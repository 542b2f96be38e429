"""Rule matcher — does a follow-up rule fire for a lead right now?

A rule fires for a lead when:
  1. the rule is active and not deleted
  2. no non-terminal reminder exists for the (rule, lead) pair
  3. the rule's frequency allows another reminder given the pair's history
  4. every populated condition holds (logical AND; absent = not evaluated)
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Sequence

from db.models import TERMINAL_STATUSES, FollowUpReminder, FollowUpRule
from engine.aging import classify_lead
from schemas.lead import LeadAging, LeadSnapshot
from schemas.reminder import TriggerCandidate
from schemas.rule import RuleConditions

logger = logging.getLogger(__name__)

FREQUENCY_INTERVALS = {
    "daily": timedelta(hours=24),
    "weekly": timedelta(days=7),
}

Predicate = Callable[[LeadSnapshot, LeadAging], bool]


def _condition_predicates(conditions: RuleConditions) -> list[tuple[str, Predicate]]:
    """One predicate per populated condition field."""
    predicates: list[tuple[str, Predicate]] = []
    if conditions.min_lead_age is not None:
        threshold = conditions.min_lead_age
        predicates.append(("min_lead_age", lambda lead, aging: aging.lead_age >= threshold))
    if conditions.min_contact_gap is not None:
        gap = conditions.min_contact_gap
        predicates.append(
            ("min_contact_gap", lambda lead, aging: aging.days_since_contact >= gap)
        )
    if conditions.lead_statuses is not None:
        statuses = set(conditions.lead_statuses)
        predicates.append(("lead_statuses", lambda lead, aging: lead.status in statuses))
    if conditions.lead_ratings is not None:
        ratings = set(conditions.lead_ratings)
        predicates.append(("lead_ratings", lambda lead, aging: lead.rating in ratings))
    if conditions.score_threshold is not None:
        score = conditions.score_threshold
        predicates.append(("score_threshold", lambda lead, aging: lead.score >= score))
    if conditions.activity_types is not None:
        wanted = set(conditions.activity_types)
        predicates.append(
            (
                "activity_types",
                lambda lead, aging: bool(wanted.intersection(lead.recent_activity_types)),
            )
        )
    return predicates


def rule_conditions(rule: FollowUpRule) -> RuleConditions:
    return RuleConditions.model_validate(rule.conditions or {})


def repeat_interval(rule: FollowUpRule) -> Optional[timedelta]:
    """Minimum spacing between reminders for one lead; None for `once`."""
    if rule.frequency == "once":
        return None
    if rule.frequency == "custom":
        if rule.custom_interval_hours:
            return timedelta(hours=rule.custom_interval_hours)
        return FREQUENCY_INTERVALS["daily"]
    return FREQUENCY_INTERVALS[rule.frequency]


def frequency_allows(
    rule: FollowUpRule,
    history: Sequence[FollowUpReminder],
    now: datetime,
) -> bool:
    """Check the frequency policy against every reminder the pair ever had."""
    if not history:
        return True
    if any(r.status not in TERMINAL_STATUSES for r in history):
        return False
    interval = repeat_interval(rule)
    if interval is None:
        return False
    latest = max(history, key=lambda r: r.created_at)
    return now - latest.created_at >= interval


def match_rule(
    lead: LeadSnapshot,
    rule: FollowUpRule,
    history: Sequence[FollowUpReminder],
    now: Optional[datetime] = None,
    aging: Optional[LeadAging] = None,
) -> Optional[TriggerCandidate]:
    """Return a trigger candidate if rule fires for lead, else None.

    history: every reminder ever created for this (rule, lead) pair.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    if not rule.is_active or rule.deleted_at is not None:
        return None

    pair_history = [r for r in history if r.rule_id == rule.id and r.lead_id == lead.id]
    if any(r.status not in TERMINAL_STATUSES for r in pair_history):
        logger.debug("Rule %s skipped for lead %s: open reminder exists", rule.id, lead.id)
        return None
    if not frequency_allows(rule, pair_history, now):
        return None

    if aging is None:
        aging = classify_lead(lead, now)
    matched: list[str] = []
    for name, predicate in _condition_predicates(rule_conditions(rule)):
        if not predicate(lead, aging):
            return None
        matched.append(name)

    return TriggerCandidate(
        rule_id=rule.id,
        lead_id=lead.id,
        company_id=rule.company_id,
        method=rule.method,
        trigger_type=rule.trigger_type,
        priority=rule.priority,
        matched_conditions=matched,
    )
