"""Escalation sweep — escalate overdue sent reminders and wake expired snoozes.

Running the sweep twice with the same `now` changes nothing the second time.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Mapping, Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from db.models import FollowUpReminder, FollowUpRule
from db.repositories import reminders as reminders_repo
from db.repositories import rules as rules_repo
from engine import lifecycle

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    escalated: list[FollowUpReminder] = field(default_factory=list)
    woken: list[FollowUpReminder] = field(default_factory=list)

    @property
    def changed(self) -> int:
        return len(self.escalated) + len(self.woken)


def sweep_reminders(
    reminders: Sequence[FollowUpReminder],
    rules_by_id: Mapping[UUID, FollowUpRule],
    now: Optional[datetime] = None,
) -> SweepResult:
    """Apply due escalations and wake-ups in place."""
    if now is None:
        now = datetime.now(timezone.utc)
    result = SweepResult()
    for reminder in reminders:
        if reminder.status == "sent":
            rule = rules_by_id.get(reminder.rule_id)
            if rule is not None and lifecycle.escalation_due(reminder, rule, now):
                lifecycle.escalate(reminder, rule, now)
                result.escalated.append(reminder)
                logger.info(
                    "Escalated reminder %s to level %d (%s)",
                    reminder.id,
                    reminder.escalation_level,
                    reminder.escalated_to,
                )
        elif reminder.status == "snoozed":
            if reminder.snoozed_until is None or reminder.snoozed_until <= now:
                lifecycle.wake(reminder, now)
                result.woken.append(reminder)
                logger.info("Woke snoozed reminder %s", reminder.id)
    return result


async def run_sweep(
    session: AsyncSession, company_id: str, now: Optional[datetime] = None
) -> SweepResult:
    """Load the company's sent and snoozed reminders and sweep them."""
    if now is None:
        now = datetime.now(timezone.utc)
    reminders = await reminders_repo.list_by_status(session, company_id, ("sent", "snoozed"))
    if not reminders:
        return SweepResult()
    rules = await rules_repo.list_for_company(session, company_id, include_deleted=True)
    result = sweep_reminders(reminders, {r.id: r for r in rules}, now)
    if result.changed:
        await session.flush()
    logger.info(
        "Sweep for %s: %d escalated, %d woken",
        company_id,
        len(result.escalated),
        len(result.woken),
    )
    return result
