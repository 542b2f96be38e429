"""Follow-up reminder repository — guarded creation and lifecycle queries."""
import logging
from datetime import datetime, timezone
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import NON_TERMINAL_STATUSES, FollowUpReminder
from db.repositories import rules as rules_repo
from engine.errors import DuplicateOpenReminder

logger = logging.getLogger(__name__)


async def create_with_trigger(
    session: AsyncSession, reminder: FollowUpReminder
) -> FollowUpReminder:
    """Insert a new open reminder and bump its rule's triggered_count as one unit.

    Both statements run inside a SAVEPOINT. The partial unique index on
    (rule_id, lead_id) over non-terminal statuses rejects a second open
    reminder for the pair; the savepoint then rolls back both effects and
    DuplicateOpenReminder is raised. The outer transaction stays usable.
    """
    try:
        async with session.begin_nested():
            session.add(reminder)
            await session.flush()
            await rules_repo.increment_triggered(session, reminder.rule_id)
    except IntegrityError as exc:
        raise DuplicateOpenReminder(reminder.rule_id, reminder.lead_id) from exc
    return reminder


async def get(
    session: AsyncSession, company_id: str, reminder_id: UUID
) -> Optional[FollowUpReminder]:
    """Return the reminder with this id in the company namespace, or None."""
    result = await session.execute(
        select(FollowUpReminder)
        .where(FollowUpReminder.company_id == company_id)
        .where(FollowUpReminder.id == reminder_id)
    )
    return result.scalar_one_or_none()


async def list_for_company(
    session: AsyncSession,
    company_id: str,
    *,
    status: Optional[str] = None,
    method: Optional[str] = None,
    rule_id: Optional[UUID] = None,
) -> list[FollowUpReminder]:
    """Return the company's reminders, most recently scheduled first."""
    stmt = select(FollowUpReminder).where(FollowUpReminder.company_id == company_id)
    if status is not None:
        stmt = stmt.where(FollowUpReminder.status == status)
    if method is not None:
        stmt = stmt.where(FollowUpReminder.method == method)
    if rule_id is not None:
        stmt = stmt.where(FollowUpReminder.rule_id == rule_id)
    result = await session.execute(stmt.order_by(FollowUpReminder.scheduled_at.desc()))
    return list(result.scalars().all())


async def list_by_status(
    session: AsyncSession, company_id: str, statuses: Iterable[str]
) -> list[FollowUpReminder]:
    """Return the company's reminders whose status is one of statuses."""
    result = await session.execute(
        select(FollowUpReminder)
        .where(FollowUpReminder.company_id == company_id)
        .where(FollowUpReminder.status.in_(tuple(statuses)))
        .order_by(FollowUpReminder.created_at)
    )
    return list(result.scalars().all())


async def list_for_lead(
    session: AsyncSession, company_id: str, lead_id: str
) -> list[FollowUpReminder]:
    """Return every reminder ever created for a lead, oldest first."""
    result = await session.execute(
        select(FollowUpReminder)
        .where(FollowUpReminder.company_id == company_id)
        .where(FollowUpReminder.lead_id == lead_id)
        .order_by(FollowUpReminder.created_at)
    )
    return list(result.scalars().all())


async def list_open_for_rule(
    session: AsyncSession, company_id: str, rule_id: UUID
) -> list[FollowUpReminder]:
    """Return the rule's non-terminal reminders."""
    result = await session.execute(
        select(FollowUpReminder)
        .where(FollowUpReminder.company_id == company_id)
        .where(FollowUpReminder.rule_id == rule_id)
        .where(FollowUpReminder.status.in_(NON_TERMINAL_STATUSES))
    )
    return list(result.scalars().all())


async def list_open_for_lead(
    session: AsyncSession, company_id: str, lead_id: str
) -> list[FollowUpReminder]:
    """Return the lead's non-terminal reminders."""
    result = await session.execute(
        select(FollowUpReminder)
        .where(FollowUpReminder.company_id == company_id)
        .where(FollowUpReminder.lead_id == lead_id)
        .where(FollowUpReminder.status.in_(NON_TERMINAL_STATUSES))
    )
    return list(result.scalars().all())


async def get_due_pending(
    session: AsyncSession, company_id: str, now: Optional[datetime] = None
) -> list[FollowUpReminder]:
    """Return pending reminders scheduled for now or earlier."""
    if now is None:
        now = datetime.now(timezone.utc)
    result = await session.execute(
        select(FollowUpReminder)
        .where(FollowUpReminder.company_id == company_id)
        .where(FollowUpReminder.status == "pending")
        .where(FollowUpReminder.scheduled_at <= now)
        .order_by(FollowUpReminder.scheduled_at)
    )
    return list(result.scalars().all())
