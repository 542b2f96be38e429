"""Follow-up rule repository — admin CRUD and the triggered counter."""
import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import FollowUpRule

logger = logging.getLogger(__name__)

_IMMUTABLE_FIELDS = ("id", "company_id", "triggered_count", "created_at", "deleted_at")


async def create(
    session: AsyncSession,
    company_id: str,
    data: dict,
    created_by: Optional[str] = None,
) -> FollowUpRule:
    """Create a rule in the company namespace.

    data dict keys: see schemas.rule.FollowUpRuleInput (conditions is a dict
    of populated predicates only).
    """
    fields = {k: v for k, v in data.items() if k not in _IMMUTABLE_FIELDS}
    rule = FollowUpRule(
        company_id=company_id,
        created_by=created_by,
        triggered_count=0,
        **fields,
    )
    session.add(rule)
    await session.flush()
    logger.info("Created rule %s (%s) for company %s", rule.id, rule.name, company_id)
    return rule


async def get(
    session: AsyncSession,
    company_id: str,
    rule_id: UUID,
    include_deleted: bool = False,
) -> Optional[FollowUpRule]:
    """Return the rule with this id in the company namespace, or None."""
    stmt = (
        select(FollowUpRule)
        .where(FollowUpRule.company_id == company_id)
        .where(FollowUpRule.id == rule_id)
    )
    if not include_deleted:
        stmt = stmt.where(FollowUpRule.deleted_at.is_(None))
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_for_company(
    session: AsyncSession,
    company_id: str,
    *,
    active_only: bool = False,
    priority: Optional[str] = None,
    include_deleted: bool = False,
) -> list[FollowUpRule]:
    """Return the company's rules, oldest first."""
    stmt = select(FollowUpRule).where(FollowUpRule.company_id == company_id)
    if active_only:
        stmt = stmt.where(FollowUpRule.is_active == True)  # noqa: E712
    if priority is not None:
        stmt = stmt.where(FollowUpRule.priority == priority)
    if not include_deleted:
        stmt = stmt.where(FollowUpRule.deleted_at.is_(None))
    result = await session.execute(stmt.order_by(FollowUpRule.created_at))
    return list(result.scalars().all())


async def update_fields(
    session: AsyncSession, rule: FollowUpRule, changes: dict
) -> FollowUpRule:
    """Apply admin edits to a rule. Counters and identity fields are ignored."""
    for key, value in changes.items():
        if key in _IMMUTABLE_FIELDS:
            continue
        setattr(rule, key, value)
    rule.updated_at = datetime.now(timezone.utc)
    await session.flush()
    return rule


async def soft_delete(
    session: AsyncSession, rule: FollowUpRule, deleted_at: Optional[datetime] = None
) -> FollowUpRule:
    """Mark a rule deleted and inactive; its reminders stay for analytics."""
    rule.deleted_at = deleted_at or datetime.now(timezone.utc)
    rule.is_active = False
    await session.flush()
    return rule


async def increment_triggered(session: AsyncSession, rule_id: UUID) -> None:
    """Atomically add one to triggered_count in the database."""
    await session.execute(
        update(FollowUpRule)
        .where(FollowUpRule.id == rule_id)
        .values(triggered_count=FollowUpRule.triggered_count + 1)
        .execution_options(synchronize_session="evaluate")
    )
