"""Lead repository — company-scoped reads plus the CRM's upsert/delete hooks."""
import logging
from typing import Optional

from sqlalchemy import delete as sa_delete
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Lead

logger = logging.getLogger(__name__)

_LEAD_FIELDS = (
    "first_name",
    "last_name",
    "email",
    "company_name",
    "status",
    "rating",
    "score",
    "assigned_to",
    "recent_activity_types",
    "created_at",
    "last_contact_at",
    "next_follow_up_at",
)


async def get(session: AsyncSession, company_id: str, lead_id: str) -> Optional[Lead]:
    """Return the lead with this id in the company namespace, or None."""
    result = await session.execute(
        select(Lead).where(Lead.company_id == company_id).where(Lead.id == lead_id)
    )
    return result.scalar_one_or_none()


async def list_for_company(
    session: AsyncSession,
    company_id: str,
    *,
    assigned_to: Optional[str] = None,
    status: Optional[str] = None,
) -> list[Lead]:
    """Return the company's leads, optionally narrowed to one assignee or status."""
    stmt = select(Lead).where(Lead.company_id == company_id)
    if assigned_to is not None:
        stmt = stmt.where(Lead.assigned_to == assigned_to)
    if status is not None:
        stmt = stmt.where(Lead.status == status)
    result = await session.execute(stmt.order_by(Lead.created_at))
    return list(result.scalars().all())


async def upsert(session: AsyncSession, company_id: str, data: dict) -> Lead:
    """Insert or update a lead by (company_id, id).

    data dict keys: id, first_name, last_name, email, company_name, status,
    rating, score, assigned_to, recent_activity_types, created_at,
    last_contact_at, next_follow_up_at
    """
    lead = await get(session, company_id, data["id"])
    if lead is None:
        lead = Lead(id=data["id"], company_id=company_id)
        session.add(lead)
    for key in _LEAD_FIELDS:
        if key in data:
            setattr(lead, key, data[key])
    await session.flush()
    return lead


async def delete(session: AsyncSession, company_id: str, lead_id: str) -> bool:
    """Physically delete a lead. Returns True if a row was removed."""
    result = await session.execute(
        sa_delete(Lead).where(Lead.company_id == company_id).where(Lead.id == lead_id)
    )
    await session.flush()
    return result.rowcount > 0


async def list_company_ids(session: AsyncSession) -> list[str]:
    """Return every company namespace that currently holds leads."""
    result = await session.execute(select(Lead.company_id).distinct().order_by(Lead.company_id))
    return [row[0] for row in result.all()]
