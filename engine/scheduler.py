"""Periodic follow-up job.

Every FOLLOWUP_SWEEP_MINUTES (default 15) and for every company namespace:
run the escalation sweep, then evaluate the active rules. Each step runs in
its own transaction so a failing company never blocks the others.
"""
import logging
import os
from datetime import datetime, timezone
from typing import Any, AsyncContextManager, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession

from db.repositories import leads as leads_repo
from engine import service
from engine.interfaces import DispatchChannel, RecommendationAdapter

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]

DEFAULT_SWEEP_MINUTES = 15


def configured_company_ids() -> list[str]:
    raw = os.environ.get("FOLLOWUP_COMPANY_IDS", "")
    return [c.strip() for c in raw.split(",") if c.strip()]


class FollowUpScheduler:
    """Runs the sweep and rule evaluation on an AsyncIOScheduler interval."""

    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        adapter: Optional[RecommendationAdapter] = None,
        channel: Optional[DispatchChannel] = None,
        interval_minutes: Optional[int] = None,
        company_ids: Optional[list[str]] = None,
    ):
        if session_factory is None:
            from db.connection import get_db

            session_factory = get_db
        self.session_factory = session_factory
        self.adapter = adapter
        self.channel = channel
        self.interval_minutes = interval_minutes or int(
            os.environ.get("FOLLOWUP_SWEEP_MINUTES", DEFAULT_SWEEP_MINUTES)
        )
        self.company_ids = company_ids if company_ids is not None else configured_company_ids()
        self.scheduler = AsyncIOScheduler()
        self._started = False

    def start(self) -> None:
        if self._started:
            return
        self.scheduler.add_job(
            self.run_cycle,
            IntervalTrigger(minutes=self.interval_minutes),
            id="followup_cycle",
            name="Follow-up sweep and rule evaluation",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        self._started = True
        logger.info("Follow-up scheduler started (every %d minutes)", self.interval_minutes)

    def shutdown(self) -> None:
        if self._started:
            self.scheduler.shutdown(wait=False)
            self._started = False
            logger.info("Follow-up scheduler stopped")

    async def company_namespaces(self) -> list[str]:
        if self.company_ids:
            return list(self.company_ids)
        async with self.session_factory() as session:
            return await leads_repo.list_company_ids(session)

    async def run_company(self, company_id: str, now: datetime) -> dict[str, Any]:
        async with self.session_factory() as session:
            swept = await service.run_sweep(session, company_id, now)
        async with self.session_factory() as session:
            created = await service.evaluate_company(session, company_id, self.adapter, now)
        summary = {
            "escalated": len(swept.escalated),
            "woken": len(swept.woken),
            "created": len(created),
        }
        if self.channel is not None:
            async with self.session_factory() as session:
                report = await service.dispatch_due(session, company_id, self.channel, now)
            summary["sent"] = len(report.sent)
            summary["failed"] = len(report.failed)
        return summary

    async def run_cycle(self, now: Optional[datetime] = None) -> dict[str, dict[str, Any]]:
        """One pass over every company. Returns a per-company summary."""
        now = now or datetime.now(timezone.utc)
        logger.info("Starting follow-up cycle")
        results: dict[str, dict[str, Any]] = {}
        for company_id in await self.company_namespaces():
            try:
                results[company_id] = await self.run_company(company_id, now)
            except Exception:
                logger.exception("Follow-up cycle failed for company %s", company_id)
                continue
        logger.info("Completed follow-up cycle for %d companies", len(results))
        return results
