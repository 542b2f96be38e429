"""Follow-up rule engine — command line entry point.

Usage:
  # Evaluate every active rule against every lead of a company
  python followup.py evaluate --company acme

  # Escalate overdue reminders and wake expired snoozes
  python followup.py sweep --company acme

  # Send every due pending reminder
  python followup.py dispatch-due --company acme

  # Reporting
  python followup.py metrics --company acme
  python followup.py aging --company acme --bucket stale
  python followup.py insights --company acme

  # Run the periodic sweep + evaluation job until interrupted
  python followup.py run-scheduler
"""
import argparse
import asyncio
import json
import logging
import os
import sys

from dotenv import load_dotenv

from engine import service
from engine.errors import FollowUpError

logger = logging.getLogger(__name__)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def _advisor(enabled: bool):
    if not enabled:
        return None
    from model_config import init_llm_provider

    init_llm_provider()
    from teams.follow_up_advisor import AdkRecommendationAdapter

    return AdkRecommendationAdapter()


async def run_evaluate(company_id: str, use_ai: bool) -> None:
    from db.connection import get_db

    adapter = _advisor(use_ai)
    async with get_db() as session:
        created = await service.evaluate_company(session, company_id, adapter)
        rows = [
            {
                "reminder_id": r.id,
                "rule_id": r.rule_id,
                "lead_id": r.lead_id,
                "method": r.method,
                "scheduled_at": r.scheduled_at,
                "degraded": r.degraded,
            }
            for r in created
        ]
    print(f"Created {len(rows)} reminders")
    _print_json(rows)


async def run_sweep(company_id: str) -> None:
    from db.connection import get_db

    async with get_db() as session:
        result = await service.run_sweep(session, company_id)
        summary = {
            "escalated": [str(r.id) for r in result.escalated],
            "woken": [str(r.id) for r in result.woken],
        }
    _print_json(summary)


async def run_dispatch_due(company_id: str) -> int:
    from db.connection import get_db
    from tools.dispatch_tools import get_dispatch_channel

    channel = get_dispatch_channel()
    async with get_db() as session:
        report = await service.dispatch_due(session, company_id, channel)
        sent = [str(r.id) for r in report.sent]
    failed = [str(f) for f in report.failed]
    _print_json({"sent": sent, "failed": failed})
    return 1 if failed else 0


async def run_metrics(company_id: str) -> None:
    from db.connection import get_db

    async with get_db() as session:
        metrics = await service.dashboard_metrics(session, company_id)
        rules = await service.rule_analytics_report(session, company_id)
    _print_json(
        {
            "dashboard": metrics.model_dump(),
            "rules": [r.model_dump(mode="json") for r in rules],
        }
    )


async def run_aging(company_id: str, assigned_to, status, bucket) -> None:
    from db.connection import get_db

    async with get_db() as session:
        overview = await service.aging_report(
            session, company_id, assigned_to=assigned_to, status=status, bucket=bucket
        )
    _print_json(overview.model_dump())


async def run_insights(company_id: str) -> None:
    from db.connection import get_db

    async with get_db() as session:
        metrics = await service.dashboard_metrics(session, company_id)
        rules = await service.rule_analytics_report(session, company_id)
        aging = await service.aging_report(session, company_id)

    from model_config import init_llm_provider

    init_llm_provider()
    from teams.follow_up_advisor import optimization_insights

    insights = await optimization_insights(metrics, rules, aging)
    if not insights:
        print("No optimization insights available.")
    _print_json([i.model_dump() for i in insights])


async def run_scheduler(use_ai: bool, dispatch: bool) -> None:
    from engine.scheduler import FollowUpScheduler
    from tools.dispatch_tools import get_dispatch_channel

    scheduler = FollowUpScheduler(
        adapter=_advisor(use_ai),
        channel=get_dispatch_channel() if dispatch else None,
    )
    await scheduler.run_cycle()
    scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown()


async def _run_and_dispose(coro):
    """Await one command, then close the connection pool on the same loop."""
    from db.connection import dispose_engine

    try:
        return await coro
    finally:
        await dispose_engine()


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Lead follow-up rule engine")
    sub = parser.add_subparsers(dest="command")

    evaluate = sub.add_parser("evaluate", help="Evaluate active rules against all leads")
    evaluate.add_argument("--company", required=True)
    evaluate.add_argument("--no-ai", action="store_true", help="Skip the recommendation agent")

    sweep = sub.add_parser("sweep", help="Escalate overdue reminders and wake snoozed ones")
    sweep.add_argument("--company", required=True)

    dispatch = sub.add_parser("dispatch-due", help="Send due pending reminders")
    dispatch.add_argument("--company", required=True)

    metrics = sub.add_parser("metrics", help="Dashboard metrics and per-rule analytics")
    metrics.add_argument("--company", required=True)

    aging = sub.add_parser("aging", help="Lead aging overview")
    aging.add_argument("--company", required=True)
    aging.add_argument("--assigned-to", default=None)
    aging.add_argument("--status", default=None)
    aging.add_argument("--bucket", default=None, help="Bucket name, e.g. Stale")

    insights = sub.add_parser("insights", help="LLM rule optimization recommendations")
    insights.add_argument("--company", required=True)

    scheduler = sub.add_parser("run-scheduler", help="Run the periodic follow-up job")
    scheduler.add_argument("--no-ai", action="store_true")
    scheduler.add_argument("--dispatch", action="store_true", help="Also send due reminders")

    return parser


def main(argv=None) -> int:
    load_dotenv()
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(levelname)s %(message)s",
    )
    parser = _build_arg_parser()
    args = parser.parse_args(argv)

    try:
        if args.command == "evaluate":
            asyncio.run(_run_and_dispose(run_evaluate(args.company, use_ai=not args.no_ai)))
        elif args.command == "sweep":
            asyncio.run(_run_and_dispose(run_sweep(args.company)))
        elif args.command == "dispatch-due":
            return asyncio.run(_run_and_dispose(run_dispatch_due(args.company)))
        elif args.command == "metrics":
            asyncio.run(_run_and_dispose(run_metrics(args.company)))
        elif args.command == "aging":
            asyncio.run(
                _run_and_dispose(
                    run_aging(args.company, args.assigned_to, args.status, args.bucket)
                )
            )
        elif args.command == "insights":
            asyncio.run(_run_and_dispose(run_insights(args.company)))
        elif args.command == "run-scheduler":
            asyncio.run(
                _run_and_dispose(run_scheduler(use_ai=not args.no_ai, dispatch=args.dispatch))
            )
        else:
            parser.print_help()
            return 1
    except FollowUpError as e:
        logger.error("%s", e)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
