"""Seed a company namespace with the three starter follow-up rules.

    uv run python scripts/seed_default_rules.py acme [--created-by admin-1]

Rules whose name already exists in the namespace are left untouched, so the
script can be re-run safely.
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

# Resolve project root so imports work when run from any cwd
_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_ROOT))

from sqlalchemy.ext.asyncio import AsyncSession

from db.models import FollowUpRule
from db.repositories import rules as rules_repo
from engine import service
from schemas.rule import FollowUpRuleInput

logger = logging.getLogger(__name__)

DEFAULT_RULES: list[FollowUpRuleInput] = [
    FollowUpRuleInput(
        name="New Lead Follow-up",
        description="Follow up with new leads after 24 hours",
        priority="high",
        trigger_type="age_based",
        conditions={"min_lead_age": 1, "lead_statuses": ["new"]},
        method="all",
        frequency="once",
        escalation_enabled=True,
        escalation_days=3,
        escalation_recipients=["manager-1"],
        ai_enabled=True,
        ai_generate_message=True,
        ai_suggest_best_time=True,
        subject_template="Welcome! Let's discuss your needs",
        email_template=(
            "Hi {{firstName}}, thank you for your interest. "
            "I'd love to learn more about your needs."
        ),
        sms_template="Hi {{firstName}}, thanks for your interest! When would be a good time to chat?",
        task_template="Follow up with new lead {{leadName}} from {{companyName}}",
    ),
    FollowUpRuleInput(
        name="Contact Gap Reminder",
        description="Remind when no contact for 7 days",
        priority="medium",
        trigger_type="contact_gap",
        conditions={"min_contact_gap": 7, "lead_statuses": ["contacted", "qualified"]},
        method="notification",
        frequency="weekly",
        ai_enabled=True,
        ai_suggest_best_time=True,
        subject_template="Time for a check-in with {{leadName}}",
        email_template="Hi {{firstName}}, just checking in to see how things are progressing.",
        sms_template="Hi {{firstName}}, hope you're well! Any updates on your project?",
        task_template="Check in with {{leadName}} - no contact for 7 days",
    ),
    FollowUpRuleInput(
        name="Hot Lead Urgency",
        description="Immediate follow-up for hot leads",
        priority="critical",
        trigger_type="status_change",
        conditions={"lead_ratings": ["hot"], "min_contact_gap": 1},
        method="all",
        frequency="daily",
        escalation_enabled=True,
        escalation_days=1,
        escalation_recipients=["manager-1", "director-1"],
        ai_enabled=True,
        ai_generate_message=True,
        ai_suggest_best_time=True,
        subject_template="URGENT: Hot lead requires immediate attention",
        email_template=(
            "Hi {{firstName}}, I understand you're interested in moving forward quickly. "
            "Let's connect today!"
        ),
        sms_template=(
            "Hi {{firstName}}, I can help expedite your project. Are you free for a quick call?"
        ),
        task_template="URGENT: Contact hot lead {{leadName}} immediately",
    ),
]


async def seed_default_rules(
    session: AsyncSession, company_id: str, created_by: Optional[str] = None
) -> list[FollowUpRule]:
    """Create the default rules missing from the namespace; returns those created."""
    existing = {r.name for r in await rules_repo.list_for_company(session, company_id)}
    created = []
    for rule_input in DEFAULT_RULES:
        if rule_input.name in existing:
            logger.info("Rule %r already exists for %s, skipping", rule_input.name, company_id)
            continue
        created.append(await service.create_rule(session, company_id, rule_input, created_by))
    return created


async def main(company_id: str, created_by: Optional[str]) -> None:
    from db.connection import get_db

    async with get_db() as session:
        created = await seed_default_rules(session, company_id, created_by)
    logger.info("Seeded %d default rules for %s", len(created), company_id)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    parser = argparse.ArgumentParser(description="Seed default follow-up rules")
    parser.add_argument("company_id")
    parser.add_argument("--created-by", default=None)
    args = parser.parse_args()
    asyncio.run(main(args.company_id, args.created_by))
