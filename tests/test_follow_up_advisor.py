"""Unit tests for the follow-up advisor — the ADK runner is always patched out."""
import json
from unittest.mock import AsyncMock, patch

import pytest

from schemas.analytics import DashboardMetrics
from schemas.reminder import RecommendationContext
from teams.follow_up_advisor import (
    AdkRecommendationAdapter,
    optimization_insights,
    parse_state_json,
)


def _context() -> RecommendationContext:
    return RecommendationContext(
        lead_name="Jane Smith",
        first_name="Jane",
        lead_status="new",
        lead_rating="hot",
        lead_score=80,
        lead_age=3,
        days_since_contact=3,
        aging_bucket="Fresh",
        rule_name="Hot Lead Urgency",
        trigger_type="status_change",
        priority="critical",
        method="email",
        template_subject="URGENT",
        template_body="Hi Jane",
        generate_message=True,
    )


def _metrics() -> DashboardMetrics:
    return DashboardMetrics(
        total_rules=3, active_rules=3, ai_enabled_rules=2, total_reminders=40,
        pending_reminders=5, escalated_reminders=4, sent_today=2,
        overall_response_rate=12, conversions=1,
    )


def test_parse_state_json_handles_fenced_output():
    raw = '```json\n{"message_text": "hi", "success_probability": 0.4}\n```'
    assert parse_state_json(raw)["success_probability"] == 0.4
    assert parse_state_json({"a": 1}) == {"a": 1}
    with pytest.raises(ValueError):
        parse_state_json(None)


@pytest.mark.asyncio
async def test_adapter_parses_agent_state():
    state = {
        "recommendation": json.dumps({
            "message_text": "Hi Jane, can we talk today?",
            "subject": "Quick call?",
            "success_probability": 0.8,
            "recommended_action": "call",
            "best_contact_time": "2026-03-03T15:00:00Z",
        })
    }
    with patch("teams.follow_up_advisor.run_agent", new=AsyncMock(return_value=state)) as run:
        rec = await AdkRecommendationAdapter().generate(_context())

    assert rec.message_text == "Hi Jane, can we talk today?"
    assert rec.recommended_action == "call"
    assert rec.best_contact_time.hour == 15
    _, agent_state, _ = run.call_args.args
    assert "Hot Lead Urgency" in agent_state["recommendation_context"]


@pytest.mark.asyncio
async def test_adapter_raises_on_missing_output():
    with patch("teams.follow_up_advisor.run_agent", new=AsyncMock(return_value={})):
        with pytest.raises(ValueError):
            await AdkRecommendationAdapter().generate(_context())


@pytest.mark.asyncio
async def test_adapter_rejects_out_of_range_probability():
    state = {"recommendation": {"message_text": "x", "success_probability": 3}}
    with patch("teams.follow_up_advisor.run_agent", new=AsyncMock(return_value=state)):
        with pytest.raises(ValueError):
            await AdkRecommendationAdapter().generate(_context())


@pytest.mark.asyncio
async def test_optimization_insights_parses_recommendations():
    state = {
        "optimization_insights": {
            "recommendations": [
                {
                    "category": "timing",
                    "title": "Escalate hot leads sooner",
                    "description": "4 of 40 reminders escalated",
                    "expected_impact": "high",
                    "implementation": "Set escalation_days to 1",
                }
            ]
        }
    }
    with patch("teams.follow_up_advisor.run_agent", new=AsyncMock(return_value=state)):
        insights = await optimization_insights(_metrics())

    assert len(insights) == 1
    assert insights[0].expected_impact == "high"


@pytest.mark.asyncio
async def test_optimization_insights_fail_open():
    with patch(
        "teams.follow_up_advisor.run_agent",
        new=AsyncMock(side_effect=RuntimeError("quota exceeded")),
    ):
        assert await optimization_insights(_metrics()) == []


@pytest.mark.asyncio
async def test_optimization_insights_without_data_skips_agent():
    with patch("teams.follow_up_advisor.run_agent", new=AsyncMock()) as run:
        assert await optimization_insights() == []
    run.assert_not_called()
