"""Follow-Up Advisor — LLM side of the follow-up rule engine.

Agents:
  1. ReminderAdvisorAgent         — drafts the reminder message, scores the lead,
                                    suggests the next action and best contact time
  2. OptimizationInsightsAgent    — turns rule analytics / aging metrics into
                                    concrete rule tuning recommendations

AdkRecommendationAdapter wraps agent 1 behind the engine's
RecommendationAdapter interface. The engine bounds every call with a timeout
and falls back to templates, so nothing here needs to be reliable.
"""
import json
import logging
import uuid
from typing import Any, Optional

from google.adk.agents import LlmAgent
from google.adk.runners import Runner
from google.adk.sessions import InMemorySessionService
from google.genai.types import Content, Part

from model_config import get_llm_model
from schemas.analytics import DashboardMetrics, RuleAnalytics
from schemas.lead import AgingOverview
from schemas.reminder import (
    OptimizationInsight,
    OptimizationInsightsOutput,
    Recommendation,
    RecommendationContext,
)

logger = logging.getLogger(__name__)

APP_USER_ID = "followup_engine"

CLAUDE_MODEL = get_llm_model()

# ---------------------------------------------------------------------------
# Agent 1: ReminderAdvisorAgent
# ---------------------------------------------------------------------------
reminder_advisor_agent = LlmAgent(
    name="ReminderAdvisorAgent",
    model=CLAUDE_MODEL,
    tools=[],
    output_key="recommendation",
    instruction="""
You are a sales follow-up assistant. A follow-up rule has just fired for a lead.

Lead and rule context (JSON):
{recommendation_context}

Your job:
  1. If generate_message is true, write a short, friendly follow-up message for the
     lead over the given method (email: 3-5 sentences; sms: under 160 characters;
     task or notification: one line for the sales rep). Use the lead's first name.
     Otherwise copy template_body unchanged into message_text.
  2. Estimate the probability (0.0 to 1.0) that this follow-up gets a response.
     Weigh rating (hot > warm > cold), score, and days since contact.
  3. Recommend exactly one next action: call, email, sms, meeting or wait.
  4. If suggest_best_time is true, propose the best contact time as an ISO 8601
     UTC timestamp within the next 3 days; otherwise use null.

Return ONLY a valid JSON object with the keys message_text (string),
subject (string or null), success_probability (number),
recommended_action (string) and best_contact_time (string or null).

SELF-CHECK:
- [ ] success_probability is between 0.0 and 1.0
- [ ] recommended_action is one of the five allowed values
- [ ] Output is valid JSON only, no markdown fences
""",
)

# ---------------------------------------------------------------------------
# Agent 2: OptimizationInsightsAgent
# ---------------------------------------------------------------------------
optimization_insights_agent = LlmAgent(
    name="OptimizationInsightsAgent",
    model=CLAUDE_MODEL,
    tools=[],
    output_key="optimization_insights",
    instruction="""
You are a sales operations analyst reviewing an automated follow-up system.

Metrics (JSON):
{follow_up_metrics}

Identify up to 5 improvements to the follow-up rules: timing, channel choice,
escalation, targeting conditions, or message content. Base every recommendation
on a number in the metrics; do not invent data.

Return ONLY a valid JSON object with one key, recommendations, holding a list of
objects with the keys category (string), title (string), description (string),
expected_impact (high, medium or low) and implementation (string).

SELF-CHECK:
- [ ] Every recommendation cites a metric
- [ ] expected_impact is high, medium or low
- [ ] Output is valid JSON only, no markdown fences
""",
)


async def run_agent(agent: LlmAgent, state: dict[str, Any], message: str) -> dict:
    """Run an agent in a fresh in-memory session and return the final state."""
    session_service = InMemorySessionService()
    app_name = f"followup_{agent.name.lower()}"
    session_id = f"{agent.name.lower()}_{uuid.uuid4().hex[:8]}"
    await session_service.create_session(
        app_name=app_name,
        user_id=APP_USER_ID,
        session_id=session_id,
        state=state,
    )
    runner = Runner(
        agent=agent,
        app_name=app_name,
        session_service=session_service,
    )
    content = Content(role="user", parts=[Part(text=message)])
    async for _event in runner.run_async(
        user_id=APP_USER_ID,
        session_id=session_id,
        new_message=content,
    ):
        pass

    session = await session_service.get_session(
        app_name=app_name,
        user_id=APP_USER_ID,
        session_id=session_id,
    )
    return dict(session.state) if session else {}


def parse_state_json(raw: Any) -> dict:
    """Agent output from session state: a dict, or a JSON string possibly fenced."""
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str):
        raise ValueError(f"unexpected agent output type {type(raw).__name__}")
    text = raw.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.startswith("json"):
            text = text[len("json"):]
    return json.loads(text)


class AdkRecommendationAdapter:
    """RecommendationAdapter backed by ReminderAdvisorAgent."""

    def __init__(self, agent: LlmAgent = reminder_advisor_agent):
        self.agent = agent

    async def generate(self, context: RecommendationContext) -> Recommendation:
        payload = context.model_dump_json()
        state = await run_agent(self.agent, {"recommendation_context": payload}, payload)
        raw = state.get(self.agent.output_key)
        if raw is None:
            raise ValueError("advisor returned no recommendation")
        return Recommendation.model_validate(parse_state_json(raw))


async def optimization_insights(
    metrics: Optional[DashboardMetrics] = None,
    rules: Optional[list[RuleAnalytics]] = None,
    aging: Optional[AgingOverview] = None,
    agent: LlmAgent = optimization_insights_agent,
) -> list[OptimizationInsight]:
    """Rule tuning recommendations. Returns [] on any failure."""
    snapshot: dict[str, Any] = {}
    if metrics is not None:
        snapshot["dashboard"] = metrics.model_dump()
    if rules:
        snapshot["rules"] = [r.model_dump(mode="json") for r in rules]
    if aging is not None:
        snapshot["aging"] = aging.model_dump()
    if not snapshot:
        return []

    payload = json.dumps(snapshot)
    try:
        state = await run_agent(agent, {"follow_up_metrics": payload}, payload)
        output = OptimizationInsightsOutput.model_validate(
            parse_state_json(state.get(agent.output_key) or "{}")
        )
    except Exception as e:
        logger.warning("Optimization insights unavailable: %s", e, exc_info=True)
        return []
    return output.recommendations
