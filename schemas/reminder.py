"""Reminder content, trigger and recommendation schemas."""
from datetime import datetime
from typing import Any, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from schemas.rule import DispatchMethod, Priority, TriggerType

ReminderStatus = Literal["pending", "sent", "completed", "snoozed", "escalated", "cancelled"]
RecommendedAction = Literal["call", "email", "sms", "meeting", "wait"]


class TriggerCandidate(BaseModel):
    """A rule matched a lead; the lifecycle manager turns this into a reminder."""

    rule_id: UUID
    lead_id: str
    company_id: str
    method: DispatchMethod
    trigger_type: TriggerType
    priority: Priority
    matched_conditions: List[str] = Field(default_factory=list)


class RecommendationContext(BaseModel):
    """What the recommendation adapter is told about the lead and the rule."""

    lead_name: str
    first_name: Optional[str] = None
    company_name: Optional[str] = None
    lead_status: str
    lead_rating: str
    lead_score: int
    lead_age: int
    days_since_contact: int
    aging_bucket: str
    rule_name: str
    trigger_type: TriggerType
    priority: Priority
    method: DispatchMethod
    template_subject: str
    template_body: str
    generate_message: bool = False
    suggest_best_time: bool = False


class Recommendation(BaseModel):
    """Recommendation adapter output, cached on the reminder at creation time."""

    message_text: str
    subject: Optional[str] = None
    success_probability: float = Field(ge=0.0, le=1.0)
    recommended_action: RecommendedAction = "email"
    best_contact_time: Optional[datetime] = None


class ReminderContent(BaseModel):
    subject: str
    body: str
    ai_generated: bool = False
    degraded: bool = False
    success_probability: float = Field(ge=0.0, le=1.0)
    recommended_action: str
    scheduled_at: datetime


class OptimizationInsight(BaseModel):
    category: str
    title: str
    description: str
    expected_impact: Literal["high", "medium", "low"] = "medium"
    implementation: Optional[str] = None


class OptimizationInsightsOutput(BaseModel):
    recommendations: List[OptimizationInsight] = Field(default_factory=list)


class InteractionEvent(BaseModel):
    """Externally reported engagement with a reminder. Unset flags are left alone."""

    opened: Optional[bool] = None
    clicked: Optional[bool] = None
    responded: Optional[bool] = None
    response_type: Optional[str] = None
    converted: Optional[bool] = None

    def to_changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)
