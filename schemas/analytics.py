"""Dashboard analytics schemas."""
from uuid import UUID

from pydantic import BaseModel


class RuleAnalytics(BaseModel):
    rule_id: UUID
    rule_name: str
    is_active: bool
    is_deleted: bool = False
    triggered: int
    responded: int
    converted: int
    effectiveness: int


class DashboardMetrics(BaseModel):
    total_rules: int
    active_rules: int
    ai_enabled_rules: int
    total_reminders: int
    pending_reminders: int
    escalated_reminders: int
    sent_today: int
    overall_response_rate: int
    conversions: int
