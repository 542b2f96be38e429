"""Lead snapshot and aging schemas."""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

LeadStatus = Literal["new", "contacted", "qualified", "unqualified"]
LeadRating = Literal["hot", "warm", "cold"]
Urgency = Literal["low", "medium", "high", "critical"]


class LeadSnapshot(BaseModel):
    """Read-only view of a lead as the rule engine sees it."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    company_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    company_name: Optional[str] = None
    status: LeadStatus = "new"
    rating: LeadRating = "warm"
    score: int = Field(default=0, ge=0, le=100)
    assigned_to: Optional[str] = None
    recent_activity_types: List[str] = Field(default_factory=list)
    created_at: datetime
    last_contact_at: Optional[datetime] = None
    next_follow_up_at: Optional[datetime] = None

    @field_validator("last_contact_at", "next_follow_up_at", mode="before")
    @classmethod
    def _drop_malformed_timestamp(cls, value):
        # Unparseable optional timestamps count as absent.
        if value is None or isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                return datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                return None
        return None

    @field_validator("recent_activity_types", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return value or []

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p) or self.id


class AgingBucket(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    min_days: int = Field(ge=0)
    max_days: Optional[int] = None  # None = unbounded
    urgency: Urgency

    def contains(self, days: int) -> bool:
        if days < self.min_days:
            return False
        return self.max_days is None or days <= self.max_days


class LeadAging(BaseModel):
    lead_id: str
    lead_age: int
    days_since_contact: int
    bucket: AgingBucket
    follow_up_overdue: bool


class AgingOverview(BaseModel):
    total_leads: int
    avg_age: int
    avg_days_since_contact: int
    overdue_follow_ups: int
    stale_leads: int
    action_required: int
    leads_by_bucket: dict[str, int]
