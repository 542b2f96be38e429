"""Follow-up rule configuration schemas."""
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from schemas.lead import LeadRating, LeadStatus

Priority = Literal["low", "medium", "high", "critical"]
TriggerType = Literal["age_based", "contact_gap", "status_change", "score_change", "activity_based"]
DispatchMethod = Literal["notification", "email", "sms", "task", "all"]
Frequency = Literal["once", "daily", "weekly", "custom"]


class RuleConditions(BaseModel):
    """Tagged condition set. None means "not evaluated"; empty lists normalise to None."""

    min_lead_age: Optional[int] = Field(default=None, ge=0)
    min_contact_gap: Optional[int] = Field(default=None, ge=0)
    lead_statuses: Optional[List[LeadStatus]] = None
    lead_ratings: Optional[List[LeadRating]] = None
    score_threshold: Optional[int] = Field(default=None, ge=0, le=100)
    activity_types: Optional[List[str]] = None

    @field_validator("lead_statuses", "lead_ratings", "activity_types", mode="before")
    @classmethod
    def _empty_list_is_absent(cls, value):
        if value is not None and len(value) == 0:
            return None
        return value

    def populated(self) -> dict:
        return self.model_dump(exclude_none=True)


class FollowUpRuleInput(BaseModel):
    """Admin-supplied rule definition, validated before it reaches the store."""

    name: str = Field(min_length=1)
    description: Optional[str] = None
    is_active: bool = True
    priority: Priority = "medium"
    trigger_type: TriggerType
    conditions: RuleConditions = Field(default_factory=RuleConditions)

    method: DispatchMethod = "notification"
    frequency: Frequency = "once"
    custom_interval_hours: Optional[int] = Field(default=None, gt=0)
    escalation_enabled: bool = False
    escalation_days: int = Field(default=0, ge=0)
    escalation_recipients: List[str] = Field(default_factory=list)

    ai_enabled: bool = False
    ai_generate_message: bool = False
    ai_suggest_best_time: bool = False

    subject_template: str = "Follow-up with {{leadName}}"
    email_template: str = "Hi {{firstName}}, following up on your inquiry."
    sms_template: str = "Hi {{firstName}}, checking in about your project."
    task_template: str = "Follow up with {{leadName}}"

    @model_validator(mode="after")
    def _check_frequency(self):
        if self.frequency == "custom" and self.custom_interval_hours is None:
            raise ValueError("custom frequency requires custom_interval_hours")
        return self

    def to_record(self) -> dict:
        """Column values for db.models.FollowUpRule."""
        data = self.model_dump(exclude={"conditions"})
        data["conditions"] = self.conditions.populated()
        return data


class FollowUpRuleUpdate(BaseModel):
    """Partial edit; only fields that are set are applied."""

    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    priority: Optional[Priority] = None
    trigger_type: Optional[TriggerType] = None
    conditions: Optional[RuleConditions] = None
    method: Optional[DispatchMethod] = None
    frequency: Optional[Frequency] = None
    custom_interval_hours: Optional[int] = Field(default=None, gt=0)
    escalation_enabled: Optional[bool] = None
    escalation_days: Optional[int] = Field(default=None, ge=0)
    escalation_recipients: Optional[List[str]] = None
    ai_enabled: Optional[bool] = None
    ai_generate_message: Optional[bool] = None
    ai_suggest_best_time: Optional[bool] = None
    subject_template: Optional[str] = None
    email_template: Optional[str] = None
    sms_template: Optional[str] = None
    task_template: Optional[str] = None

    @model_validator(mode="after")
    def _reject_nulls(self):
        # Only description and custom_interval_hours are nullable columns.
        nulled = sorted(
            name
            for name in self.model_fields_set
            if getattr(self, name) is None
            and name not in ("description", "custom_interval_hours")
        )
        if nulled:
            raise ValueError(f"fields cannot be null: {', '.join(nulled)}")
        return self

    def to_changes(self) -> dict:
        changes = self.model_dump(exclude_unset=True, exclude={"conditions"})
        if "conditions" in self.model_fields_set and self.conditions is not None:
            changes["conditions"] = self.conditions.populated()
        return changes
