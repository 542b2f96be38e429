"""SQLAlchemy 2.0 ORM models for the follow-up rule engine.

Covers 3 tables, all scoped by company_id:
  - leads: read-only lead snapshots owned by the CRM
  - follow_up_rules: configured trigger conditions + dispatch/escalation policy
  - follow_up_reminders: one follow-up instance generated by a rule for a lead
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    UUID,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Text,
    TypeDecorator,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


# ---------------------------------------------------------------------------
# Shared base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    pass


class UTCDateTime(TypeDecorator):
    """Timezone-aware DateTime that always round-trips as UTC.

    Backends without native timezone support hand back naive values;
    those are re-tagged as UTC on load.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Enumerations used in CHECK constraints
# ---------------------------------------------------------------------------

LEAD_STATUSES = ("new", "contacted", "qualified", "unqualified")
LEAD_RATINGS = ("hot", "warm", "cold")
PRIORITIES = ("low", "medium", "high", "critical")
TRIGGER_TYPES = (
    "age_based",
    "contact_gap",
    "status_change",
    "score_change",
    "activity_based",
)
DISPATCH_METHODS = ("notification", "email", "sms", "task", "all")
FREQUENCIES = ("once", "daily", "weekly", "custom")
REMINDER_STATUSES = ("pending", "sent", "completed", "snoozed", "escalated", "cancelled")
TERMINAL_STATUSES = ("completed", "cancelled")
NON_TERMINAL_STATUSES = tuple(s for s in REMINDER_STATUSES if s not in TERMINAL_STATUSES)


def _in_check(column: str, values: tuple, nullable: bool = False) -> str:
    check = f"{column} IN (" + ", ".join(f"'{v}'" for v in values) + ")"
    if nullable:
        return f"{column} IS NULL OR {check}"
    return check


_OPEN_REMINDER_WHERE = text(_in_check("status", NON_TERMINAL_STATUSES))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ===========================================================================
# Leads
# ===========================================================================


class Lead(Base):
    """leads — prospective customer record, written by the CRM, read by the engine."""

    __tablename__ = "leads"
    __table_args__ = (
        CheckConstraint(_in_check("status", LEAD_STATUSES), name="ck_lead_status"),
        CheckConstraint(_in_check("rating", LEAD_RATINGS), name="ck_lead_rating"),
        CheckConstraint("score BETWEEN 0 AND 100", name="ck_lead_score"),
        Index("ix_leads_company_assignee", "company_id", "assigned_to"),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    company_id: Mapped[str] = mapped_column(Text, primary_key=True)
    first_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    company_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="new")
    rating: Mapped[str] = mapped_column(Text, nullable=False, default="warm")
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    assigned_to: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    recent_activity_types: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=_utcnow, server_default=func.now(), nullable=False
    )
    last_contact_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    next_follow_up_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p) or self.id


# ===========================================================================
# Follow-up rules
# ===========================================================================


class FollowUpRule(Base):
    """follow_up_rules — trigger conditions plus reminder and escalation policy.

    Only triggered_count is stored; responded/converted/effectiveness are
    derived from reminder history on read.
    """

    __tablename__ = "follow_up_rules"
    __table_args__ = (
        CheckConstraint(_in_check("priority", PRIORITIES), name="ck_rule_priority"),
        CheckConstraint(_in_check("trigger_type", TRIGGER_TYPES), name="ck_rule_trigger_type"),
        CheckConstraint(_in_check("method", DISPATCH_METHODS), name="ck_rule_method"),
        CheckConstraint(_in_check("frequency", FREQUENCIES), name="ck_rule_frequency"),
        CheckConstraint("escalation_days >= 0", name="ck_rule_escalation_days"),
        CheckConstraint("triggered_count >= 0", name="ck_rule_triggered_count"),
        Index("ix_rules_company_active", "company_id", "is_active"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    company_id: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    priority: Mapped[str] = mapped_column(Text, nullable=False, default="medium")
    trigger_type: Mapped[str] = mapped_column(Text, nullable=False)
    # Serialized schemas.rule.RuleConditions; absent keys are not evaluated.
    conditions: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    # Reminder configuration
    method: Mapped[str] = mapped_column(Text, nullable=False, default="notification")
    frequency: Mapped[str] = mapped_column(Text, nullable=False, default="once")
    custom_interval_hours: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    escalation_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    escalation_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    escalation_recipients: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # AI configuration
    ai_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ai_generate_message: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ai_suggest_best_time: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Templates
    subject_template: Mapped[str] = mapped_column(
        Text, nullable=False, default="Follow-up with {{leadName}}"
    )
    email_template: Mapped[str] = mapped_column(
        Text, nullable=False, default="Hi {{firstName}}, following up on your inquiry."
    )
    sms_template: Mapped[str] = mapped_column(
        Text, nullable=False, default="Hi {{firstName}}, checking in about your project."
    )
    task_template: Mapped[str] = mapped_column(
        Text, nullable=False, default="Follow up with {{leadName}}"
    )

    triggered_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_by: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
        nullable=False,
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    reminders: Mapped[list["FollowUpReminder"]] = relationship(
        "FollowUpReminder", back_populates="rule"
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


# ===========================================================================
# Follow-up reminders
# ===========================================================================


class FollowUpReminder(Base):
    """follow_up_reminders — one scheduled-or-sent follow-up for a (rule, lead) pair.

    The partial unique index keeps at most one non-terminal reminder per
    pair; it is the compare-and-swap concurrent evaluators race against.
    """

    __tablename__ = "follow_up_reminders"
    __table_args__ = (
        CheckConstraint(_in_check("status", REMINDER_STATUSES), name="ck_reminder_status"),
        CheckConstraint(_in_check("method", DISPATCH_METHODS), name="ck_reminder_method"),
        CheckConstraint("escalation_level >= 0", name="ck_reminder_escalation_level"),
        Index(
            "uq_reminder_open_rule_lead",
            "rule_id",
            "lead_id",
            unique=True,
            postgresql_where=_OPEN_REMINDER_WHERE,
            sqlite_where=_OPEN_REMINDER_WHERE,
        ),
        Index("ix_reminders_company_status", "company_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    company_id: Mapped[str] = mapped_column(Text, nullable=False)
    rule_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("follow_up_rules.id"), nullable=False
    )
    # Loose reference; leads are owned externally and may be deleted
    lead_id: Mapped[str] = mapped_column(Text, nullable=False)
    assigned_to: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    method: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending")

    scheduled_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    sent_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    snoozed_until: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    cancel_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    escalated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    escalated_to: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Interaction tracking, reported by external events
    opened: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    clicked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    responded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    response_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    converted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Content
    subject: Mapped[str] = mapped_column(Text, nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    ai_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    degraded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Insight cached at creation time
    success_probability: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    recommended_action: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    rule: Mapped["FollowUpRule"] = relationship("FollowUpRule", back_populates="reminders")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

__all__ = [
    "Base",
    "UTCDateTime",
    "Lead",
    "FollowUpRule",
    "FollowUpReminder",
    "LEAD_STATUSES",
    "LEAD_RATINGS",
    "PRIORITIES",
    "TRIGGER_TYPES",
    "DISPATCH_METHODS",
    "FREQUENCIES",
    "REMINDER_STATUSES",
    "TERMINAL_STATUSES",
    "NON_TERMINAL_STATUSES",
]
