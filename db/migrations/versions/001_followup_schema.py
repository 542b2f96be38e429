"""Follow-up schema: leads, follow_up_rules, follow_up_reminders.

Revision ID: 001
Revises:
Create Date: 2026-10-17

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "001"
down_revision = None
branch_labels = None
depends_on = None

_OPEN_STATUSES = "status IN ('pending','sent','snoozed','escalated')"
_METHODS = "('notification','email','sms','task','all')"


def upgrade() -> None:
    op.create_table(
        "leads",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("company_id", sa.Text, primary_key=True),
        sa.Column("first_name", sa.Text, nullable=True),
        sa.Column("last_name", sa.Text, nullable=True),
        sa.Column("email", sa.Text, nullable=True),
        sa.Column("company_name", sa.Text, nullable=True),
        sa.Column("status", sa.Text, nullable=False, server_default="new"),
        sa.Column("rating", sa.Text, nullable=False, server_default="warm"),
        sa.Column("score", sa.Integer, nullable=False, server_default="0"),
        sa.Column("assigned_to", sa.Text, nullable=True),
        sa.Column("recent_activity_types", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("last_contact_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_follow_up_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("status IN ('new','contacted','qualified','unqualified')", name="ck_lead_status"),
        sa.CheckConstraint("rating IN ('hot','warm','cold')", name="ck_lead_rating"),
        sa.CheckConstraint("score BETWEEN 0 AND 100", name="ck_lead_score"),
    )
    op.create_index("ix_leads_company_assignee", "leads", ["company_id", "assigned_to"])

    op.create_table(
        "follow_up_rules",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("company_id", sa.Text, nullable=False),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("priority", sa.Text, nullable=False, server_default="medium"),
        sa.Column("trigger_type", sa.Text, nullable=False),
        sa.Column("conditions", sa.JSON, nullable=False, server_default=sa.text("'{}'")),
        sa.Column("method", sa.Text, nullable=False, server_default="notification"),
        sa.Column("frequency", sa.Text, nullable=False, server_default="once"),
        sa.Column("custom_interval_hours", sa.Integer, nullable=True),
        sa.Column("escalation_enabled", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("escalation_days", sa.Integer, nullable=False, server_default="0"),
        sa.Column("escalation_recipients", sa.JSON, nullable=False, server_default=sa.text("'[]'")),
        sa.Column("ai_enabled", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("ai_generate_message", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("ai_suggest_best_time", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("subject_template", sa.Text, nullable=False),
        sa.Column("email_template", sa.Text, nullable=False),
        sa.Column("sms_template", sa.Text, nullable=False),
        sa.Column("task_template", sa.Text, nullable=False),
        sa.Column("triggered_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_by", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("priority IN ('low','medium','high','critical')", name="ck_rule_priority"),
        sa.CheckConstraint(
            "trigger_type IN ('age_based','contact_gap','status_change','score_change','activity_based')",
            name="ck_rule_trigger_type",
        ),
        sa.CheckConstraint(f"method IN {_METHODS}", name="ck_rule_method"),
        sa.CheckConstraint("frequency IN ('once','daily','weekly','custom')", name="ck_rule_frequency"),
        sa.CheckConstraint("escalation_days >= 0", name="ck_rule_escalation_days"),
        sa.CheckConstraint("triggered_count >= 0", name="ck_rule_triggered_count"),
    )
    op.create_index("ix_rules_company_active", "follow_up_rules", ["company_id", "is_active"])

    op.create_table(
        "follow_up_reminders",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("company_id", sa.Text, nullable=False),
        sa.Column(
            "rule_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("follow_up_rules.id"),
            nullable=False,
        ),
        sa.Column("lead_id", sa.Text, nullable=False),
        sa.Column("assigned_to", sa.Text, nullable=True),
        sa.Column("method", sa.Text, nullable=False),
        sa.Column("status", sa.Text, nullable=False, server_default="pending"),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("snoozed_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_reason", sa.Text, nullable=True),
        sa.Column("escalation_level", sa.Integer, nullable=False, server_default="0"),
        sa.Column("escalated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("escalated_to", sa.Text, nullable=True),
        sa.Column("opened", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("clicked", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("responded", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("response_type", sa.Text, nullable=True),
        sa.Column("converted", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("subject", sa.Text, nullable=False),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column("ai_generated", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("degraded", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("success_probability", sa.Float, nullable=True),
        sa.Column("recommended_action", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending','sent','completed','snoozed','escalated','cancelled')",
            name="ck_reminder_status",
        ),
        sa.CheckConstraint(f"method IN {_METHODS}", name="ck_reminder_method"),
        sa.CheckConstraint("escalation_level >= 0", name="ck_reminder_escalation_level"),
    )
    op.create_index(
        "uq_reminder_open_rule_lead",
        "follow_up_reminders",
        ["rule_id", "lead_id"],
        unique=True,
        postgresql_where=sa.text(_OPEN_STATUSES),
    )
    op.create_index("ix_reminders_company_status", "follow_up_reminders", ["company_id", "status"])


def downgrade() -> None:
    op.drop_index("ix_reminders_company_status", table_name="follow_up_reminders")
    op.drop_index("uq_reminder_open_rule_lead", table_name="follow_up_reminders")
    op.drop_table("follow_up_reminders")
    op.drop_index("ix_rules_company_active", table_name="follow_up_rules")
    op.drop_table("follow_up_rules")
    op.drop_index("ix_leads_company_assignee", table_name="leads")
    op.drop_table("leads")
