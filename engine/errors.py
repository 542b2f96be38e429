"""Error taxonomy for the follow-up rule engine."""
from typing import Optional
from uuid import UUID


class FollowUpError(Exception):
    """Base class for every error raised by the engine."""


class InvalidTransition(FollowUpError):
    """A reminder status change not present in the transition table.

    Raised before any attribute is touched, so the reminder is unchanged.
    """

    def __init__(
        self,
        reminder_id: Optional[UUID],
        from_status: str,
        to_status: str,
        reason: str = "transition not allowed",
    ):
        self.reminder_id = reminder_id
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        super().__init__(
            f"Reminder {reminder_id}: {from_status} -> {to_status} rejected ({reason})"
        )


class DuplicateOpenReminder(FollowUpError):
    """An open reminder already exists for this (rule, lead) pair.

    Never surfaced to callers; the lifecycle manager logs it as a no-op.
    """

    def __init__(self, rule_id: UUID, lead_id: str):
        self.rule_id = rule_id
        self.lead_id = lead_id
        super().__init__(f"Open reminder already exists for rule {rule_id} / lead {lead_id}")


class AdapterFailure(FollowUpError):
    """The recommendation adapter raised or returned unusable output."""


class AdapterTimeout(AdapterFailure):
    """The recommendation adapter did not answer within its time budget."""


class DispatchFailure(FollowUpError):
    """The external channel rejected a reminder; it stays pending and can be retried."""

    retryable = True

    def __init__(self, reminder_id: Optional[UUID], method: str, cause: str):
        self.reminder_id = reminder_id
        self.method = method
        self.cause = cause
        super().__init__(f"Dispatch of reminder {reminder_id} via {method} failed: {cause}")


class RuleNotFound(FollowUpError):
    def __init__(self, company_id: str, rule_id: UUID):
        super().__init__(f"Rule {rule_id} not found for company {company_id}")


class ReminderNotFound(FollowUpError):
    def __init__(self, company_id: str, reminder_id: UUID):
        super().__init__(f"Reminder {reminder_id} not found for company {company_id}")


class LeadNotFound(FollowUpError):
    def __init__(self, company_id: str, lead_id: str):
        super().__init__(f"Lead {lead_id} not found for company {company_id}")
