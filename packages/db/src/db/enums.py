# This project was developed with assistance from AI tools.
"""
Domain enums for the cooperative approvals and ledger lifecycle.

Shared domain types used by both SQLAlchemy models (db package)
and Pydantic schemas (api package).
"""

import enum


class RequestType(str, enum.Enum):
    MEMBER_REGISTRATION = "member_registration"
    PERSONAL_SAVINGS_CREATION = "personal_savings_creation"
    PERSONAL_SAVINGS_WITHDRAWAL = "personal_savings_withdrawal"
    SAVINGS_WITHDRAWAL = "savings_withdrawal"
    LOAN_APPLICATION = "loan_application"


class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    IN_REVIEW = "in_review"
    REVIEWED = "reviewed"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def terminal_statuses(cls) -> frozenset["RequestStatus"]:
        """Statuses from which no further transition is possible."""
        return frozenset({cls.REJECTED, cls.COMPLETED, cls.CANCELLED})

    @classmethod
    def valid_transitions(cls) -> dict["RequestStatus", frozenset["RequestStatus"]]:
        """Allowed status transitions for a request."""
        return {
            cls.PENDING: frozenset(
                {cls.IN_REVIEW, cls.REVIEWED, cls.APPROVED, cls.REJECTED, cls.CANCELLED}
            ),
            cls.IN_REVIEW: frozenset({cls.REVIEWED, cls.APPROVED, cls.REJECTED}),
            cls.REVIEWED: frozenset({cls.APPROVED, cls.REJECTED}),
            cls.APPROVED: frozenset({cls.COMPLETED, cls.REJECTED}),
            cls.REJECTED: frozenset(),
            cls.COMPLETED: frozenset(),
            cls.CANCELLED: frozenset(),
        }


class RequestAction(str, enum.Enum):
    REVIEW = "review"
    APPROVE = "approve"
    REJECT = "reject"
    COMPLETE = "complete"


class StepStage(str, enum.Enum):
    """Role a chain level plays in the approval flow."""

    REVIEW = "review"
    APPROVAL = "approval"
    COMPLETION = "completion"


class ApprovalStatus(str, enum.Enum):
    PENDING = "pending"
    IN_REVIEW = "in_review"
    REVIEWED = "reviewed"
    APPROVED = "approved"
    REJECTED = "rejected"


class UserRole(str, enum.Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    TREASURER = "treasurer"
    CHAIRMAN = "chairman"
    MEMBER = "member"


class AccountKind(str, enum.Enum):
    SAVINGS = "savings"
    SHARE = "share"
    PERSONAL_PLAN = "personal_plan"
    LOAN = "loan"


class EntryType(str, enum.Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REVERSED = "reversed"


class LoanStatus(str, enum.Enum):
    DISBURSED = "disbursed"
    ACTIVE = "active"
    COMPLETED = "completed"
    DEFAULTED = "defaulted"


class ScheduleStatus(str, enum.Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    LATE = "late"
