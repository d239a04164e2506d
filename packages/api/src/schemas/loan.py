# This project was developed with assistance from AI tools.
"""Loan, schedule and repayment schemas."""

from datetime import date, datetime
from decimal import Decimal

from db.enums import LoanStatus, ScheduleStatus
from pydantic import BaseModel, ConfigDict, Field


class ScheduleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sequence_number: int
    due_date: date
    expected_amount: Decimal
    principal_portion: Decimal
    interest_portion: Decimal
    paid_amount: Decimal
    principal_paid: Decimal
    interest_paid: Decimal
    status: ScheduleStatus
    paid_at: datetime | None = None


class LoanStatusChange(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    from_status: LoanStatus | None = None
    to_status: LoanStatus
    changed_by: str | None = None
    reason: str | None = None
    created_at: datetime


class LoanResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    member_id: int
    request_id: int
    account_id: int
    principal_amount: Decimal
    interest_rate: Decimal
    tenure_months: int
    monthly_payment: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    remaining_balance: Decimal
    status: LoanStatus
    disbursed_at: datetime | None = None
    completed_at: datetime | None = None
    schedules: list[ScheduleResponse] = []
    status_history: list[LoanStatusChange] = []


class RepaymentCreate(BaseModel):
    amount: Decimal = Field(gt=0, max_digits=14, decimal_places=2)
    reference: str | None = Field(
        default=None,
        max_length=255,
        description="External payment reference; a repeated reference is rejected.",
    )


class Allocation(BaseModel):
    """How much of a repayment landed on one installment."""

    sequence_number: int
    amount: Decimal
    principal: Decimal
    interest: Decimal
    status: ScheduleStatus


class RepaymentResponse(BaseModel):
    loan: LoanResponse
    allocations: list[Allocation]


class OverdueCheckResponse(BaseModel):
    schedules_marked_late: int
    loans_defaulted: int
