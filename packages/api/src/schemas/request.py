# This project was developed with assistance from AI tools.
"""Approval request schemas.

Request content is a tagged union keyed by ``type``: the same models
validate the create body and re-parse the JSON stored on the row.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal, Union

from db.enums import (
    ApprovalStatus,
    RequestAction,
    RequestStatus,
    RequestType,
    StepStage,
    UserRole,
)
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from . import Pagination

Money = Annotated[Decimal, Field(gt=0, max_digits=14, decimal_places=2)]


class MemberRegistrationContent(BaseModel):
    type: Literal["member_registration"] = "member_registration"
    full_name: str = Field(min_length=1, max_length=200)
    email: str = Field(min_length=3, max_length=255)
    phone: str | None = Field(default=None, max_length=50)
    department: str | None = Field(default=None, max_length=200)
    erp_id: str | None = Field(default=None, max_length=100)
    # Identity-provider subject to link when staff register someone else.
    user_id: str | None = Field(default=None, max_length=255)


class PersonalSavingsCreationContent(BaseModel):
    type: Literal["personal_savings_creation"] = "personal_savings_creation"
    plan_name: str = Field(min_length=1, max_length=200)
    target_amount: Money | None = None


class PersonalSavingsWithdrawalContent(BaseModel):
    type: Literal["personal_savings_withdrawal"] = "personal_savings_withdrawal"
    account_id: int
    amount: Money
    reason: str | None = Field(default=None, max_length=500)


class SavingsWithdrawalContent(BaseModel):
    type: Literal["savings_withdrawal"] = "savings_withdrawal"
    account_id: int
    amount: Money
    reason: str | None = Field(default=None, max_length=500)


class LoanApplicationContent(BaseModel):
    type: Literal["loan_application"] = "loan_application"
    amount: Money
    tenure_months: int = Field(gt=0)
    interest_rate: Decimal | None = Field(default=None, ge=0, le=100)
    purpose: str | None = Field(default=None, max_length=500)


RequestContent = Annotated[
    Union[
        MemberRegistrationContent,
        PersonalSavingsCreationContent,
        PersonalSavingsWithdrawalContent,
        SavingsWithdrawalContent,
        LoanApplicationContent,
    ],
    Field(discriminator="type"),
]

_content_adapter = TypeAdapter(RequestContent)


def parse_content(content: dict) -> BaseModel:
    """Validate stored request content back into its typed model."""
    return _content_adapter.validate_python(content)


class RequestCreate(BaseModel):
    """Submit a new request. ``member_id`` lets staff file on a member's behalf."""

    content: RequestContent
    member_id: int | None = None

    @property
    def request_type(self) -> RequestType:
        return RequestType(self.content.type)


class ProcessRequest(BaseModel):
    """Body of ``POST /requests/{id}/process``."""

    action: RequestAction
    notes: str | None = Field(default=None, max_length=2000)
    level: int | None = Field(
        default=None,
        ge=1,
        description="Chain level the actor acts at; inferred from the actor when omitted.",
    )

    @field_validator("action", mode="before")
    @classmethod
    def _normalize_action(cls, value):
        if isinstance(value, str):
            value = value.strip().lower()
            if value == "completed":
                return RequestAction.COMPLETE.value
        return value


class CancelRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=2000)


class ApprovalStepItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    level: int
    approver_role: UserRole
    stage: StepStage
    status: ApprovalStatus
    approver_id: str | None = None
    notes: str | None = None
    acted_at: datetime | None = None


class RequestResponse(BaseModel):
    """Single request with its approval steps."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    type: RequestType
    status: RequestStatus
    content: dict
    initiator_id: str
    member_id: int | None = None
    account_id: int | None = None
    current_approval_level: int
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    approval_steps: list[ApprovalStepItem] = []


class RequestListResponse(BaseModel):
    data: list[RequestResponse]
    pagination: Pagination


class RequestStatistics(BaseModel):
    """Request counts for the approval dashboard."""

    total: int
    by_status: dict[RequestStatus, int]
    by_type: dict[RequestType, int]
    awaiting_role: dict[UserRole, int]
