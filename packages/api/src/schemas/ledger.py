# This project was developed with assistance from AI tools.
"""Account and ledger schemas."""

from datetime import datetime
from decimal import Decimal

from db.enums import AccountKind, EntryType, TransactionStatus
from pydantic import BaseModel, ConfigDict, Field

from . import Pagination


class AccountResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    member_id: int
    kind: AccountKind
    name: str | None = None
    target_amount: Decimal | None = None
    balance: Decimal
    is_active: bool
    created_at: datetime
    updated_at: datetime


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    account_id: int
    base_type: EntryType
    amount: Decimal
    balance_after: Decimal
    status: TransactionStatus
    request_id: int | None = None
    reversal_of_id: int | None = None
    description: str | None = None
    created_by: str | None = None
    created_at: datetime


class TransactionListResponse(BaseModel):
    data: list[TransactionResponse]
    pagination: Pagination


class DepositCreate(BaseModel):
    amount: Decimal = Field(gt=0, max_digits=14, decimal_places=2)
    description: str | None = Field(default=None, max_length=500)


class ShareIssue(BaseModel):
    quantity: int = Field(gt=0)


class ReversalCreate(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


class BalanceCheckResponse(BaseModel):
    """Cached balance compared with the fold of the account's ledger."""

    account_id: int
    cached_balance: Decimal
    ledger_balance: Decimal
    consistent: bool
