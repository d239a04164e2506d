# This project was developed with assistance from AI tools.
"""Account and ledger routes."""

from db import get_db
from db.enums import UserRole
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import POST_LEDGER
from ..middleware.auth import CurrentUser, require_permission, require_roles
from ..schemas import Pagination
from ..schemas.ledger import (
    AccountResponse,
    BalanceCheckResponse,
    DepositCreate,
    ReversalCreate,
    ShareIssue,
    TransactionListResponse,
    TransactionResponse,
)
from ..services import ledger as ledger_service

router = APIRouter()

_ALL_ROLES = tuple(UserRole)
_LEDGER_ROLES = (UserRole.SUPER_ADMIN, UserRole.ADMIN, UserRole.TREASURER)


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="Account not found",
    )


@router.post(
    "/transactions/{transaction_id}/reverse",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[
        Depends(require_roles(UserRole.SUPER_ADMIN, UserRole.TREASURER)),
        Depends(require_permission(POST_LEDGER)),
    ],
)
async def reverse_transaction(
    transaction_id: int,
    body: ReversalCreate,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> TransactionResponse:
    """Post the opposite entry for a transaction and mark it reversed."""
    reversal = await ledger_service.reverse_transaction(session, user, transaction_id, body.reason)
    return TransactionResponse.model_validate(reversal)


@router.get(
    "/{account_id}",
    response_model=AccountResponse,
    dependencies=[Depends(require_roles(*_ALL_ROLES))],
)
async def get_account(
    account_id: int,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> AccountResponse:
    account = await ledger_service.get_account(session, user, account_id)
    if account is None:
        raise _not_found()
    return AccountResponse.model_validate(account)


@router.get(
    "/{account_id}/transactions",
    response_model=TransactionListResponse,
    dependencies=[Depends(require_roles(*_ALL_ROLES))],
)
async def list_transactions(
    account_id: int,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
) -> TransactionListResponse:
    """Newest-first ledger entries for an account."""
    result = await ledger_service.list_transactions(
        session,
        user,
        account_id,
        offset=(page - 1) * limit,
        limit=limit,
    )
    if result is None:
        raise _not_found()
    entries, total = result
    return TransactionListResponse(
        data=[TransactionResponse.model_validate(e) for e in entries],
        pagination=Pagination.for_page(total, page, limit),
    )


@router.get(
    "/{account_id}/balance-check",
    response_model=BalanceCheckResponse,
    dependencies=[Depends(require_roles(*_LEDGER_ROLES))],
)
async def balance_check(
    account_id: int,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> BalanceCheckResponse:
    """Compare the cached balance with a replay of the account's ledger."""
    result = await ledger_service.verify_balance(session, user, account_id)
    if result is None:
        raise _not_found()
    return BalanceCheckResponse(**result)


@router.post(
    "/{account_id}/deposits",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(*_LEDGER_ROLES)), Depends(require_permission(POST_LEDGER))],
)
async def post_deposit(
    account_id: int,
    body: DepositCreate,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> TransactionResponse:
    entry = await ledger_service.record_deposit(
        session, user, account_id, body.amount, body.description,
    )
    return TransactionResponse.model_validate(entry)


@router.post(
    "/{account_id}/shares",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(*_LEDGER_ROLES)), Depends(require_permission(POST_LEDGER))],
)
async def issue_shares(
    account_id: int,
    body: ShareIssue,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> TransactionResponse:
    entry = await ledger_service.record_share_purchase(session, user, account_id, body.quantity)
    return TransactionResponse.model_validate(entry)
