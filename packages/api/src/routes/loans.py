# This project was developed with assistance from AI tools.
"""Loan servicing routes: loan detail, repayment ingestion, overdue sweep."""

from datetime import date

from db import get_db
from db.enums import UserRole
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import RECORD_REPAYMENTS
from ..middleware.auth import CurrentUser, require_permission, require_roles
from ..schemas.loan import (
    Allocation,
    LoanResponse,
    OverdueCheckResponse,
    RepaymentCreate,
    RepaymentResponse,
)
from ..services import loans as loan_service

router = APIRouter()


@router.post(
    "/overdue-check",
    response_model=OverdueCheckResponse,
    dependencies=[
        Depends(require_roles(UserRole.SUPER_ADMIN, UserRole.ADMIN, UserRole.TREASURER))
    ],
)
async def overdue_check(
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
    as_of: date | None = Query(default=None, description="Evaluate as of this date; defaults to today."),
) -> OverdueCheckResponse:
    """Mark past-due installments late and default long-overdue loans."""
    result = await loan_service.mark_overdue(session, user, as_of)
    return OverdueCheckResponse(**result)


@router.get(
    "/{loan_id}",
    response_model=LoanResponse,
    dependencies=[Depends(require_roles(*UserRole))],
)
async def get_loan(
    loan_id: int,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> LoanResponse:
    """Get a loan with its schedule and status history."""
    loan = await loan_service.get_loan(session, user, loan_id)
    if loan is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Loan not found",
        )
    return LoanResponse.model_validate(loan)


@router.post(
    "/{loan_id}/repayments",
    response_model=RepaymentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[
        Depends(require_roles(UserRole.SUPER_ADMIN, UserRole.TREASURER)),
        Depends(require_permission(RECORD_REPAYMENTS)),
    ],
)
async def record_repayment(
    loan_id: int,
    body: RepaymentCreate,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> RepaymentResponse:
    """Apply a repayment to the loan's installments, oldest first."""
    loan, allocations = await loan_service.reconcile_repayment(
        session, user, loan_id, body.amount, reference=body.reference,
    )
    return RepaymentResponse(
        loan=LoanResponse.model_validate(loan),
        allocations=[Allocation(**a) for a in allocations],
    )
