# This project was developed with assistance from AI tools.
"""Loan servicing: disbursement, repayment reconciliation, overdue detection.

Disbursement runs inside the approval orchestrator's transaction and never
commits. Repayment ingestion and the overdue sweep are standalone staff
operations and commit their own unit of work.
"""

import logging
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal

from db import Account, Loan, LoanRepayment, LoanStatusHistory, PaymentSchedule
from db.enums import AccountKind, EntryType, LoanStatus, ScheduleStatus
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.config import settings
from ..core.errors import (
    AlreadyDisbursedError,
    AlreadyProcessedError,
    InputValidationError,
    InvalidTransitionError,
    NotFoundError,
    ScheduleExhaustedError,
)
from ..core.money import ZERO, to_money
from ..schemas.auth import UserContext
from .amortization import build_schedule
from .ledger import apply_entry
from .scope import apply_data_scope

logger = logging.getLogger(__name__)

_REPAYABLE_STATUSES = frozenset({LoanStatus.DISBURSED, LoanStatus.ACTIVE, LoanStatus.DEFAULTED})
_PERFORMING_STATUSES = (LoanStatus.DISBURSED, LoanStatus.ACTIVE)
_UNPAID_SCHEDULES = (ScheduleStatus.PENDING, ScheduleStatus.PARTIAL)


def _record_status_change(
    session: AsyncSession,
    loan: Loan,
    to_status: LoanStatus,
    changed_by: str | None,
    reason: str,
) -> None:
    session.add(
        LoanStatusHistory(
            loan_id=loan.id,
            from_status=loan.status,
            to_status=to_status,
            changed_by=changed_by,
            reason=reason,
        )
    )
    loan.status = to_status


async def _get_or_open_loan_account(session: AsyncSession, member_id: int) -> Account:
    stmt = (
        select(Account)
        .where(
            Account.member_id == member_id,
            Account.kind == AccountKind.LOAN,
            Account.is_active.is_(True),
        )
        .order_by(Account.id)
        .limit(1)
    )
    account = (await session.execute(stmt)).scalar_one_or_none()
    if account is None:
        account = Account(member_id=member_id, kind=AccountKind.LOAN, name="Loan book", balance=ZERO)
        session.add(account)
        await session.flush()
    return account


async def disburse_loan(
    session: AsyncSession,
    request,
    *,
    amount: Decimal,
    tenure_months: int,
    interest_rate: Decimal | None,
    actor_id: str,
    now: datetime | None = None,
) -> Loan:
    """Create the loan, its schedules and the disbursement ledger entry.

    Raises AlreadyDisbursedError if the request already produced a loan.
    """
    existing = (
        await session.execute(select(Loan.id).where(Loan.request_id == request.id))
    ).scalar_one_or_none()
    if existing is not None:
        raise AlreadyDisbursedError(
            f"Request {request.id} was already disbursed as loan {existing}",
            request_id=request.id,
            context={"loan_id": existing},
        )
    if request.member_id is None:
        raise InputValidationError("Loan request is not linked to a member", field="member_id")

    now = now or datetime.now(UTC)
    rate = interest_rate if interest_rate is not None else settings.LOAN_DEFAULT_ANNUAL_RATE
    plan = build_schedule(amount, rate, tenure_months, now.date())
    account = await _get_or_open_loan_account(session, request.member_id)

    loan = Loan(
        member_id=request.member_id,
        request_id=request.id,
        account_id=account.id,
        principal_amount=to_money(amount),
        interest_rate=Decimal(str(rate)),
        tenure_months=tenure_months,
        monthly_payment=plan.monthly_payment,
        total_amount=plan.total_amount,
        paid_amount=ZERO,
        remaining_balance=plan.total_amount,
        status=LoanStatus.DISBURSED,
        disbursed_at=now,
    )
    loan.schedules = [
        PaymentSchedule(
            sequence_number=item.sequence_number,
            due_date=item.due_date,
            expected_amount=item.expected_amount,
            principal_portion=item.principal_portion,
            interest_portion=item.interest_portion,
            paid_amount=ZERO,
            principal_paid=ZERO,
            interest_paid=ZERO,
            status=ScheduleStatus.PENDING,
        )
        for item in plan.installments
    ]
    session.add(loan)
    await session.flush()
    session.add(
        LoanStatusHistory(
            loan_id=loan.id,
            from_status=None,
            to_status=LoanStatus.DISBURSED,
            changed_by=actor_id,
            reason=f"Disbursed from request {request.id}",
        )
    )

    await apply_entry(
        session,
        account.id,
        EntryType.CREDIT,
        loan.principal_amount,
        request_id=request.id,
        description=f"Disbursement of loan #{loan.id}",
        created_by=actor_id,
    )
    logger.info(
        "Loan %s disbursed for request %s: principal=%s monthly=%s",
        loan.id,
        request.id,
        loan.principal_amount,
        loan.monthly_payment,
    )
    return loan


def allocate_repayment(schedules, amount: Decimal, now: datetime) -> list[dict]:
    """Spread ``amount`` over unpaid schedules, oldest first.

    Within an installment the outstanding interest is settled before
    principal. Raises ScheduleExhaustedError, before touching anything,
    when the amount exceeds everything still owed.
    """
    amount = to_money(amount)
    ordered = sorted(schedules, key=lambda s: s.sequence_number)
    owed = sum(
        (to_money(s.expected_amount) - to_money(s.paid_amount) for s in ordered if s.status != ScheduleStatus.PAID),
        ZERO,
    )
    if amount > owed:
        raise ScheduleExhaustedError(amount - owed, loan_id=ordered[0].loan_id if ordered else None)

    allocations = []
    remaining = amount
    for schedule in ordered:
        if remaining <= ZERO:
            break
        if schedule.status == ScheduleStatus.PAID:
            continue
        outstanding = to_money(schedule.expected_amount) - to_money(schedule.paid_amount)
        if outstanding <= ZERO:
            continue

        applied = min(remaining, outstanding)
        interest_due = max(to_money(schedule.interest_portion) - to_money(schedule.interest_paid), ZERO)
        to_interest = min(applied, interest_due)
        to_principal = applied - to_interest

        schedule.interest_paid = to_money(schedule.interest_paid) + to_interest
        schedule.principal_paid = to_money(schedule.principal_paid) + to_principal
        schedule.paid_amount = to_money(schedule.paid_amount) + applied
        if schedule.paid_amount >= to_money(schedule.expected_amount):
            schedule.status = ScheduleStatus.PAID
            schedule.paid_at = now
        elif schedule.status != ScheduleStatus.LATE:
            schedule.status = ScheduleStatus.PARTIAL

        remaining -= applied
        allocations.append(
            {
                "sequence_number": schedule.sequence_number,
                "amount": applied,
                "principal": to_principal,
                "interest": to_interest,
                "status": schedule.status,
            }
        )
    return allocations


async def get_loan(
    session: AsyncSession,
    user: UserContext,
    loan_id: int,
) -> Loan | None:
    """Return a loan with schedules and history if visible to the user."""
    stmt = (
        select(Loan)
        .options(selectinload(Loan.schedules), selectinload(Loan.status_history))
        .where(Loan.id == loan_id)
        .execution_options(populate_existing=True)
    )
    stmt = apply_data_scope(stmt, user.data_scope, member_fk=Loan.member_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def reconcile_repayment(
    session: AsyncSession,
    user: UserContext,
    loan_id: int,
    amount: Decimal,
    *,
    reference: str | None = None,
    now: datetime | None = None,
) -> tuple[Loan, list[dict]]:
    """Apply an ingested repayment to a loan's schedules and commit.

    Keeps ``paid_amount + remaining_balance == total_amount`` and debits
    the principal share from the member's loan-book account so that
    account tracks outstanding principal.
    """
    amount = to_money(amount)
    if amount <= ZERO:
        raise InputValidationError("Repayment amount must be positive", field="amount")
    now = now or datetime.now(UTC)

    if reference:
        duplicate = (
            await session.execute(select(LoanRepayment.id).where(LoanRepayment.reference == reference))
        ).scalar_one_or_none()
        if duplicate is not None:
            raise AlreadyProcessedError(
                f"Repayment reference '{reference}' was already recorded",
                field="reference",
            )

    stmt = (
        select(Loan)
        .options(selectinload(Loan.schedules))
        .where(Loan.id == loan_id)
        .with_for_update()
    )
    loan = (await session.execute(stmt)).scalar_one_or_none()
    if loan is None:
        raise NotFoundError(f"Loan {loan_id} not found")
    if loan.status not in _REPAYABLE_STATUSES:
        raise InvalidTransitionError(f"Loan {loan_id} is {loan.status.value} and accepts no repayments")

    session.add(
        LoanRepayment(loan_id=loan.id, amount=amount, reference=reference, received_by=user.user_id)
    )
    try:
        await session.flush()
    except IntegrityError as exc:
        # Same reference recorded concurrently since the check above.
        raise AlreadyProcessedError(
            f"Repayment reference '{reference}' was already recorded",
            field="reference",
        ) from exc

    allocations = allocate_repayment(loan.schedules, amount, now)
    principal_repaid = sum((a["principal"] for a in allocations), ZERO)

    loan.paid_amount = to_money(loan.paid_amount) + amount
    loan.remaining_balance = to_money(loan.total_amount) - loan.paid_amount
    if loan.remaining_balance <= ZERO:
        _record_status_change(session, loan, LoanStatus.COMPLETED, user.user_id, "Fully repaid")
        loan.completed_at = now
    elif loan.status == LoanStatus.DISBURSED:
        _record_status_change(session, loan, LoanStatus.ACTIVE, user.user_id, "First repayment received")

    if principal_repaid > ZERO:
        await apply_entry(
            session,
            loan.account_id,
            EntryType.DEBIT,
            principal_repaid,
            description=f"Principal repayment on loan #{loan.id}",
            created_by=user.user_id,
        )

    await session.commit()
    logger.info(
        "Repayment of %s applied to loan %s across %d schedule(s)", amount, loan_id, len(allocations)
    )
    return await get_loan(session, user, loan_id), allocations


async def mark_overdue(
    session: AsyncSession,
    user: UserContext,
    as_of: date | None = None,
) -> dict:
    """Flag past-due installments LATE and default long-overdue loans."""
    as_of = as_of or datetime.now(UTC).date()

    late_stmt = (
        select(PaymentSchedule)
        .join(Loan, Loan.id == PaymentSchedule.loan_id)
        .where(
            PaymentSchedule.status.in_(_UNPAID_SCHEDULES),
            PaymentSchedule.due_date < as_of,
            Loan.status.in_(_PERFORMING_STATUSES),
        )
    )
    late = (await session.execute(late_stmt)).scalars().all()
    for schedule in late:
        schedule.status = ScheduleStatus.LATE

    cutoff = as_of - timedelta(days=settings.LOAN_DEFAULT_AFTER_DAYS)
    default_stmt = select(Loan).where(
        Loan.status.in_(_PERFORMING_STATUSES),
        Loan.id.in_(
            select(PaymentSchedule.loan_id).where(
                PaymentSchedule.status == ScheduleStatus.LATE,
                PaymentSchedule.due_date < cutoff,
            )
        ),
    )
    await session.flush()
    defaulted = (await session.execute(default_stmt)).scalars().all()
    for loan in defaulted:
        _record_status_change(
            session,
            loan,
            LoanStatus.DEFAULTED,
            user.user_id,
            f"Installment overdue more than {settings.LOAN_DEFAULT_AFTER_DAYS} days",
        )
        logger.warning("Loan %s marked defaulted", loan.id)

    await session.commit()
    return {"schedules_marked_late": len(late), "loans_defaulted": len(defaulted)}
