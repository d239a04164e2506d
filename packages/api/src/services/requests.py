# This project was developed with assistance from AI tools.
"""Request intake and read-side queries.

Every query is filtered through the caller's DataScope so that members
see only their own requests while staff see all of them. Submission
validates the content against the member's current state and snapshots
the approval chain onto the new request.
"""

import logging
from datetime import UTC, datetime

from db import Account, ApprovalStep, Loan, Member, Request
from db.enums import (
    AccountKind,
    ApprovalStatus,
    LoanStatus,
    RequestStatus,
    RequestType,
    UserRole,
)
from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.config import settings
from ..core.errors import EligibilityError, InputValidationError, InsufficientBalanceError, NotFoundError
from ..core.money import to_money
from ..schemas.auth import UserContext
from ..schemas.request import RequestCreate
from .approval_chain import build_steps
from .events import RequestEvent, publish
from .financial_effects import WITHDRAWAL_ACCOUNT_KINDS
from .scope import apply_data_scope

logger = logging.getLogger(__name__)

_TERMINAL_STATUSES = RequestStatus.terminal_statuses()

_OUTSTANDING_LOAN_STATUSES = (LoanStatus.DISBURSED, LoanStatus.ACTIVE, LoanStatus.DEFAULTED)
_OPEN_APPLICATION_STATUSES = (RequestStatus.PENDING, RequestStatus.IN_REVIEW, RequestStatus.REVIEWED)
# Rejected and cancelled withdrawals do not use up the yearly allowance.
_COUNTED_WITHDRAWAL_STATUSES = _OPEN_APPLICATION_STATUSES + (RequestStatus.APPROVED, RequestStatus.COMPLETED)

# Joins a request to the step it is currently waiting on.
_CURRENT_STEP_JOIN = and_(
    ApprovalStep.request_id == Request.id,
    ApprovalStep.level == Request.current_approval_level,
)


def _awaiting(stmt, role: UserRole):
    """Restrict to open requests whose current step belongs to ``role``."""
    stmt = stmt.join(ApprovalStep, _CURRENT_STEP_JOIN).where(
        ApprovalStep.status == ApprovalStatus.PENDING,
        Request.status.notin_(list(_TERMINAL_STATUSES)),
    )
    if role != UserRole.SUPER_ADMIN:
        stmt = stmt.where(ApprovalStep.approver_role == role)
    return stmt


def _apply_filters(stmt, request_type, status, awaiting_role):
    if request_type is not None:
        stmt = stmt.where(Request.type == request_type)
    if status is not None:
        stmt = stmt.where(Request.status == status)
    if awaiting_role is not None:
        stmt = _awaiting(stmt, awaiting_role)
    return stmt


async def list_requests(
    session: AsyncSession,
    user: UserContext,
    *,
    offset: int = 0,
    limit: int = 20,
    request_type: RequestType | None = None,
    status: RequestStatus | None = None,
    awaiting_role: UserRole | None = None,
) -> tuple[list[Request], int]:
    """Return requests visible to the current user, newest first.

    Args:
        request_type: Only return requests of this type.
        status: Only return requests in this status.
        awaiting_role: Only return open requests whose current step is
            assigned to this role.
    """
    count_stmt = select(func.count(Request.id))
    count_stmt = apply_data_scope(count_stmt, user.data_scope)
    count_stmt = _apply_filters(count_stmt, request_type, status, awaiting_role)
    total = (await session.execute(count_stmt)).scalar() or 0

    stmt = (
        select(Request)
        .options(selectinload(Request.approval_steps))
        .order_by(Request.created_at.desc(), Request.id.desc())
        .offset(offset)
        .limit(limit)
    )
    stmt = apply_data_scope(stmt, user.data_scope)
    stmt = _apply_filters(stmt, request_type, status, awaiting_role)
    result = await session.execute(stmt)
    return result.unique().scalars().all(), total


async def get_request(
    session: AsyncSession,
    user: UserContext,
    request_id: int,
) -> Request | None:
    """Return a single request with its steps if visible to the current user.

    Returns None (which the route maps to 404) for out-of-scope requests
    rather than 403, to avoid leaking their existence.
    """
    stmt = (
        select(Request)
        .options(selectinload(Request.approval_steps))
        .where(Request.id == request_id)
        .execution_options(populate_existing=True)
    )
    stmt = apply_data_scope(stmt, user.data_scope)
    result = await session.execute(stmt)
    return result.unique().scalar_one_or_none()


async def get_statistics(session: AsyncSession, user: UserContext) -> dict:
    """Counts by status and type, plus open requests awaiting each role."""
    by_status_stmt = apply_data_scope(
        select(Request.status, func.count(Request.id)).group_by(Request.status),
        user.data_scope,
    )
    by_type_stmt = apply_data_scope(
        select(Request.type, func.count(Request.id)).group_by(Request.type),
        user.data_scope,
    )
    awaiting_stmt = apply_data_scope(
        select(ApprovalStep.approver_role, func.count(Request.id))
        .select_from(Request)
        .join(ApprovalStep, _CURRENT_STEP_JOIN)
        .where(
            ApprovalStep.status == ApprovalStatus.PENDING,
            Request.status.notin_(list(_TERMINAL_STATUSES)),
        )
        .group_by(ApprovalStep.approver_role),
        user.data_scope,
    )

    by_status = {status: count for status, count in (await session.execute(by_status_stmt)).all()}
    by_type = {request_type: count for request_type, count in (await session.execute(by_type_stmt)).all()}
    awaiting = {role: count for role, count in (await session.execute(awaiting_stmt)).all()}
    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "by_type": by_type,
        "awaiting_role": awaiting,
    }


async def _find_member_for_user(session: AsyncSession, user_id: str) -> Member | None:
    result = await session.execute(select(Member).where(Member.user_id == user_id))
    return result.scalar_one_or_none()


async def _check_duplicate_member(session: AsyncSession, content) -> None:
    """Refuse a registration whose contact details already belong to a member."""
    matches = [Member.email == content.email]
    if content.phone:
        matches.append(Member.phone == content.phone)
    if content.erp_id:
        matches.append(Member.erp_id == content.erp_id)
    existing = (await session.execute(select(Member).where(or_(*matches)))).scalars().first()
    if existing is not None:
        raise InputValidationError(
            "A member already exists with these details",
            field="content",
            context={"member_id": existing.id},
        )


async def _registration_member(session: AsyncSession, user: UserContext, content) -> Member:
    """Find or create the unapproved member record behind a registration.

    A member registering themselves is linked to their own identity and
    may resubmit while still pending. Staff registering someone else
    create a fresh record, linked only to the ``user_id`` given in the
    content (if any).
    """
    if user.role == UserRole.MEMBER:
        user_id = user.user_id
        member = await _find_member_for_user(session, user_id)
        if member is not None:
            if member.is_approved:
                raise InputValidationError("You are already an approved member", field="type")
            return member
    else:
        user_id = content.user_id
        if user_id is not None and await _find_member_for_user(session, user_id) is not None:
            raise InputValidationError(
                f"User '{user_id}' already has a member profile",
                field="user_id",
            )

    await _check_duplicate_member(session, content)
    member = Member(
        user_id=user_id,
        full_name=content.full_name,
        email=content.email,
        phone=content.phone,
        department=content.department,
        erp_id=content.erp_id,
        is_approved=False,
    )
    session.add(member)
    await session.flush()
    return member


async def _requesting_member(session: AsyncSession, user: UserContext, member_id: int | None) -> Member:
    """Member a request is filed for: the caller, or ``member_id`` for staff."""
    if member_id is not None and user.role != UserRole.MEMBER:
        member = await session.get(Member, member_id)
        if member is None:
            raise NotFoundError(f"Member {member_id} not found", field="member_id")
    else:
        member = await _find_member_for_user(session, user.user_id)
        if member is None:
            raise NotFoundError("No member profile exists for the current user")
    if not member.is_approved:
        raise InputValidationError(
            f"Member {member.id} is not approved yet",
            field="member_id",
        )
    return member


async def _has_outstanding_loan(session: AsyncSession, member_id: int) -> bool:
    stmt = select(func.count(Loan.id)).where(
        Loan.member_id == member_id,
        Loan.status.in_(_OUTSTANDING_LOAN_STATUSES),
    )
    return ((await session.execute(stmt)).scalar() or 0) > 0


async def _count_requests(
    session: AsyncSession, member_id: int, request_type: RequestType, statuses, since=None
) -> int:
    stmt = select(func.count(Request.id)).where(
        Request.member_id == member_id,
        Request.type == request_type,
        Request.status.in_(list(statuses)),
    )
    if since is not None:
        stmt = stmt.where(Request.created_at >= since)
    return (await session.execute(stmt)).scalar() or 0


async def _total_savings(session: AsyncSession, member_id: int):
    stmt = select(func.coalesce(func.sum(Account.balance), 0)).where(
        Account.member_id == member_id,
        Account.kind == AccountKind.SAVINGS,
        Account.is_active.is_(True),
    )
    return to_money((await session.execute(stmt)).scalar() or 0)


async def _check_savings_withdrawal_rules(
    session: AsyncSession, member: Member, account: Account, amount, now: datetime
) -> None:
    """Loan, cap and frequency rules for withdrawing from main savings."""
    if await _has_outstanding_loan(session, member.id):
        raise EligibilityError(
            "Cannot withdraw savings while a loan is still unpaid",
            field="type",
            context={"member_id": member.id},
        )

    limit = settings.SAVINGS_WITHDRAWALS_PER_YEAR
    year_start = now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    filed = await _count_requests(
        session, member.id, RequestType.SAVINGS_WITHDRAWAL, _COUNTED_WITHDRAWAL_STATUSES, since=year_start
    )
    if filed >= limit:
        raise EligibilityError(
            f"Only {limit} savings withdrawal(s) allowed per year",
            field="type",
            context={"member_id": member.id, "filed_this_year": filed, "limit": limit},
        )

    ratio = settings.SAVINGS_WITHDRAWAL_MAX_RATIO
    maximum = to_money(to_money(account.balance) * ratio)
    if to_money(amount) > maximum:
        raise EligibilityError(
            f"A savings withdrawal may not exceed {ratio:.0%} of the balance ({maximum})",
            field="amount",
            context={"account_id": account.id, "maximum": str(maximum), "requested": str(to_money(amount))},
        )


async def _check_withdrawal(
    session: AsyncSession, request_type: RequestType, member: Member, content, now: datetime
) -> None:
    account = await session.get(Account, content.account_id)
    if account is None or account.member_id != member.id:
        raise NotFoundError(f"Account {content.account_id} not found for this member", field="account_id")
    expected_kind = WITHDRAWAL_ACCOUNT_KINDS[request_type]
    if account.kind != expected_kind:
        raise InputValidationError(
            f"Withdrawal must come from a {expected_kind.value} account",
            field="account_id",
        )
    if not account.is_active:
        raise InputValidationError(f"Account {account.id} is closed", field="account_id")
    if to_money(account.balance) < to_money(content.amount):
        raise InsufficientBalanceError(account.balance, content.amount, account_id=account.id)
    if request_type == RequestType.SAVINGS_WITHDRAWAL:
        await _check_savings_withdrawal_rules(session, member, account, content.amount, now)


async def _check_loan_application(session: AsyncSession, member: Member, content) -> None:
    low, high = settings.LOAN_MIN_TENURE_MONTHS, settings.LOAN_MAX_TENURE_MONTHS
    if not low <= content.tenure_months <= high:
        raise InputValidationError(
            f"Tenure must be between {low} and {high} months",
            field="tenure_months",
            context={"min": low, "max": high},
        )

    if await _has_outstanding_loan(session, member.id):
        raise EligibilityError(
            "Member already has an active loan",
            field="type",
            context={"member_id": member.id},
        )
    if await _count_requests(session, member.id, RequestType.LOAN_APPLICATION, _OPEN_APPLICATION_STATUSES):
        raise EligibilityError(
            "Member already has a loan application in progress",
            field="type",
            context={"member_id": member.id},
        )

    savings = await _total_savings(session, member.id)
    maximum = to_money(savings * settings.LOAN_MAX_SAVINGS_MULTIPLE)
    if to_money(content.amount) > maximum:
        raise EligibilityError(
            f"Loan amount exceeds the maximum of {maximum} for this member",
            field="amount",
            context={"total_savings": str(savings), "maximum": str(maximum)},
        )


async def create_request(
    session: AsyncSession,
    user: UserContext,
    body: RequestCreate,
    *,
    now: datetime | None = None,
) -> Request:
    """Validate and submit a new request with its approval chain."""
    now = now or datetime.now(UTC)
    request_type = body.request_type
    content = body.content
    steps = build_steps(request_type)

    if request_type == RequestType.MEMBER_REGISTRATION:
        member = await _registration_member(session, user, content)
    else:
        member = await _requesting_member(session, user, body.member_id)

    account_id = None
    if request_type in WITHDRAWAL_ACCOUNT_KINDS:
        await _check_withdrawal(session, request_type, member, content, now)
        account_id = content.account_id
    elif request_type == RequestType.LOAN_APPLICATION:
        await _check_loan_application(session, member, content)

    request = Request(
        type=request_type,
        status=RequestStatus.PENDING,
        content=content.model_dump(mode="json"),
        initiator_id=user.user_id,
        member_id=member.id,
        account_id=account_id,
        current_approval_level=1,
        approval_steps=steps,
    )
    session.add(request)
    await session.flush()
    request_id = request.id
    await session.commit()

    logger.info(
        "Request %s (%s) submitted by %s for member %s",
        request_id,
        request_type.value,
        user.user_id,
        member.id,
    )
    await publish(
        RequestEvent(
            request_id=request_id,
            request_type=request_type,
            action="submit",
            from_status=None,
            to_status=RequestStatus.PENDING,
            level=1,
            actor_id=user.user_id,
            timestamp=now,
        )
    )
    return await get_request(session, user, request_id)
