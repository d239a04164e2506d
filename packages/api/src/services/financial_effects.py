# This project was developed with assistance from AI tools.
"""Financial effects of settled requests.

Each request type has one settlement handler, run by the orchestrator in
the same transaction as the status change when a request reaches its
settlement status (see ``approval_chain.settlement_status``). Handlers
never commit. Rejections and cancellations have no financial effect.
"""

import logging

from db import Account, Member
from db.enums import AccountKind, EntryType, RequestType
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import InputValidationError, NotFoundError
from ..core.money import ZERO
from ..schemas.request import parse_content
from .ledger import apply_entry
from .loans import disburse_loan
from .state_machine import TransitionPlan

logger = logging.getLogger(__name__)

WITHDRAWAL_ACCOUNT_KINDS: dict[RequestType, AccountKind] = {
    RequestType.SAVINGS_WITHDRAWAL: AccountKind.SAVINGS,
    RequestType.PERSONAL_SAVINGS_WITHDRAWAL: AccountKind.PERSONAL_PLAN,
}

_MEMBER_ACCOUNT_KINDS = (AccountKind.SAVINGS, AccountKind.SHARE)


async def _load_member(session: AsyncSession, request) -> Member:
    if request.member_id is None:
        raise InputValidationError("Request is not linked to a member", field="member_id")
    member = await session.get(Member, request.member_id)
    if member is None:
        raise NotFoundError(f"Member {request.member_id} not found")
    return member


async def _approve_member(session: AsyncSession, request, content, plan: TransitionPlan) -> None:
    """Activate the member and open their savings and share accounts."""
    member = await _load_member(session, request)
    member.full_name = content.full_name
    member.email = content.email
    member.phone = content.phone
    member.department = content.department
    member.erp_id = content.erp_id
    member.is_approved = True
    member.approved_at = plan.acted_at

    existing = set(
        (
            await session.execute(
                select(Account.kind).where(
                    Account.member_id == member.id,
                    Account.kind.in_(_MEMBER_ACCOUNT_KINDS),
                )
            )
        )
        .scalars()
        .all()
    )
    for kind in _MEMBER_ACCOUNT_KINDS:
        if kind not in existing:
            session.add(Account(member_id=member.id, kind=kind, balance=ZERO))
    await session.flush()
    logger.info("Member %s approved by request %s", member.id, request.id)


async def _open_personal_plan(session: AsyncSession, request, content, plan: TransitionPlan) -> None:
    """Open a personal savings plan; an active plan of the same name is reused."""
    member = await _load_member(session, request)
    stmt = select(Account).where(
        Account.member_id == member.id,
        Account.kind == AccountKind.PERSONAL_PLAN,
        Account.name == content.plan_name,
        Account.is_active.is_(True),
    )
    account = (await session.execute(stmt)).scalars().first()
    if account is None:
        account = Account(
            member_id=member.id,
            kind=AccountKind.PERSONAL_PLAN,
            name=content.plan_name,
            target_amount=content.target_amount,
            balance=ZERO,
        )
        session.add(account)
        await session.flush()
    else:
        logger.info(
            "Member %s already has plan '%s' (account %s); linking request %s",
            member.id,
            content.plan_name,
            account.id,
            request.id,
        )
    request.account_id = account.id


async def _settle_withdrawal(session: AsyncSession, request, content, plan: TransitionPlan) -> None:
    """Debit the withdrawal, re-checking the balance at settlement time."""
    account = await session.get(Account, content.account_id)
    if account is None or account.member_id != request.member_id:
        raise NotFoundError(f"Account {content.account_id} not found for this member")
    expected_kind = WITHDRAWAL_ACCOUNT_KINDS[request.type]
    if account.kind != expected_kind:
        raise InputValidationError(
            f"Withdrawal must come from a {expected_kind.value} account",
            field="account_id",
        )

    await apply_entry(
        session,
        account.id,
        EntryType.DEBIT,
        content.amount,
        request_id=request.id,
        description=content.reason or f"Withdrawal for request #{request.id}",
        created_by=plan.actor_id,
    )


async def _disburse(session: AsyncSession, request, content, plan: TransitionPlan) -> None:
    await disburse_loan(
        session,
        request,
        amount=content.amount,
        tenure_months=content.tenure_months,
        interest_rate=content.interest_rate,
        actor_id=plan.actor_id,
        now=plan.acted_at,
    )


_SETTLEMENT_HANDLERS = {
    RequestType.MEMBER_REGISTRATION: _approve_member,
    RequestType.PERSONAL_SAVINGS_CREATION: _open_personal_plan,
    RequestType.PERSONAL_SAVINGS_WITHDRAWAL: _settle_withdrawal,
    RequestType.SAVINGS_WITHDRAWAL: _settle_withdrawal,
    RequestType.LOAN_APPLICATION: _disburse,
}


async def apply_financial_effect(session: AsyncSession, request, plan: TransitionPlan) -> None:
    """Run the settlement handler if ``plan`` settles the request."""
    if not plan.settles:
        return
    content = parse_content(request.content)
    await _SETTLEMENT_HANDLERS[request.type](session, request, content, plan)
