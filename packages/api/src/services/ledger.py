# This project was developed with assistance from AI tools.
"""Ledger store: append-only account entries with a cached balance.

``apply_entry`` and ``reverse_entry`` never commit; they run inside a
savepoint of the caller's transaction so an approval, its ledger entry
and the request update commit together. Lost optimistic-concurrency
races on ``Account.version`` are retried from a fresh read a bounded
number of times.

The ``record_*`` / ``reverse_transaction`` functions are the standalone
staff operations and commit their own unit of work.
"""

import logging
from decimal import Decimal

from db import Account, LedgerTransaction
from db.enums import AccountKind, EntryType, TransactionStatus
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from ..core.config import settings
from ..core.errors import (
    AlreadyProcessedError,
    ConcurrentModificationError,
    InputValidationError,
    InsufficientBalanceError,
    InvalidTransitionError,
    NotFoundError,
)
from ..core.money import ZERO, to_money
from ..schemas.auth import UserContext
from .scope import apply_data_scope

logger = logging.getLogger(__name__)

_APPLIED_STATUSES = (TransactionStatus.COMPLETED, TransactionStatus.REVERSED)
_DEPOSIT_KINDS = frozenset({AccountKind.SAVINGS, AccountKind.PERSONAL_PLAN})


async def apply_entry(
    session: AsyncSession,
    account_id: int,
    base_type: EntryType,
    amount,
    *,
    request_id: int | None = None,
    description: str | None = None,
    created_by: str | None = None,
    reversal_of_id: int | None = None,
) -> LedgerTransaction:
    """Append a CREDIT or DEBIT entry and update the cached balance.

    Raises:
        InputValidationError: amount is not positive.
        NotFoundError: no such account.
        InsufficientBalanceError: a debit would take the balance below zero.
        ConcurrentModificationError: the account kept changing underneath
            us for ``LEDGER_MAX_RETRIES`` attempts.
    """
    amount = to_money(amount)
    if amount <= ZERO:
        raise InputValidationError("Entry amount must be positive", field="amount")

    for attempt in range(1, settings.LEDGER_MAX_RETRIES + 1):
        try:
            async with session.begin_nested():
                account = await session.get(Account, account_id, populate_existing=True)
                if account is None:
                    raise NotFoundError(f"Account {account_id} not found")

                balance = to_money(account.balance)
                if base_type == EntryType.CREDIT:
                    new_balance = balance + amount
                else:
                    new_balance = balance - amount
                    if new_balance < ZERO:
                        raise InsufficientBalanceError(
                            available=balance,
                            requested=amount,
                            account_id=account_id,
                            request_id=request_id,
                        )

                account.balance = new_balance
                entry = LedgerTransaction(
                    account_id=account_id,
                    base_type=base_type,
                    amount=amount,
                    balance_after=new_balance,
                    status=TransactionStatus.COMPLETED,
                    request_id=request_id,
                    reversal_of_id=reversal_of_id,
                    description=description,
                    created_by=created_by,
                )
                session.add(entry)
                await session.flush()
            return entry
        except StaleDataError:
            logger.info(
                "Ledger version conflict on account %s (attempt %d/%d), retrying",
                account_id,
                attempt,
                settings.LEDGER_MAX_RETRIES,
            )

    logger.warning(
        "Ledger entry on account %s abandoned after %d conflicting attempts",
        account_id,
        settings.LEDGER_MAX_RETRIES,
    )
    raise ConcurrentModificationError(
        f"Account {account_id} was modified concurrently; reload and retry",
        request_id=request_id,
        context={"account_id": account_id},
    )


async def reverse_entry(
    session: AsyncSession,
    transaction_id: int,
    *,
    reason: str,
    created_by: str | None = None,
) -> LedgerTransaction:
    """Append the opposite entry for a completed transaction.

    The original row keeps its amount and balance; only its status flips
    to REVERSED so it cannot be reversed twice.
    """
    original = await session.get(LedgerTransaction, transaction_id)
    if original is None:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    if original.status == TransactionStatus.REVERSED:
        raise AlreadyProcessedError(f"Transaction {transaction_id} is already reversed")
    if original.reversal_of_id is not None:
        raise InvalidTransitionError("A reversal entry cannot itself be reversed")
    if original.status != TransactionStatus.COMPLETED:
        raise InvalidTransitionError(
            f"Only completed transactions can be reversed (status is '{original.status.value}')"
        )

    opposite = EntryType.DEBIT if original.base_type == EntryType.CREDIT else EntryType.CREDIT
    try:
        reversal = await apply_entry(
            session,
            original.account_id,
            opposite,
            original.amount,
            request_id=original.request_id,
            description=f"Reversal of transaction #{original.id}: {reason}",
            created_by=created_by,
            reversal_of_id=original.id,
        )
    except IntegrityError as exc:
        # Lost the race to a concurrent reversal of the same entry.
        raise AlreadyProcessedError(f"Transaction {transaction_id} is already reversed") from exc
    original.status = TransactionStatus.REVERSED
    await session.flush()
    return reversal


def fold_entries(entries) -> Decimal:
    """Replay entries from zero. Only applied (completed/reversed) ones count."""
    balance = ZERO
    for entry in entries:
        if entry.status not in _APPLIED_STATUSES:
            continue
        if entry.base_type == EntryType.CREDIT:
            balance += to_money(entry.amount)
        else:
            balance -= to_money(entry.amount)
    return balance


async def recompute_balance(session: AsyncSession, account_id: int) -> Decimal:
    """Fold the account's full ledger into a balance."""
    stmt = (
        select(LedgerTransaction)
        .where(LedgerTransaction.account_id == account_id)
        .order_by(LedgerTransaction.id)
    )
    result = await session.execute(stmt)
    return fold_entries(result.scalars().all())


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------


async def get_account(
    session: AsyncSession,
    user: UserContext,
    account_id: int,
) -> Account | None:
    """Return an account if visible to the current user.

    Out-of-scope accounts come back as None (404) rather than 403.
    """
    stmt = select(Account).where(Account.id == account_id)
    stmt = apply_data_scope(stmt, user.data_scope, member_fk=Account.member_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_transactions(
    session: AsyncSession,
    user: UserContext,
    account_id: int,
    *,
    offset: int = 0,
    limit: int = 20,
) -> tuple[list[LedgerTransaction], int] | None:
    """Newest-first ledger page for an account, or None if not visible."""
    account = await get_account(session, user, account_id)
    if account is None:
        return None

    count_stmt = select(func.count(LedgerTransaction.id)).where(
        LedgerTransaction.account_id == account_id
    )
    total = (await session.execute(count_stmt)).scalar() or 0

    stmt = (
        select(LedgerTransaction)
        .where(LedgerTransaction.account_id == account_id)
        .order_by(LedgerTransaction.id.desc())
        .offset(offset)
        .limit(limit)
    )
    result = await session.execute(stmt)
    return result.scalars().all(), total


async def verify_balance(
    session: AsyncSession,
    user: UserContext,
    account_id: int,
) -> dict | None:
    """Compare an account's cached balance with its replayed ledger."""
    account = await get_account(session, user, account_id)
    if account is None:
        return None

    ledger_balance = await recompute_balance(session, account_id)
    cached = to_money(account.balance)
    consistent = abs(cached - ledger_balance) < settings.MONEY_TOLERANCE
    if not consistent:
        logger.warning(
            "Balance drift on account %s: cached=%s ledger=%s",
            account_id,
            cached,
            ledger_balance,
        )
    return {
        "account_id": account_id,
        "cached_balance": cached,
        "ledger_balance": ledger_balance,
        "consistent": consistent,
    }


# ---------------------------------------------------------------------------
# Standalone staff operations
# ---------------------------------------------------------------------------


async def _require_account(session: AsyncSession, account_id: int) -> Account:
    account = await session.get(Account, account_id)
    if account is None:
        raise NotFoundError(f"Account {account_id} not found")
    if not account.is_active:
        raise InvalidTransitionError(f"Account {account_id} is closed")
    return account


async def record_deposit(
    session: AsyncSession,
    user: UserContext,
    account_id: int,
    amount: Decimal,
    description: str | None = None,
) -> LedgerTransaction:
    """Credit a savings or personal-plan account."""
    account = await _require_account(session, account_id)
    if account.kind not in _DEPOSIT_KINDS:
        raise InputValidationError(
            f"Deposits are not accepted on {account.kind.value} accounts",
            field="account_id",
        )

    entry = await apply_entry(
        session,
        account_id,
        EntryType.CREDIT,
        amount,
        description=description or "Deposit",
        created_by=user.user_id,
    )
    entry_id, amount = entry.id, entry.amount
    await session.commit()
    logger.info("Deposit of %s posted to account %s by %s", amount, account_id, user.user_id)
    return await session.get(LedgerTransaction, entry_id)


async def record_share_purchase(
    session: AsyncSession,
    user: UserContext,
    account_id: int,
    quantity: int,
) -> LedgerTransaction:
    """Credit a share account with ``quantity`` shares at the configured unit value."""
    account = await _require_account(session, account_id)
    if account.kind != AccountKind.SHARE:
        raise InputValidationError("Shares can only be issued to a share account", field="account_id")

    amount = to_money(settings.SHARE_UNIT_VALUE * quantity)
    entry = await apply_entry(
        session,
        account_id,
        EntryType.CREDIT,
        amount,
        description=f"Purchase of {quantity} share(s)",
        created_by=user.user_id,
    )
    entry_id = entry.id
    await session.commit()
    return await session.get(LedgerTransaction, entry_id)


async def reverse_transaction(
    session: AsyncSession,
    user: UserContext,
    transaction_id: int,
    reason: str,
) -> LedgerTransaction:
    """Reverse a posted transaction and commit."""
    reversal = await reverse_entry(
        session, transaction_id, reason=reason, created_by=user.user_id,
    )
    reversal_id = reversal.id
    await session.commit()
    logger.info("Transaction %s reversed by %s: %s", transaction_id, user.user_id, reason)
    return await session.get(LedgerTransaction, reversal_id)
