# This project was developed with assistance from AI tools.
"""Row locks and version counters across independent sessions.

These tests commit for real through separate sessions, so they clean up
with ``truncate_all`` instead of the savepoint rollback.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

pytestmark = pytest.mark.integration


async def _committed_withdrawal(session_factory):
    """Ada, a funded plan account and a pending withdrawal, all committed."""
    from db.enums import AccountKind, EntryType
    from db.models import Account, Member

    from src.schemas.request import RequestCreate
    from src.services.ledger import apply_entry
    from src.services.requests import create_request
    from tests.functional.personas import ADA_USER_ID, member_ada

    async with session_factory() as session:
        member = Member(user_id=ADA_USER_ID, full_name="Ada Okafor", email="ada@coop.example.com", is_approved=True)
        session.add(member)
        await session.flush()
        account = Account(member_id=member.id, kind=AccountKind.PERSONAL_PLAN, balance=Decimal("0"))
        session.add(account)
        await session.commit()
        account_id = account.id

        await apply_entry(session, account_id, EntryType.CREDIT, Decimal("5000.00"))
        await session.commit()

        request = await create_request(
            session,
            member_ada(),
            RequestCreate(
                content={"type": "personal_savings_withdrawal", "account_id": account_id, "amount": "1000.00"}
            ),
        )
        return request.id, account_id


@pytest.mark.usefixtures("truncate_all")
async def test_locked_request_is_reported_as_concurrent(session_factory):
    """A second actor fails fast while the first holds the request row."""
    from db.enums import RequestAction
    from db.models import Request

    from src.core.errors import ConcurrentModificationError
    from src.services.orchestrator import process_request
    from tests.functional.personas import treasurer

    request_id, _ = await _committed_withdrawal(session_factory)

    async with session_factory() as holder, session_factory() as contender:
        await holder.execute(select(Request).where(Request.id == request_id).with_for_update())

        with pytest.raises(ConcurrentModificationError) as exc_info:
            await process_request(contender, treasurer(), request_id, RequestAction.REVIEW)
        assert exc_info.value.request_id == request_id

        await holder.rollback()

        processed = await process_request(contender, treasurer(), request_id, RequestAction.REVIEW)
        assert processed.current_approval_level == 2


@pytest.mark.usefixtures("truncate_all")
async def test_stale_account_write_is_rejected(session_factory):
    """Two sessions read the same account; the slower write loses on version."""
    from db.models import Account
    from sqlalchemy.orm.exc import StaleDataError

    _, account_id = await _committed_withdrawal(session_factory)

    async with session_factory() as first, session_factory() as second:
        slow = await first.get(Account, account_id)
        fast = await second.get(Account, account_id)

        fast.balance = fast.balance + Decimal("10.00")
        await second.commit()

        slow.balance = slow.balance - Decimal("10.00")
        with pytest.raises(StaleDataError):
            await first.flush()
        await first.rollback()


@pytest.mark.usefixtures("truncate_all")
async def test_ledger_entry_uses_current_balance(session_factory):
    """apply_entry works from the current row, not the session's older copy."""
    from db.enums import EntryType
    from db.models import Account

    from src.services.ledger import apply_entry, recompute_balance

    _, account_id = await _committed_withdrawal(session_factory)

    async with session_factory() as first, session_factory() as second:
        await first.get(Account, account_id)

        await apply_entry(second, account_id, EntryType.CREDIT, Decimal("10.00"))
        await second.commit()

        entry = await apply_entry(first, account_id, EntryType.DEBIT, Decimal("20.00"))
        await first.commit()

        assert entry.balance_after == Decimal("4990.00")
        assert await recompute_balance(first, account_id) == Decimal("4990.00")
