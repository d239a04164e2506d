# This project was developed with assistance from AI tools.
"""Approval workflows end to end against real PostgreSQL."""

from decimal import Decimal

import pytest
from sqlalchemy import select

pytestmark = pytest.mark.integration


async def _submit(client_factory, persona, content):
    client = await client_factory(persona)
    resp = await client.post("/api/requests/", json={"content": content})
    await client.aclose()
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _process(client_factory, persona, request_id, **body):
    client = await client_factory(persona)
    resp = await client.post(f"/api/requests/{request_id}/process", json=body)
    await client.aclose()
    return resp


async def _balance(db_session, account_id):
    from db.models import Account

    account = await db_session.get(Account, account_id, populate_existing=True)
    return account.balance


async def test_withdrawal_review_approve_complete(client_factory, seed_data, db_session):
    """5,000 from a 5,000 plan: debited once, at completion, to exactly zero."""
    from db.models import LedgerTransaction

    from tests.functional.personas import chairman, member_ada, treasurer

    created = await _submit(
        client_factory,
        member_ada(),
        {"type": "personal_savings_withdrawal", "account_id": seed_data.ada_plan.id, "amount": "5000.00"},
    )
    rid = created["id"]
    assert created["status"] == "pending"
    assert [s["level"] for s in created["approval_steps"]] == [1, 2, 3]

    resp = await _process(client_factory, treasurer(), rid, action="review")
    assert resp.json()["status"] == "in_review"

    resp = await _process(client_factory, chairman(), rid, action="approve")
    assert resp.json()["status"] == "approved"
    assert await _balance(db_session, seed_data.ada_plan.id) == Decimal("5000.00")

    resp = await _process(client_factory, treasurer(), rid, action="completed")
    assert resp.status_code == 200
    assert resp.json()["status"] == "completed"
    assert await _balance(db_session, seed_data.ada_plan.id) == Decimal("0.00")

    entries = (
        await db_session.execute(select(LedgerTransaction).where(LedgerTransaction.request_id == rid))
    ).scalars().all()
    assert len(entries) == 1
    assert entries[0].amount == Decimal("5000.00")


async def test_completion_refused_when_balance_dropped(client_factory, seed_data, db_session):
    """Balance falls to 3,000 after approval; completion fails and nothing moves."""
    from db.enums import EntryType

    from src.services.ledger import apply_entry
    from tests.functional.personas import chairman, member_ada, treasurer

    created = await _submit(
        client_factory,
        member_ada(),
        {"type": "personal_savings_withdrawal", "account_id": seed_data.ada_plan.id, "amount": "5000.00"},
    )
    rid = created["id"]
    await _process(client_factory, treasurer(), rid, action="review")
    await _process(client_factory, chairman(), rid, action="approve")

    await apply_entry(db_session, seed_data.ada_plan.id, EntryType.DEBIT, Decimal("2000.00"))
    await db_session.commit()

    resp = await _process(client_factory, treasurer(), rid, action="complete")
    assert resp.status_code == 422
    body = resp.json()
    assert body["code"] == "INSUFFICIENT_BALANCE"
    assert body["context"]["shortfall"] == "2000.00"
    assert body["context"]["request_id"] == rid

    client = await client_factory(treasurer())
    current = (await client.get(f"/api/requests/{rid}")).json()
    await client.aclose()
    assert current["status"] == "approved"
    assert current["current_approval_level"] == 3
    assert current["approval_steps"][2]["status"] == "pending"
    assert await _balance(db_session, seed_data.ada_plan.id) == Decimal("3000.00")


async def test_loan_approval_disburses_amortized_loan(client_factory, seed_data, db_session):
    """120,000 at 10% over 12 months, then a 15,000 repayment across two installments."""
    from db.models import Loan

    from tests.functional.personas import chairman, member_ada, treasurer

    created = await _submit(
        client_factory,
        member_ada(),
        {"type": "loan_application", "amount": "120000.00", "tenure_months": 12},
    )
    rid = created["id"]
    await _process(client_factory, treasurer(), rid, action="review")
    resp = await _process(client_factory, chairman(), rid, action="approve")
    assert resp.json()["status"] == "approved"

    loan = (await db_session.execute(select(Loan).where(Loan.request_id == rid))).scalar_one()
    assert loan.monthly_payment == Decimal("10549.91")

    client = await client_factory(treasurer())
    resp = await client.post(f"/api/loans/{loan.id}/repayments", json={"amount": "15000.00", "reference": "PAY-1"})
    assert resp.status_code == 201, resp.text
    body = resp.json()
    first, second = body["allocations"]
    assert Decimal(first["interest"]) == Decimal("1000.00")
    assert Decimal(first["principal"]) == Decimal("9549.91")
    assert first["status"] == "paid"
    assert second["status"] == "partial"
    assert body["loan"]["status"] == "active"
    assert Decimal(body["loan"]["paid_amount"]) + Decimal(body["loan"]["remaining_balance"]) == Decimal(
        body["loan"]["total_amount"]
    )

    again = await client.post(f"/api/loans/{loan.id}/repayments", json={"amount": "100.00", "reference": "PAY-1"})
    assert again.status_code == 409
    assert again.json()["code"] == "ALREADY_PROCESSED"
    await client.aclose()


async def test_out_of_order_and_repeated_actions(client_factory, seed_data):
    from tests.functional.personas import chairman, member_ada, treasurer

    created = await _submit(
        client_factory,
        member_ada(),
        {"type": "savings_withdrawal", "account_id": seed_data.ada_savings.id, "amount": "100.00"},
    )
    rid = created["id"]

    resp = await _process(client_factory, chairman(), rid, action="approve")
    assert resp.status_code == 409
    assert resp.json()["code"] == "OUT_OF_SEQUENCE"

    await _process(client_factory, treasurer(), rid, action="review")
    resp = await _process(client_factory, treasurer(), rid, action="review", level=1)
    assert resp.status_code == 409
    assert resp.json()["code"] == "ALREADY_PROCESSED"

    resp = await _process(client_factory, chairman(), rid, action="reject")
    assert resp.status_code == 422
    assert resp.json()["field"] == "notes"

    resp = await _process(client_factory, chairman(), rid, action="reject", notes="Not eligible this quarter")
    assert resp.json()["status"] == "rejected"

    resp = await _process(client_factory, treasurer(), rid, action="complete")
    assert resp.status_code == 409


async def test_registration_approval_opens_accounts(client_factory, db_session):
    """A newcomer registers; after admin review and chairman approval they hold two accounts."""
    from db.enums import AccountKind, UserRole
    from db.models import Account, Member

    from tests.functional.personas import _persona, admin, chairman

    newcomer = _persona("new-member-003", UserRole.MEMBER, "Chidi Eze")
    created = await _submit(
        client_factory,
        newcomer,
        {"type": "member_registration", "full_name": "Chidi Eze", "email": "chidi@coop.example.com"},
    )
    rid = created["id"]

    await _process(client_factory, admin(), rid, action="review")
    resp = await _process(client_factory, chairman(), rid, action="approve")
    assert resp.json()["status"] == "approved"

    member = (
        await db_session.execute(
            select(Member).where(Member.user_id == "new-member-003").execution_options(populate_existing=True)
        )
    ).scalar_one()
    assert member.is_approved is True
    kinds = (await db_session.execute(select(Account.kind).where(Account.member_id == member.id))).scalars().all()
    assert sorted(k.value for k in kinds) == sorted([AccountKind.SAVINGS.value, AccountKind.SHARE.value])


async def test_admin_registers_several_members(client_factory, db_session):
    """Registrations filed by staff each get their own unlinked member record."""
    from db.models import Member, Request

    from tests.functional.personas import admin

    first = await _submit(
        client_factory,
        admin(),
        {"type": "member_registration", "full_name": "Chidi Eze", "email": "chidi@coop.example.com"},
    )
    second = await _submit(
        client_factory,
        admin(),
        {"type": "member_registration", "full_name": "Ngozi Bello", "email": "ngozi@coop.example.com"},
    )

    member_ids = (
        await db_session.execute(select(Request.member_id).where(Request.id.in_([first["id"], second["id"]])))
    ).scalars().all()
    members = (await db_session.execute(select(Member).where(Member.id.in_(member_ids)))).scalars().all()
    assert len(members) == 2
    assert all(m.user_id is None for m in members)

    client = await client_factory(admin())
    resp = await client.post(
        "/api/requests/",
        json={"content": {"type": "member_registration", "full_name": "Chidi E.", "email": "chidi@coop.example.com"}},
    )
    await client.aclose()
    assert resp.status_code == 422
    assert resp.json()["code"] == "VALIDATION_ERROR"


async def test_savings_withdrawal_limited_to_one_per_year(client_factory, seed_data):
    from tests.functional.personas import member_ada

    await _submit(
        client_factory,
        member_ada(),
        {"type": "savings_withdrawal", "account_id": seed_data.ada_savings.id, "amount": "100.00"},
    )

    client = await client_factory(member_ada())
    resp = await client.post(
        "/api/requests/",
        json={"content": {"type": "savings_withdrawal", "account_id": seed_data.ada_savings.id, "amount": "100.00"}},
    )
    await client.aclose()
    assert resp.status_code == 422
    assert resp.json()["code"] == "NOT_ELIGIBLE"
