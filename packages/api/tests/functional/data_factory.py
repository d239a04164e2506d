# This project was developed with assistance from AI tools.
"""Centralized mock data portfolio for functional tests.

Produces consistent ORM objects shared across all persona tests:
- 2 members (Ada, Bola), each with a personal plan account
- 3 requests at different points of their approval chains

All IDs are fixed so persona tests can reference them by number.
"""

from db.enums import AccountKind, RequestStatus, RequestType

from ..factories import NOW, make_account, make_member, make_request
from .personas import ADA_USER_ID, BOLA_USER_ID

ADA_MEMBER_ID = 10
BOLA_MEMBER_ID = 20

# ---------------------------------------------------------------------------
# Members and accounts
# ---------------------------------------------------------------------------


def make_member_ada():
    return make_member(id=ADA_MEMBER_ID, user_id=ADA_USER_ID)


def make_member_bola():
    return make_member(id=BOLA_MEMBER_ID, user_id=BOLA_USER_ID, full_name="Bola Ade", email="bola@coop.example.com")


def make_account_ada(balance="5000.00"):
    return make_account(
        id=7,
        member_id=ADA_MEMBER_ID,
        kind=AccountKind.PERSONAL_PLAN,
        balance=balance,
        name="School fees",
        created_at=NOW,
        updated_at=NOW,
    )


def make_account_bola():
    return make_account(
        id=8,
        member_id=BOLA_MEMBER_ID,
        kind=AccountKind.SAVINGS,
        balance="1200.00",
        created_at=NOW,
        updated_at=NOW,
    )


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


def make_request_ada_withdrawal(**overrides):
    """101: Ada's 5,000 withdrawal from account 7, waiting on the treasurer."""
    fields = {
        "id": 101,
        "request_type": RequestType.PERSONAL_SAVINGS_WITHDRAWAL,
        "member_id": ADA_MEMBER_ID,
        "initiator_id": ADA_USER_ID,
        "account_id": 7,
    }
    fields.update(overrides)
    return make_request(**fields)


def make_request_ada_loan():
    """102: Ada's loan application, reviewed and waiting on the chairman."""
    return make_request(
        id=102,
        request_type=RequestType.LOAN_APPLICATION,
        status=RequestStatus.IN_REVIEW,
        current_level=2,
        acted_levels=(1,),
        member_id=ADA_MEMBER_ID,
        initiator_id=ADA_USER_ID,
        content={"type": "loan_application", "amount": "120000.00", "tenure_months": 12},
    )


def make_request_bola_plan():
    """201: Bola's personal plan creation, still pending."""
    return make_request(
        id=201,
        request_type=RequestType.PERSONAL_SAVINGS_CREATION,
        member_id=BOLA_MEMBER_ID,
        initiator_id=BOLA_USER_ID,
        content={"type": "personal_savings_creation", "plan_name": "Rent 2027"},
    )


def ada_requests():
    return [make_request_ada_withdrawal(), make_request_ada_loan()]


def bola_requests():
    return [make_request_bola_plan()]


def all_requests():
    return ada_requests() + bola_requests()
