# This project was developed with assistance from AI tools.
"""Tests for request body schemas."""

from decimal import Decimal

import pytest
from db.enums import RequestAction, RequestType
from pydantic import ValidationError

from src.schemas import Pagination
from src.schemas.request import (
    LoanApplicationContent,
    ProcessRequest,
    RequestCreate,
    SavingsWithdrawalContent,
    parse_content,
)


class TestProcessRequest:
    @pytest.mark.parametrize("raw", ["completed", "Complete", " COMPLETE "])
    def test_completed_spellings_mean_complete(self, raw):
        assert ProcessRequest(action=raw).action == RequestAction.COMPLETE

    def test_other_actions_pass_through(self):
        assert ProcessRequest(action="approve").action == RequestAction.APPROVE

    def test_unknown_action_rejected(self):
        with pytest.raises(ValidationError):
            ProcessRequest(action="escalate")

    def test_level_must_be_positive(self):
        with pytest.raises(ValidationError):
            ProcessRequest(action="review", level=0)


class TestRequestContent:
    def test_type_selects_content_model(self):
        body = RequestCreate(
            content={"type": "savings_withdrawal", "account_id": 3, "amount": "250.50"}
        )
        assert isinstance(body.content, SavingsWithdrawalContent)
        assert body.request_type == RequestType.SAVINGS_WITHDRAWAL
        assert body.content.amount == Decimal("250.50")

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            RequestCreate(content={"type": "mortgage"})

    @pytest.mark.parametrize("amount", ["0", "-1", "10.001"])
    def test_bad_money_rejected(self, amount):
        with pytest.raises(ValidationError):
            RequestCreate(content={"type": "savings_withdrawal", "account_id": 3, "amount": amount})

    def test_stored_content_parses_back(self):
        content = {"type": "loan_application", "amount": "120000.00", "tenure_months": 12}
        parsed = parse_content(content)
        assert isinstance(parsed, LoanApplicationContent)
        assert parsed.interest_rate is None
        assert parsed.model_dump(mode="json")["amount"] == "120000.00"


@pytest.mark.parametrize(
    ("total", "page", "limit", "offset", "has_more"),
    [(0, 1, 20, 0, False), (45, 2, 20, 20, True), (40, 2, 20, 20, False)],
)
def test_pagination_for_page(total, page, limit, offset, has_more):
    pagination = Pagination.for_page(total, page, limit)
    assert pagination.offset == offset
    assert pagination.has_more is has_more
