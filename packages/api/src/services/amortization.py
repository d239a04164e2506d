# This project was developed with assistance from AI tools.
"""Reducing-balance loan amortization.

Pure math, no I/O. Interest for each month is charged on the principal
still outstanding; the installment is the standard annuity payment. Each
month is rounded to cents and the final installment absorbs the rounding
so the schedule sums exactly to principal plus interest.
"""

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from ..core.money import ZERO, to_money


@dataclass(frozen=True)
class Installment:
    sequence_number: int
    due_date: date
    expected_amount: Decimal
    principal_portion: Decimal
    interest_portion: Decimal


@dataclass(frozen=True)
class AmortizationPlan:
    monthly_payment: Decimal
    total_interest: Decimal
    total_amount: Decimal
    installments: list[Installment]


def add_months(start: date, months: int) -> date:
    """Same day ``months`` later, clamped to the end of shorter months."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def monthly_rate(annual_rate_percent) -> Decimal:
    return Decimal(str(annual_rate_percent)) / Decimal(1200)


def monthly_payment(principal, annual_rate_percent, tenure_months: int) -> Decimal:
    """Annuity installment ``P * r(1+r)^n / ((1+r)^n - 1)``; ``P / n`` when r is 0."""
    if tenure_months <= 0:
        raise ValueError("tenure_months must be positive")
    principal = to_money(principal)
    rate = monthly_rate(annual_rate_percent)

    if rate == 0:
        return to_money(principal / tenure_months)

    compound = (1 + rate) ** tenure_months
    return to_money(principal * rate * compound / (compound - 1))


def build_schedule(
    principal,
    annual_rate_percent,
    tenure_months: int,
    start: date,
) -> AmortizationPlan:
    """Full installment plan for a loan disbursed on ``start``.

    The first installment falls due one month after ``start``.
    """
    principal = to_money(principal)
    rate = monthly_rate(annual_rate_percent)
    payment = monthly_payment(principal, annual_rate_percent, tenure_months)

    installments = []
    outstanding = principal
    total_interest = ZERO
    for sequence in range(1, tenure_months + 1):
        interest = to_money(outstanding * rate)
        if sequence == tenure_months:
            principal_part = outstanding
        else:
            principal_part = min(payment - interest, outstanding)
        outstanding -= principal_part
        total_interest += interest
        installments.append(
            Installment(
                sequence_number=sequence,
                due_date=add_months(start, sequence),
                expected_amount=principal_part + interest,
                principal_portion=principal_part,
                interest_portion=interest,
            )
        )

    return AmortizationPlan(
        monthly_payment=payment,
        total_interest=total_interest,
        total_amount=principal + total_interest,
        installments=installments,
    )
