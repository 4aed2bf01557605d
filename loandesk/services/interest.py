"""Flat-rate simple interest.

The annual rate is charged once over the whole term, whatever its length:

    total_interest  = principal * rate / 100
    total_repayment = principal + total_interest
    monthly_payment = total_repayment / months

Values stay unrounded Decimals; rounding happens only in ``rounded()`` for
display.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext

from loandesk.core.errors import ValidationError


TWOPLACES = Decimal("0.01")
STORAGE_PLACES = Decimal("0.000001")


def as_decimal(value, field_name: str) -> Decimal:
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError) as exc:
            raise ValidationError.for_field(field_name, "Must be a number") from exc
    if not result.is_finite():
        raise ValidationError.for_field(field_name, "Must be a finite number")
    return result


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(TWOPLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class RepaymentSchedule:
    principal: Decimal
    annual_rate_percent: Decimal
    months: int
    total_interest: Decimal
    total_repayment: Decimal
    monthly_payment: Decimal

    def rounded(self) -> "RepaymentSchedule":
        return RepaymentSchedule(
            principal=quantize_money(self.principal),
            annual_rate_percent=self.annual_rate_percent,
            months=self.months,
            total_interest=quantize_money(self.total_interest),
            total_repayment=quantize_money(self.total_repayment),
            monthly_payment=quantize_money(self.monthly_payment),
        )


def compute_schedule(principal, annual_rate_percent, months: int) -> RepaymentSchedule:
    p = as_decimal(principal, "principal")
    r = as_decimal(annual_rate_percent, "annual_rate_percent")
    if p <= 0:
        raise ValidationError.for_field("principal", "Must be greater than zero")
    if r < 0:
        raise ValidationError.for_field("annual_rate_percent", "Must not be negative")
    if isinstance(months, bool) or not isinstance(months, int) or months <= 0:
        raise ValidationError.for_field("months", "Must be a positive whole number of months")

    with localcontext() as ctx:
        ctx.prec = 34
        total_interest = p * r / Decimal(100)
        total_repayment = p + total_interest
        monthly_payment = total_repayment / Decimal(months)

    return RepaymentSchedule(
        principal=p,
        annual_rate_percent=r,
        months=months,
        total_interest=total_interest,
        total_repayment=total_repayment,
        monthly_payment=monthly_payment,
    )


def add_months(value: date, months: int = 1) -> date:
    """Same day ``months`` later, clamped to the end of shorter months."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)
