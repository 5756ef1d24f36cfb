"""Salary arithmetic on Decimal, quantized to paise/cents.

Percentage components are a percent of the basic salary.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping, NamedTuple

CENTS = Decimal("0.01")


class SalaryBreakdown(NamedTuple):
    basic_salary: Decimal
    total_allowances: Decimal
    gross_salary: Decimal
    total_deductions: Decimal
    net_salary: Decimal


def to_money(value: Any) -> Decimal:
    """Coerce *value* to a 2-dp Decimal. Floats go through ``str`` first."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def _field(component: Any, name: str) -> Any:
    if isinstance(component, Mapping):
        return component.get(name)
    return getattr(component, name, None)


def component_amount(basic_salary: Decimal, component: Any) -> Decimal:
    """Resolve one allowance/deduction line to an absolute amount."""
    amount = Decimal(str(_field(component, "amount") or 0))
    if _field(component, "is_percentage"):
        return to_money(basic_salary * amount / Decimal(100))
    return to_money(amount)


def calculate_salary(
    basic_salary: Any,
    allowances: Iterable[Any] = (),
    deductions: Iterable[Any] = (),
) -> SalaryBreakdown:
    """gross = basic + allowances; net = gross - deductions."""
    basic = to_money(basic_salary)
    total_allowances = sum(
        (component_amount(basic, a) for a in allowances), Decimal("0.00"),
    )
    total_deductions = sum(
        (component_amount(basic, d) for d in deductions), Decimal("0.00"),
    )
    gross = to_money(basic + total_allowances)
    return SalaryBreakdown(
        basic_salary=basic,
        total_allowances=to_money(total_allowances),
        gross_salary=gross,
        total_deductions=to_money(total_deductions),
        net_salary=to_money(gross - total_deductions),
    )
