"""Progressive bracket tax calculator with per-bracket breakdown."""

import logging
from collections.abc import Iterable
from decimal import Decimal

from tax_engine.calculators.errors import (
    InvalidBracketSetError,
    InvalidIncomeError,
    TaxCalculationError,
)
from tax_engine.calculators.models import BracketTax, BracketTaxResult, TaxBracket

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


def check_income(income: Decimal) -> Decimal:
    """Return income as a Decimal, rejecting negative or non-finite values."""
    income = Decimal(income)
    if not income.is_finite():
        raise InvalidIncomeError(f"Income must be a finite number, got {income}.")
    if income < 0:
        raise InvalidIncomeError("Income must be non-negative.")
    return income


def check_amount(value: Decimal, name: str) -> Decimal:
    """Return a rate, cap or allowance as a Decimal, rejecting negative or non-finite values."""
    value = Decimal(value)
    if not value.is_finite() or value < 0:
        raise TaxCalculationError(f"{name} must be a finite, non-negative number, got {value}.")
    return value


def check_brackets(brackets: Iterable[TaxBracket] | None) -> list[TaxBracket]:
    """Sort brackets by min and reject per-bracket nonsense.

    Overlap and gaps between brackets are not checked here; see
    ``tax_data.validate_bracket_table``.
    """
    if not brackets:
        raise InvalidBracketSetError("At least one tax bracket is required.")

    ordered = sorted(brackets, key=lambda b: b.min)
    for bracket in ordered:
        if bracket.rate < 0:
            raise InvalidBracketSetError(f"Bracket starting at {bracket.min} has a negative rate.")
        if bracket.deduction < 0:
            raise InvalidBracketSetError(
                f"Bracket starting at {bracket.min} has a negative deduction."
            )
        if bracket.max is not None and bracket.max < bracket.min:
            raise InvalidBracketSetError(
                f"Bracket max {bracket.max} is below its min {bracket.min}."
            )
    return ordered


def calculate_bracket_tax(
    income: Decimal,
    brackets: Iterable[TaxBracket] | None,
) -> BracketTaxResult:
    """Calculate progressive tax with a bracket-by-bracket breakdown.

    Each bracket's deduction is a flat offset subtracted from that bracket's
    tax, and a bracket never contributes less than zero.

    Args:
        income: Taxable income (must be >= 0).
        brackets: Brackets in any order; evaluated ascending by min.

    Returns:
        BracketTaxResult with total_tax and the ordered breakdown.

    Raises:
        InvalidIncomeError: income is negative or not finite.
        InvalidBracketSetError: brackets are empty or malformed.
    """
    income = check_income(income)
    ordered = check_brackets(brackets)

    remaining = income
    total_tax = _ZERO
    breakdown: list[BracketTax] = []

    for bracket in ordered:
        if remaining <= 0:
            break
        if income <= bracket.min:
            break

        upper = bracket.max if bracket.max is not None else income
        taxable = max(_ZERO, min(remaining, upper - bracket.min))
        tax = max(_ZERO, taxable * bracket.rate / _HUNDRED - bracket.deduction)

        total_tax += tax
        remaining -= taxable
        breakdown.append(BracketTax(bracket=bracket, taxable_income=taxable, tax=tax))

    logger.debug("Bracket tax on %s: %s over %d bracket(s)", income, total_tax, len(breakdown))
    return BracketTaxResult(total_tax=total_tax, breakdown=breakdown)
