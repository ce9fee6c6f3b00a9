"""Preview composer: wage tax, local tax, and AOV/AWW in one summary."""

import logging
from collections.abc import Iterable
from datetime import date
from decimal import Decimal

from config.settings import settings
from tax_engine.calculators.bracket_tax import calculate_bracket_tax, check_amount, check_income
from tax_engine.calculators.errors import InvalidBracketSetError, TaxCalculationError
from tax_engine.calculators.models import (
    ContributionRates,
    PeriodPreview,
    TaxBracket,
    TaxPreview,
)
from tax_engine.calculators.rates import rates_from_rules
from tax_engine.calculators.social import calculate_social_contributions
from tax_engine.calculators.tax_data import TaxRule, TaxType, select_active_rule

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")

PAY_PERIODS: dict[str, int] = {
    "weekly": 52,
    "biweekly": 26,
    "semimonthly": 24,
    "monthly": 12,
}


def effective_rate(total_tax: Decimal, gross_income: Decimal) -> Decimal:
    """Total tax as a percentage of gross, 0 when gross is 0."""
    if gross_income <= 0:
        return _ZERO
    return round(total_tax / gross_income * _HUNDRED, 2)


def compose_preview(
    gross_income: Decimal,
    brackets: Iterable[TaxBracket] | None,
    rates: ContributionRates,
    local_tax_enabled: bool = False,
    local_tax_rate: Decimal | None = None,
    tax_free_allowance: Decimal = _ZERO,
) -> TaxPreview:
    """Compose a full tax preview for a gross income.

    Args:
        gross_income: Gross income (must be >= 0).
        brackets: Wage-tax brackets.
        rates: AOV/AWW rates and the AOV base cap.
        local_tax_enabled: Whether to add the flat local tax.
        local_tax_rate: Local tax percentage; defaults to settings.local_tax_rate.
        tax_free_allowance: Amount of gross exempt from wage tax.

    Returns:
        TaxPreview with every component, totals, and the bracket breakdown.
    """
    gross_income = check_income(gross_income)
    tax_free_allowance = check_amount(tax_free_allowance, "Tax-free allowance")

    taxable_income = max(_ZERO, gross_income - tax_free_allowance)
    wage_tax = calculate_bracket_tax(taxable_income, brackets)

    local_tax = _ZERO
    if local_tax_enabled:
        rate = check_amount(
            settings.local_tax_rate if local_tax_rate is None else local_tax_rate,
            "Local tax rate",
        )
        local_tax = gross_income * rate / _HUNDRED

    social = calculate_social_contributions(gross_income, rates)
    state_tax = _ZERO
    total_tax = (
        wage_tax.total_tax
        + state_tax
        + local_tax
        + social.aov_contribution
        + social.aww_contribution
    )

    return TaxPreview(
        gross_income=gross_income,
        tax_free_allowance=tax_free_allowance,
        taxable_income=taxable_income,
        federal_tax=wage_tax.total_tax,
        state_tax=state_tax,
        local_tax=local_tax,
        aov_contribution=social.aov_contribution,
        aww_contribution=social.aww_contribution,
        total_tax=total_tax,
        net_income=gross_income - total_tax,
        effective_rate=effective_rate(total_tax, gross_income),
        breakdown=wage_tax.breakdown,
    )


def preview_per_period(preview: TaxPreview, pay_period: str = "monthly") -> PeriodPreview:
    """Divide an annual preview evenly across pay periods."""
    if pay_period not in PAY_PERIODS:
        valid = ", ".join(sorted(PAY_PERIODS))
        raise TaxCalculationError(f"Invalid pay period: {pay_period}. Must be one of: {valid}")

    periods = PAY_PERIODS[pay_period]
    return PeriodPreview(
        pay_period=pay_period,
        periods_per_year=periods,
        gross=preview.gross_income / periods,
        federal_tax=preview.federal_tax / periods,
        local_tax=preview.local_tax / periods,
        aov_contribution=preview.aov_contribution / periods,
        aww_contribution=preview.aww_contribution / periods,
        total_tax=preview.total_tax / periods,
        net_income=preview.net_income / periods,
    )


def preview_from_rules(
    gross_income: Decimal,
    rules: Iterable[TaxRule],
    on_date: date,
    local_tax_enabled: bool = False,
    local_tax_rate: Decimal | None = None,
    tax_free_allowance: Decimal = _ZERO,
) -> TaxPreview:
    """Preview against the wage-tax, AOV and AWW rules active on a date.

    Raises:
        InvalidBracketSetError: no active wage-tax rule, or it has no brackets.
        AmbiguousTaxRuleError: more than one rule of a type is active.
    """
    rules = list(rules)
    wage_rule = select_active_rule(rules, TaxType.WAGE_TAX, on_date)
    if wage_rule is None:
        raise InvalidBracketSetError(f"No active wage-tax rule on {on_date.isoformat()}.")

    logger.debug("Previewing %s against %s", gross_income, wage_rule.name)
    return compose_preview(
        gross_income,
        wage_rule.brackets,
        rates_from_rules(rules, on_date),
        local_tax_enabled=local_tax_enabled,
        local_tax_rate=local_tax_rate,
        tax_free_allowance=tax_free_allowance,
    )
