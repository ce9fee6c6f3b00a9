"""AOV and AWW social contribution calculators."""

from decimal import Decimal

from tax_engine.calculators.bracket_tax import check_amount, check_income
from tax_engine.calculators.models import ContributionRates, SocialContributions

_HUNDRED = Decimal("100")
DEFAULT_AOV_MAX_BASE = Decimal("60000")


def calculate_aov(
    income: Decimal,
    rate: Decimal,
    max_base: Decimal = DEFAULT_AOV_MAX_BASE,
) -> Decimal:
    """Calculate the AOV contribution on income capped at max_base."""
    income = check_income(income)
    rate = check_amount(rate, "AOV rate")
    max_base = check_amount(max_base, "AOV max base")
    return min(income, max_base) * rate / _HUNDRED


def calculate_aww(income: Decimal, rate: Decimal) -> Decimal:
    """Calculate the AWW contribution. No cap applies."""
    income = check_income(income)
    rate = check_amount(rate, "AWW rate")
    return income * rate / _HUNDRED


def calculate_social_contributions(
    income: Decimal,
    rates: ContributionRates,
) -> SocialContributions:
    """Calculate both AOV and AWW for an income.

    Args:
        income: Gross income (must be >= 0).
        rates: Committed AOV/AWW rates and the AOV base cap.

    Returns:
        SocialContributions with the capped AOV base and both amounts.
    """
    income = check_income(income)
    max_base = check_amount(rates.aov_max_base, "AOV max base")
    return SocialContributions(
        aov_base=min(income, max_base),
        aov_contribution=calculate_aov(income, rates.aov_rate, max_base),
        aww_contribution=calculate_aww(income, rates.aww_rate),
    )
