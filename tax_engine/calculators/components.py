"""Tax split across the earning components of a pay run.

Each tax type is worked out according to the calculation mode of its rule:

``aggregated``
    Tax on the combined base; components carry no share.
``proportional_distribution``
    Tax on the combined base, shared out over the components in proportion
    to their base. Correct for progressive wage tax.
``component_based``
    Each component taxed on its own base and the results added up. Only
    exact for flat-rate taxes.

Wage tax is levied on each component's taxable income (amount less its
tax-free allowance). AOV and AWW are levied on the amount, as in the preview.
Non-taxable components attract nothing.
"""

import logging
from collections.abc import Callable, Iterable, Sequence
from datetime import date
from decimal import Decimal

from tax_engine.calculators.bracket_tax import (
    calculate_bracket_tax,
    check_amount,
    check_brackets,
    check_income,
)
from tax_engine.calculators.errors import InvalidBracketSetError, TaxCalculationError
from tax_engine.calculators.models import (
    CalculationMode,
    ComponentTax,
    ComponentTaxResult,
    ContributionRates,
    EarningComponent,
    TaxBracket,
)
from tax_engine.calculators.preview import effective_rate
from tax_engine.calculators.rates import rates_from_rules
from tax_engine.calculators.social import calculate_aov, calculate_aww
from tax_engine.calculators.tax_data import TaxRule, TaxType, select_active_rule

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")
_CENT = Decimal("0.01")
DEFAULT_MODE: CalculationMode = "proportional_distribution"
_MODES = ("aggregated", "component_based", "proportional_distribution")


def distribute(total: Decimal, weights: Sequence[Decimal]) -> list[Decimal]:
    """Share total out in proportion to weights, to the cent.

    The largest weight absorbs the rounding remainder, so the shares always
    sum to total. All shares are 0 when the weights sum to 0.
    """
    base = sum(weights, _ZERO)
    if base <= 0:
        return [_ZERO for _ in weights]

    largest = max(range(len(weights)), key=lambda i: weights[i])
    shares = [(total * weight / base).quantize(_CENT) for weight in weights]
    shares[largest] = _ZERO
    shares[largest] = total - sum(shares, _ZERO)
    return shares


def _apply_mode(
    mode: CalculationMode,
    bases: list[Decimal],
    tax: Callable[[Decimal], Decimal],
) -> tuple[Decimal, list[Decimal]]:
    """Return the total tax and the per-component shares for one tax type."""
    if mode not in _MODES:
        raise TaxCalculationError(f"Unknown calculation mode: {mode}")
    if mode == "component_based":
        shares = [tax(base) for base in bases]
        return sum(shares, _ZERO), shares

    total = tax(sum(bases, _ZERO))
    if mode == "aggregated":
        return total, [_ZERO for _ in bases]
    return total, distribute(total, bases)


def calculate_component_taxes(
    components: Iterable[EarningComponent],
    brackets: Iterable[TaxBracket] | None,
    rates: ContributionRates,
    wage_tax_mode: CalculationMode = DEFAULT_MODE,
    aov_mode: CalculationMode = DEFAULT_MODE,
    aww_mode: CalculationMode = DEFAULT_MODE,
) -> ComponentTaxResult:
    """Calculate wage tax, AOV and AWW for a set of earning components.

    Args:
        components: Earning lines; at least one is required.
        brackets: Wage-tax brackets.
        rates: AOV/AWW rates and the AOV base cap.
        wage_tax_mode: How wage tax is split over the components.
        aov_mode: How AOV is split over the components.
        aww_mode: How AWW is split over the components.

    Returns:
        ComponentTaxResult with totals and one ComponentTax per component,
        in input order.

    Raises:
        TaxCalculationError: no components, a negative amount or allowance,
            an unknown mode, or invalid brackets or rates.
    """
    components = list(components)
    if not components:
        raise TaxCalculationError("At least one earning component is required.")
    ordered = check_brackets(brackets)

    amounts = [check_income(c.amount) for c in components]
    allowances = [
        check_amount(c.tax_free_allowance, f"Tax-free allowance of {c.code}")
        if c.taxable
        else _ZERO
        for c in components
    ]
    contribution_bases = [
        amount if c.taxable else _ZERO for c, amount in zip(components, amounts)
    ]
    taxable_incomes = [
        max(_ZERO, base - allowance) for base, allowance in zip(contribution_bases, allowances)
    ]

    if wage_tax_mode == "component_based":
        logger.warning("Component-based wage tax: each component starts at the lowest bracket")

    wage_total, wage_shares = _apply_mode(
        wage_tax_mode, taxable_incomes, lambda base: calculate_bracket_tax(base, ordered).total_tax
    )
    aov_total, aov_shares = _apply_mode(
        aov_mode,
        contribution_bases,
        lambda base: calculate_aov(base, rates.aov_rate, rates.aov_max_base),
    )
    aww_total, aww_shares = _apply_mode(
        aww_mode, contribution_bases, lambda base: calculate_aww(base, rates.aww_rate)
    )

    lines = [
        ComponentTax(
            code=component.code,
            name=component.name,
            amount=amount,
            taxable=component.taxable,
            tax_free_allowance=allowance,
            taxable_income=taxable,
            wage_tax=wage,
            aov_contribution=aov,
            aww_contribution=aww,
            total_tax=wage + aov + aww,
        )
        for component, amount, allowance, taxable, wage, aov, aww in zip(
            components, amounts, allowances, taxable_incomes, wage_shares, aov_shares, aww_shares
        )
    ]

    gross = sum(amounts, _ZERO)
    total_tax = wage_total + aov_total + aww_total
    logger.debug(
        "Component taxes over %d component(s): wage %s (%s), AOV %s (%s), AWW %s (%s)",
        len(lines),
        wage_total,
        wage_tax_mode,
        aov_total,
        aov_mode,
        aww_total,
        aww_mode,
    )
    return ComponentTaxResult(
        gross_income=gross,
        tax_free_allowance=sum(allowances, _ZERO),
        taxable_income=sum(taxable_incomes, _ZERO),
        wage_tax=wage_total,
        aov_contribution=aov_total,
        aww_contribution=aww_total,
        total_tax=total_tax,
        net_income=gross - total_tax,
        effective_rate=effective_rate(total_tax, gross),
        wage_tax_mode=wage_tax_mode,
        aov_mode=aov_mode,
        aww_mode=aww_mode,
        components=lines,
    )


def component_taxes_from_rules(
    components: Iterable[EarningComponent],
    rules: Iterable[TaxRule],
    on_date: date,
) -> ComponentTaxResult:
    """Split taxes over components using the rules active on a date.

    Each tax type follows its rule's calculation mode; a missing AOV or AWW
    rule uses the configured rate and the default mode.

    Raises:
        InvalidBracketSetError: no active wage-tax rule.
        AmbiguousTaxRuleError: more than one rule of a type is active.
    """
    rules = list(rules)
    wage_rule = select_active_rule(rules, TaxType.WAGE_TAX, on_date)
    if wage_rule is None:
        raise InvalidBracketSetError(f"No active wage-tax rule on {on_date.isoformat()}.")
    aov_rule = select_active_rule(rules, TaxType.AOV, on_date)
    aww_rule = select_active_rule(rules, TaxType.AWW, on_date)

    return calculate_component_taxes(
        components,
        wage_rule.brackets,
        rates_from_rules(rules, on_date),
        wage_tax_mode=wage_rule.calculation_mode,
        aov_mode=aov_rule.calculation_mode if aov_rule is not None else DEFAULT_MODE,
        aww_mode=aww_rule.calculation_mode if aww_rule is not None else DEFAULT_MODE,
    )
