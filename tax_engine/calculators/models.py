"""Pydantic models for calculator inputs and results."""

from decimal import Decimal
from typing import Annotated, Literal

from pydantic import BaseModel, PlainSerializer

# Amounts are Decimal internally but rendered as JSON numbers
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class TaxBracket(BaseModel):
    """A single progressive bracket. Rate is a percentage."""

    min: Money
    max: Money | None = None  # None = no upper limit
    rate: Money
    deduction: Money = Decimal("0")

    model_config = {"frozen": True}


class BracketTax(BaseModel):
    """Tax contributed by one bracket."""

    bracket: TaxBracket
    taxable_income: Money
    tax: Money


class BracketTaxResult(BaseModel):
    """Result of a progressive bracket calculation."""

    total_tax: Money
    breakdown: list[BracketTax] = []


class ContributionRates(BaseModel):
    """Committed AOV/AWW parameters passed explicitly to the calculators."""

    aov_rate: Money
    aww_rate: Money
    aov_max_base: Money = Decimal("60000")

    model_config = {"frozen": True, "extra": "forbid"}


class SocialContributions(BaseModel):
    """AOV and AWW amounts for an income."""

    aov_base: Money
    aov_contribution: Money
    aww_contribution: Money

    @property
    def total(self) -> Decimal:
        return self.aov_contribution + self.aww_contribution


class TaxPreview(BaseModel):
    """Full preview of taxes and contributions for a gross income."""

    gross_income: Money
    tax_free_allowance: Money = Decimal("0")
    taxable_income: Money
    federal_tax: Money
    state_tax: Money = Decimal("0")
    local_tax: Money = Decimal("0")
    aov_contribution: Money
    aww_contribution: Money
    total_tax: Money
    net_income: Money
    effective_rate: Money
    breakdown: list[BracketTax] = []


class PeriodPreview(BaseModel):
    """A preview divided across the pay periods of a year."""

    pay_period: str
    periods_per_year: int
    gross: Money
    federal_tax: Money
    local_tax: Money
    aov_contribution: Money
    aww_contribution: Money
    total_tax: Money
    net_income: Money


CalculationMode = Literal["aggregated", "component_based", "proportional_distribution"]


class EarningComponent(BaseModel):
    """One earning line of a pay run, e.g. salary, holiday allowance or a bonus."""

    code: str
    name: str = ""
    amount: Money
    taxable: bool = True
    tax_free_allowance: Money = Decimal("0")


class ComponentTax(BaseModel):
    """Taxes attributed to one earning component."""

    code: str
    name: str = ""
    amount: Money
    taxable: bool
    tax_free_allowance: Money = Decimal("0")
    taxable_income: Money = Decimal("0")
    wage_tax: Money = Decimal("0")
    aov_contribution: Money = Decimal("0")
    aww_contribution: Money = Decimal("0")
    total_tax: Money = Decimal("0")


class ComponentTaxResult(BaseModel):
    """Totals for a set of earning components plus the per-component split."""

    gross_income: Money
    tax_free_allowance: Money
    taxable_income: Money
    wage_tax: Money
    aov_contribution: Money
    aww_contribution: Money
    total_tax: Money
    net_income: Money
    effective_rate: Money
    wage_tax_mode: CalculationMode
    aov_mode: CalculationMode
    aww_mode: CalculationMode
    components: list[ComponentTax] = []
