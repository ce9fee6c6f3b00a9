"""Tax rule types, default Suriname rules, and active-rule selection.

Default rules live in ``config/tax_rules.yaml`` so the seed script and the CLI
preview read the same data. At runtime the API reads rules from the database.
"""

from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Literal

from pydantic import BaseModel

from config import load_yaml_config
from tax_engine.calculators.bracket_tax import check_brackets
from tax_engine.calculators.errors import AmbiguousTaxRuleError, InvalidBracketSetError
from tax_engine.calculators.models import CalculationMode, Money, TaxBracket


class TaxType(str, Enum):
    """Tax regimes a rule can describe."""

    WAGE_TAX = "wage-tax"
    AOV = "aov"
    AWW = "aww"


# draft: a new version not yet in use; archived: retired, kept for history
RuleStatus = Literal["draft", "active", "inactive", "archived"]


class TaxRule(BaseModel):
    """A tax regime with either a flat rate or a bracket table."""

    name: str
    tax_type: TaxType
    description: str = ""
    status: RuleStatus = "active"
    effective_date: date
    rate: Money | None = None
    max_base: Money | None = None  # AOV base cap
    employer_contribution: Money | None = None
    employee_contribution: Money | None = None
    calculation_mode: CalculationMode = "proportional_distribution"
    brackets: list[TaxBracket] = []

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @property
    def contribution_rate(self) -> Decimal | None:
        """Flat percentage for AOV/AWW rules: rate, else the employee share."""
        if self.rate is not None:
            return self.rate
        return self.employee_contribution


def validate_bracket_table(brackets: Iterable[TaxBracket] | None) -> list[TaxBracket]:
    """Check a bracket table for overlap, gaps, and unbounded middle brackets.

    Stricter than the calculator's own checks; used wherever a table is
    written to the store.

    Returns:
        The brackets sorted ascending by min.
    """
    ordered = check_brackets(brackets)
    for current, following in zip(ordered, ordered[1:]):
        if current.max is None:
            raise InvalidBracketSetError(
                f"Only the last bracket may be unbounded (bracket at {current.min})."
            )
        if current.max > following.min:
            raise InvalidBracketSetError(
                f"Brackets overlap: {current.min}-{current.max} and {following.min}."
            )
        if current.max < following.min:
            raise InvalidBracketSetError(
                f"Gap between brackets: {current.max} to {following.min}."
            )
    for bracket in ordered:
        if bracket.max is not None and bracket.max == bracket.min:
            raise InvalidBracketSetError(f"Bracket at {bracket.min} has an empty range.")
    return ordered


def select_active_rule(
    rules: Iterable[TaxRule],
    tax_type: TaxType,
    on_date: date,
) -> TaxRule | None:
    """Return the active rule of a type in effect on a date.

    The latest effective_date not after on_date wins. Returns None when no
    rule matches.

    Raises:
        AmbiguousTaxRuleError: two active rules share the winning date.
    """
    candidates = [
        rule
        for rule in rules
        if rule.tax_type == tax_type and rule.is_active and rule.effective_date <= on_date
    ]
    if not candidates:
        return None

    latest = max(rule.effective_date for rule in candidates)
    winners = [rule for rule in candidates if rule.effective_date == latest]
    if len(winners) > 1:
        names = ", ".join(rule.name for rule in winners)
        raise AmbiguousTaxRuleError(
            f"Multiple active {tax_type.value} rules effective {latest.isoformat()}: {names}"
        )
    return winners[0]


class FieldChange(BaseModel):
    """A rule attribute that differs between two versions."""

    field: str
    old: str | None = None
    new: str | None = None


class BracketChange(BaseModel):
    """A bracket present in both versions (matched on min) whose terms changed."""

    min: Money
    old: TaxBracket
    new: TaxBracket


class RuleComparison(BaseModel):
    """Differences between two versions of a tax rule."""

    field_changes: list[FieldChange] = []
    brackets_added: list[TaxBracket] = []
    brackets_removed: list[TaxBracket] = []
    brackets_modified: list[BracketChange] = []
    has_breaking_changes: bool = False


_COMPARED_FIELDS = (
    "name",
    "tax_type",
    "description",
    "effective_date",
    "rate",
    "max_base",
    "employer_contribution",
    "employee_contribution",
    "calculation_mode",
)


def _as_text(value: object) -> str | None:
    if value is None:
        return None
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def compare_rules(old: TaxRule, new: TaxRule) -> RuleComparison:
    """Diff two versions of a rule: attributes, then brackets keyed by min.

    A change is breaking when the tax type changes or a bracket disappears.
    """
    field_changes = [
        FieldChange(
            field=field,
            old=_as_text(getattr(old, field)),
            new=_as_text(getattr(new, field)),
        )
        for field in _COMPARED_FIELDS
        if getattr(old, field) != getattr(new, field)
    ]

    old_brackets = {bracket.min: bracket for bracket in old.brackets}
    new_brackets = {bracket.min: bracket for bracket in new.brackets}
    added = [b for lower, b in sorted(new_brackets.items()) if lower not in old_brackets]
    removed = [b for lower, b in sorted(old_brackets.items()) if lower not in new_brackets]
    modified = [
        BracketChange(min=lower, old=old_brackets[lower], new=bracket)
        for lower, bracket in sorted(new_brackets.items())
        if lower in old_brackets and old_brackets[lower] != bracket
    ]

    return RuleComparison(
        field_changes=field_changes,
        brackets_added=added,
        brackets_removed=removed,
        brackets_modified=modified,
        has_breaking_changes=bool(removed) or old.tax_type != new.tax_type,
    )


def load_default_rules(filename: str = "tax_rules.yaml") -> list[TaxRule]:
    """Load the default rule set from a YAML file in config/."""
    data = load_yaml_config(filename)
    return [TaxRule.model_validate(entry) for entry in data["tax_rules"]]


DEFAULT_TAX_RULES: list[TaxRule] = load_default_rules()
