"""Pydantic models for tax-rule database rows."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from tax_engine.calculators.tax_data import RuleComparison, TaxRule


class TaxRuleRecord(TaxRule):
    """A stored tax rule (maps to tax_rules plus its tax_brackets rows).

    Versions of a rule share its name; source_rule_id points at the version a
    draft was copied from.
    """

    id: UUID
    version: int = 1
    source_rule_id: UUID | None = None
    change_summary: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None


class RuleVersionComparison(BaseModel):
    """Differences between two stored rule versions."""

    from_id: UUID
    from_version: int
    to_id: UUID
    to_version: int
    changes: RuleComparison
