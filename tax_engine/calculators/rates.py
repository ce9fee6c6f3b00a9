"""Committed vs. draft contribution rates.

Edits go into a draft; calculators only ever see the committed
ContributionRates that are passed to them explicitly.
"""

import logging
from collections.abc import Iterable
from datetime import date
from typing import Any

from config.settings import settings
from tax_engine.calculators.models import ContributionRates
from tax_engine.calculators.tax_data import TaxRule, TaxType, select_active_rule

logger = logging.getLogger(__name__)


def default_rates() -> ContributionRates:
    """Contribution rates from settings."""
    return ContributionRates(
        aov_rate=settings.default_aov_rate,
        aww_rate=settings.default_aww_rate,
        aov_max_base=settings.default_aov_max_base,
    )


def rates_from_rules(rules: Iterable[TaxRule], on_date: date) -> ContributionRates:
    """Build contribution rates from the active AOV/AWW rules.

    Falls back to the configured defaults for any rule that is missing or
    carries no rate.
    """
    rules = list(rules)
    fallback = default_rates()
    aov = select_active_rule(rules, TaxType.AOV, on_date)
    aww = select_active_rule(rules, TaxType.AWW, on_date)

    aov_rate = aov.contribution_rate if aov is not None else None
    aww_rate = aww.contribution_rate if aww is not None else None
    if aov_rate is None or aww_rate is None:
        logger.info("No active AOV/AWW rate on %s; using configured defaults", on_date)

    return ContributionRates(
        aov_rate=aov_rate if aov_rate is not None else fallback.aov_rate,
        aww_rate=aww_rate if aww_rate is not None else fallback.aww_rate,
        aov_max_base=(
            aov.max_base if aov is not None and aov.max_base is not None else fallback.aov_max_base
        ),
    )


class RateDraft:
    """An editable copy of committed contribution rates."""

    def __init__(self, committed: ContributionRates) -> None:
        self._committed = committed
        self._draft = committed

    @property
    def committed(self) -> ContributionRates:
        return self._committed

    @property
    def draft(self) -> ContributionRates:
        return self._draft

    @property
    def is_dirty(self) -> bool:
        return self._draft != self._committed

    def edit(self, **changes: Any) -> ContributionRates:
        """Apply field changes to the draft and return it."""
        self._draft = ContributionRates.model_validate(
            {**self._draft.model_dump(), **changes}
        )
        return self._draft

    def commit(self) -> ContributionRates:
        """Make the draft the committed value."""
        self._committed = self._draft
        return self._committed

    def discard(self) -> ContributionRates:
        """Drop draft edits."""
        self._draft = self._committed
        return self._draft
