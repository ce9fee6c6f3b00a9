"""Shared test fixtures."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from tax_engine.calculators.models import ContributionRates, TaxBracket


def make_bracket(
    lower: str,
    upper: str | None,
    rate: str,
    deduction: str = "0",
) -> TaxBracket:
    return TaxBracket(
        min=Decimal(lower),
        max=Decimal(upper) if upper is not None else None,
        rate=Decimal(rate),
        deduction=Decimal(deduction),
    )


@pytest.fixture
def two_bracket_table() -> list[TaxBracket]:
    """Two brackets with flat per-bracket deductions."""
    return [
        make_bracket("0", "73031", "36.93", "6150"),
        make_bracket("73031", None, "49.5", "15316"),
    ]


@pytest.fixture
def sr_brackets() -> list[TaxBracket]:
    """Suriname 2025 annual wage-tax brackets."""
    return [
        make_bracket("0", "42000", "8"),
        make_bracket("42000", "84000", "18"),
        make_bracket("84000", "126000", "28"),
        make_bracket("126000", None, "38"),
    ]


@pytest.fixture
def sr_rates() -> ContributionRates:
    """AOV 4% capped at 60,000 and AWW 1.5%."""
    return ContributionRates(
        aov_rate=Decimal("4.0"),
        aww_rate=Decimal("1.5"),
        aov_max_base=Decimal("60000"),
    )


@pytest.fixture
def mock_db_pool() -> MagicMock:
    """Mock of asyncpg.Pool with context-managed acquire() and transaction().

    asyncpg's Pool.acquire() and Connection.transaction() return async context
    managers (not coroutines), so both use MagicMock with __aenter__/__aexit__.
    """
    conn = AsyncMock()
    conn.fetch.return_value = []
    conn.fetchrow.return_value = None

    tx = MagicMock()
    tx.__aenter__ = AsyncMock(return_value=None)
    tx.__aexit__ = AsyncMock(return_value=False)
    conn.transaction = MagicMock(return_value=tx)

    acm = MagicMock()
    acm.__aenter__ = AsyncMock(return_value=conn)
    acm.__aexit__ = AsyncMock(return_value=False)

    pool = MagicMock()
    pool.acquire.return_value = acm
    pool.conn = conn
    return pool
