"""Tests for the async tax-rule repository (asyncpg mocked)."""

from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from tax_engine.calculators.errors import (
    InvalidBracketSetError,
    TaxCalculationError,
    TaxRuleStateError,
)
from tax_engine.calculators.models import TaxBracket
from tax_engine.calculators.tax_data import TaxRule, TaxType
from tax_engine.db.tax_rules import (
    archive_tax_rule,
    create_tax_rule,
    create_tax_rule_version,
    delete_tax_rule,
    get_tax_rule,
    list_active_rules,
    list_tax_rule_versions,
    list_tax_rules,
    publish_tax_rule,
    update_tax_rule,
)


def _rule_row(**overrides: object) -> dict[str, object]:
    row: dict[str, object] = {
        "id": uuid4(),
        "name": "Suriname Wage Tax 2025",
        "tax_type": "wage-tax",
        "description": "",
        "status": "active",
        "effective_date": date(2025, 1, 1),
        "rate": None,
        "max_base": None,
        "employer_contribution": None,
        "employee_contribution": None,
        "calculation_mode": "proportional_distribution",
        "version": 1,
        "source_rule_id": None,
        "change_summary": "",
        "created_at": datetime(2025, 1, 1, tzinfo=timezone.utc),
        "updated_at": datetime(2025, 1, 1, tzinfo=timezone.utc),
    }
    row.update(overrides)
    return row


def _bracket_row(rule_id: object, lower: str, upper: str | None, rate: str) -> dict[str, object]:
    return {
        "tax_rule_id": rule_id,
        "income_min": Decimal(lower),
        "income_max": Decimal(upper) if upper is not None else None,
        "rate": Decimal(rate),
        "deduction": Decimal("0"),
    }


def _wage_rule(brackets: list[TaxBracket]) -> TaxRule:
    return TaxRule(
        name="Suriname Wage Tax 2025",
        tax_type=TaxType.WAGE_TAX,
        effective_date=date(2025, 1, 1),
        brackets=brackets,
    )


@pytest.mark.asyncio
async def test_create_writes_rule_and_sorted_brackets(
    mock_db_pool: MagicMock, sr_brackets: list[TaxBracket]
) -> None:
    row = _rule_row()
    mock_db_pool.conn.fetchrow.return_value = row

    record = await create_tax_rule(mock_db_pool, _wage_rule(list(reversed(sr_brackets))))

    assert record.id == row["id"]
    assert record.brackets == sr_brackets
    mock_db_pool.conn.transaction.assert_called_once()
    args = mock_db_pool.conn.executemany.call_args.args
    written = args[1]
    assert [r[5] for r in written] == [0, 1, 2, 3]  # sort_order
    assert written[0][1] == Decimal("0")
    assert written[3][2] is None  # unbounded top bracket


@pytest.mark.asyncio
async def test_create_rejects_overlapping_table(mock_db_pool: MagicMock) -> None:
    brackets = [
        TaxBracket(min=Decimal("0"), max=Decimal("50000"), rate=Decimal("8")),
        TaxBracket(min=Decimal("40000"), rate=Decimal("18")),
    ]
    with pytest.raises(InvalidBracketSetError):
        await create_tax_rule(mock_db_pool, _wage_rule(brackets))
    mock_db_pool.acquire.assert_not_called()


@pytest.mark.asyncio
async def test_create_flat_rule_requires_rate(mock_db_pool: MagicMock) -> None:
    rule = TaxRule(name="AOV", tax_type=TaxType.AOV, effective_date=date(2025, 1, 1))
    with pytest.raises(TaxCalculationError, match="needs a rate"):
        await create_tax_rule(mock_db_pool, rule)


@pytest.mark.asyncio
async def test_create_flat_rule_writes_no_brackets(mock_db_pool: MagicMock) -> None:
    mock_db_pool.conn.fetchrow.return_value = _rule_row(
        name="AOV", tax_type="aov", rate=Decimal("4"), max_base=Decimal("60000")
    )
    rule = TaxRule(
        name="AOV",
        tax_type=TaxType.AOV,
        effective_date=date(2025, 1, 1),
        rate=Decimal("4"),
        max_base=Decimal("60000"),
    )
    record = await create_tax_rule(mock_db_pool, rule)
    assert record.contribution_rate == Decimal("4")
    mock_db_pool.conn.executemany.assert_not_called()


@pytest.mark.asyncio
async def test_get_returns_rule_with_brackets(mock_db_pool: MagicMock) -> None:
    row = _rule_row()
    mock_db_pool.conn.fetchrow.return_value = row
    mock_db_pool.conn.fetch.return_value = [
        _bracket_row(row["id"], "0", "42000", "8"),
        _bracket_row(row["id"], "42000", None, "18"),
    ]

    record = await get_tax_rule(mock_db_pool, row["id"])

    assert record is not None
    assert record.tax_type == TaxType.WAGE_TAX
    assert [b.rate for b in record.brackets] == [Decimal("8"), Decimal("18")]


@pytest.mark.asyncio
async def test_get_missing_returns_none(mock_db_pool: MagicMock) -> None:
    assert await get_tax_rule(mock_db_pool, uuid4()) is None
    mock_db_pool.conn.fetch.assert_not_called()


@pytest.mark.asyncio
async def test_list_groups_brackets_by_rule(mock_db_pool: MagicMock) -> None:
    wage = _rule_row()
    aov = _rule_row(name="AOV", tax_type="aov", rate=Decimal("4"))
    mock_db_pool.conn.fetch.side_effect = [
        [aov, wage],
        [_bracket_row(wage["id"], "0", None, "8")],
    ]

    records = await list_tax_rules(mock_db_pool, status="active")

    assert [r.name for r in records] == ["AOV", "Suriname Wage Tax 2025"]
    assert records[0].brackets == []
    assert len(records[1].brackets) == 1
    rule_query_args = mock_db_pool.conn.fetch.call_args_list[0].args
    assert rule_query_args[1:] == (None, "active")


@pytest.mark.asyncio
async def test_list_empty_skips_bracket_query(mock_db_pool: MagicMock) -> None:
    assert await list_tax_rules(mock_db_pool, tax_type=TaxType.AWW) == []
    assert mock_db_pool.conn.fetch.call_count == 1
    assert mock_db_pool.conn.fetch.call_args.args[1] == "aww"


@pytest.mark.asyncio
async def test_list_active_passes_date(mock_db_pool: MagicMock) -> None:
    await list_active_rules(mock_db_pool, date(2025, 6, 30))
    assert mock_db_pool.conn.fetch.call_args.args[1] == date(2025, 6, 30)


@pytest.mark.asyncio
async def test_update_replaces_brackets(
    mock_db_pool: MagicMock, sr_brackets: list[TaxBracket]
) -> None:
    row = _rule_row()
    mock_db_pool.conn.fetchrow.return_value = row

    record = await update_tax_rule(mock_db_pool, row["id"], _wage_rule(sr_brackets))

    assert record is not None
    mock_db_pool.conn.execute.assert_awaited_once_with(
        "DELETE FROM tax_brackets WHERE tax_rule_id = $1", row["id"]
    )
    assert len(mock_db_pool.conn.executemany.call_args.args[1]) == 4


@pytest.mark.asyncio
async def test_update_missing_returns_none(
    mock_db_pool: MagicMock, sr_brackets: list[TaxBracket]
) -> None:
    assert await update_tax_rule(mock_db_pool, uuid4(), _wage_rule(sr_brackets)) is None
    mock_db_pool.conn.executemany.assert_not_called()


@pytest.mark.asyncio
async def test_delete(mock_db_pool: MagicMock) -> None:
    mock_db_pool.conn.execute.return_value = "DELETE 1"
    assert await delete_tax_rule(mock_db_pool, uuid4()) is True

    mock_db_pool.conn.execute.return_value = "DELETE 0"
    assert await delete_tax_rule(mock_db_pool, uuid4()) is False


# --- Versions ---


@pytest.mark.asyncio
async def test_new_version_copies_rule_as_draft(mock_db_pool: MagicMock) -> None:
    source = _rule_row()
    draft = _rule_row(
        status="draft",
        version=2,
        effective_date=date(2026, 1, 1),
        source_rule_id=source["id"],
        change_summary="2026 brackets",
    )
    mock_db_pool.conn.fetchrow.side_effect = [source, draft]
    mock_db_pool.conn.fetchval.return_value = 2
    mock_db_pool.conn.fetch.return_value = [_bracket_row(draft["id"], "0", None, "8")]

    record = await create_tax_rule_version(
        mock_db_pool, source["id"], date(2026, 1, 1), "2026 brackets"
    )

    assert record is not None
    assert record.status == "draft"
    assert record.version == 2
    assert record.source_rule_id == source["id"]
    assert len(record.brackets) == 1
    insert_args = mock_db_pool.conn.fetchrow.call_args_list[1].args
    assert insert_args[1:] == (source["id"], date(2026, 1, 1), 2, "2026 brackets")
    copy_sql, new_id, source_id = mock_db_pool.conn.execute.call_args.args
    assert "FROM tax_brackets" in copy_sql
    assert (new_id, source_id) == (draft["id"], source["id"])


@pytest.mark.asyncio
async def test_new_version_of_draft_rejected(mock_db_pool: MagicMock) -> None:
    mock_db_pool.conn.fetchrow.return_value = _rule_row(status="draft", version=3)
    with pytest.raises(TaxRuleStateError, match="v3 is a draft"):
        await create_tax_rule_version(mock_db_pool, uuid4(), date(2026, 1, 1))
    mock_db_pool.conn.execute.assert_not_called()


@pytest.mark.asyncio
async def test_new_version_of_missing_rule(mock_db_pool: MagicMock) -> None:
    assert await create_tax_rule_version(mock_db_pool, uuid4(), date(2026, 1, 1)) is None


@pytest.mark.asyncio
async def test_version_history_ordered(mock_db_pool: MagicMock) -> None:
    first = _rule_row(status="archived")
    second = _rule_row(version=2, source_rule_id=first["id"])
    mock_db_pool.conn.fetch.side_effect = [
        [first, second],
        [_bracket_row(second["id"], "0", None, "8")],
    ]

    versions = await list_tax_rule_versions(mock_db_pool, second["id"])

    assert [v.version for v in versions] == [1, 2]
    assert versions[0].brackets == []
    assert versions[1].source_rule_id == first["id"]
    assert "ORDER BY version" in mock_db_pool.conn.fetch.call_args_list[0].args[0]


@pytest.mark.asyncio
async def test_publish_archives_same_date_versions(mock_db_pool: MagicMock) -> None:
    draft = _rule_row(status="draft", version=2)
    mock_db_pool.conn.fetchrow.side_effect = [draft, {**draft, "status": "active"}]
    mock_db_pool.conn.fetch.return_value = [
        _bracket_row(draft["id"], "0", "42000", "8"),
        _bracket_row(draft["id"], "42000", None, "18"),
    ]
    mock_db_pool.conn.execute.return_value = "UPDATE 1"

    record = await publish_tax_rule(mock_db_pool, draft["id"])

    assert record is not None
    assert record.status == "active"
    assert len(record.brackets) == 2
    archive_args = mock_db_pool.conn.execute.call_args.args
    assert "status = 'archived'" in archive_args[0]
    assert archive_args[1:] == (draft["name"], draft["id"], draft["effective_date"])


@pytest.mark.asyncio
async def test_publish_requires_draft(mock_db_pool: MagicMock) -> None:
    mock_db_pool.conn.fetchrow.return_value = _rule_row(status="active")
    with pytest.raises(TaxRuleStateError, match="Only drafts can be published"):
        await publish_tax_rule(mock_db_pool, uuid4())
    mock_db_pool.conn.execute.assert_not_called()


@pytest.mark.asyncio
async def test_publish_validates_brackets(mock_db_pool: MagicMock) -> None:
    mock_db_pool.conn.fetchrow.return_value = _rule_row(status="draft")
    with pytest.raises(InvalidBracketSetError):
        await publish_tax_rule(mock_db_pool, uuid4())
    mock_db_pool.conn.execute.assert_not_called()


@pytest.mark.asyncio
async def test_publish_missing(mock_db_pool: MagicMock) -> None:
    assert await publish_tax_rule(mock_db_pool, uuid4()) is None


@pytest.mark.asyncio
async def test_archive(mock_db_pool: MagicMock) -> None:
    row = _rule_row(status="archived")
    mock_db_pool.conn.fetchval.return_value = "active"
    mock_db_pool.conn.fetchrow.return_value = row

    record = await archive_tax_rule(mock_db_pool, row["id"])

    assert record is not None
    assert record.status == "archived"


@pytest.mark.asyncio
async def test_archive_twice_rejected(mock_db_pool: MagicMock) -> None:
    mock_db_pool.conn.fetchval.return_value = "archived"
    with pytest.raises(TaxRuleStateError, match="already archived"):
        await archive_tax_rule(mock_db_pool, uuid4())
    mock_db_pool.conn.fetchrow.assert_not_called()


@pytest.mark.asyncio
async def test_archive_missing(mock_db_pool: MagicMock) -> None:
    mock_db_pool.conn.fetchval.return_value = None
    assert await archive_tax_rule(mock_db_pool, uuid4()) is None
