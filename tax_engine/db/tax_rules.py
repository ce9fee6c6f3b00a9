"""Async tax-rule store over the tax_rules and tax_brackets tables."""

import logging
from collections import defaultdict
from datetime import date
from typing import Any
from uuid import UUID

import asyncpg

from tax_engine.calculators.errors import TaxCalculationError, TaxRuleStateError
from tax_engine.calculators.models import TaxBracket
from tax_engine.calculators.tax_data import TaxRule, TaxType, validate_bracket_table
from tax_engine.db.models import TaxRuleRecord

logger = logging.getLogger(__name__)

_RULE_COLUMNS = """
    id, name, tax_type, description, status, effective_date, rate, max_base,
    employer_contribution, employee_contribution, calculation_mode,
    version, source_rule_id, change_summary, created_at, updated_at
"""


def _checked_brackets(rule: TaxRule) -> list[TaxBracket]:
    """Validate a rule before it is written and return its sorted brackets."""
    if rule.tax_type == TaxType.WAGE_TAX or rule.brackets:
        return validate_bracket_table(rule.brackets)
    if rule.contribution_rate is None:
        raise TaxCalculationError(
            f"A {rule.tax_type.value} rule needs a rate or an employee contribution."
        )
    return []


def _to_record(row: Any, brackets: list[TaxBracket]) -> TaxRuleRecord:
    return TaxRuleRecord.model_validate({**dict(row), "brackets": brackets})


async def _fetch_brackets(
    conn: asyncpg.Connection,
    rule_ids: list[UUID],
) -> dict[UUID, list[TaxBracket]]:
    if not rule_ids:
        return {}
    rows = await conn.fetch(
        """
        SELECT tax_rule_id, income_min, income_max, rate, deduction
        FROM tax_brackets
        WHERE tax_rule_id = ANY($1::uuid[])
        ORDER BY tax_rule_id, sort_order
        """,
        rule_ids,
    )
    grouped: dict[UUID, list[TaxBracket]] = defaultdict(list)
    for row in rows:
        grouped[row["tax_rule_id"]].append(
            TaxBracket(
                min=row["income_min"],
                max=row["income_max"],
                rate=row["rate"],
                deduction=row["deduction"],
            )
        )
    return grouped


async def _insert_brackets(
    conn: asyncpg.Connection,
    rule_id: UUID,
    brackets: list[TaxBracket],
) -> None:
    if not brackets:
        return
    await conn.executemany(
        """
        INSERT INTO tax_brackets (tax_rule_id, income_min, income_max, rate, deduction, sort_order)
        VALUES ($1, $2, $3, $4, $5, $6)
        """,
        [
            (rule_id, b.min, b.max, b.rate, b.deduction, sort_order)
            for sort_order, b in enumerate(brackets)
        ],
    )


async def list_tax_rules(
    pool: asyncpg.Pool,
    tax_type: TaxType | None = None,
    status: str | None = None,
) -> list[TaxRuleRecord]:
    """List rules, optionally filtered by type and status, newest first."""
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            f"""
            SELECT {_RULE_COLUMNS}
            FROM tax_rules
            WHERE ($1::text IS NULL OR tax_type = $1)
              AND ($2::text IS NULL OR status = $2)
            ORDER BY tax_type, effective_date DESC, name
            """,
            tax_type.value if tax_type is not None else None,
            status,
        )
        brackets = await _fetch_brackets(conn, [row["id"] for row in rows])
    return [_to_record(row, brackets.get(row["id"], [])) for row in rows]


async def list_active_rules(pool: asyncpg.Pool, on_date: date) -> list[TaxRuleRecord]:
    """List active rules already in effect on a date."""
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            f"""
            SELECT {_RULE_COLUMNS}
            FROM tax_rules
            WHERE status = 'active' AND effective_date <= $1
            ORDER BY tax_type, effective_date DESC
            """,
            on_date,
        )
        brackets = await _fetch_brackets(conn, [row["id"] for row in rows])
    return [_to_record(row, brackets.get(row["id"], [])) for row in rows]


async def get_tax_rule(pool: asyncpg.Pool, rule_id: UUID) -> TaxRuleRecord | None:
    """Fetch a single rule with its brackets. Returns None if not found."""
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            f"SELECT {_RULE_COLUMNS} FROM tax_rules WHERE id = $1",
            rule_id,
        )
        if row is None:
            return None
        brackets = await _fetch_brackets(conn, [rule_id])
    return _to_record(row, brackets.get(rule_id, []))


async def create_tax_rule(pool: asyncpg.Pool, rule: TaxRule) -> TaxRuleRecord:
    """Insert a rule and its brackets in one transaction.

    Raises:
        TaxCalculationError: the bracket table or flat rate is invalid.
    """
    brackets = _checked_brackets(rule)
    async with pool.acquire() as conn:
        async with conn.transaction():
            row = await conn.fetchrow(
                f"""
                INSERT INTO tax_rules (
                    name, tax_type, description, status, effective_date, rate, max_base,
                    employer_contribution, employee_contribution, calculation_mode
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
                RETURNING {_RULE_COLUMNS}
                """,
                rule.name,
                rule.tax_type.value,
                rule.description,
                rule.status,
                rule.effective_date,
                rule.rate,
                rule.max_base,
                rule.employer_contribution,
                rule.employee_contribution,
                rule.calculation_mode,
            )
            await _insert_brackets(conn, row["id"], brackets)

    logger.info("Created tax rule %s (%s, %d brackets)", row["id"], rule.name, len(brackets))
    return _to_record(row, brackets)


async def update_tax_rule(
    pool: asyncpg.Pool,
    rule_id: UUID,
    rule: TaxRule,
) -> TaxRuleRecord | None:
    """Replace a rule and its brackets. Returns None if the rule does not exist."""
    brackets = _checked_brackets(rule)
    async with pool.acquire() as conn:
        async with conn.transaction():
            row = await conn.fetchrow(
                f"""
                UPDATE tax_rules SET
                    name = $2, tax_type = $3, description = $4, status = $5,
                    effective_date = $6, rate = $7, max_base = $8,
                    employer_contribution = $9, employee_contribution = $10,
                    calculation_mode = $11, updated_at = NOW()
                WHERE id = $1
                RETURNING {_RULE_COLUMNS}
                """,
                rule_id,
                rule.name,
                rule.tax_type.value,
                rule.description,
                rule.status,
                rule.effective_date,
                rule.rate,
                rule.max_base,
                rule.employer_contribution,
                rule.employee_contribution,
                rule.calculation_mode,
            )
            if row is None:
                return None
            await conn.execute("DELETE FROM tax_brackets WHERE tax_rule_id = $1", rule_id)
            await _insert_brackets(conn, rule_id, brackets)

    logger.info("Updated tax rule %s (%s)", rule_id, rule.name)
    return _to_record(row, brackets)


async def delete_tax_rule(pool: asyncpg.Pool, rule_id: UUID) -> bool:
    """Delete a rule; its brackets cascade. Returns True if a row was removed."""
    async with pool.acquire() as conn:
        result = await conn.execute("DELETE FROM tax_rules WHERE id = $1", rule_id)
    deleted = result == "DELETE 1"
    if deleted:
        logger.info("Deleted tax rule %s", rule_id)
    return deleted


# --- Versions ---


async def create_tax_rule_version(
    pool: asyncpg.Pool,
    rule_id: UUID,
    effective_date: date,
    change_summary: str = "",
) -> TaxRuleRecord | None:
    """Copy a rule and its brackets into a new draft version.

    The draft keeps the source's name, takes the next version number for
    that name and starts from effective_date. Returns None if the source
    does not exist.

    Raises:
        TaxRuleStateError: the source is itself a draft.
    """
    async with pool.acquire() as conn:
        async with conn.transaction():
            source = await conn.fetchrow(
                f"SELECT {_RULE_COLUMNS} FROM tax_rules WHERE id = $1 FOR UPDATE",
                rule_id,
            )
            if source is None:
                return None
            if source["status"] == "draft":
                raise TaxRuleStateError(
                    f"{source['name']} v{source['version']} is a draft; publish it before "
                    "creating a new version."
                )

            version = await conn.fetchval(
                "SELECT COALESCE(MAX(version), 0) + 1 FROM tax_rules WHERE name = $1",
                source["name"],
            )
            row = await conn.fetchrow(
                f"""
                INSERT INTO tax_rules (
                    name, tax_type, description, status, effective_date, rate, max_base,
                    employer_contribution, employee_contribution, calculation_mode,
                    version, source_rule_id, change_summary
                )
                SELECT name, tax_type, description, 'draft', $2, rate, max_base,
                       employer_contribution, employee_contribution, calculation_mode,
                       $3, id, $4
                FROM tax_rules
                WHERE id = $1
                RETURNING {_RULE_COLUMNS}
                """,
                rule_id,
                effective_date,
                version,
                change_summary,
            )
            await conn.execute(
                """
                INSERT INTO tax_brackets
                    (tax_rule_id, income_min, income_max, rate, deduction, sort_order)
                SELECT $1, income_min, income_max, rate, deduction, sort_order
                FROM tax_brackets
                WHERE tax_rule_id = $2
                """,
                row["id"],
                rule_id,
            )
            brackets = await _fetch_brackets(conn, [row["id"]])

    logger.info(
        "Created draft %s v%d from %s (effective %s)",
        row["name"],
        version,
        rule_id,
        effective_date,
    )
    return _to_record(row, brackets.get(row["id"], []))


async def list_tax_rule_versions(pool: asyncpg.Pool, rule_id: UUID) -> list[TaxRuleRecord]:
    """All versions sharing the name of a rule, oldest first. Empty if the rule is unknown."""
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            f"""
            SELECT {_RULE_COLUMNS}
            FROM tax_rules
            WHERE name = (SELECT name FROM tax_rules WHERE id = $1)
            ORDER BY version
            """,
            rule_id,
        )
        brackets = await _fetch_brackets(conn, [row["id"] for row in rows])
    return [_to_record(row, brackets.get(row["id"], [])) for row in rows]


async def publish_tax_rule(pool: asyncpg.Pool, rule_id: UUID) -> TaxRuleRecord | None:
    """Activate a draft version.

    Active versions of the same rule with the same effective date are
    archived, so exactly one of them applies on that date. Returns None if
    the rule does not exist.

    Raises:
        TaxRuleStateError: the rule is not a draft.
        TaxCalculationError: the draft's bracket table or flat rate is invalid.
    """
    async with pool.acquire() as conn:
        async with conn.transaction():
            row = await conn.fetchrow(
                f"SELECT {_RULE_COLUMNS} FROM tax_rules WHERE id = $1 FOR UPDATE",
                rule_id,
            )
            if row is None:
                return None
            if row["status"] != "draft":
                raise TaxRuleStateError(
                    f"Only drafts can be published; {row['name']} v{row['version']} "
                    f"is {row['status']}."
                )

            brackets = (await _fetch_brackets(conn, [rule_id])).get(rule_id, [])
            _checked_brackets(_to_record(row, brackets))

            result = await conn.execute(
                """
                UPDATE tax_rules SET status = 'archived', updated_at = NOW()
                WHERE name = $1 AND id <> $2 AND status = 'active' AND effective_date = $3
                """,
                row["name"],
                rule_id,
                row["effective_date"],
            )
            row = await conn.fetchrow(
                f"""
                UPDATE tax_rules SET status = 'active', updated_at = NOW()
                WHERE id = $1
                RETURNING {_RULE_COLUMNS}
                """,
                rule_id,
            )

    superseded = int(result.split()[-1])
    logger.info(
        "Published %s v%d (%d version(s) archived)", row["name"], row["version"], superseded
    )
    return _to_record(row, brackets)


async def archive_tax_rule(pool: asyncpg.Pool, rule_id: UUID) -> TaxRuleRecord | None:
    """Retire a rule version. Returns None if the rule does not exist.

    Raises:
        TaxRuleStateError: the rule is already archived.
    """
    async with pool.acquire() as conn:
        async with conn.transaction():
            status = await conn.fetchval(
                "SELECT status FROM tax_rules WHERE id = $1 FOR UPDATE",
                rule_id,
            )
            if status is None:
                return None
            if status == "archived":
                raise TaxRuleStateError("Tax rule is already archived.")

            row = await conn.fetchrow(
                f"""
                UPDATE tax_rules SET status = 'archived', updated_at = NOW()
                WHERE id = $1
                RETURNING {_RULE_COLUMNS}
                """,
                rule_id,
            )
            brackets = await _fetch_brackets(conn, [rule_id])

    logger.info("Archived %s v%d", row["name"], row["version"])
    return _to_record(row, brackets.get(rule_id, []))
