"""Seed tax_rules and tax_brackets from config/tax_rules.yaml.

Re-running is idempotent: each rule is seeded as version 1 of its name, matched
on (name, version), and its brackets are replaced.
"""

import logging
import sys
from pathlib import Path

import psycopg2

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from config.settings import settings
from tax_engine.calculators.tax_data import DEFAULT_TAX_RULES, TaxType, validate_bracket_table

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)


def main() -> None:
    """Insert or refresh the default tax rules."""
    conn = psycopg2.connect(settings.database_url_sync)
    cur = conn.cursor()

    seeded = 0
    for rule in DEFAULT_TAX_RULES:
        brackets = (
            validate_bracket_table(rule.brackets)
            if rule.tax_type == TaxType.WAGE_TAX
            else rule.brackets
        )

        cur.execute(
            """
            INSERT INTO tax_rules (
                name, tax_type, description, status, effective_date, rate, max_base,
                employer_contribution, employee_contribution, calculation_mode
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (name, version) DO UPDATE SET
                tax_type = EXCLUDED.tax_type,
                effective_date = EXCLUDED.effective_date,
                description = EXCLUDED.description,
                status = EXCLUDED.status,
                rate = EXCLUDED.rate,
                max_base = EXCLUDED.max_base,
                employer_contribution = EXCLUDED.employer_contribution,
                employee_contribution = EXCLUDED.employee_contribution,
                calculation_mode = EXCLUDED.calculation_mode,
                updated_at = NOW()
            RETURNING id
            """,
            (
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
            ),
        )
        tax_rule_id = cur.fetchone()[0]

        cur.execute("DELETE FROM tax_brackets WHERE tax_rule_id = %s", (tax_rule_id,))
        for sort_order, bracket in enumerate(brackets):
            cur.execute(
                """
                INSERT INTO tax_brackets
                    (tax_rule_id, income_min, income_max, rate, deduction, sort_order)
                VALUES (%s, %s, %s, %s, %s, %s)
                """,
                (
                    tax_rule_id,
                    bracket.min,
                    bracket.max,
                    bracket.rate,
                    bracket.deduction,
                    sort_order,
                ),
            )

        seeded += 1
        logger.info("Seeded %s (%d brackets)", rule.name, len(brackets))

    conn.commit()
    cur.close()
    conn.close()
    logger.info("Seeded %d tax rules.", seeded)


if __name__ == "__main__":
    main()
