"""Create tax_brackets table."""

from yoyo import step

__depends__ = {"0001_tax_rules"}

steps = [
    step(
        """
        CREATE TABLE tax_brackets (
            id              UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            tax_rule_id     UUID NOT NULL REFERENCES tax_rules(id) ON DELETE CASCADE,
            income_min      NUMERIC(14,2) NOT NULL,
            income_max      NUMERIC(14,2),
            rate            NUMERIC(7,4) NOT NULL,
            deduction       NUMERIC(14,2) NOT NULL DEFAULT 0,
            sort_order      INTEGER NOT NULL,
            created_at      TIMESTAMPTZ DEFAULT NOW()
        )
        """,
        "DROP TABLE IF EXISTS tax_brackets",
    ),
    step(
        "CREATE INDEX idx_tax_brackets_rule ON tax_brackets (tax_rule_id, sort_order)",
        "DROP INDEX IF EXISTS idx_tax_brackets_rule",
    ),
]
