"""Create tax_rules table."""

from yoyo import step

__depends__ = {}  # type: ignore[var-annotated]

steps = [
    step(
        """
        CREATE TABLE tax_rules (
            id                      UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name                    TEXT NOT NULL,
            tax_type                TEXT NOT NULL CHECK (tax_type IN ('wage-tax', 'aov', 'aww')),
            description             TEXT NOT NULL DEFAULT '',
            status                  TEXT NOT NULL DEFAULT 'active'
                                        CHECK (status IN ('active', 'inactive')),
            effective_date          DATE NOT NULL,
            rate                    NUMERIC(7,4),
            max_base                NUMERIC(14,2),
            employer_contribution   NUMERIC(7,4),
            employee_contribution   NUMERIC(7,4),
            calculation_mode        TEXT NOT NULL DEFAULT 'proportional_distribution'
                                        CHECK (calculation_mode IN (
                                            'aggregated', 'component_based',
                                            'proportional_distribution'
                                        )),
            created_at              TIMESTAMPTZ DEFAULT NOW(),
            updated_at              TIMESTAMPTZ DEFAULT NOW(),
            UNIQUE (name, effective_date)
        )
        """,
        "DROP TABLE IF EXISTS tax_rules",
    ),
    step(
        "CREATE INDEX idx_tax_rules_active ON tax_rules (tax_type, effective_date) "
        "WHERE status = 'active'",
        "DROP INDEX IF EXISTS idx_tax_rules_active",
    ),
]
