"""Add rule versioning: version number, source rule, draft/archived status."""

from yoyo import step

__depends__ = {"0002_tax_brackets"}

steps = [
    step(
        """
        ALTER TABLE tax_rules
            ADD COLUMN IF NOT EXISTS version INTEGER NOT NULL DEFAULT 1 CHECK (version >= 1),
            ADD COLUMN IF NOT EXISTS source_rule_id UUID
                REFERENCES tax_rules(id) ON DELETE SET NULL,
            ADD COLUMN IF NOT EXISTS change_summary TEXT NOT NULL DEFAULT ''
        """,
        """
        ALTER TABLE tax_rules
            DROP COLUMN IF EXISTS version,
            DROP COLUMN IF EXISTS source_rule_id,
            DROP COLUMN IF EXISTS change_summary
        """,
    ),
    # Versions of a rule share its name, so name + version identifies a row
    step(
        """
        ALTER TABLE tax_rules
        DROP CONSTRAINT IF EXISTS tax_rules_name_effective_date_key
        """,
        """
        ALTER TABLE tax_rules
        ADD CONSTRAINT tax_rules_name_effective_date_key UNIQUE (name, effective_date)
        """,
    ),
    step(
        """
        ALTER TABLE tax_rules
        ADD CONSTRAINT tax_rules_name_version_key UNIQUE (name, version)
        """,
        """
        ALTER TABLE tax_rules
        DROP CONSTRAINT IF EXISTS tax_rules_name_version_key
        """,
    ),
    # Expand status CHECK constraint with the draft and archived states
    step(
        """
        ALTER TABLE tax_rules
        DROP CONSTRAINT IF EXISTS tax_rules_status_check
        """,
        """
        ALTER TABLE tax_rules
        ADD CONSTRAINT tax_rules_status_check
        CHECK (status IN ('active', 'inactive'))
        """,
    ),
    step(
        """
        ALTER TABLE tax_rules
        ADD CONSTRAINT tax_rules_status_check
        CHECK (status IN ('draft', 'active', 'inactive', 'archived'))
        """,
        """
        ALTER TABLE tax_rules
        DROP CONSTRAINT IF EXISTS tax_rules_status_check
        """,
    ),
    step(
        "CREATE INDEX idx_tax_rules_source ON tax_rules (source_rule_id) "
        "WHERE source_rule_id IS NOT NULL",
        "DROP INDEX IF EXISTS idx_tax_rules_source",
    ),
]
