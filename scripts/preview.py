"""Preview taxes for a gross income against the default Suriname rules.

Usage:
    python scripts/preview.py 85000
    python scripts/preview.py 85000 --local --pay-period monthly
    python scripts/preview.py 85000 --allowance 9000 --date 2025-06-30 -v
"""

import argparse
import logging
import sys
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from tax_engine.calculators.errors import TaxCalculationError
from tax_engine.calculators.models import PeriodPreview, TaxPreview
from tax_engine.calculators.preview import PAY_PERIODS, preview_from_rules, preview_per_period
from tax_engine.calculators.tax_data import DEFAULT_TAX_RULES

logger = logging.getLogger(__name__)


def _amount(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from None


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Preview wage tax, AOV and AWW for an income")
    parser.add_argument("gross_income", type=_amount, help="Annual gross income")
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Evaluate rules in effect on this date (default: today)",
    )
    parser.add_argument("--local", action="store_true", help="Include the flat local tax")
    parser.add_argument(
        "--allowance",
        type=_amount,
        default=Decimal("0"),
        help="Tax-free allowance deducted before wage tax",
    )
    parser.add_argument("--pay-period", choices=sorted(PAY_PERIODS), help="Show per-period figures")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    return parser.parse_args(argv)


def print_preview(preview: TaxPreview, per_period: PeriodPreview | None = None) -> None:
    """Log the formatted preview."""
    logger.info("=" * 50)
    logger.info("TAX PREVIEW")
    logger.info("=" * 50)
    logger.info("  Gross income:        %12.2f", preview.gross_income)
    logger.info("  Tax-free allowance:  %12.2f", preview.tax_free_allowance)
    logger.info("  Taxable income:      %12.2f", preview.taxable_income)
    logger.info("")
    logger.info("WAGE TAX BRACKETS")
    logger.info("-" * 50)
    for entry in preview.breakdown:
        upper = f"{entry.bracket.max:,.0f}" if entry.bracket.max is not None else "and up"
        logger.info(
            "  %10s - %-10s @ %5s%%  %12.2f -> %10.2f",
            f"{entry.bracket.min:,.0f}",
            upper,
            entry.bracket.rate,
            entry.taxable_income,
            entry.tax,
        )
    logger.info("")
    logger.info("  Wage tax:            %12.2f", preview.federal_tax)
    logger.info("  Local tax:           %12.2f", preview.local_tax)
    logger.info("  AOV:                 %12.2f", preview.aov_contribution)
    logger.info("  AWW:                 %12.2f", preview.aww_contribution)
    logger.info("  Total:               %12.2f", preview.total_tax)
    logger.info("  Net income:          %12.2f", preview.net_income)
    logger.info("  Effective rate:      %11.2f%%", preview.effective_rate)

    if per_period is not None:
        logger.info("")
        logger.info("PER PERIOD (%s, %d per year)", per_period.pay_period, per_period.periods_per_year)
        logger.info("-" * 50)
        logger.info("  Gross:               %12.2f", per_period.gross)
        logger.info("  Total tax:           %12.2f", per_period.total_tax)
        logger.info("  Net:                 %12.2f", per_period.net_income)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
    )

    try:
        preview = preview_from_rules(
            args.gross_income,
            DEFAULT_TAX_RULES,
            args.date or date.today(),
            local_tax_enabled=args.local,
            tax_free_allowance=args.allowance,
        )
    except TaxCalculationError as exc:
        logger.error("Cannot preview: %s", exc)
        return 1

    per_period = preview_per_period(preview, args.pay_period) if args.pay_period else None
    print_preview(preview, per_period)
    return 0


if __name__ == "__main__":
    sys.exit(main())
