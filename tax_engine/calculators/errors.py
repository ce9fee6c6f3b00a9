"""Typed errors raised by the tax calculators.

All of them subclass ``ValueError`` so a caller can show the message and carry
on. A preview is advisory, so none of these should be fatal.
"""


class TaxCalculationError(ValueError):
    """Base class for calculator input errors."""


class InvalidIncomeError(TaxCalculationError):
    """Income is negative or not a finite number."""


class InvalidBracketSetError(TaxCalculationError):
    """Bracket list is missing, empty, or fails a sanity check."""


class AmbiguousTaxRuleError(TaxCalculationError):
    """More than one active rule of a type applies on the same date."""


class TaxRuleStateError(TaxCalculationError):
    """A rule version cannot move to the requested state (e.g. publishing a non-draft)."""
