"""API routes for tax rules and tax previews."""

import logging
from datetime import date
from decimal import Decimal
from uuid import UUID

import asyncpg
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from tax_engine.calculators.bracket_tax import calculate_bracket_tax
from tax_engine.calculators.components import (
    DEFAULT_MODE,
    calculate_component_taxes,
    component_taxes_from_rules,
)
from tax_engine.calculators.errors import TaxCalculationError, TaxRuleStateError
from tax_engine.calculators.models import (
    BracketTaxResult,
    CalculationMode,
    ComponentTaxResult,
    ContributionRates,
    EarningComponent,
    PeriodPreview,
    SocialContributions,
    TaxBracket,
    TaxPreview,
)
from tax_engine.calculators.preview import (
    compose_preview,
    preview_from_rules,
    preview_per_period,
)
from tax_engine.calculators.rates import default_rates
from tax_engine.calculators.social import calculate_social_contributions
from tax_engine.calculators.tax_data import RuleStatus, TaxRule, TaxType, compare_rules
from tax_engine.db import tax_rules
from tax_engine.db.models import RuleVersionComparison, TaxRuleRecord

logger = logging.getLogger(__name__)

router = APIRouter()


class BracketTaxRequest(BaseModel):
    """Request body for /tax/brackets."""

    income: Decimal
    brackets: list[TaxBracket]


class SocialRequest(BaseModel):
    """Request body for /tax/social."""

    income: Decimal
    rates: ContributionRates | None = None


class PreviewRequest(BaseModel):
    """Request body for /tax/preview."""

    gross_income: Decimal
    brackets: list[TaxBracket]
    rates: ContributionRates | None = None
    local_tax_enabled: bool = False
    local_tax_rate: Decimal | None = None
    tax_free_allowance: Decimal = Decimal("0")
    pay_period: str | None = None


class ActivePreviewRequest(BaseModel):
    """Request body for /tax/preview/active."""

    gross_income: Decimal
    on_date: date | None = None
    local_tax_enabled: bool = False
    local_tax_rate: Decimal | None = None
    tax_free_allowance: Decimal = Decimal("0")
    pay_period: str | None = None


class PreviewResponse(BaseModel):
    """A preview plus optional per-period figures."""

    preview: TaxPreview
    per_period: PeriodPreview | None = None


class ComponentRequest(BaseModel):
    """Request body for /tax/components."""

    components: list[EarningComponent]
    brackets: list[TaxBracket]
    rates: ContributionRates | None = None
    wage_tax_mode: CalculationMode = DEFAULT_MODE
    aov_mode: CalculationMode = DEFAULT_MODE
    aww_mode: CalculationMode = DEFAULT_MODE


class ActiveComponentRequest(BaseModel):
    """Request body for /tax/components/active."""

    components: list[EarningComponent]
    on_date: date | None = None


class NewVersionRequest(BaseModel):
    """Request body for POST /tax-rules/{id}/versions."""

    effective_date: date
    change_summary: str = ""


def _error(exc: TaxCalculationError) -> JSONResponse:
    return JSONResponse({"error": str(exc)}, status_code=422)


def _conflict(message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=409)


def _not_found() -> JSONResponse:
    return JSONResponse({"error": "Tax rule not found"}, status_code=404)


def _duplicate(rule: TaxRule) -> JSONResponse:
    return _conflict(
        f"A tax rule named {rule.name!r} already exists; create a new version of it instead."
    )


def _out_of_range() -> JSONResponse:
    return JSONResponse(
        {"error": "Value out of range: rates are limited to 999.9999 and amounts to 12 digits."},
        status_code=422,
    )


@router.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}


# --- Tax rules ---


@router.get("/tax-rules", response_model=list[TaxRuleRecord])
async def list_rules(
    request: Request,
    tax_type: TaxType | None = None,
    status: RuleStatus | None = None,
) -> list[TaxRuleRecord]:
    """List stored tax rules."""
    return await tax_rules.list_tax_rules(request.app.state.pool, tax_type=tax_type, status=status)


@router.get("/tax-rules/{rule_id}", response_model=TaxRuleRecord)
async def get_rule(rule_id: UUID, request: Request):  # type: ignore[no-untyped-def]
    """Fetch one tax rule."""
    rule = await tax_rules.get_tax_rule(request.app.state.pool, rule_id)
    if rule is None:
        return _not_found()
    return rule


@router.post("/tax-rules", response_model=TaxRuleRecord, status_code=201)
async def create_rule(body: TaxRule, request: Request):  # type: ignore[no-untyped-def]
    """Create a tax rule with its brackets."""
    try:
        return await tax_rules.create_tax_rule(request.app.state.pool, body)
    except TaxCalculationError as exc:
        return _error(exc)
    except asyncpg.UniqueViolationError:
        return _duplicate(body)
    except asyncpg.NumericValueOutOfRangeError:
        return _out_of_range()


@router.put("/tax-rules/{rule_id}", response_model=TaxRuleRecord)
async def update_rule(rule_id: UUID, body: TaxRule, request: Request):  # type: ignore[no-untyped-def]
    """Replace a tax rule and its brackets."""
    try:
        rule = await tax_rules.update_tax_rule(request.app.state.pool, rule_id, body)
    except TaxCalculationError as exc:
        return _error(exc)
    except asyncpg.UniqueViolationError:
        return _duplicate(body)
    except asyncpg.NumericValueOutOfRangeError:
        return _out_of_range()
    if rule is None:
        return _not_found()
    return rule


@router.delete("/tax-rules/{rule_id}")
async def delete_rule(rule_id: UUID, request: Request) -> JSONResponse:
    """Delete a tax rule."""
    deleted = await tax_rules.delete_tax_rule(request.app.state.pool, rule_id)
    if not deleted:
        return _not_found()
    return JSONResponse({"status": "ok"})


# --- Rule versions ---


@router.get("/tax-rules/{rule_id}/versions", response_model=list[TaxRuleRecord])
async def list_versions(rule_id: UUID, request: Request):  # type: ignore[no-untyped-def]
    """Version history of a rule, oldest first."""
    versions = await tax_rules.list_tax_rule_versions(request.app.state.pool, rule_id)
    if not versions:
        return _not_found()
    return versions


@router.post("/tax-rules/{rule_id}/versions", response_model=TaxRuleRecord, status_code=201)
async def create_version(  # type: ignore[no-untyped-def]
    rule_id: UUID, body: NewVersionRequest, request: Request
):
    """Copy a rule into a new draft version."""
    try:
        rule = await tax_rules.create_tax_rule_version(
            request.app.state.pool, rule_id, body.effective_date, body.change_summary
        )
    except TaxRuleStateError as exc:
        return _conflict(str(exc))
    if rule is None:
        return _not_found()
    return rule


@router.post("/tax-rules/{rule_id}/publish", response_model=TaxRuleRecord)
async def publish_version(rule_id: UUID, request: Request):  # type: ignore[no-untyped-def]
    """Activate a draft version."""
    try:
        rule = await tax_rules.publish_tax_rule(request.app.state.pool, rule_id)
    except TaxRuleStateError as exc:
        return _conflict(str(exc))
    except TaxCalculationError as exc:
        return _error(exc)
    if rule is None:
        return _not_found()
    return rule


@router.post("/tax-rules/{rule_id}/archive", response_model=TaxRuleRecord)
async def archive_version(rule_id: UUID, request: Request):  # type: ignore[no-untyped-def]
    """Retire a rule version."""
    try:
        rule = await tax_rules.archive_tax_rule(request.app.state.pool, rule_id)
    except TaxRuleStateError as exc:
        return _conflict(str(exc))
    if rule is None:
        return _not_found()
    return rule


@router.get("/tax-rules/{rule_id}/compare/{other_id}", response_model=RuleVersionComparison)
async def compare_versions(  # type: ignore[no-untyped-def]
    rule_id: UUID, other_id: UUID, request: Request
):
    """Differences from one rule version to another."""
    old = await tax_rules.get_tax_rule(request.app.state.pool, rule_id)
    new = await tax_rules.get_tax_rule(request.app.state.pool, other_id)
    if old is None or new is None:
        return _not_found()
    return RuleVersionComparison(
        from_id=old.id,
        from_version=old.version,
        to_id=new.id,
        to_version=new.version,
        changes=compare_rules(old, new),
    )


# --- Calculators ---


@router.post("/tax/brackets", response_model=BracketTaxResult)
async def bracket_tax(body: BracketTaxRequest):  # type: ignore[no-untyped-def]
    """Progressive bracket tax with breakdown."""
    try:
        return calculate_bracket_tax(body.income, body.brackets)
    except TaxCalculationError as exc:
        return _error(exc)


@router.post("/tax/social", response_model=SocialContributions)
async def social_contributions(body: SocialRequest):  # type: ignore[no-untyped-def]
    """AOV and AWW contributions."""
    try:
        return calculate_social_contributions(body.income, body.rates or default_rates())
    except TaxCalculationError as exc:
        return _error(exc)


@router.post("/tax/preview", response_model=PreviewResponse)
async def preview(body: PreviewRequest):  # type: ignore[no-untyped-def]
    """Full preview from explicit brackets and rates."""
    rates = body.rates or default_rates()
    try:
        result = compose_preview(
            body.gross_income,
            body.brackets,
            rates,
            local_tax_enabled=body.local_tax_enabled,
            local_tax_rate=body.local_tax_rate,
            tax_free_allowance=body.tax_free_allowance,
        )
        per_period = preview_per_period(result, body.pay_period) if body.pay_period else None
    except TaxCalculationError as exc:
        return _error(exc)
    return PreviewResponse(preview=result, per_period=per_period)


@router.post("/tax/preview/active", response_model=PreviewResponse)
async def preview_active(body: ActivePreviewRequest, request: Request):  # type: ignore[no-untyped-def]
    """Full preview against the stored rules active on a date (default today)."""
    on_date = body.on_date or date.today()
    rules = await tax_rules.list_active_rules(request.app.state.pool, on_date)
    try:
        result = preview_from_rules(
            body.gross_income,
            rules,
            on_date,
            local_tax_enabled=body.local_tax_enabled,
            local_tax_rate=body.local_tax_rate,
            tax_free_allowance=body.tax_free_allowance,
        )
        per_period = preview_per_period(result, body.pay_period) if body.pay_period else None
    except TaxCalculationError as exc:
        return _error(exc)
    return PreviewResponse(preview=result, per_period=per_period)


@router.post("/tax/components", response_model=ComponentTaxResult)
async def component_taxes(body: ComponentRequest):  # type: ignore[no-untyped-def]
    """Split taxes over earning components with explicit brackets, rates and modes."""
    try:
        return calculate_component_taxes(
            body.components,
            body.brackets,
            body.rates or default_rates(),
            wage_tax_mode=body.wage_tax_mode,
            aov_mode=body.aov_mode,
            aww_mode=body.aww_mode,
        )
    except TaxCalculationError as exc:
        return _error(exc)


@router.post("/tax/components/active", response_model=ComponentTaxResult)
async def component_taxes_active(  # type: ignore[no-untyped-def]
    body: ActiveComponentRequest, request: Request
):
    """Split taxes over earning components using the stored rules active on a date."""
    on_date = body.on_date or date.today()
    rules = await tax_rules.list_active_rules(request.app.state.pool, on_date)
    try:
        return component_taxes_from_rules(body.components, rules, on_date)
    except TaxCalculationError as exc:
        return _error(exc)
