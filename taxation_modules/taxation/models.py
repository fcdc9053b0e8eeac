"""
Taxation Domain Models.

Responsibility:
    Frozen dataclass DTOs for the orchestration layer: the calculation
    request, the calculation result, the audit record handed to a recorder,
    and the reporting summary.

Architecture:
    taxation_modules -- orchestration over the pure engines (this layer).
    These models are pure data containers with no I/O and no ORM coupling.

Invariants:
    - All models are ``frozen=True`` (immutable after construction).
    - All monetary fields use ``Decimal`` -- NEVER ``float``.
    - Audit records hold breakdowns as JSON-safe dicts (strings for Decimals
      and UUIDs) so every recorder persists the same shape.

Failure modes:
    - Construction with invalid enum values raises ``ValueError`` from
      the ``Enum`` constructor.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from taxation_engines.jurisdiction import LocationQuery
from taxation_engines.tax_types import (
    AppliedExemption,
    AppliedTax,
    TaxBreakdownLine,
)
from taxation_kernel.domain.values import HUNDRED, ZERO, round_amount


class TaxCalculationMethod(str, Enum):
    EXCLUSIVE = "exclusive"
    INCLUSIVE = "inclusive"


class AuditEntityType(str, Enum):
    """Business document a persisted calculation belongs to."""

    INVOICE = "invoice"
    PURCHASE_ORDER = "purchase_order"
    SALES_ORDER = "sales_order"
    POS_TRANSACTION = "pos_transaction"


def _uuid_or_none(value: Any) -> UUID | None:
    if value is None or value == "":
        return None
    return value if isinstance(value, UUID) else UUID(str(value))


def _str_or_none(value: Any) -> str | None:
    return None if value is None else str(value)


# =============================================================================
# Request
# =============================================================================


@dataclass(frozen=True)
class CalculationRequest:
    """
    Input to ``TaxationService.calculate_tax``.

    ``amount`` is the base when ``is_inclusive`` is False and the tax-inclusive
    total otherwise.  It is validated by the service, not here, so that a bad
    amount surfaces as ``TaxValidationError``.
    """

    amount: Decimal | int | str
    is_inclusive: bool = False
    tax_rate_id: UUID | None = None
    tax_group_id: UUID | None = None
    customer_id: UUID | None = None
    product_id: UUID | None = None
    branch_id: UUID | None = None
    country_code: str | None = None
    state_code: str | None = None
    city_name: str | None = None
    postal_code: str | None = None
    calculation_date: date | None = None

    @property
    def location(self) -> LocationQuery:
        return LocationQuery(
            country_code=self.country_code,
            state_code=self.state_code,
            city_name=self.city_name,
            postal_code=self.postal_code,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CalculationRequest:
        """Build a request from loosely typed input (ids as strings, etc.)."""
        calculation_date = data.get("calculation_date")
        if isinstance(calculation_date, str):
            calculation_date = date.fromisoformat(calculation_date)
        return cls(
            amount=data["amount"],
            is_inclusive=bool(data.get("is_inclusive", False)),
            tax_rate_id=_uuid_or_none(data.get("tax_rate_id")),
            tax_group_id=_uuid_or_none(data.get("tax_group_id")),
            customer_id=_uuid_or_none(data.get("customer_id")),
            product_id=_uuid_or_none(data.get("product_id")),
            branch_id=_uuid_or_none(data.get("branch_id")),
            country_code=data.get("country_code"),
            state_code=data.get("state_code"),
            city_name=data.get("city_name"),
            postal_code=data.get("postal_code"),
            calculation_date=calculation_date,
        )


# =============================================================================
# JSON-safe projections of engine result lines
# =============================================================================


def breakdown_line_to_dict(line: TaxBreakdownLine) -> dict[str, Any]:
    return {
        "rate_id": str(line.rate_id),
        "rate_name": line.rate_name,
        "rate_percentage": str(line.rate_percentage),
        "rate_category": line.rate_category.value,
        "taxable_base": str(line.taxable_base),
        "raw_tax": str(line.raw_tax),
        "exempted_amount": str(line.exempted_amount),
        "net_tax": str(line.net_tax),
        "is_compound": line.is_compound,
    }


def applied_tax_to_dict(applied: AppliedTax) -> dict[str, Any]:
    return {
        "rate_id": str(applied.rate_id),
        "name": applied.name,
        "percentage": str(applied.percentage),
        "amount": str(applied.amount),
    }


def applied_exemption_to_dict(applied: AppliedExemption) -> dict[str, Any]:
    return {
        "exemption_id": str(applied.exemption_id),
        "exemption_type": applied.exemption_type.value,
        "exempted_amount": str(applied.exempted_amount),
        "rate_id": str(applied.rate_id),
    }


def effective_tax_rate(base_amount: Decimal, tax_amount: Decimal) -> Decimal:
    """Tax as a percentage of base, 4 digits; zero for a zero base."""
    if base_amount == ZERO:
        return round_amount(ZERO)
    return round_amount(tax_amount / base_amount * HUNDRED)


# =============================================================================
# Result
# =============================================================================


@dataclass(frozen=True)
class CalculationResult:
    """Output of one tax calculation."""

    base_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    is_inclusive: bool
    calculation_method: TaxCalculationMethod
    breakdown: tuple[TaxBreakdownLine, ...] = ()
    applied_taxes: tuple[AppliedTax, ...] = ()
    exemptions_applied: tuple[AppliedExemption, ...] = ()
    jurisdiction_id: UUID | None = None
    calculation_date: date | None = None

    @property
    def effective_tax_rate(self) -> Decimal:
        return effective_tax_rate(self.base_amount, self.tax_amount)

    @property
    def has_tax(self) -> bool:
        return self.tax_amount > ZERO

    def to_dict(self) -> dict[str, Any]:
        return {
            "base_amount": str(self.base_amount),
            "tax_amount": str(self.tax_amount),
            "total_amount": str(self.total_amount),
            "is_inclusive": self.is_inclusive,
            "calculation_method": self.calculation_method.value,
            "tax_breakdown": [breakdown_line_to_dict(line) for line in self.breakdown],
            "applied_taxes": [applied_tax_to_dict(a) for a in self.applied_taxes],
            "exemptions_applied": [
                applied_exemption_to_dict(e) for e in self.exemptions_applied
            ],
            "jurisdiction_id": _str_or_none(self.jurisdiction_id),
            "calculation_date": (
                self.calculation_date.isoformat() if self.calculation_date else None
            ),
            "effective_tax_rate": str(self.effective_tax_rate),
        }


# =============================================================================
# Audit record and reporting
# =============================================================================


@dataclass(frozen=True)
class TaxCalculationRecord:
    """A calculation result bound to the business entity it was made for."""

    id: UUID
    entity_type: AuditEntityType
    entity_id: UUID
    base_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    is_inclusive: bool
    calculation_method: TaxCalculationMethod
    calculated_at: datetime
    tax_breakdown: tuple[dict[str, Any], ...] = ()
    applied_taxes: tuple[dict[str, Any], ...] = ()
    exemptions_applied: tuple[dict[str, Any], ...] = ()
    jurisdiction_id: UUID | None = None
    customer_id: UUID | None = None
    product_id: UUID | None = None
    branch_id: UUID | None = None

    @property
    def effective_tax_rate(self) -> Decimal:
        return effective_tax_rate(self.base_amount, self.tax_amount)

    @classmethod
    def from_result(
        cls,
        *,
        record_id: UUID,
        entity_type: AuditEntityType,
        entity_id: UUID,
        result: CalculationResult,
        calculated_at: datetime,
        customer_id: UUID | None = None,
        product_id: UUID | None = None,
        branch_id: UUID | None = None,
    ) -> TaxCalculationRecord:
        return cls(
            id=record_id,
            entity_type=AuditEntityType(entity_type),
            entity_id=entity_id,
            base_amount=result.base_amount,
            tax_amount=result.tax_amount,
            total_amount=result.total_amount,
            is_inclusive=result.is_inclusive,
            calculation_method=result.calculation_method,
            calculated_at=calculated_at,
            tax_breakdown=tuple(breakdown_line_to_dict(line) for line in result.breakdown),
            applied_taxes=tuple(applied_tax_to_dict(a) for a in result.applied_taxes),
            exemptions_applied=tuple(
                applied_exemption_to_dict(e) for e in result.exemptions_applied
            ),
            jurisdiction_id=result.jurisdiction_id,
            customer_id=customer_id,
            product_id=product_id,
            branch_id=branch_id,
        )


@dataclass(frozen=True)
class TaxSummary:
    """Totals over a set of persisted calculations."""

    total_base_amount: Decimal = ZERO
    total_tax_amount: Decimal = ZERO
    total_amount: Decimal = ZERO
    calculation_count: int = 0

    @property
    def effective_tax_rate(self) -> Decimal:
        return effective_tax_rate(self.total_base_amount, self.total_tax_amount)

    @classmethod
    def of(cls, records: list[TaxCalculationRecord]) -> TaxSummary:
        return cls(
            total_base_amount=round_amount(sum((r.base_amount for r in records), ZERO)),
            total_tax_amount=round_amount(sum((r.tax_amount for r in records), ZERO)),
            total_amount=round_amount(sum((r.total_amount for r in records), ZERO)),
            calculation_count=len(records),
        )
