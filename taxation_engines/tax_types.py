"""
Tax configuration and result value types.

Pure frozen dataclasses consumed and produced by the calculation engines.
Configuration types (``Rate``, ``RateGroup``, ``GroupMembership``,
``Jurisdiction``, ``Exemption``) are populated by a configuration source
(in-memory or SQL selector) and are read-only inputs to every calculation.
Result types (``TaxBreakdownLine``, ``AppliedTax``, ``AppliedExemption``,
``TaxComputation``) are produced fresh per call.

Architecture: taxation_engines -- pure domain, zero I/O.

Rates are stored as percentages (``Decimal("18")`` is 18%), unlike a
fraction-based representation, because every collaborator in the surrounding
system exchanges percentages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from taxation_kernel.domain.values import (
    HUNDRED,
    ROUNDING_PRECISION,
    ZERO,
    percent_of,
    round_amount,
)


def _within(on_date: date, start: date | None, end: date | None) -> bool:
    """Inclusive window check; a missing bound is open-ended."""
    if start is not None and on_date < start:
        return False
    if end is not None and on_date > end:
        return False
    return True


# =============================================================================
# Enums
# =============================================================================


class TaxCategory(str, Enum):
    """Category tag of a rate."""

    VAT = "vat"  # Value Added Tax
    GST = "gst"  # Goods and Services Tax
    SALES_TAX = "sales_tax"
    EXCISE = "excise"
    CUSTOM = "custom"


class ApplicationType(str, Enum):
    """Aggregation policy of a rate group."""

    STANDARD = "standard"  # sum of member taxes
    COMPOUND = "compound"  # sequential, tax-on-tax for apply_on_previous members
    HIGHEST = "highest"  # largest member tax only
    AVERAGE = "average"  # mean of member taxes


class JurisdictionType(str, Enum):
    COUNTRY = "country"
    STATE = "state"
    CITY = "city"
    POSTAL_CODE = "postal_code"
    CUSTOM = "custom"


class ExemptionEntityType(str, Enum):
    """What kind of entity an exemption is granted to."""

    CUSTOMER = "customer"
    PRODUCT = "product"
    PRODUCT_CATEGORY = "product_category"
    VENDOR = "vendor"


class ExemptionType(str, Enum):
    FULL = "full"
    PARTIAL = "partial"


# =============================================================================
# Configuration types
# =============================================================================


@dataclass(frozen=True)
class Rate:
    """
    A single named tax percentage with an active/effective window.

    ``is_compound`` is informational; compounding is controlled by
    ``GroupMembership.apply_on_previous`` inside a compound group.
    """

    id: UUID
    name: str
    code: str
    rate: Decimal  # percentage, e.g. Decimal("18") for 18%
    category: TaxCategory = TaxCategory.VAT
    is_compound: bool = False
    is_active: bool = True
    effective_from: date | None = None
    effective_to: date | None = None

    def __post_init__(self) -> None:
        if self.rate < ZERO:
            raise ValueError(f"Tax rate {self.code} cannot be negative: {self.rate}")
        if (
            self.effective_from is not None
            and self.effective_to is not None
            and self.effective_to < self.effective_from
        ):
            raise ValueError(f"Tax rate {self.code} effective window is inverted")

    def is_effective(self, on_date: date) -> bool:
        """Check if the rate's effective window covers ``on_date``."""
        return _within(on_date, self.effective_from, self.effective_to)

    def is_active_on(self, on_date: date) -> bool:
        """Active flag set and ``on_date`` inside the effective window."""
        return self.is_active and self.is_effective(on_date)


@dataclass(frozen=True)
class GroupMembership:
    """One rate's position inside a rate group."""

    rate: Rate
    sequence: int
    apply_on_previous: bool = False
    is_active: bool = True


@dataclass(frozen=True)
class RateGroup:
    """An ordered, policy-governed composition of rates."""

    id: UUID
    name: str
    code: str
    application_type: ApplicationType = ApplicationType.STANDARD
    memberships: tuple[GroupMembership, ...] = ()
    is_active: bool = True
    effective_from: date | None = None
    effective_to: date | None = None

    def is_active_on(self, on_date: date) -> bool:
        return self.is_active and _within(
            on_date, self.effective_from, self.effective_to
        )

    def ordered_memberships(self) -> tuple[GroupMembership, ...]:
        """Memberships by sequence; equal sequences fall back to rate id."""
        return tuple(
            sorted(self.memberships, key=lambda m: (m.sequence, str(m.rate.id)))
        )

    def active_memberships(self, on_date: date) -> tuple[GroupMembership, ...]:
        """Ordered memberships whose join row and rate are both active."""
        return tuple(
            m
            for m in self.ordered_memberships()
            if m.is_active and m.rate.is_active_on(on_date)
        )

    def nominal_rate(self, on_date: date) -> Decimal:
        """Headline rate of the group before exemptions (display only)."""
        rates = [m.rate.rate for m in self.active_memberships(on_date)]
        if not rates:
            return ZERO
        if self.application_type == ApplicationType.HIGHEST:
            total = max(rates)
        elif self.application_type == ApplicationType.AVERAGE:
            total = sum(rates, ZERO) / len(rates)
        else:
            total = sum(rates, ZERO)
        return round_amount(total)


@dataclass(frozen=True)
class Jurisdiction:
    """
    A location-keyed binding to exactly one rate or rate group.

    Location fields left as ``None`` act as wildcards when matching.
    """

    id: UUID
    name: str
    code: str
    jurisdiction_type: JurisdictionType
    country_code: str | None = None
    state_code: str | None = None
    city_name: str | None = None
    postal_code: str | None = None
    tax_rate_id: UUID | None = None
    tax_group_id: UUID | None = None
    priority: int = 0
    is_reverse_charge: bool = False  # passthrough, not computed upon
    is_active: bool = True

    def __post_init__(self) -> None:
        if (self.tax_rate_id is None) == (self.tax_group_id is None):
            raise ValueError(
                f"Jurisdiction {self.code} must reference exactly one of "
                "tax_rate_id / tax_group_id"
            )


@dataclass(frozen=True)
class Exemption:
    """
    A full or partial, time-bounded tax reduction for one entity.

    A full exemption zeroes the affected tax; a partial exemption removes
    ``exemption_rate`` percent of it.  The exemption only bites on a rate it
    references directly (``tax_rate_id``) or on any member of a group it
    references (``tax_group_id``).
    """

    id: UUID
    entity_type: ExemptionEntityType
    entity_id: UUID
    exemption_type: ExemptionType
    valid_from: date
    exemption_rate: Decimal = ZERO
    tax_rate_id: UUID | None = None
    tax_group_id: UUID | None = None
    valid_to: date | None = None
    is_active: bool = True
    name: str = ""
    certificate_number: str | None = None

    def __post_init__(self) -> None:
        if not ZERO <= self.exemption_rate <= HUNDRED:
            raise ValueError(
                f"exemption_rate must be within [0, 100], got {self.exemption_rate}"
            )
        if self.valid_to is not None and self.valid_to < self.valid_from:
            raise ValueError("Exemption validity window is inverted")

    @property
    def is_full(self) -> bool:
        return self.exemption_type == ExemptionType.FULL

    @property
    def is_partial(self) -> bool:
        return self.exemption_type == ExemptionType.PARTIAL

    def is_valid_on(self, on_date: date) -> bool:
        return _within(on_date, self.valid_from, self.valid_to)

    def applies_to(self, rate_id: UUID, group_id: UUID | None = None) -> bool:
        """True if this exemption targets the rate or its enclosing group."""
        if self.tax_rate_id is not None and self.tax_rate_id == rate_id:
            return True
        return (
            group_id is not None
            and self.tax_group_id is not None
            and self.tax_group_id == group_id
        )

    def calculate_exempted_amount(
        self,
        tax_amount: Decimal,
        precision: int = ROUNDING_PRECISION,
    ) -> Decimal:
        """Portion of ``tax_amount`` this exemption removes."""
        if self.is_full:
            return tax_amount
        if self.is_partial and self.exemption_rate:
            return percent_of(tax_amount, self.exemption_rate, precision)
        return ZERO


# =============================================================================
# Result types
# =============================================================================


@dataclass(frozen=True)
class TaxBreakdownLine:
    """One per-rate record inside a calculation."""

    rate_id: UUID
    rate_name: str
    rate_percentage: Decimal
    rate_category: TaxCategory
    taxable_base: Decimal
    raw_tax: Decimal
    exempted_amount: Decimal
    net_tax: Decimal
    is_compound: bool = False


@dataclass(frozen=True)
class AppliedTax:
    """Flattened view of a rate and the net tax it contributed."""

    rate_id: UUID
    name: str
    percentage: Decimal
    amount: Decimal


@dataclass(frozen=True)
class AppliedExemption:
    """An exemption that actually reduced tax on a specific rate."""

    exemption_id: UUID
    exemption_type: ExemptionType
    exempted_amount: Decimal
    rate_id: UUID


@dataclass(frozen=True)
class TaxComputation:
    """Aggregate output of the single-rate and group calculators."""

    tax_amount: Decimal
    breakdown: tuple[TaxBreakdownLine, ...] = ()
    applied_taxes: tuple[AppliedTax, ...] = ()
    exemptions_applied: tuple[AppliedExemption, ...] = ()

    @property
    def line_count(self) -> int:
        return len(self.breakdown)

    @classmethod
    def empty(cls) -> TaxComputation:
        return cls(tax_amount=ZERO)


@dataclass(frozen=True)
class InclusiveSolution:
    """Result of reverse-solving a tax-inclusive total."""

    base_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    effective_rate: Decimal
    computation: TaxComputation = field(default_factory=TaxComputation.empty)
