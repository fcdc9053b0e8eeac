"""
Module: taxation_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines and their
    value types.  This is the import surface for the orchestration layer.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import taxation_kernel (domain values, logging).
    MUST NOT import taxation_modules.

Invariants enforced:
    - Purity: engines never read the clock; every effective-window check
      receives an explicit date.
    - Decimal-only arithmetic, rounded to 4 fractional digits.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from taxation_engines import GroupCalculator, InclusiveSolver
    from taxation_engines import JurisdictionMatcher, LocationQuery
    from taxation_engines import ExemptionResolver
"""

from taxation_engines.exemptions import ExemptionResolver, exemptions_for
from taxation_engines.jurisdiction import (
    JurisdictionMatcher,
    LocationQuery,
    matches_location,
)
from taxation_engines.tax import (
    GroupCalculator,
    InclusiveSolver,
    SingleRateCalculator,
)
from taxation_engines.tax_types import (
    AppliedExemption,
    AppliedTax,
    ApplicationType,
    Exemption,
    ExemptionEntityType,
    ExemptionType,
    GroupMembership,
    InclusiveSolution,
    Jurisdiction,
    JurisdictionType,
    Rate,
    RateGroup,
    TaxBreakdownLine,
    TaxCategory,
    TaxComputation,
)

__all__ = [
    # Configuration types
    "ApplicationType",
    "Exemption",
    "ExemptionEntityType",
    "ExemptionType",
    "GroupMembership",
    "Jurisdiction",
    "JurisdictionType",
    "Rate",
    "RateGroup",
    "TaxCategory",
    # Result types
    "AppliedExemption",
    "AppliedTax",
    "InclusiveSolution",
    "TaxBreakdownLine",
    "TaxComputation",
    # Engines
    "ExemptionResolver",
    "GroupCalculator",
    "InclusiveSolver",
    "JurisdictionMatcher",
    "LocationQuery",
    "SingleRateCalculator",
    "exemptions_for",
    "matches_location",
]
