"""
Taxation Module.

Responsibility:
    Orchestration of tax calculation: request validation, configuration
    resolution (explicit rate/group or jurisdiction), dispatch to the
    exclusive calculators or the inclusive solver, and audit record
    emission.  Delegates all arithmetic to ``taxation_engines``.

Architecture:
    taxation_modules -- orchestration (this layer).
    The module owns the request/result/audit DTOs, runtime configuration,
    collaborator contracts with in-memory and SQL implementations, and the
    ``TaxationService`` entry point.

Invariants:
    - All monetary amounts use ``Decimal`` -- NEVER ``float``.
    - Configuration entities are read-only inputs; only audit records are
      written, and only through a ``CalculationRecorder``.

Failure modes:
    - ``TaxationConfig.__post_init__`` raises ``ValueError`` for invalid
      configuration values.
    - ``TaxationService.calculate_tax`` raises ``TaxValidationError``,
      ``NoApplicableTaxError`` (strict mode) or ``TaxCalculationFailedError``.
"""

from taxation_modules.taxation.config import TaxationConfig, load_taxation_config
from taxation_modules.taxation.models import (
    AuditEntityType,
    CalculationRequest,
    CalculationResult,
    TaxCalculationMethod,
    TaxCalculationRecord,
    TaxSummary,
)
from taxation_modules.taxation.recorder import SqlCalculationRecorder
from taxation_modules.taxation.selectors import (
    TaxCalculationSelector,
    TaxConfigurationSelector,
)
from taxation_modules.taxation.service import TaxationService
from taxation_modules.taxation.sources import (
    CalculationRecorder,
    InMemoryCalculationRecorder,
    InMemoryTaxConfiguration,
    TaxConfigurationSource,
)

__all__ = [
    "AuditEntityType",
    "CalculationRecorder",
    "CalculationRequest",
    "CalculationResult",
    "InMemoryCalculationRecorder",
    "InMemoryTaxConfiguration",
    "SqlCalculationRecorder",
    "TaxCalculationMethod",
    "TaxCalculationRecord",
    "TaxCalculationSelector",
    "TaxConfigurationSelector",
    "TaxConfigurationSource",
    "TaxSummary",
    "TaxationConfig",
    "TaxationService",
    "load_taxation_config",
]
