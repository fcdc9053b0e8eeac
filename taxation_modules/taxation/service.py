"""
Taxation Service -- Orchestrates tax calculation via engines + sources.

Responsibility:
    Thin glue layer between the caller's calculation request, the tax
    configuration source and the pure engines.  All tax arithmetic is
    delegated to ``taxation_engines``; all configuration reads go through a
    ``TaxConfigurationSource``; audit writes and reporting reads go through a
    ``CalculationRecorder``.

Architecture:
    taxation_modules -- orchestration (this layer).
    1. Validates the request (fail fast, before any lookup).
    2. Resolves jurisdiction, exemptions and the applicable rate or group.
    3. Dispatches to the exclusive calculators or the inclusive solver.
    4. Optionally packages the result as an audit record for a recorder.

Resolution order:
    explicit group (if active) -> explicit rate (if active)
    -> jurisdiction's group -> jurisdiction's rate -> none.
    An explicit id that is missing or inactive falls through to the next
    step; nothing resolving means zero tax (or ``NoApplicableTaxError`` in
    strict mode).

Invariants:
    - Amounts are ``Decimal`` throughout -- NEVER ``float``.
    - Every monetary value is rounded to ``config.rounding_precision``.
    - The calculation date is explicit: the request's, else the clock's
      current date; engines never read a clock.
    - Callers receive a complete result or an exception, never a partial
      result.

Failure modes:
    - ``TaxValidationError`` for malformed requests (never wrapped).
    - ``NoApplicableTaxError`` in strict mode when nothing resolves.
    - Any other exception raised while calculating is logged with the
      request context and re-raised as ``TaxCalculationFailedError``.
    - ``RecorderNotConfiguredError`` for audit/reporting calls without a
      recorder.

Usage:
    service = TaxationService(InMemoryTaxConfiguration(rates=[vat]))
    result = service.calculate_tax(
        CalculationRequest(amount=Decimal("1000.00"), tax_rate_id=vat.id),
    )
    result.tax_amount  # Decimal("180.0000")
"""

from __future__ import annotations

import time
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Sequence
from uuid import UUID, uuid4

from taxation_engines.exemptions import ExemptionResolver
from taxation_engines.tax import GroupCalculator, InclusiveSolver, SingleRateCalculator
from taxation_engines.tax_types import (
    Exemption,
    Jurisdiction,
    Rate,
    RateGroup,
    TaxComputation,
)
from taxation_kernel.domain.clock import Clock, SystemClock
from taxation_kernel.domain.values import ZERO, round_amount, to_decimal
from taxation_kernel.exceptions import (
    NoApplicableTaxError,
    RecorderNotConfiguredError,
    TaxationError,
    TaxCalculationFailedError,
    TaxValidationError,
)
from taxation_kernel.logging_config import get_logger
from taxation_modules.taxation.config import TaxationConfig
from taxation_modules.taxation.models import (
    AuditEntityType,
    CalculationRequest,
    CalculationResult,
    TaxCalculationMethod,
    TaxCalculationRecord,
    TaxSummary,
)
from taxation_modules.taxation.sources import (
    CalculationRecorder,
    TaxConfigurationSource,
)

logger = get_logger("modules.taxation.service")

_LOCATION_FIELDS = ("country_code", "state_code", "city_name", "postal_code")

# Maximum lengths of the location fields (storage column widths).
_LOCATION_LIMITS = {
    "state_code": 10,
    "city_name": 255,
    "postal_code": 20,
}


class TaxationService:
    """
    Orchestrates tax calculation for the invoicing, purchasing, POS and
    sales-order workflows.

    Contract:
        Receives its configuration source, optional recorder, clock and
        config via constructor injection.  Holds no mutable state, so one
        instance may serve concurrent requests when its source does.

    Non-goals:
        Does not own a transaction; the SQL recorder commits its own writes
        and the SQL selector uses the caller's session read-only.
    """

    def __init__(
        self,
        source: TaxConfigurationSource,
        recorder: CalculationRecorder | None = None,
        clock: Clock | None = None,
        config: TaxationConfig | None = None,
    ):
        self._source = source
        self._recorder = recorder
        self._clock = clock or SystemClock()
        self._config = config or TaxationConfig.with_defaults()

        precision = self._config.rounding_precision
        self._precision = precision
        self._single = SingleRateCalculator(precision)
        self._group = GroupCalculator(self._single, precision)
        self._inclusive = InclusiveSolver(self._single, self._group, precision)
        self._exemption_resolver = ExemptionResolver()

    @property
    def config(self) -> TaxationConfig:
        return self._config

    # =========================================================================
    # Calculation
    # =========================================================================

    def calculate_tax(self, request: CalculationRequest) -> CalculationResult:
        """
        Calculate tax for one request.

        Preconditions:
            - ``request.amount`` is a non-negative ``Decimal``, ``int`` or
              numeric string (the base for exclusive requests, the
              tax-inclusive total for inclusive ones).

        Postconditions:
            - ``total_amount == base_amount + tax_amount`` for exclusive
              requests; for inclusive requests ``total_amount`` echoes the
              input total.

        Raises:
            TaxValidationError: malformed request.
            NoApplicableTaxError: strict mode and nothing resolved.
            TaxCalculationFailedError: any unexpected failure.
        """
        amount = self._validate(request)
        as_of = request.calculation_date or self._clock.today()
        context = _request_context(request)

        logger.info("tax_calculation_started", extra={
            **context,
            "amount": str(amount),
            "as_of": as_of.isoformat(),
        })

        t0 = time.monotonic()
        try:
            result = self._calculate(request, amount, as_of)
        except TaxationError:
            raise
        except Exception as exc:
            logger.error("tax_calculation_failed", exc_info=True, extra=context)
            raise TaxCalculationFailedError(exc) from exc
        duration_ms = round((time.monotonic() - t0) * 1000, 2)

        logger.info("tax_calculation_completed", extra={
            **context,
            "base_amount": str(result.base_amount),
            "tax_amount": str(result.tax_amount),
            "total_amount": str(result.total_amount),
            "line_count": len(result.breakdown),
            "jurisdiction_id": (
                str(result.jurisdiction_id) if result.jurisdiction_id else None
            ),
            "duration_ms": duration_ms,
        })
        return result

    def _calculate(
        self,
        request: CalculationRequest,
        amount: Decimal,
        as_of: date,
    ) -> CalculationResult:
        location = request.location
        jurisdiction = (
            None if location.is_empty else self._source.find_jurisdiction(location)
        )
        exemptions = self._resolve_exemptions(request, as_of)
        target = self._select_target(request, jurisdiction, as_of)

        if target is None:
            logger.warning("tax_configuration_unresolved", extra={
                "tax_rate_id": _str_or_none(request.tax_rate_id),
                "tax_group_id": _str_or_none(request.tax_group_id),
                **location.as_dict(),
                "strict": self._config.strict_resolution,
            })
            if self._config.strict_resolution:
                raise NoApplicableTaxError(
                    tax_rate_id=request.tax_rate_id,
                    tax_group_id=request.tax_group_id,
                    location=location.as_dict(),
                )

        if request.is_inclusive:
            base, tax, total, computation = self._inclusive_amounts(
                amount, target, exemptions, as_of
            )
            method = TaxCalculationMethod.INCLUSIVE
        else:
            base, tax, total, computation = self._exclusive_amounts(
                amount, target, exemptions, as_of
            )
            method = TaxCalculationMethod.EXCLUSIVE

        return CalculationResult(
            base_amount=base,
            tax_amount=tax,
            total_amount=total,
            is_inclusive=request.is_inclusive,
            calculation_method=method,
            breakdown=computation.breakdown,
            applied_taxes=computation.applied_taxes,
            exemptions_applied=computation.exemptions_applied,
            jurisdiction_id=jurisdiction.id if jurisdiction else None,
            calculation_date=as_of,
        )

    def _exclusive_amounts(
        self,
        amount: Decimal,
        target: Rate | RateGroup | None,
        exemptions: Sequence[Exemption],
        as_of: date,
    ) -> tuple[Decimal, Decimal, Decimal, TaxComputation]:
        if target is None:
            computation = TaxComputation.empty()
        elif isinstance(target, RateGroup):
            computation = self._group.calculate(
                base_amount=amount, group=target, exemptions=exemptions, as_of=as_of,
            )
        else:
            computation = self._single.calculate(
                base_amount=amount, rate=target, exemptions=exemptions,
            )
        base = round_amount(amount, self._precision)
        tax = round_amount(computation.tax_amount, self._precision)
        return base, tax, round_amount(base + tax, self._precision), computation

    def _inclusive_amounts(
        self,
        amount: Decimal,
        target: Rate | RateGroup | None,
        exemptions: Sequence[Exemption],
        as_of: date,
    ) -> tuple[Decimal, Decimal, Decimal, TaxComputation]:
        if target is None:
            total = round_amount(amount, self._precision)
            return total, round_amount(ZERO, self._precision), total, TaxComputation.empty()
        if isinstance(target, RateGroup):
            solution = self._inclusive.solve_for_group(
                total_amount=amount, group=target, exemptions=exemptions, as_of=as_of,
            )
        else:
            solution = self._inclusive.solve_for_rate(
                total_amount=amount, rate=target, exemptions=exemptions,
            )
        return (
            solution.base_amount,
            solution.tax_amount,
            solution.total_amount,
            solution.computation,
        )

    # =========================================================================
    # Resolution
    # =========================================================================

    def _resolve_exemptions(
        self, request: CalculationRequest, as_of: date
    ) -> tuple[Exemption, ...]:
        customer = (
            self._source.find_exemptions_for_customer(request.customer_id, as_of)
            if request.customer_id is not None
            else []
        )
        product = (
            self._source.find_exemptions_for_product(request.product_id, as_of)
            if request.product_id is not None
            else []
        )
        return self._exemption_resolver.resolve(
            customer,
            product,
            as_of,
            customer_id=request.customer_id,
            product_id=request.product_id,
        )

    def _select_target(
        self,
        request: CalculationRequest,
        jurisdiction: Jurisdiction | None,
        as_of: date,
    ) -> Rate | RateGroup | None:
        if request.tax_group_id is not None:
            group = self._active_group(request.tax_group_id, as_of)
            if group is not None:
                return group
        if request.tax_rate_id is not None:
            rate = self._active_rate(request.tax_rate_id, as_of)
            if rate is not None:
                return rate
        if jurisdiction is None:
            return None
        if jurisdiction.tax_group_id is not None:
            return self._active_group(jurisdiction.tax_group_id, as_of)
        return self._active_rate(jurisdiction.tax_rate_id, as_of)

    def _active_group(self, group_id: UUID, as_of: date) -> RateGroup | None:
        group = self._source.find_group(group_id)
        if group is None or not group.is_active_on(as_of):
            logger.info("tax_group_unavailable", extra={
                "tax_group_id": str(group_id),
                "found": group is not None,
                "as_of": as_of.isoformat(),
            })
            return None
        return group

    def _active_rate(self, rate_id: UUID, as_of: date) -> Rate | None:
        rate = self._source.find_rate(rate_id)
        if rate is None or not rate.is_active_on(as_of):
            logger.info("tax_rate_unavailable", extra={
                "tax_rate_id": str(rate_id),
                "found": rate is not None,
                "as_of": as_of.isoformat(),
            })
            return None
        return rate

    # =========================================================================
    # Validation
    # =========================================================================

    def _validate(self, request: CalculationRequest) -> Decimal:
        """Check the request; return the amount as a ``Decimal``."""
        try:
            amount = to_decimal(request.amount)
        except (TypeError, ValueError) as exc:
            raise TaxValidationError("amount", request.amount, str(exc)) from exc
        if not amount.is_finite():
            raise TaxValidationError("amount", request.amount, "must be finite")
        if amount < ZERO:
            raise TaxValidationError("amount", request.amount, "cannot be negative")

        for field_name in _LOCATION_FIELDS:
            value = getattr(request, field_name)
            if value is not None and not isinstance(value, str):
                raise TaxValidationError(field_name, value, "must be a string")

        location = request.location
        if location.country_code is not None and not (
            len(location.country_code) == 2 and location.country_code.isalpha()
        ):
            raise TaxValidationError(
                "country_code", request.country_code, "must be a 2-letter code"
            )
        for field_name, limit in _LOCATION_LIMITS.items():
            value = getattr(location, field_name)
            if value is not None and len(value) > limit:
                raise TaxValidationError(
                    field_name, value, f"must be at most {limit} characters"
                )
        return amount

    # =========================================================================
    # Audit and reporting
    # =========================================================================

    def build_audit_record(
        self,
        entity_type: AuditEntityType | str,
        entity_id: UUID,
        result: CalculationResult,
        customer_id: UUID | None = None,
        product_id: UUID | None = None,
        branch_id: UUID | None = None,
    ) -> TaxCalculationRecord:
        """Package ``result`` for the business entity it was calculated for."""
        return TaxCalculationRecord.from_result(
            record_id=uuid4(),
            entity_type=AuditEntityType(entity_type),
            entity_id=entity_id,
            result=result,
            calculated_at=self._clock.now(),
            customer_id=customer_id,
            product_id=product_id,
            branch_id=branch_id,
        )

    def save_tax_calculation(
        self,
        entity_type: AuditEntityType | str,
        entity_id: UUID,
        result: CalculationResult,
        customer_id: UUID | None = None,
        product_id: UUID | None = None,
        branch_id: UUID | None = None,
    ) -> TaxCalculationRecord:
        """
        Build an audit record and hand it to the recorder.

        Raises:
            RecorderNotConfiguredError: no recorder was injected.
            Any exception propagated from the recorder.
        """
        recorder = self._require_recorder("save_tax_calculation")
        record = self.build_audit_record(
            entity_type,
            entity_id,
            result,
            customer_id=customer_id,
            product_id=product_id,
            branch_id=branch_id,
        )
        recorder.persist_calculation(record)

        logger.info("tax_calculation_saved", extra={
            "record_id": str(record.id),
            "entity_type": record.entity_type.value,
            "entity_id": str(entity_id),
            "tax_amount": str(record.tax_amount),
        })
        return record

    def get_tax_summary(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> TaxSummary:
        return self._require_recorder("get_tax_summary").summarize(start, end)

    def get_tax_history(
        self,
        entity_type: AuditEntityType | str,
        entity_id: UUID,
    ) -> list[TaxCalculationRecord]:
        return self._require_recorder("get_tax_history").find_by_entity(
            AuditEntityType(entity_type), entity_id
        )

    def get_customer_history(
        self,
        customer_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[TaxCalculationRecord]:
        return self._require_recorder("get_customer_history").find_by_customer(
            customer_id, start, end
        )

    def _require_recorder(self, operation: str) -> CalculationRecorder:
        if self._recorder is None:
            raise RecorderNotConfiguredError(operation)
        return self._recorder


def _str_or_none(value: Any) -> str | None:
    return None if value is None else str(value)


def _request_context(request: CalculationRequest) -> dict[str, Any]:
    return {
        "is_inclusive": request.is_inclusive,
        "tax_rate_id": _str_or_none(request.tax_rate_id),
        "tax_group_id": _str_or_none(request.tax_group_id),
        "customer_id": _str_or_none(request.customer_id),
        "product_id": _str_or_none(request.product_id),
        "branch_id": _str_or_none(request.branch_id),
        "country_code": request.country_code,
    }
