"""
Taxation collaborator contracts and in-memory implementations.

Responsibility:
    ``TaxConfigurationSource`` is everything the orchestrator reads
    (rates, groups, jurisdictions, exemptions); ``CalculationRecorder`` is
    where audit records go and what reporting queries read back.

Architecture:
    taxation_modules -- orchestration layer.  The SQL implementations live
    in ``selectors`` and ``recorder``; the in-memory implementations here
    serve embedding callers and tests.

Invariants:
    - Sources return engine DTOs, never ORM rows.
    - Jurisdiction lookup is date-independent (jurisdictions have no
      effective window); exemption lookups take an explicit ``as_of``.
    - The in-memory recorder is append-only and safe to share across
      threads.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Iterable
from uuid import UUID

from taxation_engines.jurisdiction import JurisdictionMatcher, LocationQuery
from taxation_engines.tax_types import (
    Exemption,
    ExemptionEntityType,
    Jurisdiction,
    Rate,
    RateGroup,
)
from taxation_kernel.logging_config import get_logger
from taxation_modules.taxation.models import (
    AuditEntityType,
    TaxCalculationRecord,
    TaxSummary,
)

logger = get_logger("modules.taxation.sources")


# =============================================================================
# Contracts
# =============================================================================


class TaxConfigurationSource(ABC):
    """Read-only access to tax configuration."""

    @abstractmethod
    def find_rate(self, rate_id: UUID) -> Rate | None:
        ...

    @abstractmethod
    def find_group(self, group_id: UUID) -> RateGroup | None:
        """The group with its memberships (active or not), or ``None``."""

    @abstractmethod
    def find_jurisdiction(self, query: LocationQuery) -> Jurisdiction | None:
        """Highest-precedence active jurisdiction matching ``query``."""

    @abstractmethod
    def find_exemptions_for_customer(
        self, customer_id: UUID, as_of: date
    ) -> list[Exemption]:
        ...

    @abstractmethod
    def find_exemptions_for_product(
        self, product_id: UUID, as_of: date
    ) -> list[Exemption]:
        ...


class CalculationRecorder(ABC):
    """Append-only audit store for calculation records plus reporting reads."""

    @abstractmethod
    def persist_calculation(self, record: TaxCalculationRecord) -> None:
        ...

    @abstractmethod
    def summarize(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> TaxSummary:
        """Totals over records calculated within [start, end]."""

    @abstractmethod
    def find_by_entity(
        self, entity_type: AuditEntityType, entity_id: UUID
    ) -> list[TaxCalculationRecord]:
        """Records for one business entity, newest first."""

    @abstractmethod
    def find_by_customer(
        self,
        customer_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[TaxCalculationRecord]:
        """Records for one customer within [start, end], newest first."""


# =============================================================================
# In-memory implementations
# =============================================================================


def _is_valid_for(
    exemption: Exemption,
    entity_type: ExemptionEntityType,
    entity_id: UUID,
    as_of: date,
) -> bool:
    return (
        exemption.entity_type == entity_type
        and exemption.entity_id == entity_id
        and exemption.is_active
        and exemption.is_valid_on(as_of)
    )


class InMemoryTaxConfiguration(TaxConfigurationSource):
    """
    Dictionary-backed configuration source.

    Jurisdiction lookup delegates to the pure ``JurisdictionMatcher`` over
    every jurisdiction held.  Exemptions are returned in insertion order.
    """

    def __init__(
        self,
        rates: Iterable[Rate] = (),
        groups: Iterable[RateGroup] = (),
        jurisdictions: Iterable[Jurisdiction] = (),
        exemptions: Iterable[Exemption] = (),
        matcher: JurisdictionMatcher | None = None,
    ):
        self._rates: dict[UUID, Rate] = {}
        self._groups: dict[UUID, RateGroup] = {}
        self._jurisdictions: dict[UUID, Jurisdiction] = {}
        self._exemptions: dict[UUID, Exemption] = {}
        self._matcher = matcher or JurisdictionMatcher()
        for rate in rates:
            self.add_rate(rate)
        for group in groups:
            self.add_group(group)
        for jurisdiction in jurisdictions:
            self.add_jurisdiction(jurisdiction)
        for exemption in exemptions:
            self.add_exemption(exemption)

    def add_rate(self, rate: Rate) -> None:
        self._rates[rate.id] = rate

    def add_group(self, group: RateGroup) -> None:
        self._groups[group.id] = group
        for membership in group.memberships:
            self._rates.setdefault(membership.rate.id, membership.rate)

    def add_jurisdiction(self, jurisdiction: Jurisdiction) -> None:
        self._jurisdictions[jurisdiction.id] = jurisdiction

    def add_exemption(self, exemption: Exemption) -> None:
        self._exemptions[exemption.id] = exemption

    def find_rate(self, rate_id: UUID) -> Rate | None:
        return self._rates.get(rate_id)

    def find_group(self, group_id: UUID) -> RateGroup | None:
        return self._groups.get(group_id)

    def find_jurisdiction(self, query: LocationQuery) -> Jurisdiction | None:
        return self._matcher.match(self._jurisdictions.values(), query)

    def find_exemptions_for_customer(
        self, customer_id: UUID, as_of: date
    ) -> list[Exemption]:
        return [
            e for e in self._exemptions.values()
            if _is_valid_for(e, ExemptionEntityType.CUSTOMER, customer_id, as_of)
        ]

    def find_exemptions_for_product(
        self, product_id: UUID, as_of: date
    ) -> list[Exemption]:
        return [
            e for e in self._exemptions.values()
            if _is_valid_for(e, ExemptionEntityType.PRODUCT, product_id, as_of)
        ]


def _within(
    moment: datetime, start: datetime | None, end: datetime | None
) -> bool:
    if start is not None and moment < start:
        return False
    if end is not None and moment > end:
        return False
    return True


def _newest_first(records: Iterable[TaxCalculationRecord]) -> list[TaxCalculationRecord]:
    return sorted(records, key=lambda r: (r.calculated_at, str(r.id)), reverse=True)


class InMemoryCalculationRecorder(CalculationRecorder):
    """List-backed recorder; appends under a lock."""

    def __init__(self) -> None:
        self._records: list[TaxCalculationRecord] = []
        self._lock = threading.Lock()

    @property
    def records(self) -> tuple[TaxCalculationRecord, ...]:
        with self._lock:
            return tuple(self._records)

    def persist_calculation(self, record: TaxCalculationRecord) -> None:
        with self._lock:
            self._records.append(record)
        logger.debug("tax_calculation_recorded", extra={
            "record_id": str(record.id),
            "entity_type": record.entity_type.value,
            "entity_id": str(record.entity_id),
        })

    def summarize(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> TaxSummary:
        return TaxSummary.of(
            [r for r in self.records if _within(r.calculated_at, start, end)]
        )

    def find_by_entity(
        self, entity_type: AuditEntityType, entity_id: UUID
    ) -> list[TaxCalculationRecord]:
        entity_type = AuditEntityType(entity_type)
        return _newest_first(
            r for r in self.records
            if r.entity_type == entity_type and r.entity_id == entity_id
        )

    def find_by_customer(
        self,
        customer_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[TaxCalculationRecord]:
        return _newest_first(
            r for r in self.records
            if r.customer_id == customer_id and _within(r.calculated_at, start, end)
        )
