"""
Taxation query selectors.

Provides read-only access to tax configuration and the calculation audit
trail over SQLAlchemy.

Key design decisions:
- Returns DTOs (frozen dataclasses), not ORM models
- Uses the caller's Session, never creates its own
- Jurisdiction lookup narrows candidates in SQL, then lets the pure
  ``JurisdictionMatcher`` pick the winner so SQL and in-memory sources rank
  identically
- Exemptions come back ordered by (valid_from, id); that order is the
  encounter order the inclusive solver applies partial exemptions in
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from taxation_engines.jurisdiction import JurisdictionMatcher, LocationQuery
from taxation_engines.tax_types import (
    Exemption,
    ExemptionEntityType,
    Jurisdiction,
    Rate,
    RateGroup,
)
from taxation_kernel.domain.values import round_amount
from taxation_kernel.logging_config import get_logger
from taxation_kernel.selectors.base import BaseSelector
from taxation_modules.taxation.models import (
    AuditEntityType,
    TaxCalculationRecord,
    TaxSummary,
)
from taxation_modules.taxation.orm import (
    TaxCalculationModel,
    TaxExemptionModel,
    TaxGroupModel,
    TaxJurisdictionModel,
    TaxRateModel,
)
from taxation_modules.taxation.sources import TaxConfigurationSource

logger = get_logger("modules.taxation.selectors")


class TaxConfigurationSelector(BaseSelector[TaxRateModel], TaxConfigurationSource):
    """SQL-backed ``TaxConfigurationSource``."""

    def __init__(self, session: Session, matcher: JurisdictionMatcher | None = None):
        super().__init__(session)
        self._matcher = matcher or JurisdictionMatcher()

    def find_rate(self, rate_id: UUID) -> Rate | None:
        model = self.session.get(TaxRateModel, rate_id)
        return model.to_dto() if model is not None else None

    def find_group(self, group_id: UUID) -> RateGroup | None:
        model = self.session.get(TaxGroupModel, group_id)
        return model.to_dto() if model is not None else None

    def find_jurisdiction(self, query: LocationQuery) -> Jurisdiction | None:
        if query.is_empty:
            return None

        stmt = select(TaxJurisdictionModel).where(
            TaxJurisdictionModel.is_active.is_(True)
        )
        for column, value in (
            (TaxJurisdictionModel.country_code, query.country_code),
            (TaxJurisdictionModel.state_code, query.state_code),
            (TaxJurisdictionModel.postal_code, query.postal_code),
        ):
            if value is None:
                stmt = stmt.where(column.is_(None))
            else:
                stmt = stmt.where(or_(column.is_(None), column == value))
        if query.city_name is None:
            stmt = stmt.where(TaxJurisdictionModel.city_name.is_(None))
        else:
            stmt = stmt.where(or_(
                TaxJurisdictionModel.city_name.is_(None),
                func.lower(TaxJurisdictionModel.city_name) == query.city_name.lower(),
            ))

        candidates = [m.to_dto() for m in self.session.scalars(stmt)]
        logger.debug("jurisdiction_candidates_loaded", extra={
            "candidate_count": len(candidates),
        })
        return self._matcher.match(candidates, query)

    def find_exemptions_for_customer(
        self, customer_id: UUID, as_of: date
    ) -> list[Exemption]:
        return self._exemptions(ExemptionEntityType.CUSTOMER, customer_id, as_of)

    def find_exemptions_for_product(
        self, product_id: UUID, as_of: date
    ) -> list[Exemption]:
        return self._exemptions(ExemptionEntityType.PRODUCT, product_id, as_of)

    def _exemptions(
        self,
        entity_type: ExemptionEntityType,
        entity_id: UUID,
        as_of: date,
    ) -> list[Exemption]:
        stmt = (
            select(TaxExemptionModel)
            .where(
                TaxExemptionModel.entity_type == entity_type.value,
                TaxExemptionModel.entity_id == entity_id,
                TaxExemptionModel.is_active.is_(True),
                TaxExemptionModel.valid_from <= as_of,
                or_(
                    TaxExemptionModel.valid_to.is_(None),
                    TaxExemptionModel.valid_to >= as_of,
                ),
            )
            .order_by(TaxExemptionModel.valid_from, TaxExemptionModel.id)
        )
        return [m.to_dto() for m in self.session.scalars(stmt)]


class TaxCalculationSelector(BaseSelector[TaxCalculationModel]):
    """Reporting reads over ``tax_calculations``."""

    def get_tax_summary(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> TaxSummary:
        stmt = select(
            func.coalesce(func.sum(TaxCalculationModel.base_amount), 0),
            func.coalesce(func.sum(TaxCalculationModel.tax_amount), 0),
            func.coalesce(func.sum(TaxCalculationModel.total_amount), 0),
            func.count(TaxCalculationModel.id),
        )
        stmt = self._within(stmt, start, end)
        base, tax, total, count = self.session.execute(stmt).one()
        return TaxSummary(
            total_base_amount=round_amount(Decimal(str(base))),
            total_tax_amount=round_amount(Decimal(str(tax))),
            total_amount=round_amount(Decimal(str(total))),
            calculation_count=int(count),
        )

    def find_by_entity(
        self, entity_type: AuditEntityType, entity_id: UUID
    ) -> list[TaxCalculationRecord]:
        stmt = (
            select(TaxCalculationModel)
            .where(
                TaxCalculationModel.entity_type == AuditEntityType(entity_type).value,
                TaxCalculationModel.entity_id == entity_id,
            )
            .order_by(
                TaxCalculationModel.calculated_at.desc(),
                TaxCalculationModel.id.desc(),
            )
        )
        return [m.to_dto() for m in self.session.scalars(stmt)]

    def find_by_customer(
        self,
        customer_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[TaxCalculationRecord]:
        stmt = select(TaxCalculationModel).where(
            TaxCalculationModel.customer_id == customer_id
        )
        stmt = self._within(stmt, start, end).order_by(
            TaxCalculationModel.calculated_at.desc(),
            TaxCalculationModel.id.desc(),
        )
        return [m.to_dto() for m in self.session.scalars(stmt)]

    @staticmethod
    def _within(stmt, start: datetime | None, end: datetime | None):
        if start is not None:
            stmt = stmt.where(TaxCalculationModel.calculated_at >= start)
        if end is not None:
            stmt = stmt.where(TaxCalculationModel.calculated_at <= end)
        return stmt
