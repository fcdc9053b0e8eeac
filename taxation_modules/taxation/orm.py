"""
Taxation ORM Persistence Models (``taxation_modules.taxation.orm``).

Responsibility:
    SQLAlchemy ORM models that persist the engine's configuration DTOs
    (``taxation_engines.tax_types``) and the calculation audit records
    (``taxation_modules.taxation.models``).  Each ORM class mirrors a DTO and
    provides ``to_dto()``; configuration models also provide
    ``from_dto(dto, created_by_id)``.

Architecture position:
    **Modules layer** -- persistence companions to the pure DTO models.
    Configuration models inherit from ``TrackedBase`` which provides:
    id (UUID PK, auto-generated), created_at, updated_at,
    created_by_id (NOT NULL UUID), updated_by_id (nullable UUID).
    Group membership rows and audit records inherit from ``Base``.

Invariants enforced:
    - All monetary and rate fields use Decimal (maps to Numeric(38,9)).
    - Enum fields stored as String(50) containing the enum .value string.
    - A jurisdiction references exactly one of rate / group
      (ck_tax_jurisdiction_single_target).
    - Audit breakdowns are stored as JSON lists of JSON-safe dicts.
    - ``calculated_at`` is stored in UTC.

Audit relevance:
    ``tax_calculations`` is append-only; nothing in this package updates or
    deletes its rows.
"""

from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taxation_kernel.db.base import Base, TrackedBase


def _enum_value(value):
    return value.value if hasattr(value, "value") else value


# ---------------------------------------------------------------------------
# TaxRateModel
# ---------------------------------------------------------------------------

class TaxRateModel(TrackedBase):
    """
    ORM model for ``Rate`` -- one named tax percentage.

    Guarantees:
        - ``code`` is unique (uq_tax_rate_code).
        - ``category`` stores the TaxCategory enum .value string.
    """

    __tablename__ = "tax_rates"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    rate: Mapped[Decimal] = mapped_column(nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="vat")
    is_compound: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    effective_from: Mapped[date | None] = mapped_column(Date, nullable=True)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        UniqueConstraint("code", name="uq_tax_rate_code"),
        Index("idx_tax_rate_active", "is_active"),
        Index("idx_tax_rate_category", "category"),
    )

    def to_dto(self):
        from taxation_engines.tax_types import Rate, TaxCategory
        return Rate(
            id=self.id,
            name=self.name,
            code=self.code,
            rate=self.rate,
            category=TaxCategory(self.category),
            is_compound=self.is_compound,
            is_active=self.is_active,
            effective_from=self.effective_from,
            effective_to=self.effective_to,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "TaxRateModel":
        return cls(
            id=dto.id,
            name=dto.name,
            code=dto.code,
            rate=dto.rate,
            category=_enum_value(dto.category),
            is_compound=dto.is_compound,
            is_active=dto.is_active,
            effective_from=dto.effective_from,
            effective_to=dto.effective_to,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<TaxRateModel {self.code}: {self.rate}% ({self.category})>"


# ---------------------------------------------------------------------------
# TaxGroupModel / TaxGroupRateModel
# ---------------------------------------------------------------------------

class TaxGroupModel(TrackedBase):
    """
    ORM model for ``RateGroup`` -- an ordered, policy-governed set of rates.

    Contract:
        Memberships are owned by the group (cascade delete-orphan) and are
        eagerly loaded with their rates so ``to_dto()`` never lazy-loads
        row by row.
    """

    __tablename__ = "tax_groups"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    application_type: Mapped[str] = mapped_column(
        String(50), nullable=False, default="standard",
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    effective_from: Mapped[date | None] = mapped_column(Date, nullable=True)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)

    memberships: Mapped[list["TaxGroupRateModel"]] = relationship(
        back_populates="group",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="TaxGroupRateModel.sequence",
    )

    __table_args__ = (
        UniqueConstraint("code", name="uq_tax_group_code"),
        Index("idx_tax_group_active", "is_active"),
    )

    def to_dto(self):
        from taxation_engines.tax_types import ApplicationType, RateGroup
        return RateGroup(
            id=self.id,
            name=self.name,
            code=self.code,
            application_type=ApplicationType(self.application_type),
            memberships=tuple(m.to_dto() for m in self.memberships),
            is_active=self.is_active,
            effective_from=self.effective_from,
            effective_to=self.effective_to,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "TaxGroupModel":
        """Build the group and its membership rows; member rates must exist."""
        return cls(
            id=dto.id,
            name=dto.name,
            code=dto.code,
            application_type=_enum_value(dto.application_type),
            is_active=dto.is_active,
            effective_from=dto.effective_from,
            effective_to=dto.effective_to,
            memberships=[
                TaxGroupRateModel(
                    tax_rate_id=m.rate.id,
                    sequence=m.sequence,
                    apply_on_previous=m.apply_on_previous,
                    is_active=m.is_active,
                )
                for m in dto.memberships
            ],
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<TaxGroupModel {self.code}: {self.application_type}>"


class TaxGroupRateModel(Base):
    """
    Join row placing a rate inside a group.

    Guarantees:
        - A rate appears at most once per group (uq_tax_group_rate).
    """

    __tablename__ = "tax_group_rates"

    tax_group_id: Mapped[UUID] = mapped_column(
        ForeignKey("tax_groups.id"), nullable=False,
    )
    tax_rate_id: Mapped[UUID] = mapped_column(
        ForeignKey("tax_rates.id"), nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    apply_on_previous: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    group: Mapped["TaxGroupModel"] = relationship(back_populates="memberships")
    rate: Mapped["TaxRateModel"] = relationship(lazy="joined")

    __table_args__ = (
        UniqueConstraint("tax_group_id", "tax_rate_id", name="uq_tax_group_rate"),
        Index("idx_tax_group_rate_group", "tax_group_id"),
    )

    def to_dto(self):
        from taxation_engines.tax_types import GroupMembership
        return GroupMembership(
            rate=self.rate.to_dto(),
            sequence=self.sequence,
            apply_on_previous=self.apply_on_previous,
            is_active=self.is_active,
        )

    def __repr__(self) -> str:
        return (
            f"<TaxGroupRateModel group={self.tax_group_id} "
            f"rate={self.tax_rate_id} seq={self.sequence}>"
        )


# ---------------------------------------------------------------------------
# TaxJurisdictionModel
# ---------------------------------------------------------------------------

class TaxJurisdictionModel(TrackedBase):
    """
    ORM model for ``Jurisdiction`` -- a location-keyed binding to a rate or
    group.

    Guarantees:
        - ``code`` is unique (uq_tax_jurisdiction_code).
        - Exactly one of ``tax_rate_id`` / ``tax_group_id`` is set.
    """

    __tablename__ = "tax_jurisdictions"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    jurisdiction_type: Mapped[str] = mapped_column(String(50), nullable=False)
    country_code: Mapped[str | None] = mapped_column(String(2), nullable=True)
    state_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    city_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    postal_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    tax_rate_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("tax_rates.id"), nullable=True,
    )
    tax_group_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("tax_groups.id"), nullable=True,
    )
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_reverse_charge: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("code", name="uq_tax_jurisdiction_code"),
        CheckConstraint(
            "(tax_rate_id IS NULL) <> (tax_group_id IS NULL)",
            name="ck_tax_jurisdiction_single_target",
        ),
        Index("idx_tax_jurisdiction_location", "country_code", "state_code"),
        Index("idx_tax_jurisdiction_active", "is_active"),
    )

    def to_dto(self):
        from taxation_engines.tax_types import Jurisdiction, JurisdictionType
        return Jurisdiction(
            id=self.id,
            name=self.name,
            code=self.code,
            jurisdiction_type=JurisdictionType(self.jurisdiction_type),
            country_code=self.country_code,
            state_code=self.state_code,
            city_name=self.city_name,
            postal_code=self.postal_code,
            tax_rate_id=self.tax_rate_id,
            tax_group_id=self.tax_group_id,
            priority=self.priority,
            is_reverse_charge=self.is_reverse_charge,
            is_active=self.is_active,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "TaxJurisdictionModel":
        return cls(
            id=dto.id,
            name=dto.name,
            code=dto.code,
            jurisdiction_type=_enum_value(dto.jurisdiction_type),
            country_code=dto.country_code,
            state_code=dto.state_code,
            city_name=dto.city_name,
            postal_code=dto.postal_code,
            tax_rate_id=dto.tax_rate_id,
            tax_group_id=dto.tax_group_id,
            priority=dto.priority,
            is_reverse_charge=dto.is_reverse_charge,
            is_active=dto.is_active,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return (
            f"<TaxJurisdictionModel {self.code}: {self.name} "
            f"({self.jurisdiction_type}, priority={self.priority})>"
        )


# ---------------------------------------------------------------------------
# TaxExemptionModel
# ---------------------------------------------------------------------------

class TaxExemptionModel(TrackedBase):
    """
    ORM model for ``Exemption`` -- a time-bounded tax reduction for one
    customer, product, product category or vendor.

    Contract:
        ``entity_id`` is a polymorphic reference discriminated by
        ``entity_type``; it carries no FK.
    """

    __tablename__ = "tax_exemptions"

    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(nullable=False)
    tax_rate_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("tax_rates.id"), nullable=True,
    )
    tax_group_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("tax_groups.id"), nullable=True,
    )
    exemption_type: Mapped[str] = mapped_column(String(50), nullable=False)
    exemption_rate: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0"),
    )
    certificate_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    valid_from: Mapped[date] = mapped_column(Date, nullable=False)
    valid_to: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("idx_tax_exemption_entity", "entity_type", "entity_id"),
        Index("idx_tax_exemption_validity", "valid_from", "valid_to"),
    )

    def to_dto(self):
        from taxation_engines.tax_types import (
            Exemption,
            ExemptionEntityType,
            ExemptionType,
        )
        return Exemption(
            id=self.id,
            entity_type=ExemptionEntityType(self.entity_type),
            entity_id=self.entity_id,
            exemption_type=ExemptionType(self.exemption_type),
            valid_from=self.valid_from,
            exemption_rate=self.exemption_rate,
            tax_rate_id=self.tax_rate_id,
            tax_group_id=self.tax_group_id,
            valid_to=self.valid_to,
            is_active=self.is_active,
            name=self.name,
            certificate_number=self.certificate_number,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "TaxExemptionModel":
        return cls(
            id=dto.id,
            name=dto.name,
            entity_type=_enum_value(dto.entity_type),
            entity_id=dto.entity_id,
            tax_rate_id=dto.tax_rate_id,
            tax_group_id=dto.tax_group_id,
            exemption_type=_enum_value(dto.exemption_type),
            exemption_rate=dto.exemption_rate,
            certificate_number=dto.certificate_number,
            valid_from=dto.valid_from,
            valid_to=dto.valid_to,
            is_active=dto.is_active,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return (
            f"<TaxExemptionModel {self.exemption_type} for "
            f"{self.entity_type}:{self.entity_id}>"
        )


# ---------------------------------------------------------------------------
# TaxCalculationModel
# ---------------------------------------------------------------------------

class TaxCalculationModel(Base):
    """
    ORM model for ``TaxCalculationRecord`` -- one audited calculation.

    Guarantees:
        - Breakdown, applied taxes and applied exemptions are JSON lists.
        - ``entity_type`` and ``calculation_method`` store enum .value strings.
    """

    __tablename__ = "tax_calculations"

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(nullable=False)
    base_amount: Mapped[Decimal] = mapped_column(nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    is_inclusive: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    calculation_method: Mapped[str] = mapped_column(String(20), nullable=False)
    tax_breakdown: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    applied_taxes: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    exemptions_applied: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    tax_jurisdiction_id: Mapped[UUID | None] = mapped_column(nullable=True)
    customer_id: Mapped[UUID | None] = mapped_column(nullable=True)
    product_id: Mapped[UUID | None] = mapped_column(nullable=True)
    branch_id: Mapped[UUID | None] = mapped_column(nullable=True)
    calculated_at: Mapped[datetime] = mapped_column(nullable=False)

    __table_args__ = (
        Index("idx_tax_calculation_entity", "entity_type", "entity_id"),
        Index("idx_tax_calculation_customer", "customer_id"),
        Index("idx_tax_calculation_calculated_at", "calculated_at"),
    )

    def to_dto(self):
        from taxation_modules.taxation.models import (
            AuditEntityType,
            TaxCalculationMethod,
            TaxCalculationRecord,
        )
        calculated_at = self.calculated_at
        if calculated_at.tzinfo is None:
            calculated_at = calculated_at.replace(tzinfo=UTC)
        return TaxCalculationRecord(
            id=self.id,
            entity_type=AuditEntityType(self.entity_type),
            entity_id=self.entity_id,
            base_amount=self.base_amount,
            tax_amount=self.tax_amount,
            total_amount=self.total_amount,
            is_inclusive=self.is_inclusive,
            calculation_method=TaxCalculationMethod(self.calculation_method),
            calculated_at=calculated_at,
            tax_breakdown=tuple(self.tax_breakdown or ()),
            applied_taxes=tuple(self.applied_taxes or ()),
            exemptions_applied=tuple(self.exemptions_applied or ()),
            jurisdiction_id=self.tax_jurisdiction_id,
            customer_id=self.customer_id,
            product_id=self.product_id,
            branch_id=self.branch_id,
        )

    @classmethod
    def from_dto(cls, dto) -> "TaxCalculationModel":
        return cls(
            id=dto.id,
            entity_type=_enum_value(dto.entity_type),
            entity_id=dto.entity_id,
            base_amount=dto.base_amount,
            tax_amount=dto.tax_amount,
            total_amount=dto.total_amount,
            is_inclusive=dto.is_inclusive,
            calculation_method=_enum_value(dto.calculation_method),
            tax_breakdown=list(dto.tax_breakdown),
            applied_taxes=list(dto.applied_taxes),
            exemptions_applied=list(dto.exemptions_applied),
            tax_jurisdiction_id=dto.jurisdiction_id,
            customer_id=dto.customer_id,
            product_id=dto.product_id,
            branch_id=dto.branch_id,
            calculated_at=dto.calculated_at,
        )

    def __repr__(self) -> str:
        return (
            f"<TaxCalculationModel {self.entity_type}:{self.entity_id} "
            f"tax={self.tax_amount}>"
        )
