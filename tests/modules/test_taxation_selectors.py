"""
Tests for the SQL-backed configuration source and calculation recorder.

Covers:
- Rate and group lookup (memberships ordered, rates eagerly loaded)
- Jurisdiction narrowing in SQL plus priority ranking
- Exemption lookup filtered by entity, active flag and validity window
- Audit persistence, summaries and history ordering
- TaxationService running end to end against SQLite
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from taxation_engines.jurisdiction import LocationQuery
from taxation_engines.tax_types import (
    ApplicationType,
    Exemption,
    ExemptionEntityType,
    ExemptionType,
    GroupMembership,
    Jurisdiction,
    JurisdictionType,
    Rate,
    RateGroup,
)
from taxation_modules.taxation.models import (
    AuditEntityType,
    CalculationRequest,
    TaxCalculationMethod,
    TaxCalculationRecord,
)
from taxation_modules.taxation.orm import (
    TaxExemptionModel,
    TaxGroupModel,
    TaxJurisdictionModel,
    TaxRateModel,
)
from taxation_modules.taxation.recorder import SqlCalculationRecorder
from taxation_modules.taxation.selectors import TaxConfigurationSelector
from taxation_modules.taxation.service import TaxationService

AS_OF = date(2024, 6, 15)
NOW = datetime(2024, 6, 15, 9, 30, tzinfo=timezone.utc)
CUSTOMER_ID = uuid4()
PRODUCT_ID = uuid4()


def _make_rate(code: str, percentage: str, **kwargs) -> Rate:
    return Rate(id=uuid4(), name=code, code=code, rate=Decimal(percentage), **kwargs)


def _make_jurisdiction(code: str, priority: int, **kwargs) -> Jurisdiction:
    kwargs.setdefault("jurisdiction_type", JurisdictionType.CUSTOM)
    return Jurisdiction(id=uuid4(), name=code, code=code, priority=priority, **kwargs)


def _make_exemption(entity_type, entity_id, **kwargs) -> Exemption:
    kwargs.setdefault("exemption_type", ExemptionType.FULL)
    kwargs.setdefault("valid_from", date(2024, 1, 1))
    return Exemption(
        id=uuid4(), entity_type=entity_type, entity_id=entity_id, **kwargs,
    )


def _make_record(**kwargs) -> TaxCalculationRecord:
    kwargs.setdefault("entity_type", AuditEntityType.INVOICE)
    kwargs.setdefault("entity_id", uuid4())
    kwargs.setdefault("calculated_at", NOW)
    kwargs.setdefault("customer_id", CUSTOMER_ID)
    base = kwargs.pop("base", Decimal("100.0000"))
    tax = kwargs.pop("tax", Decimal("18.0000"))
    return TaxCalculationRecord(
        id=uuid4(),
        base_amount=base,
        tax_amount=tax,
        total_amount=base + tax,
        is_inclusive=False,
        calculation_method=TaxCalculationMethod.EXCLUSIVE,
        **kwargs,
    )


class _SeededDatabase:
    """Seeds a small US/DE configuration before each test."""

    @pytest.fixture(autouse=True)
    def _seed(self, session, test_actor_id):
        self.session = session
        self.vat = _make_rate("VAT18", "18")
        self.state = _make_rate("NY-STATE", "10")
        self.city = _make_rate("NYC", "5")
        self.federal = _make_rate("US-FED", "2")
        self.group = RateGroup(
            id=uuid4(),
            name="NY Compound",
            code="NY-COMPOUND",
            application_type=ApplicationType.COMPOUND,
            memberships=(
                GroupMembership(rate=self.city, sequence=2, apply_on_previous=True),
                GroupMembership(rate=self.state, sequence=1, apply_on_previous=True),
            ),
        )
        self.us = _make_jurisdiction(
            "US", 1, country_code="US", tax_rate_id=self.federal.id,
        )
        self.ny = _make_jurisdiction(
            "US-NY", 5, country_code="US", state_code="NY",
            tax_group_id=self.group.id,
        )
        self.nyc = _make_jurisdiction(
            "US-NY-NYC", 10, country_code="US", state_code="NY",
            city_name="New York", tax_rate_id=self.city.id,
        )
        self.closed = _make_jurisdiction(
            "US-CLOSED", 100, country_code="US", tax_rate_id=self.vat.id,
            is_active=False,
        )
        self.de = _make_jurisdiction(
            "DE", 0, country_code="DE", tax_rate_id=self.vat.id,
        )

        for rate in (self.vat, self.state, self.city, self.federal):
            session.add(TaxRateModel.from_dto(rate, test_actor_id))
        session.flush()
        session.add(TaxGroupModel.from_dto(self.group, test_actor_id))
        for jurisdiction in (self.us, self.ny, self.nyc, self.closed, self.de):
            session.add(TaxJurisdictionModel.from_dto(jurisdiction, test_actor_id))
        session.commit()
        session.expire_all()

        self.selector = TaxConfigurationSelector(session)

    def _add_exemptions(self, *exemptions, actor_id):
        for exemption in exemptions:
            self.session.add(TaxExemptionModel.from_dto(exemption, actor_id))
        self.session.commit()


class TestRateAndGroupLookup(_SeededDatabase):

    def test_find_rate(self):
        assert self.selector.find_rate(self.vat.id) == self.vat

    def test_find_rate_missing(self):
        assert self.selector.find_rate(uuid4()) is None

    def test_find_group_orders_memberships(self):
        group = self.selector.find_group(self.group.id)

        assert group.application_type == ApplicationType.COMPOUND
        assert [m.rate for m in group.memberships] == [self.state, self.city]
        assert group.memberships[1].apply_on_previous is True

    def test_find_group_missing(self):
        assert self.selector.find_group(uuid4()) is None


class TestJurisdictionLookup(_SeededDatabase):

    def test_most_specific_match_wins(self):
        query = LocationQuery(country_code="US", state_code="NY", city_name="new york")

        assert self.selector.find_jurisdiction(query) == self.nyc

    def test_unmatched_city_falls_back_to_state(self):
        query = LocationQuery(country_code="US", state_code="NY", city_name="Buffalo")

        assert self.selector.find_jurisdiction(query) == self.ny

    def test_unmatched_state_falls_back_to_country(self):
        query = LocationQuery(country_code="US", state_code="CA")

        assert self.selector.find_jurisdiction(query) == self.us

    def test_inactive_jurisdiction_ignored(self):
        query = LocationQuery(country_code="US")

        assert self.selector.find_jurisdiction(query) == self.us

    def test_unknown_country(self):
        assert self.selector.find_jurisdiction(LocationQuery(country_code="FR")) is None

    def test_empty_query(self):
        assert self.selector.find_jurisdiction(LocationQuery()) is None


class TestExemptionLookup(_SeededDatabase):

    def test_only_active_valid_customer_exemptions(self, test_actor_id):
        valid = _make_exemption(
            ExemptionEntityType.CUSTOMER, CUSTOMER_ID, tax_rate_id=self.vat.id,
        )
        expired = _make_exemption(
            ExemptionEntityType.CUSTOMER, CUSTOMER_ID, tax_rate_id=self.vat.id,
            valid_from=date(2023, 1, 1), valid_to=date(2023, 12, 31),
        )
        future = _make_exemption(
            ExemptionEntityType.CUSTOMER, CUSTOMER_ID, tax_rate_id=self.vat.id,
            valid_from=date(2025, 1, 1),
        )
        inactive = _make_exemption(
            ExemptionEntityType.CUSTOMER, CUSTOMER_ID, tax_rate_id=self.vat.id,
            is_active=False,
        )
        other_customer = _make_exemption(
            ExemptionEntityType.CUSTOMER, uuid4(), tax_rate_id=self.vat.id,
        )
        same_id_as_product = _make_exemption(
            ExemptionEntityType.PRODUCT, CUSTOMER_ID, tax_rate_id=self.vat.id,
        )
        self._add_exemptions(
            valid, expired, future, inactive, other_customer, same_id_as_product,
            actor_id=test_actor_id,
        )

        assert self.selector.find_exemptions_for_customer(CUSTOMER_ID, AS_OF) == [valid]

    def test_product_exemptions_ordered_by_valid_from(self, test_actor_id):
        later = _make_exemption(
            ExemptionEntityType.PRODUCT, PRODUCT_ID, tax_group_id=self.group.id,
            exemption_type=ExemptionType.PARTIAL, exemption_rate=Decimal("10"),
            valid_from=date(2024, 3, 1),
        )
        earlier = _make_exemption(
            ExemptionEntityType.PRODUCT, PRODUCT_ID, tax_group_id=self.group.id,
            exemption_type=ExemptionType.PARTIAL, exemption_rate=Decimal("20"),
            valid_from=date(2024, 2, 1),
        )
        self._add_exemptions(later, earlier, actor_id=test_actor_id)

        assert self.selector.find_exemptions_for_product(PRODUCT_ID, AS_OF) == [
            earlier, later,
        ]


class TestSqlCalculationRecorder:

    def test_persist_and_find_by_entity(self, session):
        recorder = SqlCalculationRecorder(session)
        record = _make_record(entity_type=AuditEntityType.POS_TRANSACTION)

        recorder.persist_calculation(record)

        found = recorder.find_by_entity(AuditEntityType.POS_TRANSACTION, record.entity_id)
        assert found == [record]
        assert recorder.find_by_entity(AuditEntityType.INVOICE, record.entity_id) == []

    def test_duplicate_id_rolls_back_and_reraises(self, session, captured_logs):
        recorder = SqlCalculationRecorder(session)
        record = _make_record()
        recorder.persist_calculation(record)
        session.expunge_all()

        with pytest.raises(IntegrityError):
            recorder.persist_calculation(record)

        assert any(
            r["message"] == "tax_calculation_persist_failed" for r in captured_logs()
        )
        # Session is usable again after the rollback
        recorder.persist_calculation(_make_record())
        assert recorder.summarize().calculation_count == 2

    def test_summary_over_window(self, session):
        recorder = SqlCalculationRecorder(session)
        recorder.persist_calculation(_make_record())
        recorder.persist_calculation(_make_record(
            base=Decimal("500.0000"), tax=Decimal("90.0000"),
            calculated_at=NOW + timedelta(days=1),
        ))
        recorder.persist_calculation(_make_record(
            base=Decimal("1000.0000"), tax=Decimal("180.0000"),
            calculated_at=NOW + timedelta(days=2),
        ))

        everything = recorder.summarize()
        first_two = recorder.summarize(end=NOW + timedelta(days=1))

        assert everything.calculation_count == 3
        assert everything.total_base_amount == Decimal("1600.0000")
        assert everything.total_tax_amount == Decimal("288.0000")
        assert everything.total_amount == Decimal("1888.0000")
        assert everything.effective_tax_rate == Decimal("18.0000")
        assert first_two.calculation_count == 2
        assert first_two.total_tax_amount == Decimal("108.0000")

    def test_empty_summary(self, session):
        summary = SqlCalculationRecorder(session).summarize()

        assert summary.calculation_count == 0
        assert summary.total_tax_amount == Decimal("0")
        assert summary.effective_tax_rate == Decimal("0")

    def test_customer_history_newest_first(self, session):
        recorder = SqlCalculationRecorder(session)
        older = _make_record()
        newer = _make_record(calculated_at=NOW + timedelta(hours=3))
        someone_else = _make_record(customer_id=uuid4())
        for record in (older, newer, someone_else):
            recorder.persist_calculation(record)

        assert recorder.find_by_customer(CUSTOMER_ID) == [newer, older]
        assert recorder.find_by_customer(
            CUSTOMER_ID, start=NOW + timedelta(hours=1),
        ) == [newer]


class TestServiceAgainstDatabase(_SeededDatabase):

    @pytest.fixture(autouse=True)
    def _service(self, _seed, deterministic_clock):
        self.service = TaxationService(
            TaxConfigurationSelector(self.session),
            recorder=SqlCalculationRecorder(self.session),
            clock=deterministic_clock,
        )

    def test_compound_group_via_jurisdiction(self):
        result = self.service.calculate_tax(CalculationRequest(
            amount=Decimal("500"), country_code="US", state_code="NY",
            city_name="Albany",
        ))

        assert result.jurisdiction_id == self.ny.id
        assert result.tax_amount == Decimal("77.5000")
        assert [line.taxable_base for line in result.breakdown] == [
            Decimal("500.0000"), Decimal("550.0000"),
        ]

    def test_customer_exemption_from_database(self, test_actor_id):
        self._add_exemptions(
            _make_exemption(
                ExemptionEntityType.CUSTOMER, CUSTOMER_ID,
                tax_rate_id=self.vat.id,
            ),
            actor_id=test_actor_id,
        )

        result = self.service.calculate_tax(CalculationRequest(
            amount=Decimal("1000"), country_code="DE", customer_id=CUSTOMER_ID,
        ))

        assert result.tax_amount == Decimal("0.0000")
        assert result.exemptions_applied[0].exempted_amount == Decimal("180.0000")

    def test_inclusive_explicit_rate(self):
        result = self.service.calculate_tax(CalculationRequest(
            amount=Decimal("1180"), is_inclusive=True, tax_rate_id=self.vat.id,
        ))

        assert result.base_amount == Decimal("1000.0000")
        assert result.tax_amount == Decimal("180.0000")

    def test_save_and_read_back(self):
        invoice_id = uuid4()
        result = self.service.calculate_tax(CalculationRequest(
            amount=Decimal("1000"), country_code="DE", customer_id=CUSTOMER_ID,
        ))

        saved = self.service.save_tax_calculation(
            "invoice", invoice_id, result, customer_id=CUSTOMER_ID,
        )

        self.session.expunge_all()
        history = self.service.get_tax_history("invoice", invoice_id)
        assert history == [saved]
        assert history[0].jurisdiction_id == self.de.id
        assert self.service.get_customer_history(CUSTOMER_ID) == [saved]
        assert self.service.get_tax_summary().total_tax_amount == Decimal("180.0000")
