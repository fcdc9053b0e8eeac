"""
Tests for the Exemption Resolver and exemption value type.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from taxation_engines.exemptions import ExemptionResolver, exemptions_for
from taxation_engines.tax_types import Exemption, ExemptionEntityType, ExemptionType

AS_OF = date(2024, 6, 15)
CUSTOMER_ID = uuid4()
PRODUCT_ID = uuid4()


def _make_exemption(
    entity_type=ExemptionEntityType.CUSTOMER,
    entity_id=CUSTOMER_ID,
    valid_from=date(2024, 1, 1),
    valid_to=None,
    is_active=True,
    **kwargs,
) -> Exemption:
    kwargs.setdefault("exemption_type", ExemptionType.FULL)
    kwargs.setdefault("tax_rate_id", uuid4())
    return Exemption(
        id=uuid4(),
        entity_type=entity_type,
        entity_id=entity_id,
        valid_from=valid_from,
        valid_to=valid_to,
        is_active=is_active,
        **kwargs,
    )


class TestExemptionResolver:

    def setup_method(self):
        self.resolver = ExemptionResolver()

    def test_unions_customer_then_product(self):
        customer = _make_exemption()
        product = _make_exemption(
            entity_type=ExemptionEntityType.PRODUCT, entity_id=PRODUCT_ID,
        )

        resolved = self.resolver.resolve(
            [customer], [product], AS_OF,
            customer_id=CUSTOMER_ID, product_id=PRODUCT_ID,
        )

        assert resolved == (customer, product)

    def test_inactive_dropped(self):
        resolved = self.resolver.resolve([_make_exemption(is_active=False)], [], AS_OF)

        assert resolved == ()

    def test_not_yet_valid_dropped(self):
        future = _make_exemption(valid_from=date(2024, 7, 1))

        assert self.resolver.resolve([future], [], AS_OF) == ()

    def test_expired_dropped(self):
        expired = _make_exemption(valid_to=date(2024, 6, 14))

        assert self.resolver.resolve([expired], [], AS_OF) == ()

    def test_window_bounds_inclusive(self):
        starts_today = _make_exemption(valid_from=AS_OF)
        ends_today = _make_exemption(valid_to=AS_OF)

        resolved = self.resolver.resolve([starts_today, ends_today], [], AS_OF)

        assert resolved == (starts_today, ends_today)

    def test_open_ended_still_valid(self):
        open_ended = _make_exemption(valid_from=date(2000, 1, 1))

        assert self.resolver.resolve([open_ended], [], AS_OF) == (open_ended,)

    def test_duplicate_kept_once(self):
        shared = _make_exemption()

        assert self.resolver.resolve([shared], [shared], AS_OF) == (shared,)

    def test_entity_mismatch_dropped_when_ids_given(self):
        someone_else = _make_exemption(entity_id=uuid4())

        resolved = self.resolver.resolve(
            [someone_else], [], AS_OF, customer_id=CUSTOMER_ID,
        )

        assert resolved == ()


class TestExemptionScoping:

    def test_exemptions_for_rate_and_group(self):
        rate_id, group_id = uuid4(), uuid4()
        by_rate = _make_exemption(tax_rate_id=rate_id)
        by_group = _make_exemption(tax_rate_id=None, tax_group_id=group_id)
        unscoped = _make_exemption(tax_rate_id=None)

        everything = [by_rate, by_group, unscoped]

        assert exemptions_for(everything, rate_id) == [by_rate]
        assert exemptions_for(everything, rate_id, group_id) == [by_rate, by_group]
        assert exemptions_for(everything, uuid4(), group_id) == [by_group]


class TestExemptionValue:

    def test_full_exempts_whole_amount(self):
        full = _make_exemption()

        assert full.calculate_exempted_amount(Decimal("180.0000")) == Decimal("180.0000")

    def test_partial_exempts_percentage(self):
        partial = _make_exemption(
            exemption_type=ExemptionType.PARTIAL, exemption_rate=Decimal("25"),
        )

        assert partial.calculate_exempted_amount(Decimal("10.0000")) == Decimal("2.5000")

    def test_partial_without_rate_exempts_nothing(self):
        partial = _make_exemption(exemption_type=ExemptionType.PARTIAL)

        assert partial.calculate_exempted_amount(Decimal("10")) == Decimal("0")

    @pytest.mark.parametrize("rate", ["-1", "100.01"])
    def test_exemption_rate_out_of_range_rejected(self, rate):
        with pytest.raises(ValueError, match="exemption_rate"):
            _make_exemption(
                exemption_type=ExemptionType.PARTIAL, exemption_rate=Decimal(rate),
            )

    def test_inverted_window_rejected(self):
        with pytest.raises(ValueError, match="inverted"):
            _make_exemption(valid_from=date(2024, 6, 1), valid_to=date(2024, 5, 1))
