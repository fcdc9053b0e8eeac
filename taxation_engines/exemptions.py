"""
Exemption Resolver - collect the exemptions valid for a calculation.

The resolver only knows who is buying what and when.  Which rate or group an
exemption narrows to is decided later, at application time, by the
calculators (``Exemption.applies_to``).
"""

from __future__ import annotations

from datetime import date
from typing import Iterable
from uuid import UUID

from taxation_engines.tax_types import Exemption, ExemptionEntityType
from taxation_kernel.logging_config import get_logger

logger = get_logger("engines.exemptions")


class ExemptionResolver:
    """Union and validity-filter customer and product exemptions."""

    def resolve(
        self,
        customer_exemptions: Iterable[Exemption],
        product_exemptions: Iterable[Exemption],
        as_of: date,
        customer_id: UUID | None = None,
        product_id: UUID | None = None,
    ) -> tuple[Exemption, ...]:
        """
        Merge both sets and keep the active exemptions valid on ``as_of``.

        Customer exemptions come first, then product exemptions; that
        encounter order is what the inclusive solver applies partial
        exemptions in.  An exemption appearing in both sets is kept once.
        When ``customer_id`` / ``product_id`` are given, exemptions whose
        target does not match are dropped as well.
        """
        resolved: list[Exemption] = []
        seen: set[UUID] = set()

        def _take(
            exemptions: Iterable[Exemption],
            entity_type: ExemptionEntityType,
            entity_id: UUID | None,
        ) -> None:
            for exemption in exemptions:
                if exemption.id in seen:
                    continue
                if entity_id is not None and (
                    exemption.entity_type != entity_type
                    or exemption.entity_id != entity_id
                ):
                    continue
                if not (exemption.is_active and exemption.is_valid_on(as_of)):
                    continue
                seen.add(exemption.id)
                resolved.append(exemption)

        _take(customer_exemptions, ExemptionEntityType.CUSTOMER, customer_id)
        _take(product_exemptions, ExemptionEntityType.PRODUCT, product_id)

        logger.debug("exemptions_resolved", extra={
            "as_of": as_of.isoformat(),
            "exemption_count": len(resolved),
            "exemption_ids": [str(e.id) for e in resolved],
        })
        return tuple(resolved)


def exemptions_for(
    exemptions: Iterable[Exemption],
    rate_id: UUID,
    group_id: UUID | None = None,
) -> list[Exemption]:
    """Exemptions that target ``rate_id`` directly or via ``group_id``."""
    return [e for e in exemptions if e.applies_to(rate_id, group_id)]
