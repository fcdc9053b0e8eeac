"""
Tax Engine - compute tax for a rate or rate group, forward or reverse.

Pure functions with no I/O - rates, groups and exemptions are provided as
parameters, and the calculation date is always explicit.

Usage:
    from datetime import date
    from decimal import Decimal
    from uuid import uuid4

    from taxation_engines.tax import GroupCalculator, SingleRateCalculator
    from taxation_engines.tax_types import Rate, TaxCategory

    vat = Rate(id=uuid4(), name="VAT", code="VAT18", rate=Decimal("18"),
               category=TaxCategory.VAT)

    result = SingleRateCalculator().calculate(
        base_amount=Decimal("1000.00"), rate=vat, exemptions=(),
    )
    print(result.tax_amount)  # 180.0000

Exemption application within one rate:
    - If any matching exemption is full, the first full exemption is the only
      one applied and removes the entire raw tax.
    - Otherwise every matching partial exemption applies; their exempted
      amounts stack additively.
    - Net tax never goes below zero.

Compounding inside a compound group:
    Only members flagged ``apply_on_previous`` take part: each is taxed on the
    running base (the original base plus the net tax of the flagged members
    already walked) and then adds its own net tax to it.  Every other member
    is taxed on the original base.

Inclusive input:
    The effective combined rate is discovered from member percentages (net of
    exemptions) without compounding them; the base is back-solved from that
    rate and the forward calculators are re-run on it for the breakdown.  For
    compound groups this is an approximation: the derived base differs from
    the base a forward compound pass would need to hit the same total.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from functools import reduce
from typing import Callable, Iterable, Sequence
from uuid import UUID

from taxation_engines.exemptions import exemptions_for
from taxation_engines.tax_types import (
    AppliedExemption,
    AppliedTax,
    ApplicationType,
    Exemption,
    GroupMembership,
    InclusiveSolution,
    Rate,
    RateGroup,
    TaxBreakdownLine,
    TaxComputation,
)
from taxation_engines.tracer import traced_engine
from taxation_kernel.domain.values import (
    HUNDRED,
    ROUNDING_PRECISION,
    ZERO,
    percent_of,
    round_amount,
)
from taxation_kernel.logging_config import get_logger

logger = get_logger("engines.tax")

ENGINE_VERSION = "1.0"


def _applicable(matching: Sequence[Exemption]) -> list[Exemption]:
    """Full and partial exemptions never both apply to the same rate."""
    for exemption in matching:
        if exemption.is_full:
            return [exemption]
    return [e for e in matching if e.is_partial]


def _applied_tax(line: TaxBreakdownLine) -> AppliedTax:
    return AppliedTax(
        rate_id=line.rate_id,
        name=line.rate_name,
        percentage=line.rate_percentage,
        amount=line.net_tax,
    )


class SingleRateCalculator:
    """
    Tax for one rate against a base amount, net of exemptions.

    Exemptions match when they reference the rate itself, or - when the rate
    is evaluated as a group member - the enclosing group.
    """

    def __init__(self, precision: int = ROUNDING_PRECISION):
        self._precision = precision

    @traced_engine(
        "tax.single_rate",
        ENGINE_VERSION,
        fingerprint_fields=("base_amount", "rate", "exemptions"),
    )
    def calculate(
        self,
        *,
        base_amount: Decimal,
        rate: Rate,
        exemptions: Sequence[Exemption] = (),
    ) -> TaxComputation:
        line, applied = self.compute_line(base_amount, rate, exemptions)
        return TaxComputation(
            tax_amount=line.net_tax,
            breakdown=(line,),
            applied_taxes=(_applied_tax(line),),
            exemptions_applied=applied,
        )

    def compute_line(
        self,
        taxable_base: Decimal,
        rate: Rate,
        exemptions: Sequence[Exemption],
        group_id: UUID | None = None,
        is_compound: bool = False,
    ) -> tuple[TaxBreakdownLine, tuple[AppliedExemption, ...]]:
        """One breakdown line plus the exemptions that reduced it."""
        raw_tax = percent_of(taxable_base, rate.rate, self._precision)

        applied = tuple(
            AppliedExemption(
                exemption_id=exemption.id,
                exemption_type=exemption.exemption_type,
                exempted_amount=exemption.calculate_exempted_amount(
                    raw_tax, self._precision
                ),
                rate_id=rate.id,
            )
            for exemption in _applicable(exemptions_for(exemptions, rate.id, group_id))
        )
        exempted = sum((a.exempted_amount for a in applied), ZERO)

        net_tax = round_amount(raw_tax - exempted, self._precision)
        if net_tax < ZERO:
            logger.warning("tax_over_exempted", extra={
                "rate_id": str(rate.id),
                "raw_tax": str(raw_tax),
                "exempted_amount": str(exempted),
            })
            net_tax = round_amount(ZERO, self._precision)

        line = TaxBreakdownLine(
            rate_id=rate.id,
            rate_name=rate.name,
            rate_percentage=rate.rate,
            rate_category=rate.category,
            taxable_base=round_amount(taxable_base, self._precision),
            raw_tax=raw_tax,
            exempted_amount=round_amount(exempted, self._precision),
            net_tax=net_tax,
            is_compound=is_compound,
        )
        return line, applied


@dataclass(frozen=True)
class _GroupWalk:
    """Fold state carried across the ordered memberships of a group."""

    running_base: Decimal
    accumulated: Decimal = ZERO
    breakdown: tuple[TaxBreakdownLine, ...] = ()
    applied_taxes: tuple[AppliedTax, ...] = ()
    exemptions_applied: tuple[AppliedExemption, ...] = ()


class GroupCalculator:
    """Tax for a rate group under its aggregation policy."""

    def __init__(
        self,
        single: SingleRateCalculator | None = None,
        precision: int = ROUNDING_PRECISION,
    ):
        self._single = single or SingleRateCalculator(precision)
        self._precision = precision

    @traced_engine(
        "tax.group",
        ENGINE_VERSION,
        fingerprint_fields=("base_amount", "group", "exemptions", "as_of"),
    )
    def calculate(
        self,
        *,
        base_amount: Decimal,
        group: RateGroup,
        exemptions: Sequence[Exemption] = (),
        as_of: date,
    ) -> TaxComputation:
        compound = group.application_type == ApplicationType.COMPOUND

        def step(walk: _GroupWalk, membership: GroupMembership) -> _GroupWalk:
            on_previous = compound and membership.apply_on_previous
            taxable = walk.running_base if on_previous else base_amount
            line, applied = self._single.compute_line(
                taxable,
                membership.rate,
                exemptions,
                group_id=group.id,
                is_compound=membership.apply_on_previous,
            )
            return _GroupWalk(
                running_base=(
                    walk.running_base + line.net_tax
                    if on_previous
                    else walk.running_base
                ),
                accumulated=walk.accumulated + line.net_tax,
                breakdown=walk.breakdown + (line,),
                applied_taxes=walk.applied_taxes + (_applied_tax(line),),
                exemptions_applied=walk.exemptions_applied + applied,
            )

        walk = reduce(
            step,
            group.active_memberships(as_of),
            _GroupWalk(running_base=base_amount),
        )
        tax_amount = self._aggregate(group.application_type, walk)

        logger.debug("tax_group_calculated", extra={
            "group_id": str(group.id),
            "application_type": group.application_type.value,
            "member_count": len(walk.breakdown),
            "accumulated_tax": str(walk.accumulated),
            "tax_amount": str(tax_amount),
        })

        return TaxComputation(
            tax_amount=tax_amount,
            breakdown=walk.breakdown,
            applied_taxes=walk.applied_taxes,
            exemptions_applied=walk.exemptions_applied,
        )

    def _aggregate(self, application_type: ApplicationType, walk: _GroupWalk) -> Decimal:
        if not walk.breakdown:
            return round_amount(ZERO, self._precision)
        if application_type == ApplicationType.HIGHEST:
            total = max(line.net_tax for line in walk.breakdown)
        elif application_type == ApplicationType.AVERAGE:
            total = walk.accumulated / len(walk.breakdown)
        else:
            total = walk.accumulated
        return round_amount(total, self._precision)


class InclusiveSolver:
    """
    Reverse-solve a tax-inclusive total into base and tax.

    The effective rate consults the same rates, groups and exemptions as the
    forward calculators; the forward calculators are then re-run on the
    derived base so the breakdown lines are produced by the same code path.
    """

    def __init__(
        self,
        single: SingleRateCalculator | None = None,
        group: GroupCalculator | None = None,
        precision: int = ROUNDING_PRECISION,
    ):
        self._single = single or SingleRateCalculator(precision)
        self._group = group or GroupCalculator(self._single, precision)
        self._precision = precision

    # -------------------------------------------------------------------------
    # Effective rate discovery
    # -------------------------------------------------------------------------

    def effective_rate_for_rate(
        self,
        rate: Rate,
        exemptions: Iterable[Exemption],
        group_id: UUID | None = None,
    ) -> Decimal:
        """Rate percentage net of exemptions, applied in encounter order."""
        effective = rate.rate
        for exemption in exemptions_for(exemptions, rate.id, group_id):
            if exemption.is_full:
                return ZERO
            if exemption.is_partial:
                effective = effective * (HUNDRED - exemption.exemption_rate) / HUNDRED
        return effective

    def effective_rate_for_group(
        self,
        group: RateGroup,
        exemptions: Sequence[Exemption],
        as_of: date,
    ) -> Decimal:
        """Combined member rate under the group's policy (no compounding)."""
        rates = [
            self.effective_rate_for_rate(m.rate, exemptions, group.id)
            for m in group.active_memberships(as_of)
        ]
        if not rates:
            return ZERO
        if group.application_type == ApplicationType.HIGHEST:
            return max(rates)
        if group.application_type == ApplicationType.AVERAGE:
            return sum(rates, ZERO) / len(rates)
        return sum(rates, ZERO)

    # -------------------------------------------------------------------------
    # Solving
    # -------------------------------------------------------------------------

    @traced_engine(
        "tax.inclusive_rate",
        ENGINE_VERSION,
        fingerprint_fields=("total_amount", "rate", "exemptions"),
    )
    def solve_for_rate(
        self,
        *,
        total_amount: Decimal,
        rate: Rate,
        exemptions: Sequence[Exemption] = (),
    ) -> InclusiveSolution:
        effective = self.effective_rate_for_rate(rate, exemptions)
        return self._solve(
            total_amount,
            effective,
            lambda base: self._single.calculate(
                base_amount=base, rate=rate, exemptions=exemptions
            ),
        )

    @traced_engine(
        "tax.inclusive_group",
        ENGINE_VERSION,
        fingerprint_fields=("total_amount", "group", "exemptions", "as_of"),
    )
    def solve_for_group(
        self,
        *,
        total_amount: Decimal,
        group: RateGroup,
        exemptions: Sequence[Exemption] = (),
        as_of: date,
    ) -> InclusiveSolution:
        effective = self.effective_rate_for_group(group, exemptions, as_of)
        return self._solve(
            total_amount,
            effective,
            lambda base: self._group.calculate(
                base_amount=base, group=group, exemptions=exemptions, as_of=as_of
            ),
        )

    def back_solve(self, total_amount: Decimal, effective_rate: Decimal) -> tuple[Decimal, Decimal]:
        """(base, tax) for ``total_amount`` at ``effective_rate`` percent."""
        base = round_amount(
            total_amount / (1 + effective_rate / HUNDRED), self._precision
        )
        tax = round_amount(total_amount - base, self._precision)
        return base, tax

    def _solve(
        self,
        total_amount: Decimal,
        effective_rate: Decimal,
        forward: Callable[[Decimal], TaxComputation],
    ) -> InclusiveSolution:
        base, tax = self.back_solve(total_amount, effective_rate)
        computation = forward(base)

        logger.debug("tax_inclusive_solved", extra={
            "total_amount": str(total_amount),
            "effective_rate": str(effective_rate),
            "base_amount": str(base),
            "tax_amount": str(tax),
            "forward_tax_amount": str(computation.tax_amount),
        })

        return InclusiveSolution(
            base_amount=base,
            tax_amount=tax,
            total_amount=round_amount(total_amount, self._precision),
            effective_rate=effective_rate,
            computation=computation,
        )
