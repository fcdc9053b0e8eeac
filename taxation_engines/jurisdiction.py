"""
Jurisdiction Matcher - resolve a location to the jurisdiction that applies.

Pure functions with no I/O: candidate jurisdictions are provided as
parameters (a SQL selector narrows them first; the in-memory source passes
everything it holds).

Matching rules:
    - No location field supplied at all -> no jurisdiction (not an error).
    - Inactive jurisdictions never match.
    - Every location field the jurisdiction sets must equal the supplied
      value; fields the jurisdiction leaves unset are wildcards.  City names
      compare case-insensitively, every other field exactly.
    - Highest ``priority`` wins; ties go to the lowest jurisdiction id so
      the result never depends on store ordering.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from taxation_engines.tax_types import Jurisdiction
from taxation_kernel.logging_config import get_logger

logger = get_logger("engines.jurisdiction")


@dataclass(frozen=True)
class LocationQuery:
    """Buyer/seller location descriptor; blank strings count as absent."""

    country_code: str | None = None
    state_code: str | None = None
    city_name: str | None = None
    postal_code: str | None = None

    def __post_init__(self) -> None:
        for name in ("country_code", "state_code", "city_name", "postal_code"):
            value = getattr(self, name)
            if value is not None:
                value = value.strip() or None
            object.__setattr__(self, name, value)

    @property
    def is_empty(self) -> bool:
        return not any(
            (self.country_code, self.state_code, self.city_name, self.postal_code)
        )

    def as_dict(self) -> dict[str, str | None]:
        return {
            "country_code": self.country_code,
            "state_code": self.state_code,
            "city_name": self.city_name,
            "postal_code": self.postal_code,
        }


def matches_location(jurisdiction: Jurisdiction, query: LocationQuery) -> bool:
    """True if every field the jurisdiction sets agrees with ``query``."""
    if jurisdiction.country_code and jurisdiction.country_code != query.country_code:
        return False
    if jurisdiction.state_code and jurisdiction.state_code != query.state_code:
        return False
    if jurisdiction.city_name and (
        query.city_name is None
        or jurisdiction.city_name.casefold() != query.city_name.casefold()
    ):
        return False
    if jurisdiction.postal_code and jurisdiction.postal_code != query.postal_code:
        return False
    return True


def _precedence(jurisdiction: Jurisdiction) -> tuple[int, str]:
    # Sort key: higher priority first, then lowest id.
    return (-jurisdiction.priority, str(jurisdiction.id))


class JurisdictionMatcher:
    """Selects the single jurisdiction that governs a location."""

    def matching(
        self,
        jurisdictions: Iterable[Jurisdiction],
        query: LocationQuery,
    ) -> list[Jurisdiction]:
        """All active jurisdictions matching ``query``, best first."""
        if query.is_empty:
            return []
        candidates = [
            j for j in jurisdictions if j.is_active and matches_location(j, query)
        ]
        return sorted(candidates, key=_precedence)

    def match(
        self,
        jurisdictions: Iterable[Jurisdiction],
        query: LocationQuery,
    ) -> Jurisdiction | None:
        """The highest-precedence match, or ``None``."""
        if query.is_empty:
            logger.debug("jurisdiction_lookup_skipped", extra={})
            return None

        ranked = self.matching(jurisdictions, query)
        if not ranked:
            logger.info("jurisdiction_not_matched", extra=query.as_dict())
            return None

        winner = ranked[0]
        logger.debug("jurisdiction_matched", extra={
            "jurisdiction_id": str(winner.id),
            "jurisdiction_code": winner.code,
            "priority": winner.priority,
            "candidate_count": len(ranked),
        })
        return winner
