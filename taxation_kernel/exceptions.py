"""
Typed exception hierarchy for the taxation engine.

Every error carries a static, machine-readable ``code`` class attribute and
keeps its context as attributes rather than baking it into the message, so
callers catch by type and read structured data:

    try:
        result = service.calculate_tax(request)
    except TaxValidationError as e:
        return {"error": e.code, "field": e.field}
    except TaxCalculationFailedError as e:
        log.error("tax failed", extra={"cause": type(e.cause).__name__})

Hierarchy:

    TaxationError (base)
    |
    +-- TaxValidationError          INVALID_TAX_REQUEST
    +-- NoApplicableTaxError        NO_APPLICABLE_TAX
    +-- TaxCalculationFailedError   TAX_CALCULATION_FAILED
    +-- RecorderNotConfiguredError  RECORDER_NOT_CONFIGURED

Value objects (rates, groups, exemptions, config) raise plain ``ValueError``
on invalid construction; those are programming errors in the configuration
feed, not calculation outcomes.
"""

from typing import Any


class TaxationError(Exception):
    """Base exception for all taxation engine errors."""

    code: str = "TAXATION_ERROR"


class TaxValidationError(TaxationError):
    """A calculation request failed input validation.

    Raised before any calculator runs; never wrapped in
    ``TaxCalculationFailedError``.
    """

    code: str = "INVALID_TAX_REQUEST"

    def __init__(self, field: str, value: Any, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason} (got {value!r})")


class NoApplicableTaxError(TaxationError):
    """Strict mode only: no rate or group resolved for the request."""

    code: str = "NO_APPLICABLE_TAX"

    def __init__(
        self,
        tax_rate_id: Any = None,
        tax_group_id: Any = None,
        location: dict[str, str | None] | None = None,
    ):
        self.tax_rate_id = tax_rate_id
        self.tax_group_id = tax_group_id
        self.location = location or {}
        super().__init__(
            "No applicable tax configuration resolved "
            f"(rate={tax_rate_id}, group={tax_group_id}, location={self.location})"
        )


class TaxCalculationFailedError(TaxationError):
    """An unexpected failure occurred inside a calculation.

    The original exception is kept both as ``cause`` and as ``__cause__``.
    """

    code: str = "TAX_CALCULATION_FAILED"

    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f"Failed to calculate tax: {cause}")


class RecorderNotConfiguredError(TaxationError):
    """An audit or reporting operation was requested without a recorder."""

    code: str = "RECORDER_NOT_CONFIGURED"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"No calculation recorder configured for {operation}")
