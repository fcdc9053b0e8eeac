"""
SQL Calculation Recorder -- persists audit records via SQLAlchemy.

Responsibility:
    Append ``TaxCalculationRecord`` rows to ``tax_calculations`` and answer
    the reporting queries through ``TaxCalculationSelector``.

Invariants:
    - This recorder owns the transaction boundary of each write: commit on
      success, rollback on failure.
    - Append-only: records are never updated or deleted here.

Failure modes:
    - Any exception raised while adding or committing rolls the session back
      and propagates unchanged.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from taxation_kernel.logging_config import get_logger
from taxation_modules.taxation.models import (
    AuditEntityType,
    TaxCalculationRecord,
    TaxSummary,
)
from taxation_modules.taxation.orm import TaxCalculationModel
from taxation_modules.taxation.selectors import TaxCalculationSelector
from taxation_modules.taxation.sources import CalculationRecorder

logger = get_logger("modules.taxation.recorder")


class SqlCalculationRecorder(CalculationRecorder):
    """``CalculationRecorder`` over the caller's session."""

    def __init__(self, session: Session):
        self._session = session
        self._selector = TaxCalculationSelector(session)

    def persist_calculation(self, record: TaxCalculationRecord) -> None:
        """
        Insert one audit row and commit.

        Postconditions:
            - On success: row committed.
            - On exception: session rolled back, exception re-raised.
        """
        try:
            self._session.add(TaxCalculationModel.from_dto(record))
            self._session.commit()
        except Exception:
            self._session.rollback()
            logger.error("tax_calculation_persist_failed", exc_info=True, extra={
                "record_id": str(record.id),
                "entity_type": record.entity_type.value,
                "entity_id": str(record.entity_id),
            })
            raise

        logger.info("tax_calculation_persisted", extra={
            "record_id": str(record.id),
            "entity_type": record.entity_type.value,
            "entity_id": str(record.entity_id),
            "tax_amount": str(record.tax_amount),
        })

    def summarize(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> TaxSummary:
        return self._selector.get_tax_summary(start, end)

    def find_by_entity(
        self, entity_type: AuditEntityType, entity_id: UUID
    ) -> list[TaxCalculationRecord]:
        return self._selector.find_by_entity(entity_type, entity_id)

    def find_by_customer(
        self,
        customer_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[TaxCalculationRecord]:
        return self._selector.find_by_customer(customer_id, start, end)
