"""
Module: compensation_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.  Selectors
    form the read side of the kernel, turning stored rows into the frozen
    domain records the engines consume.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/records.  MUST NOT import from engines, config or services.

Invariants enforced:
    - Read-only access: Selectors accept a Session from the caller but MUST NOT
      call session.add(), session.delete(), session.commit(), or session.flush().
    - DTO return convention: Selectors return frozen domain records, NOT raw ORM
      model instances.
    - Tenant scoping: every query filters on the selector's tenant_id.
    - Malformed rows never abort a read: they are skipped and reported as
      MALFORMED_RECORD warnings.

Failure modes:
    - SubjectNotFoundError when a required subject row does not exist.
"""

from abc import ABC
from collections.abc import Callable, Iterable
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from compensation_kernel.db.base import Base
from compensation_kernel.domain.records import CalculationWarning
from compensation_kernel.exceptions import MalformedRecordError
from compensation_kernel.logging_config import get_logger

ModelType = TypeVar("ModelType", bound=Base)
RecordType = TypeVar("RecordType")

logger = get_logger("kernel.selectors")


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return domain records.  They MUST NOT mutate any data.

    Non-goals:
        - BaseSelector does NOT define any query methods; subclasses implement
          domain-specific queries (roster, adjustments, configuration, billing).
    """

    def __init__(self, session: Session, tenant_id: str):
        """
        Args:
            session: SQLAlchemy session for database operations.
            tenant_id: School every query is scoped to.
        """
        self.session = session
        self.tenant_id = tenant_id

    def _convert(
        self,
        rows: Iterable[ModelType],
        record_type: str,
        to_dto: Callable[[ModelType], RecordType],
        warnings: list[CalculationWarning],
    ) -> list[RecordType]:
        """Convert rows to records, skipping and reporting malformed ones."""
        records: list[RecordType] = []
        for row in rows:
            try:
                records.append(to_dto(row))
            except (ValueError, TypeError, KeyError) as e:
                error = MalformedRecordError(record_type, str(row.id), str(e))
                logger.warning(
                    "malformed_record_skipped",
                    extra={
                        "tenant_id": self.tenant_id,
                        "record_type": record_type,
                        "record_id": str(row.id),
                        "reason": str(e),
                    },
                )
                warnings.append(CalculationWarning.from_error(error))
        return records
