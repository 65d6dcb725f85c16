"""
Bonus & Override Aggregator -- credits added to a teacher's salary.

Sums manual bonus records booked inside the range and the bonuses of
quality assessments whose week starts inside the range.  The manager
approval flag is the only gate for quality bonuses: a manager override
without approval never pays and is reported as an audit note.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from compensation_engines.dates import parse_period_label
from compensation_engines.tracer import traced_engine
from compensation_kernel.domain.records import (
    BonusRecord,
    CalculationWarning,
    QualityAssessment,
)
from compensation_kernel.domain.values import round_amount
from compensation_kernel.exceptions import MalformedRecordError
from compensation_kernel.logging_config import get_logger

logger = get_logger("engines.bonus")

_ZERO = Decimal("0")


@dataclass(frozen=True)
class BonusLine:
    source: str  # "manual" or "quality"
    booked_on: date
    amount: Decimal
    reason: str = ""
    reference: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "date": self.booked_on.isoformat(),
            "amount": str(self.amount),
            "reason": self.reason,
            "reference": self.reference,
        }


@dataclass(frozen=True)
class BonusBreakdown:
    manual: tuple[BonusLine, ...]
    quality: tuple[BonusLine, ...]
    total: Decimal
    audit_notes: tuple[str, ...] = ()
    warnings: tuple[CalculationWarning, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "manual": [line.to_dict() for line in self.manual],
            "quality": [line.to_dict() for line in self.quality],
            "total": str(self.total),
            "auditNotes": list(self.audit_notes),
        }


def _latest_per_period(
    records: Sequence[BonusRecord],
) -> tuple[list[tuple[date, BonusRecord]], list[CalculationWarning]]:
    """Parse period labels and collapse duplicates to the latest update."""
    latest: dict[tuple[str, date], tuple[int, BonusRecord]] = {}
    warnings: list[CalculationWarning] = []
    oldest = datetime.min

    for position, record in enumerate(records):
        try:
            booked_on = parse_period_label(record.period_label)
        except ValueError as exc:
            warnings.append(CalculationWarning.from_error(
                MalformedRecordError("bonus_record", record.record_id, str(exc)),
                subject_id=record.subject_id,
            ))
            continue
        key = (record.subject_id, booked_on)
        current = latest.get(key)
        if current is None:
            latest[key] = (position, record)
            continue
        cur_pos, cur = current
        cur_rank = ((cur.updated_at or oldest).replace(tzinfo=None), cur_pos)
        new_rank = ((record.updated_at or oldest).replace(tzinfo=None), position)
        if new_rank > cur_rank:
            latest[key] = (position, record)

    return sorted(((k[1], v[1]) for k, v in latest.items()), key=lambda kv: kv[0]), warnings


@traced_engine("bonus_aggregator", "1.0", fingerprint_fields=("start", "end", "currency"))
def aggregate_bonuses(
    *,
    bonus_records: Sequence[BonusRecord],
    assessments: Sequence[QualityAssessment],
    start: date,
    end: date,
    currency: str,
) -> BonusBreakdown:
    """
    Aggregate manual and quality bonuses booked inside [start, end].

    Returns:
        BonusBreakdown whose total equals the sum of its manual and
        quality lines.
    """
    manual: list[BonusLine] = []
    records, warnings = _latest_per_period(bonus_records)
    for booked_on, record in records:
        if start <= booked_on <= end:
            manual.append(BonusLine(
                source="manual",
                booked_on=booked_on,
                amount=round_amount(record.amount, currency),
                reason=record.reason,
                reference=record.period_label,
            ))

    quality: list[BonusLine] = []
    notes: list[str] = []
    for assessment in sorted(assessments, key=lambda a: a.week_start):
        if not start <= assessment.week_start <= end:
            continue
        if assessment.manager_approved:
            if assessment.bonus_awarded:
                quality.append(BonusLine(
                    source="quality",
                    booked_on=assessment.week_start,
                    amount=round_amount(assessment.bonus_awarded, currency),
                    reason=assessment.overall_quality,
                    reference=assessment.assessment_id,
                ))
        elif assessment.manager_override:
            notes.append(
                f"Week of {assessment.week_start.isoformat()}: manager override "
                f"without approval; no bonus paid"
            )
        elif assessment.bonus_awarded:
            notes.append(
                f"Week of {assessment.week_start.isoformat()}: bonus of "
                f"{assessment.bonus_awarded} awaiting manager approval"
            )

    total = sum((line.amount for line in manual + quality), round_amount(_ZERO, currency))
    return BonusBreakdown(
        manual=tuple(manual),
        quality=tuple(quality),
        total=total,
        audit_notes=tuple(notes),
        warnings=tuple(warnings),
    )
