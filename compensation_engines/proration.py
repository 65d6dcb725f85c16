"""
Proration Engines -- assignment sub-ranges and subscription plan changes.

Responsibility:
    1. Split a teacher's requested date range into contiguous, disjoint
       sub-ranges whenever the set of students assigned to the teacher
       changes (teacher reassignment mid-range).
    2. Compute the credit and net charge when a school changes plan part way
       through a billing cycle.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Sub-ranges are ordered, contiguous, non-overlapping, and their union
      is exactly [start, end].  Sub-ranges with no students are emitted too.
    - Adjacent sub-ranges with the same assignment set are merged.
    - Per student, assignment intervals never overlap; if the source data
      violates that, the later-starting interval wins and a warning is
      emitted.
    - Plan-change proration uses standardized 30-day months.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

from compensation_engines.tracer import traced_engine
from compensation_kernel.domain.records import (
    AssignmentInterval,
    BillingCycle,
    CalculationWarning,
    to_decimal,
)
from compensation_kernel.domain.values import round_amount
from compensation_kernel.exceptions import InvalidRangeError, MalformedRecordError
from compensation_kernel.logging_config import get_logger

logger = get_logger("engines.proration")

DAYS_PER_STANDARD_MONTH = 30


# ---------------------------------------------------------------------------
# Teacher-assignment proration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SubRange:
    """A maximal stretch of days with one fixed set of assignments."""

    start: date
    end: date
    assignments: tuple[AssignmentInterval, ...]

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    @property
    def student_ids(self) -> tuple[str, ...]:
        return tuple(a.student_id for a in self.assignments)

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "students": list(self.student_ids),
        }


@dataclass(frozen=True)
class ProrationResult:
    sub_ranges: tuple[SubRange, ...]
    warnings: tuple[CalculationWarning, ...] = ()


def _assignment_key(a: AssignmentInterval) -> tuple:
    return (a.student_id, a.time_slot, a.package, a.day_package)


def _resolve_overlaps(
    intervals: Sequence[AssignmentInterval],
) -> tuple[list[AssignmentInterval], list[CalculationWarning]]:
    by_student: dict[str, list[AssignmentInterval]] = defaultdict(list)
    for interval in intervals:
        by_student[interval.student_id].append(interval)

    resolved: list[AssignmentInterval] = []
    warnings: list[CalculationWarning] = []
    for student_id in sorted(by_student):
        ordered = sorted(by_student[student_id], key=lambda a: (a.start_date, a.end_date or date.max))
        kept: list[AssignmentInterval] = []
        for interval in ordered:
            if kept:
                prev = kept[-1]
                prev_end = prev.end_date or date.max
                if interval.start_date <= prev_end:
                    warnings.append(CalculationWarning.from_error(
                        MalformedRecordError(
                            "assignment", student_id,
                            f"assignment starting {interval.start_date} overlaps one "
                            f"starting {prev.start_date}",
                        ),
                    ))
                    truncated_end = interval.start_date - timedelta(days=1)
                    if truncated_end < prev.start_date:
                        kept.pop()
                    else:
                        kept[-1] = replace(prev, end_date=truncated_end)
            kept.append(interval)
        resolved.extend(kept)
    return resolved, warnings


@traced_engine("assignment_prorator", "1.0", fingerprint_fields=("start", "end"))
def prorate_assignments(
    *,
    intervals: Sequence[AssignmentInterval],
    start: date,
    end: date,
) -> ProrationResult:
    """
    Split [start, end] at every point where the teacher's assignment set changes.

    Args:
        intervals: All assignment intervals of one teacher touching the range.
        start: First day of the requested range.
        end: Last day of the requested range (inclusive).

    Returns:
        ProrationResult whose sub-ranges exactly cover [start, end].

    Raises:
        InvalidRangeError: If start > end.
    """
    if start > end:
        raise InvalidRangeError(start, end)

    resolved, warnings = _resolve_overlaps(intervals)

    clipped: list[tuple[date, date, AssignmentInterval]] = []
    for interval in resolved:
        window = interval.clip(start, end)
        if window is not None:
            clipped.append((window[0], window[1], interval))

    cuts = {start}
    for lo, hi, _ in clipped:
        cuts.add(lo)
        if hi < end:
            cuts.add(hi + timedelta(days=1))
    boundaries = sorted(cuts)

    sub_ranges: list[SubRange] = []
    for i, seg_start in enumerate(boundaries):
        seg_end = boundaries[i + 1] - timedelta(days=1) if i + 1 < len(boundaries) else end
        active = tuple(sorted(
            (a for lo, hi, a in clipped if lo <= seg_start <= hi),
            key=lambda a: (a.student_id, a.start_date),
        ))
        if sub_ranges and (
            [_assignment_key(a) for a in sub_ranges[-1].assignments]
            == [_assignment_key(a) for a in active]
        ):
            prev = sub_ranges[-1]
            sub_ranges[-1] = SubRange(prev.start, seg_end, prev.assignments)
            continue
        sub_ranges.append(SubRange(seg_start, seg_end, active))

    return ProrationResult(sub_ranges=tuple(sub_ranges), warnings=tuple(warnings))


def teacher_changed(interval: AssignmentInterval, start: date, end: date) -> bool:
    """True when the student joined or left this teacher inside [start, end]."""
    return start < interval.start_date <= end or (
        interval.end_date is not None and start <= interval.end_date < end
    )


# ---------------------------------------------------------------------------
# Subscription plan-change proration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PlanChangeProration:
    """Credit and net charge for switching plans mid-cycle."""

    total_days: int
    days_used: int
    days_remaining: int
    credit: Decimal
    new_price: Decimal
    net_amount: Decimal
    currency: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalDays": self.total_days,
            "daysUsed": self.days_used,
            "daysRemaining": self.days_remaining,
            "credit": str(self.credit),
            "newPrice": str(self.new_price),
            "netAmount": str(self.net_amount),
            "currency": self.currency,
        }


@traced_engine(
    "plan_change_proration", "1.0",
    fingerprint_fields=("current_price", "new_price", "period_start", "change_date", "billing_cycle"),
)
def calculate_plan_change_proration(
    *,
    current_price: Decimal,
    new_price: Decimal,
    period_start: date,
    change_date: date,
    billing_cycle: BillingCycle,
    currency: str,
) -> PlanChangeProration:
    """
    Prorate a plan change within a billing cycle.

    The cycle is ``months * 30`` days.  Unused days of the current plan are
    credited at its daily price; the net amount is the new price minus that
    credit and may be negative.
    """
    current_price = to_decimal(current_price, "current_price")
    new_price = to_decimal(new_price, "new_price")
    total_days = billing_cycle.months * DAYS_PER_STANDARD_MONTH
    days_used = min(max((change_date - period_start).days, 0), total_days)
    days_remaining = total_days - days_used

    credit = round_amount(current_price / total_days * days_remaining, currency)
    net = round_amount(new_price - credit, currency)
    return PlanChangeProration(
        total_days=total_days,
        days_used=days_used,
        days_remaining=days_remaining,
        credit=credit,
        new_price=round_amount(new_price, currency),
        net_amount=net,
        currency=currency,
    )
