"""
Absence Penalty Engine -- missed class-days to deductions.

Responsibility:
    Decide, for every expected class-day, whether the teacher was absent
    (marked Absent, or the class was never taken once the grace window
    closed) and price the absence as the package's absence base or a flat
    school-wide amount.

Architecture position:
    Engines -- pure calculation layer, zero I/O, no clock reads.  "Today" is
    passed in by the caller.

Invariants enforced:
    - A class-day covered by an Approved permission request never deducts.
    - Present and Permission marks never deduct.
    - Future days, and days inside the grace window, are not evaluated.
    - Waived days stay visible with a zero deduction.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from compensation_engines.tracer import traced_engine
from compensation_kernel.domain.clock import Deadline
from compensation_kernel.domain.records import (
    AttendanceStatus,
    ClassFact,
    DeductionType,
    DeductionWaiver,
    PermissionRequest,
    to_decimal,
)
from compensation_kernel.domain.values import round_amount
from compensation_kernel.logging_config import get_logger

logger = get_logger("engines.absence")

_ZERO = Decimal("0")


class AbsenceMode(str, Enum):
    """How an absence is priced."""
    PACKAGE = "package"
    FLAT = "flat"


class AbsenceReason(str, Enum):
    MARKED_ABSENT = "marked_absent"
    NOT_TAKEN = "not_taken"


@dataclass(frozen=True)
class AbsencePolicy:
    """A school's absence rules."""

    mode: AbsenceMode = AbsenceMode.PACKAGE
    flat_amount: Decimal = _ZERO
    grace_days: int = 1

    def __post_init__(self):
        if not isinstance(self.mode, AbsenceMode):
            object.__setattr__(self, "mode", AbsenceMode(self.mode))
        amount = to_decimal(self.flat_amount, "flat_amount")
        if amount < 0:
            raise ValueError("flat_amount cannot be negative")
        object.__setattr__(self, "flat_amount", amount)
        if self.grace_days < 0:
            raise ValueError("grace_days cannot be negative")


@dataclass(frozen=True)
class ExpectedClass:
    """One class-day a student expected from the teacher."""

    student_id: str
    student_name: str
    package: str | None
    class_date: date
    deduction_base: Decimal
    facts: tuple[ClassFact, ...] = ()


@dataclass(frozen=True)
class AbsenceLine:
    """An absent class-day; permitted and waived days carry zero."""

    class_date: date
    student_id: str
    student_name: str
    package: str | None
    reason: AbsenceReason
    deduction: Decimal
    permitted: bool = False
    waived: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.class_date.isoformat(),
            "studentId": self.student_id,
            "studentName": self.student_name,
            "studentPackage": self.package,
            "reason": self.reason.value,
            "deduction": str(self.deduction),
            "permitted": self.permitted,
            "waived": self.waived,
        }


@dataclass(frozen=True)
class AbsenceResult:
    lines: tuple[AbsenceLine, ...]
    total: Decimal


def classify_class_day(
    expected: ExpectedClass, *, today: date, grace_days: int
) -> AbsenceReason | None:
    """
    Why a class-day counts as an absence, or None when it does not.

    An explicit Absent mark wins over a dispatched link; a dispatched link
    with no Absent mark counts as taught.
    """
    if expected.class_date > today:
        return None
    statuses = {f.attendance_status for f in expected.facts}
    if AttendanceStatus.PRESENT in statuses or AttendanceStatus.PERMISSION in statuses:
        return None
    if AttendanceStatus.ABSENT in statuses:
        return AbsenceReason.MARKED_ABSENT
    if any(f.link_sent for f in expected.facts):
        return None
    if (today - expected.class_date).days < grace_days:
        return None
    return AbsenceReason.NOT_TAKEN


@traced_engine("absence", "1.0", fingerprint_fields=("policy", "today", "currency"))
def assess_absences(
    *,
    policy: AbsencePolicy,
    classes: Sequence[ExpectedClass],
    permissions: Sequence[PermissionRequest] = (),
    waivers: Sequence[DeductionWaiver] = (),
    today: date,
    currency: str,
    deadline: Deadline | None = None,
) -> AbsenceResult:
    """
    Assess absences over expected class-days.

    Args:
        policy: Absence policy of the school.
        classes: Expected class-days with their facts.
        permissions: The teacher's permission requests (any status).
        waivers: The teacher's deduction waivers.
        today: Calculation date in the tenant timezone.
        currency: Currency the deduction is rounded in.
        deadline: Cooperative deadline checked between days.

    Returns:
        AbsenceResult with lines ordered by (date, student).
    """
    zero = round_amount(_ZERO, currency)
    approved_dates = {
        d for p in permissions for d in p.dates if p.approves(d)
    }
    lines: list[AbsenceLine] = []

    for expected in sorted(classes, key=lambda c: (c.class_date, c.student_id)):
        if deadline is not None:
            deadline.check()

        reason = classify_class_day(expected, today=today, grace_days=policy.grace_days)
        if reason is None:
            continue

        permitted = expected.class_date in approved_dates
        waived = not permitted and any(
            w.applies_to(DeductionType.ABSENCE, expected.class_date, expected.student_id)
            for w in waivers
        )
        if permitted or waived:
            amount = zero
        elif policy.mode is AbsenceMode.FLAT:
            amount = round_amount(policy.flat_amount, currency)
        else:
            amount = round_amount(expected.deduction_base, currency)

        lines.append(AbsenceLine(
            class_date=expected.class_date,
            student_id=expected.student_id,
            student_name=expected.student_name,
            package=expected.package,
            reason=reason,
            deduction=amount,
            permitted=permitted,
            waived=waived,
        ))

    if lines:
        logger.debug(
            "absences_assessed",
            extra={
                "absent_days": len(lines),
                "permitted_days": sum(1 for line in lines if line.permitted),
                "waived_days": sum(1 for line in lines if line.waived),
            },
        )
    return AbsenceResult(lines=tuple(lines), total=sum((l.deduction for l in lines), zero))
