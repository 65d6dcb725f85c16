"""
Salary Orchestrator Engine -- one teacher, one date range, one auditable figure.

Responsibility:
    Compose the rate resolver, the lateness and absence engines, the
    assignment prorator and the bonus aggregator into a single salary result
    with a fully itemized breakdown.

Architecture position:
    Engines -- pure calculation layer, zero I/O, no clock reads.  The service
    layer loads facts and configuration and passes "today" and a deadline.

Invariants enforced:
    - Each sub-range moves strictly through
      RESOLVED -> PENALIZED -> BONUSED -> SUMMED.
    - ``SalaryResult.total_salary`` IS ``breakdown.summary.net_salary``; there
      is no second computation path.
    - Reported totals reconcile with the sum of their line items.  In strict
      mode a mismatch raises InvariantViolationError; otherwise it is logged
      and the line-item sum is published.
    - Base pay for a partial month is rate * billable days in the chunk /
      billable days in the month; a full month pays the flat monthly rate.
    - Sundays are billable only when ``include_sundays`` is set.

Failure modes:
    - InvalidRangeError for start > end.
    - ComputationTimeoutError when the deadline passes between units of work.
    - Missing package configuration zeroes the line and adds a
      CONFIGURATION_MISSING warning.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any

from compensation_engines.absence import (
    AbsenceLine,
    AbsencePolicy,
    ExpectedClass,
    assess_absences,
)
from compensation_engines.bonus import BonusBreakdown, aggregate_bonuses
from compensation_engines.dates import (
    SUNDAY,
    billable_weekdays,
    count_billable_days,
    iter_days,
    month_bounds,
    period_key,
    resolve_timezone,
    split_by_month,
)
from compensation_engines.lateness import LatenessDay, LatenessLine, LatenessPolicy, assess_lateness
from compensation_engines.proration import SubRange, prorate_assignments, teacher_changed
from compensation_engines.rates import RateTable, ResolvedRate, missing_rate_warnings, resolve_rate
from compensation_engines.tracer import traced_engine
from compensation_kernel.domain.clock import Deadline
from compensation_kernel.domain.records import (
    AssignmentInterval,
    BonusRecord,
    CalculationWarning,
    ClassFact,
    DeductionWaiver,
    PaymentStatus,
    PermissionRequest,
    QualityAssessment,
    SalaryPayment,
)
from compensation_kernel.domain.values import round_amount
from compensation_kernel.exceptions import InvalidRangeError, InvariantViolationError
from compensation_kernel.logging_config import get_logger

logger = get_logger("engines.salary")

_ZERO = Decimal("0")


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SalaryInput:
    """Raw facts for one teacher over one requested range."""

    subject_id: str
    start: date
    end: date
    today: date
    intervals: tuple[AssignmentInterval, ...] = ()
    facts: tuple[ClassFact, ...] = ()
    permissions: tuple[PermissionRequest, ...] = ()
    waivers: tuple[DeductionWaiver, ...] = ()
    bonus_records: tuple[BonusRecord, ...] = ()
    assessments: tuple[QualityAssessment, ...] = ()
    payments: tuple[SalaryPayment, ...] = ()
    subject_name: str = ""

    def __post_init__(self):
        if self.start > self.end:
            raise InvalidRangeError(self.start, self.end)
        for name in (
            "intervals", "facts", "permissions", "waivers",
            "bonus_records", "assessments", "payments",
        ):
            object.__setattr__(self, name, tuple(getattr(self, name)))


@dataclass(frozen=True)
class SalaryRules:
    """Configuration the salary calculation runs under."""

    rate_table: RateTable
    lateness: LatenessPolicy
    absence: AbsencePolicy
    include_sundays: bool = True
    timezone_name: str = "UTC"
    strict_invariants: bool = True

    @property
    def currency(self) -> str:
        return self.rate_table.currency


# ---------------------------------------------------------------------------
# Result value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StudentPeriod:
    """Base pay earned for one student inside one month chunk of a sub-range."""

    start: date
    end: date
    billable_days: int
    month_billable_days: int
    amount: Decimal
    rate_missing: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "billableDays": self.billable_days,
            "monthBillableDays": self.month_billable_days,
            "amount": str(self.amount),
            "rateMissing": self.rate_missing,
        }


@dataclass(frozen=True)
class StudentEarning:
    student_id: str
    student_name: str
    package: str | None
    monthly_rate: Decimal
    daily_rate: Decimal
    days_worked: int
    total_earned: Decimal
    teacher_changed: bool
    rate_missing: bool
    periods: tuple[StudentPeriod, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "studentId": self.student_id,
            "studentName": self.student_name,
            "package": self.package,
            "monthlyRate": str(self.monthly_rate),
            "dailyRate": str(self.daily_rate),
            "daysWorked": self.days_worked,
            "totalEarned": str(self.total_earned),
            "teacherChanged": self.teacher_changed,
            "rateMissing": self.rate_missing,
            "periods": [p.to_dict() for p in self.periods],
        }


@dataclass(frozen=True)
class SalarySummary:
    working_days_in_period: int
    actual_teaching_days: int
    average_daily_earning: Decimal
    total_deductions: Decimal
    net_salary: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "workingDaysInPeriod": self.working_days_in_period,
            "actualTeachingDays": self.actual_teaching_days,
            "averageDailyEarning": str(self.average_daily_earning),
            "totalDeductions": str(self.total_deductions),
            "netSalary": str(self.net_salary),
        }


@dataclass(frozen=True)
class SalaryBreakdown:
    student_breakdown: tuple[StudentEarning, ...]
    lateness_breakdown: tuple[LatenessLine, ...]
    absence_breakdown: tuple[AbsenceLine, ...]
    bonus_breakdown: BonusBreakdown
    sub_ranges: tuple[SubRange, ...]
    summary: SalarySummary

    def to_dict(self) -> dict[str, Any]:
        return {
            "studentBreakdown": [s.to_dict() for s in self.student_breakdown],
            "latenessBreakdown": [l.to_dict() for l in self.lateness_breakdown],
            "absenceBreakdown": [a.to_dict() for a in self.absence_breakdown],
            "bonusBreakdown": self.bonus_breakdown.to_dict(),
            "subRanges": [s.to_dict() for s in self.sub_ranges],
            "summary": self.summary.to_dict(),
        }


@dataclass(frozen=True)
class SalaryResult:
    """
    A teacher's salary for a range.

    ``total_salary`` is read from the breakdown summary, so the two can never
    disagree.
    """

    teacher_id: str
    teacher_name: str
    period_start: date
    period_end: date
    currency: str
    base_salary: Decimal
    lateness_deduction: Decimal
    absence_deduction: Decimal
    bonuses: Decimal
    status: PaymentStatus
    num_students: int
    teaching_days: int
    has_teacher_changes: bool
    breakdown: SalaryBreakdown
    warnings: tuple[CalculationWarning, ...] = ()
    config_fingerprint: str = ""

    @property
    def total_salary(self) -> Decimal:
        return self.breakdown.summary.net_salary

    def to_dict(self) -> dict[str, Any]:
        return {
            "teacherId": self.teacher_id,
            "teacherName": self.teacher_name,
            "periodStart": self.period_start.isoformat(),
            "periodEnd": self.period_end.isoformat(),
            "currency": self.currency,
            "baseSalary": str(self.base_salary),
            "latenessDeduction": str(self.lateness_deduction),
            "absenceDeduction": str(self.absence_deduction),
            "bonuses": str(self.bonuses),
            "totalSalary": str(self.total_salary),
            "status": self.status.value,
            "numStudents": self.num_students,
            "teachingDays": self.teaching_days,
            "hasTeacherChanges": self.has_teacher_changes,
            "breakdown": self.breakdown.to_dict(),
            "warnings": [w.to_dict() for w in self.warnings],
            "configFingerprint": self.config_fingerprint,
        }


# ---------------------------------------------------------------------------
# Stage tracking
# ---------------------------------------------------------------------------


class CalculationStage(str, Enum):
    """Progress of one sub-range through the calculation."""
    PENDING = "pending"
    RESOLVED = "resolved"
    PENALIZED = "penalized"
    BONUSED = "bonused"
    SUMMED = "summed"


_STAGE_ORDER = tuple(CalculationStage)


class StageTracker:
    """Enforces the stage order for one sub-range."""

    def __init__(self, label: str):
        self.label = label
        self.stage = CalculationStage.PENDING

    def advance(self, target: CalculationStage) -> None:
        index = _STAGE_ORDER.index(self.stage)
        expected = _STAGE_ORDER[index + 1] if index + 1 < len(_STAGE_ORDER) else None
        if target is not expected:
            raise InvariantViolationError(
                f"stage_order[{self.label}]",
                expected=expected.value if expected else "<done>",
                actual=target.value,
            )
        self.stage = target


# ---------------------------------------------------------------------------
# Calculation
# ---------------------------------------------------------------------------


@dataclass
class _EarningBuilder:
    assignment: AssignmentInterval
    monthly_rate: Decimal = _ZERO
    daily_rate: Decimal = _ZERO
    teacher_changed: bool = False
    rate_missing: bool = False
    periods: list[StudentPeriod] = field(default_factory=list)

    def freeze(self) -> StudentEarning:
        return StudentEarning(
            student_id=self.assignment.student_id,
            student_name=self.assignment.student_name,
            package=self.assignment.package,
            monthly_rate=self.monthly_rate,
            daily_rate=self.daily_rate,
            days_worked=sum(p.billable_days for p in self.periods),
            total_earned=sum((p.amount for p in self.periods), _ZERO),
            teacher_changed=self.teacher_changed,
            rate_missing=self.rate_missing,
            periods=tuple(self.periods),
        )


def _reconcile(
    name: str,
    reported: Decimal,
    line_items: Decimal,
    *,
    strict: bool,
    warnings: list[CalculationWarning],
) -> Decimal:
    """Return the published total; the line-item sum always wins."""
    if reported == line_items:
        return reported
    error = InvariantViolationError(name, expected=str(line_items), actual=str(reported))
    if strict:
        raise error
    logger.error(
        "salary_total_mismatch",
        extra={"invariant": name, "reported": str(reported), "line_items": str(line_items)},
    )
    warnings.append(CalculationWarning.from_error(error))
    return line_items


@traced_engine(
    "salary_orchestrator", "1.0",
    fingerprint_fields=("inputs", "config_fingerprint"),
)
def calculate_salary(
    *,
    inputs: SalaryInput,
    rules: SalaryRules,
    deadline: Deadline | None = None,
    config_fingerprint: str = "",
) -> SalaryResult:
    """
    Calculate a teacher's salary over ``[inputs.start, inputs.end]``.

    Args:
        inputs: Raw facts of the teacher for the range.
        rules: Rate table, penalty policies and settings of the school.
        deadline: Cooperative deadline; unbounded when omitted.
        config_fingerprint: Fingerprint of the configuration snapshot the
            rules came from, echoed on the result.

    Returns:
        SalaryResult with a reconciled, itemized breakdown.

    Raises:
        ComputationTimeoutError: If the deadline passes.
        InvariantViolationError: In strict mode, when totals disagree with
            their line items or a stage is skipped.
    """
    deadline = deadline or Deadline.unbounded("salary_calculation")
    currency = rules.currency
    tz = resolve_timezone(rules.timezone_name)
    zero = round_amount(_ZERO, currency)
    warnings: list[CalculationWarning] = []

    proration = prorate_assignments(intervals=inputs.intervals, start=inputs.start, end=inputs.end)
    warnings.extend(proration.warnings)

    facts_by_day: dict[tuple[str, date], list[ClassFact]] = defaultdict(list)
    for fact in inputs.facts:
        if inputs.start <= fact.class_date <= inputs.end:
            facts_by_day[(fact.student_id, fact.class_date)].append(fact)

    resolved_cache: dict[tuple[str | None, date], ResolvedRate] = {}
    warned: set[tuple[str, str | None]] = set()

    def rate_for(package: str | None, as_of: date) -> ResolvedRate:
        key = (package, as_of)
        if key not in resolved_cache:
            resolved = resolve_rate(rules.rate_table, package=package, as_of=as_of)
            resolved_cache[key] = resolved
            for warning in missing_rate_warnings(resolved):
                marker = (warning.message, package)
                if marker not in warned:
                    warned.add(marker)
                    warnings.append(warning)
        return resolved_cache[key]

    earnings: dict[str, _EarningBuilder] = {}
    lateness_lines: list[LatenessLine] = []
    absence_lines: list[AbsenceLine] = []
    reported_lateness = zero
    reported_absence = zero
    running_base = zero
    trackers: list[StageTracker] = []

    for sub in proration.sub_ranges:
        deadline.check()
        tracker = StageTracker(f"{sub.start.isoformat()}..{sub.end.isoformat()}")
        trackers.append(tracker)

        late_days: list[LatenessDay] = []
        expected: list[ExpectedClass] = []
        for assignment in sub.assignments:
            weekdays = billable_weekdays(assignment.day_package, rules.include_sundays)
            builder = earnings.setdefault(assignment.student_id, _EarningBuilder(assignment))
            builder.teacher_changed |= teacher_changed(assignment, inputs.start, inputs.end)

            for chunk_start, chunk_end in split_by_month(sub.start, sub.end):
                resolved = rate_for(assignment.package, chunk_start)
                month_first, month_last = month_bounds(chunk_start)
                month_days = count_billable_days(month_first, month_last, weekdays)
                days = count_billable_days(chunk_start, chunk_end, weekdays)
                monthly = resolved.monthly_salary

                if month_days == 0:
                    amount = zero
                else:
                    # Cumulative shares telescope, so any split of a month sums to its rate.
                    before = count_billable_days(
                        month_first, chunk_start - timedelta(days=1), weekdays,
                    )
                    amount = (
                        round_amount(monthly * (before + days) / month_days, currency)
                        - round_amount(monthly * before / month_days, currency)
                    )
                running_base += amount

                builder.monthly_rate = monthly
                builder.daily_rate = (
                    round_amount(monthly / month_days, currency) if month_days else zero
                )
                builder.rate_missing |= resolved.salary_missing
                builder.periods.append(StudentPeriod(
                    start=chunk_start,
                    end=chunk_end,
                    billable_days=days,
                    month_billable_days=month_days,
                    amount=amount,
                    rate_missing=resolved.salary_missing,
                ))

                for day in iter_days(chunk_start, chunk_end):
                    if day.weekday() not in weekdays:
                        continue
                    facts = tuple(facts_by_day.get((assignment.student_id, day), ()))
                    late_days.append(LatenessDay(
                        student_id=assignment.student_id,
                        student_name=assignment.student_name,
                        class_date=day,
                        time_slot=assignment.time_slot,
                        deduction_base=resolved.lateness_base_amount,
                        facts=facts,
                    ))
                    expected.append(ExpectedClass(
                        student_id=assignment.student_id,
                        student_name=assignment.student_name,
                        package=assignment.package,
                        class_date=day,
                        deduction_base=resolved.absence_base_amount,
                        facts=facts,
                    ))
        tracker.advance(CalculationStage.RESOLVED)

        lateness = assess_lateness(
            policy=rules.lateness,
            days=late_days,
            waivers=inputs.waivers,
            tz=tz,
            currency=currency,
            deadline=deadline,
        )
        absence = assess_absences(
            policy=rules.absence,
            classes=expected,
            permissions=inputs.permissions,
            waivers=inputs.waivers,
            today=inputs.today,
            currency=currency,
            deadline=deadline,
        )
        lateness_lines.extend(lateness.lines)
        absence_lines.extend(absence.lines)
        warnings.extend(lateness.warnings)
        reported_lateness += lateness.total
        reported_absence += absence.total
        tracker.advance(CalculationStage.PENALIZED)

    deadline.check()
    bonus = aggregate_bonuses(
        bonus_records=inputs.bonus_records,
        assessments=inputs.assessments,
        start=inputs.start,
        end=inputs.end,
        currency=currency,
    )
    warnings.extend(bonus.warnings)
    for tracker in trackers:
        tracker.advance(CalculationStage.BONUSED)

    students = tuple(b.freeze() for _, b in sorted(earnings.items()))
    strict = rules.strict_invariants
    base_salary = _reconcile(
        "base_salary", running_base,
        sum((s.total_earned for s in students), zero),
        strict=strict, warnings=warnings,
    )
    lateness_total = _reconcile(
        "lateness_deduction", reported_lateness,
        sum((l.deduction for l in lateness_lines), zero),
        strict=strict, warnings=warnings,
    )
    absence_total = _reconcile(
        "absence_deduction", reported_absence,
        sum((a.deduction for a in absence_lines), zero),
        strict=strict, warnings=warnings,
    )
    bonus_total = _reconcile(
        "bonuses", bonus.total,
        sum((b.amount for b in bonus.manual + bonus.quality), zero),
        strict=strict, warnings=warnings,
    )
    net_salary = base_salary - lateness_total - absence_total + bonus_total
    for tracker in trackers:
        tracker.advance(CalculationStage.SUMMED)

    teaching_days = len({
        f.class_date for f in inputs.facts
        if f.link_sent and inputs.start <= f.class_date <= inputs.end
    })
    working_days = sum(
        1 for d in iter_days(inputs.start, inputs.end)
        if rules.include_sundays or d.weekday() != SUNDAY
    )
    summary = SalarySummary(
        working_days_in_period=working_days,
        actual_teaching_days=teaching_days,
        average_daily_earning=(
            round_amount(base_salary / teaching_days, currency) if teaching_days else zero
        ),
        total_deductions=lateness_total + absence_total,
        net_salary=net_salary,
    )

    period = period_key(inputs.start)
    paid = any(
        p.period == period and p.status is PaymentStatus.PAID for p in inputs.payments
    )

    result = SalaryResult(
        teacher_id=inputs.subject_id,
        teacher_name=inputs.subject_name,
        period_start=inputs.start,
        period_end=inputs.end,
        currency=currency,
        base_salary=base_salary,
        lateness_deduction=lateness_total,
        absence_deduction=absence_total,
        bonuses=bonus_total,
        status=PaymentStatus.PAID if paid else PaymentStatus.UNPAID,
        num_students=len(students),
        teaching_days=teaching_days,
        has_teacher_changes=any(s.teacher_changed for s in students),
        breakdown=SalaryBreakdown(
            student_breakdown=students,
            lateness_breakdown=tuple(sorted(lateness_lines, key=lambda l: (l.class_date, l.student_id))),
            absence_breakdown=tuple(sorted(absence_lines, key=lambda a: (a.class_date, a.student_id))),
            bonus_breakdown=bonus,
            sub_ranges=proration.sub_ranges,
            summary=summary,
        ),
        warnings=tuple(warnings),
        config_fingerprint=config_fingerprint,
    )
    logger.debug(
        "salary_computed",
        extra={
            "teacher_id": inputs.subject_id,
            "sub_ranges": len(proration.sub_ranges),
            "students": len(students),
            "net_salary": str(net_salary),
            "warnings": len(warnings),
        },
    )
    return result
