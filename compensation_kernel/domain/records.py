"""
Compensation Domain Records (``compensation_kernel.domain.records``).

Responsibility
--------------
Frozen dataclass value objects for every raw fact and configuration row the
compensation and billing engines read: assignment intervals, class facts,
lateness tiers, package rates and deduction bases, bonuses, quality
assessments, permission requests, waivers, payments, students, pricing plans
and subscriptions.

Architecture position
---------------------
**Kernel > Domain** -- pure data definitions with ZERO I/O.  Produced by the
selectors (from ORM rows) or by tests directly, consumed by the engines.

Invariants enforced
-------------------
* All records are ``frozen=True`` (immutable after construction).
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* Required identifiers are non-empty; date ranges are not inverted.

Failure modes
-------------
* Construction with missing or invalid fields raises ``ValueError``.  The
  selectors translate that into ``MalformedRecordError`` warnings and skip
  the row.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from compensation_kernel.logging_config import get_logger

logger = get_logger("domain.records")


def to_decimal(value: Any, field_name: str) -> Decimal:
    """Coerce an int/str/Decimal amount to Decimal; floats are rejected."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise ValueError(f"{field_name} must not be float: {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"{field_name} is not a number: {value!r}") from e


def _require(value: Any, field_name: str) -> None:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValueError(f"{field_name} is required")


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class AttendanceStatus(str, Enum):
    """Attendance mark recorded for a class-day."""
    PRESENT = "Present"
    ABSENT = "Absent"
    PERMISSION = "Permission"
    NOT_TAKEN = "NotTaken"


class PermissionStatus(str, Enum):
    """Permission (leave) request lifecycle."""
    PENDING = "Pending"
    APPROVED = "Approved"
    DECLINED = "Declined"


class PaymentStatus(str, Enum):
    """Whether a teacher's salary for a month has been paid."""
    PAID = "Paid"
    UNPAID = "Unpaid"


class DeductionType(str, Enum):
    """Kinds of deduction a waiver can cancel."""
    LATENESS = "lateness"
    ABSENCE = "absence"


class SubscriptionStatus(str, Enum):
    """School subscription states."""
    ACTIVE = "active"
    TRIAL = "trial"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class BillingCycle(str, Enum):
    """Subscription billing cycles with their length in months."""
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"

    @property
    def months(self) -> int:
        return {"monthly": 1, "quarterly": 3, "annual": 12}[self.value]


# ---------------------------------------------------------------------------
# Assignments and class facts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AssignmentInterval:
    """
    A student assigned to a teacher for an (inclusive) date interval.

    ``end_date`` of None means the assignment is still open.
    """
    subject_id: str
    student_id: str
    time_slot: str
    start_date: date
    end_date: date | None = None
    package: str | None = None
    day_package: str | None = None
    student_name: str = ""

    def __post_init__(self):
        _require(self.subject_id, "subject_id")
        _require(self.student_id, "student_id")
        _require(self.start_date, "start_date")
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError(
                f"Assignment of student {self.student_id} ends "
                f"({self.end_date}) before it starts ({self.start_date})"
            )

    def covers(self, day: date) -> bool:
        return self.start_date <= day and (self.end_date is None or day <= self.end_date)

    def clip(self, start: date, end: date) -> tuple[date, date] | None:
        """Intersect with [start, end]; None when disjoint."""
        lo = max(start, self.start_date)
        hi = end if self.end_date is None else min(end, self.end_date)
        if lo > hi:
            return None
        return lo, hi


@dataclass(frozen=True)
class ClassFact:
    """One observation for a (student, scheduled class-day)."""
    subject_id: str
    student_id: str
    class_date: date
    sent_at: datetime | None = None
    started_at: datetime | None = None
    clicked_at: datetime | None = None
    attendance_status: AttendanceStatus | None = None
    fact_id: str | None = None

    def __post_init__(self):
        _require(self.student_id, "student_id")
        _require(self.class_date, "class_date")
        if isinstance(self.attendance_status, str) and not isinstance(
            self.attendance_status, AttendanceStatus
        ):
            object.__setattr__(
                self, "attendance_status", AttendanceStatus(self.attendance_status)
            )

    @property
    def link_sent(self) -> bool:
        return self.sent_at is not None


# ---------------------------------------------------------------------------
# Tiered lateness and package tables
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LatenessTier:
    """
    Half-open lateness band [start_minute, end_minute) -> deduction percent.

    ``end_minute`` of None is an unbounded last tier.
    """
    start_minute: int
    end_minute: int | None
    deduction_percent: Decimal

    def __post_init__(self):
        object.__setattr__(
            self, "deduction_percent", to_decimal(self.deduction_percent, "deduction_percent")
        )
        if self.start_minute < 0:
            raise ValueError("start_minute cannot be negative")

    def contains(self, minutes_late: int) -> bool:
        if minutes_late < self.start_minute:
            return False
        return self.end_minute is None or minutes_late < self.end_minute

    @property
    def label(self) -> str:
        upper = "" if self.end_minute is None else str(self.end_minute)
        return f"[{self.start_minute},{upper}) {self.deduction_percent}%"


@dataclass(frozen=True)
class PackageDeductionBase:
    """Per-package base amounts that lateness and absence percentages apply to."""
    package: str
    lateness_base_amount: Decimal
    absence_base_amount: Decimal

    def __post_init__(self):
        _require(self.package, "package")
        for name in ("lateness_base_amount", "absence_base_amount"):
            amount = to_decimal(getattr(self, name), name)
            if amount < 0:
                raise ValueError(f"{name} cannot be negative")
            object.__setattr__(self, name, amount)


@dataclass(frozen=True)
class PackageSalaryRate:
    """Monthly per-student salary for teaching one student on a package."""
    package: str
    monthly_amount: Decimal
    effective_from: date | None = None
    effective_to: date | None = None

    def __post_init__(self):
        _require(self.package, "package")
        amount = to_decimal(self.monthly_amount, "monthly_amount")
        if amount < 0:
            raise ValueError("monthly_amount cannot be negative")
        object.__setattr__(self, "monthly_amount", amount)
        if (
            self.effective_from is not None
            and self.effective_to is not None
            and self.effective_to < self.effective_from
        ):
            raise ValueError("effective_to precedes effective_from")

    def is_effective(self, as_of: date) -> bool:
        if self.effective_from is not None and as_of < self.effective_from:
            return False
        return self.effective_to is None or as_of <= self.effective_to


# ---------------------------------------------------------------------------
# Credits, permissions, waivers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BonusRecord:
    """A manual bonus for a teacher, at most one per period label."""
    subject_id: str
    period_label: str
    amount: Decimal
    reason: str = ""
    updated_at: datetime | None = None
    record_id: str | None = None

    def __post_init__(self):
        _require(self.subject_id, "subject_id")
        _require(self.period_label, "period_label")
        object.__setattr__(self, "amount", to_decimal(self.amount, "amount"))


@dataclass(frozen=True)
class QualityAssessment:
    """Weekly quality review of a teacher; pays only when manager-approved."""
    subject_id: str
    week_start: date
    overall_quality: str = ""
    supervisor_feedback: str = ""
    manager_approved: bool = False
    manager_override: bool = False
    bonus_awarded: Decimal | None = None
    examiner_rating: Decimal | None = None
    student_pass_rate: Decimal | None = None
    assessment_id: str | None = None

    def __post_init__(self):
        _require(self.subject_id, "subject_id")
        _require(self.week_start, "week_start")
        for name in ("bonus_awarded", "examiner_rating", "student_pass_rate"):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, to_decimal(value, name))


@dataclass(frozen=True)
class PermissionRequest:
    """A teacher's leave request covering one or more dates."""
    subject_id: str
    dates: tuple[date, ...]
    status: PermissionStatus
    reason: str = ""
    request_id: str | None = None

    def __post_init__(self):
        _require(self.subject_id, "subject_id")
        if not self.dates:
            raise ValueError("Permission request must cover at least one date")
        object.__setattr__(self, "dates", tuple(sorted(set(self.dates))))
        if not isinstance(self.status, PermissionStatus):
            object.__setattr__(self, "status", PermissionStatus(self.status))

    def approves(self, day: date) -> bool:
        return self.status is PermissionStatus.APPROVED and day in self.dates


@dataclass(frozen=True)
class DeductionWaiver:
    """
    Manager adjustment cancelling one day's deduction.

    ``student_id`` of None waives the deduction for every student that day.
    """
    subject_id: str
    deduction_type: DeductionType
    waiver_date: date
    student_id: str | None = None
    reason: str = ""

    def __post_init__(self):
        _require(self.subject_id, "subject_id")
        if not isinstance(self.deduction_type, DeductionType):
            object.__setattr__(self, "deduction_type", DeductionType(self.deduction_type))

    def applies_to(self, deduction_type: DeductionType, day: date, student_id: str) -> bool:
        return (
            self.deduction_type is deduction_type
            and self.waiver_date == day
            and (self.student_id is None or self.student_id == student_id)
        )


@dataclass(frozen=True)
class SalaryPayment:
    """Payment status of a teacher's salary for one month ("YYYY-MM")."""
    subject_id: str
    period: str
    status: PaymentStatus

    def __post_init__(self):
        _require(self.period, "period")
        if not isinstance(self.status, PaymentStatus):
            object.__setattr__(self, "status", PaymentStatus(self.status))


@dataclass(frozen=True)
class Student:
    """A student of a school."""
    student_id: str
    name: str
    package: str | None = None
    day_package: str | None = None
    status: str = "active"

    @property
    def is_active(self) -> bool:
        return self.status.lower() == "active"


# ---------------------------------------------------------------------------
# School billing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PlanFeature:
    """A feature attached to a pricing plan with its own flat price."""
    feature_code: str
    feature_name: str
    price: Decimal
    is_enabled: bool = True

    def __post_init__(self):
        _require(self.feature_code, "feature_code")
        price = to_decimal(self.price, "price")
        if price < 0:
            raise ValueError(f"Feature {self.feature_code} price cannot be negative")
        object.__setattr__(self, "price", price)


@dataclass(frozen=True)
class PricingPlan:
    """A subscription plan: a per-student base rate plus optional features."""
    plan_id: str
    name: str
    base_rate_per_student: Decimal
    currency: str
    features: tuple[PlanFeature, ...] = ()
    is_active: bool = True

    def __post_init__(self):
        _require(self.plan_id, "plan_id")
        rate = to_decimal(self.base_rate_per_student, "base_rate_per_student")
        if rate < 0:
            raise ValueError("base_rate_per_student cannot be negative")
        object.__setattr__(self, "base_rate_per_student", rate)
        object.__setattr__(self, "features", tuple(self.features))
        logger.debug(
            "pricing_plan_created",
            extra={
                "plan_id": self.plan_id,
                "base_rate": str(rate),
                "currency": self.currency,
                "feature_count": len(self.features),
            },
        )


@dataclass(frozen=True)
class SchoolSubscription:
    """
    A school's subscription to a plan.

    ``active_student_count`` is the stored counter; it is informative only.
    ``feature_overrides`` maps feature codes to an enabled flag that wins over
    the plan default.
    """
    school_id: str
    plan_id: str
    status: SubscriptionStatus
    active_student_count: int = 0
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    period_start: date | None = None
    period_end: date | None = None
    feature_overrides: dict[str, bool] = field(default_factory=dict)

    def __post_init__(self):
        _require(self.school_id, "school_id")
        if not isinstance(self.status, SubscriptionStatus):
            object.__setattr__(self, "status", SubscriptionStatus(self.status))
        if not isinstance(self.billing_cycle, BillingCycle):
            object.__setattr__(self, "billing_cycle", BillingCycle(self.billing_cycle))

    @property
    def is_active(self) -> bool:
        return self.status is SubscriptionStatus.ACTIVE


# ---------------------------------------------------------------------------
# Warnings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CalculationWarning:
    """
    Structured, non-fatal problem attached to a result.

    ``code`` matches the code of the exception type the condition maps to.
    """
    code: str
    message: str
    context: tuple[tuple[str, str], ...] = ()

    @classmethod
    def from_error(cls, error: Exception, **context: Any) -> CalculationWarning:
        code = getattr(error, "code", type(error).__name__)
        return cls(
            code=code,
            message=str(error),
            context=tuple(sorted((k, str(v)) for k, v in context.items() if v is not None)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "context": dict(self.context)}
