"""
Lateness Penalty Engine -- scheduled time + observed timestamp to deduction.

Responsibility:
    Compute whole minutes late for a class-day, match it against the school's
    tier table, and turn the tier percentage into a money deduction off the
    package's lateness base amount.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  This is the single lateness
    implementation; every caller (salary orchestrator, detail views, tests)
    goes through ``assess_minutes`` / ``assess_lateness``.

Invariants enforced:
    - Tier tables are sorted, contiguous, non-overlapping half-open ranges
      with non-decreasing percentages in [0, 100]; validated once, when the
      policy is built.
    - A minutes value matches exactly one tier or none.  ``minutes == end``
      belongs to the next tier.
    - ``minutes_late <= excused_threshold_minutes`` never deducts.
    - Lateness above the last tier follows the explicit overflow policy.
    - Deduction = base * percent / 100, rounded half-up to currency precision.

Failure modes:
    - TierConfigurationError when the tier table is malformed.
    - LatenessTierOverflowError under the "error" overflow policy.
    - A time slot that cannot be parsed skips that day with a
      MALFORMED_RECORD warning.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

from compensation_engines.dates import ensure_aware, scheduled_start
from compensation_engines.tracer import traced_engine
from compensation_kernel.domain.clock import Deadline
from compensation_kernel.domain.records import (
    CalculationWarning,
    ClassFact,
    DeductionType,
    DeductionWaiver,
    LatenessTier,
)
from compensation_kernel.domain.values import round_amount
from compensation_kernel.exceptions import (
    LatenessTierOverflowError,
    MalformedRecordError,
    TierConfigurationError,
)
from compensation_kernel.logging_config import get_logger

logger = get_logger("engines.lateness")

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")
_MICROS_PER_MINUTE = Decimal(60_000_000)


class OverflowPolicy(str, Enum):
    """What to deduct when minutes late exceed every tier."""
    CLAMP = "clamp"
    FULL = "full"
    ERROR = "error"


class ObservationReference(str, Enum):
    """Which timestamp counts as the teacher's arrival."""
    SENT = "sent"
    STARTED = "started"


def validate_tiers(tiers: Sequence[LatenessTier]) -> tuple[LatenessTier, ...]:
    """
    Check that a tier table is well formed.

    Raises:
        TierConfigurationError: If tiers are unsorted, overlap, leave gaps,
            have an open end anywhere but last, or have decreasing or
            out-of-range percentages.
    """
    tiers = tuple(tiers)
    for i, tier in enumerate(tiers):
        if not _ZERO <= tier.deduction_percent <= _HUNDRED:
            raise TierConfigurationError("percent must be within 0..100", i)
        if tier.end_minute is None:
            if i != len(tiers) - 1:
                raise TierConfigurationError("only the last tier may be open-ended", i)
        elif tier.end_minute <= tier.start_minute:
            raise TierConfigurationError("end_minute must exceed start_minute", i)
        if i == 0:
            continue
        prev = tiers[i - 1]
        if tier.start_minute < prev.start_minute:
            raise TierConfigurationError("tiers must be sorted by start_minute", i)
        if prev.end_minute is not None and tier.start_minute < prev.end_minute:
            raise TierConfigurationError("tier overlaps the previous tier", i)
        if prev.end_minute is not None and tier.start_minute > prev.end_minute:
            raise TierConfigurationError("gap between this tier and the previous tier", i)
        if tier.deduction_percent < prev.deduction_percent:
            raise TierConfigurationError("percent decreases as lateness grows", i)
    return tiers


@dataclass(frozen=True)
class LatenessPolicy:
    """A school's lateness rules."""

    tiers: tuple[LatenessTier, ...] = ()
    excused_threshold_minutes: int = 3
    overflow: OverflowPolicy = OverflowPolicy.CLAMP
    observation: ObservationReference = ObservationReference.SENT

    def __post_init__(self):
        object.__setattr__(self, "tiers", validate_tiers(self.tiers))
        if self.excused_threshold_minutes < 0:
            raise TierConfigurationError("excused threshold cannot be negative")
        if not isinstance(self.overflow, OverflowPolicy):
            object.__setattr__(self, "overflow", OverflowPolicy(self.overflow))
        if not isinstance(self.observation, ObservationReference):
            object.__setattr__(self, "observation", ObservationReference(self.observation))

    def match_tier(self, minutes_late: int) -> LatenessTier | None:
        """The single tier containing ``minutes_late``, or None."""
        for tier in self.tiers:
            if tier.contains(minutes_late):
                return tier
        return None

    @property
    def max_tier_end(self) -> int:
        if not self.tiers:
            return 0
        last = self.tiers[-1]
        return last.end_minute if last.end_minute is not None else last.start_minute


def minutes_late(scheduled: datetime, observed: datetime) -> int:
    """Whole minutes between schedule and observation, half-up, floored at 0."""
    delta = ensure_aware(observed) - ensure_aware(scheduled)
    micros = (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds
    if micros <= 0:
        return 0
    minutes = (Decimal(micros) / _MICROS_PER_MINUTE).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(minutes)


@dataclass(frozen=True)
class LatenessAssessment:
    """Outcome of applying the policy to one minutes-late value."""

    minutes_late: int
    tier: LatenessTier | None
    percent: Decimal
    deduction: Decimal
    excused: bool = False
    overflowed: bool = False

    @property
    def tier_label(self) -> str:
        if self.excused:
            return "Excused"
        if self.overflowed:
            return f"Overflow ({self.percent}%)"
        if self.tier is None:
            return "No tier"
        return f"Tier {self.tier.label}"


def assess_minutes(
    policy: LatenessPolicy,
    minutes: int,
    base_amount: Decimal,
    currency: str,
) -> LatenessAssessment:
    """
    Apply the lateness policy to a minutes-late value.

    Raises:
        LatenessTierOverflowError: If the minutes exceed every tier and the
            overflow policy is "error".
    """
    tier = policy.match_tier(minutes)
    if minutes <= policy.excused_threshold_minutes:
        return LatenessAssessment(minutes, tier, _ZERO, _ZERO, excused=True)

    overflowed = False
    if tier is not None:
        percent = tier.deduction_percent
    elif policy.tiers and minutes < policy.tiers[0].start_minute:
        percent = _ZERO
    else:
        overflowed = True
        if policy.overflow is OverflowPolicy.ERROR:
            raise LatenessTierOverflowError(minutes, policy.max_tier_end)
        if policy.overflow is OverflowPolicy.FULL:
            percent = _HUNDRED
        else:
            percent = policy.tiers[-1].deduction_percent if policy.tiers else _ZERO

    deduction = round_amount(base_amount * percent / _HUNDRED, currency)
    return LatenessAssessment(minutes, tier, percent, deduction, overflowed=overflowed)


def observed_time(fact: ClassFact, reference: ObservationReference) -> datetime | None:
    """The arrival timestamp of a fact under the chosen reference."""
    if reference is ObservationReference.STARTED:
        moment = fact.started_at or fact.clicked_at
    else:
        moment = fact.sent_at
    return ensure_aware(moment) if moment is not None else None


# ---------------------------------------------------------------------------
# Period assessment
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LatenessDay:
    """One expected class-day of one student, with its observations."""

    student_id: str
    student_name: str
    class_date: date
    time_slot: str
    deduction_base: Decimal
    facts: tuple[ClassFact, ...] = ()


@dataclass(frozen=True)
class LatenessLine:
    """A deducted (or waived) late class-day."""

    class_date: date
    student_id: str
    student_name: str
    scheduled_at: datetime
    observed_at: datetime
    minutes_late: int
    tier_label: str
    percent: Decimal
    deduction_base: Decimal
    deduction: Decimal
    waived: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.class_date.isoformat(),
            "studentId": self.student_id,
            "studentName": self.student_name,
            "scheduledTime": self.scheduled_at.isoformat(),
            "actualTime": self.observed_at.isoformat(),
            "latenessMinutes": self.minutes_late,
            "tier": self.tier_label,
            "percent": str(self.percent),
            "deductionBase": str(self.deduction_base),
            "deduction": str(self.deduction),
            "waived": self.waived,
        }


@dataclass(frozen=True)
class LatenessResult:
    lines: tuple[LatenessLine, ...]
    total: Decimal
    warnings: tuple[CalculationWarning, ...] = ()


@traced_engine("lateness", "1.0", fingerprint_fields=("policy", "currency"))
def assess_lateness(
    *,
    policy: LatenessPolicy,
    days: Sequence[LatenessDay],
    waivers: Sequence[DeductionWaiver] = (),
    tz: tzinfo,
    currency: str,
    deadline: Deadline | None = None,
) -> LatenessResult:
    """
    Assess lateness for a set of class-days.

    Days without any observation do not fire.  When several facts exist
    for a day, the earliest observation counts.  Excused minutes and
    minutes in a zero-percent tier produce no line; waived days produce a
    zero line flagged ``waived``.

    Args:
        policy: Lateness policy of the school.
        days: Expected class-days with their facts.
        waivers: Deduction waivers of the teacher.
        tz: Tenant timezone the time slots are expressed in.
        currency: Currency the deduction is rounded in.
        deadline: Cooperative deadline checked between days.

    Returns:
        LatenessResult with lines ordered by (date, student).
    """
    lines: list[LatenessLine] = []
    warnings: list[CalculationWarning] = []

    for day in sorted(days, key=lambda d: (d.class_date, d.student_id)):
        if deadline is not None:
            deadline.check()

        observations = [
            moment for moment in (observed_time(f, policy.observation) for f in day.facts)
            if moment is not None
        ]
        if not observations:
            continue
        observed = min(observations)

        try:
            scheduled = scheduled_start(day.class_date, day.time_slot, tz)
        except ValueError as exc:
            warnings.append(CalculationWarning.from_error(
                MalformedRecordError("assignment", day.student_id, str(exc)),
                date=day.class_date.isoformat(),
            ))
            continue

        minutes = minutes_late(scheduled, observed)
        assessment = assess_minutes(policy, minutes, day.deduction_base, currency)
        if assessment.excused or assessment.percent == 0:
            continue

        waived = any(
            w.applies_to(DeductionType.LATENESS, day.class_date, day.student_id)
            for w in waivers
        )
        lines.append(LatenessLine(
            class_date=day.class_date,
            student_id=day.student_id,
            student_name=day.student_name,
            scheduled_at=scheduled,
            observed_at=observed.astimezone(tz),
            minutes_late=minutes,
            tier_label=assessment.tier_label,
            percent=assessment.percent,
            deduction_base=day.deduction_base,
            deduction=round_amount(_ZERO, currency) if waived else assessment.deduction,
            waived=waived,
        ))

    total = sum((line.deduction for line in lines), _ZERO)
    return LatenessResult(lines=tuple(lines), total=total, warnings=tuple(warnings))
