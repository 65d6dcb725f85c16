"""
Module: compensation_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the import surface for higher layers
    (compensation_config, compensation_services).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import compensation_kernel (domain, exceptions, logging) and
    sibling engine modules.  MUST NOT import compensation_config or
    compensation_services.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      "Today" and deadlines are passed in by the caller.
    - Decimal-only arithmetic, rounded half-up to currency precision.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Every top-level engine invocation is traced via ``@traced_engine``
    (see ``compensation_engines.tracer``), emitting
    COMPENSATION_ENGINE_TRACE log records with engine name, version, input
    fingerprint and duration.
"""

from compensation_engines.absence import (
    AbsenceLine,
    AbsenceMode,
    AbsencePolicy,
    AbsenceReason,
    AbsenceResult,
    ExpectedClass,
    assess_absences,
    classify_class_day,
)
from compensation_engines.billing import (
    BillingBreakdown,
    FeatureFee,
    SchoolBill,
    calculate_school_bill,
    price_all_plans,
    resolve_feature_fees,
)
from compensation_engines.bonus import BonusBreakdown, BonusLine, aggregate_bonuses
from compensation_engines.lateness import (
    LatenessAssessment,
    LatenessDay,
    LatenessLine,
    LatenessPolicy,
    LatenessResult,
    ObservationReference,
    OverflowPolicy,
    assess_lateness,
    assess_minutes,
    minutes_late,
    validate_tiers,
)
from compensation_engines.proration import (
    PlanChangeProration,
    ProrationResult,
    SubRange,
    calculate_plan_change_proration,
    prorate_assignments,
)
from compensation_engines.rates import RateTable, ResolvedRate, resolve_rate
from compensation_engines.salary import (
    CalculationStage,
    SalaryBreakdown,
    SalaryInput,
    SalaryResult,
    SalaryRules,
    SalarySummary,
    StudentEarning,
    StudentPeriod,
    calculate_salary,
)
from compensation_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    # Absence
    "AbsenceLine",
    "AbsenceMode",
    "AbsencePolicy",
    "AbsenceReason",
    "AbsenceResult",
    "ExpectedClass",
    "assess_absences",
    "classify_class_day",
    # Billing
    "BillingBreakdown",
    "FeatureFee",
    "SchoolBill",
    "calculate_school_bill",
    "price_all_plans",
    "resolve_feature_fees",
    # Bonus
    "BonusBreakdown",
    "BonusLine",
    "aggregate_bonuses",
    # Lateness
    "LatenessAssessment",
    "LatenessDay",
    "LatenessLine",
    "LatenessPolicy",
    "LatenessResult",
    "ObservationReference",
    "OverflowPolicy",
    "assess_lateness",
    "assess_minutes",
    "minutes_late",
    "validate_tiers",
    # Proration
    "PlanChangeProration",
    "ProrationResult",
    "SubRange",
    "calculate_plan_change_proration",
    "prorate_assignments",
    # Rates
    "RateTable",
    "ResolvedRate",
    "resolve_rate",
    # Salary
    "CalculationStage",
    "SalaryBreakdown",
    "SalaryInput",
    "SalaryResult",
    "SalaryRules",
    "SalarySummary",
    "StudentEarning",
    "StudentPeriod",
    "calculate_salary",
    # Tracer
    "compute_input_fingerprint",
    "traced_engine",
]
