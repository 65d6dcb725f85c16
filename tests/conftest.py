"""
Pytest fixtures for the compensation test suite.

Provides:
- Structured logging configuration and a JSON log capture fixture
- SQLite in-memory database sessions for selector and service tests
- Common configuration objects (tiers, rate tables, policies)

Environment Variables:
- DATABASE_URL: optional database URL for the ``session`` fixture.
  Defaults to an in-memory SQLite database.
"""

import json
import logging
import os
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO

import pytest

from compensation_engines.absence import AbsencePolicy
from compensation_engines.lateness import LatenessPolicy
from compensation_engines.rates import RateTable
from compensation_engines.salary import SalaryRules
from compensation_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from compensation_kernel.domain.clock import DeterministicClock
from compensation_kernel.domain.records import (
    LatenessTier,
    PackageDeductionBase,
    PackageSalaryRate,
)
from compensation_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from compensation_kernel.models.adjustments import BonusRecordModel
from compensation_kernel.models.billing import (
    PlanFeatureModel,
    PricingPlanModel,
    SchoolSubscriptionModel,
)
from compensation_kernel.models.compensation import (
    LatenessTierModel,
    PackageDeductionBaseModel,
    PackageSalaryRateModel,
    TenantSettingModel,
)
from compensation_kernel.models.roster import (
    AssignmentModel,
    ClassFactModel,
    StudentModel,
    TeacherModel,
)

DEFAULT_DATABASE_URL = "sqlite://"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture compensation logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            calculate_school_bill(...)
            logs = captured_logs()
            assert any(r["message"] == "COMPENSATION_ENGINE_TRACE" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("compensation")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def session():
    """A session on a freshly created schema; dropped after the test."""
    init_engine_from_url(os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL))
    create_tables()
    db_session = get_session()
    try:
        yield db_session
    finally:
        db_session.rollback()
        db_session.close()
        drop_tables()
        reset_engine()


# =============================================================================
# Time
# =============================================================================


@pytest.fixture
def clock():
    """Deterministic clock fixed at 2024-12-15 09:00 UTC."""
    return DeterministicClock(datetime(2024, 12, 15, 9, 0, tzinfo=timezone.utc))


# =============================================================================
# Configuration objects
# =============================================================================


@pytest.fixture
def standard_tiers() -> tuple[LatenessTier, ...]:
    """[0,5) 0%, [5,10) 10%, [10,20) 25%, [20,30) 50%, [30,) 100%."""
    return (
        LatenessTier(0, 5, Decimal("0")),
        LatenessTier(5, 10, Decimal("10")),
        LatenessTier(10, 20, Decimal("25")),
        LatenessTier(20, 30, Decimal("50")),
        LatenessTier(30, None, Decimal("100")),
    )


@pytest.fixture
def lateness_policy(standard_tiers) -> LatenessPolicy:
    return LatenessPolicy(tiers=standard_tiers)


@pytest.fixture
def rate_table() -> RateTable:
    return RateTable(
        salary_rates=(
            PackageSalaryRate("3 days", Decimal("1200")),
            PackageSalaryRate("5 days", Decimal("3000")),
        ),
        deduction_bases=(
            PackageDeductionBase("3 days", Decimal("40"), Decimal("60")),
            PackageDeductionBase("5 days", Decimal("100"), Decimal("80")),
        ),
        currency="ETB",
    )


@pytest.fixture
def salary_rules(rate_table, lateness_policy) -> SalaryRules:
    return SalaryRules(
        rate_table=rate_table,
        lateness=lateness_policy,
        absence=AbsencePolicy(),
        include_sundays=True,
        timezone_name="UTC",
        strict_invariants=True,
    )


# =============================================================================
# Seeded school
# =============================================================================

SCHOOL_ID = "school-1"


def add_standard_plans(session) -> None:
    """Standard (35/student, Zoom 0 on, Analytics 20 on, Branding 15 off) and Basic (25)."""
    standard = PricingPlanModel(
        plan_code="plan-standard", name="Standard",
        base_rate_per_student=Decimal("35"), currency="ETB",
    )
    standard.features = [
        PlanFeatureModel(feature_code="zoom", feature_name="Zoom", price=Decimal("0"), is_enabled=True),
        PlanFeatureModel(
            feature_code="analytics", feature_name="Analytics", price=Decimal("20"), is_enabled=True,
        ),
        PlanFeatureModel(
            feature_code="branding", feature_name="Branding", price=Decimal("15"), is_enabled=False,
        ),
    ]
    basic = PricingPlanModel(
        plan_code="plan-basic", name="Basic", base_rate_per_student=Decimal("25"), currency="ETB",
    )
    session.add_all([standard, basic])


@pytest.fixture
def seeded_school(session):
    """
    One school with two active teachers and a mid-November reassignment.

    - t-1 teaches s-1 ("3 days") all along and s-2 ("5 days") until 2024-11-15.
    - t-2 teaches s-2 from 2024-11-16.
    - t-3 is inactive; s-3 is an inactive student.
    - Absence grace is 60 days, so no November absences count on 2024-12-15.
    - t-1 was 12 minutes late for s-1 on 2024-11-04 and has a 100 ETB
      bonus for 2024-11.
    - The school subscribes to plan-standard; its stored student counter is 48.
    """
    t = SCHOOL_ID
    session.add_all([
        TeacherModel(tenant_id=t, teacher_id="t-1", name="Almaz"),
        TeacherModel(tenant_id=t, teacher_id="t-2", name="Bekele"),
        TeacherModel(tenant_id=t, teacher_id="t-3", name="Chaltu", is_active=False),
        StudentModel(tenant_id=t, student_id="s-1", name="Abebe", package="3 days"),
        StudentModel(tenant_id=t, student_id="s-2", name="Hana", package="5 days"),
        StudentModel(tenant_id=t, student_id="s-3", name="Dawit", package="3 days", status="inactive"),
        AssignmentModel(
            tenant_id=t, teacher_id="t-1", student_id="s-1", time_slot="08:00",
            start_date=date(2024, 9, 1),
        ),
        AssignmentModel(
            tenant_id=t, teacher_id="t-1", student_id="s-2", time_slot="10:00",
            start_date=date(2024, 10, 1), end_date=date(2024, 11, 15),
        ),
        AssignmentModel(
            tenant_id=t, teacher_id="t-2", student_id="s-2", time_slot="10:00",
            start_date=date(2024, 11, 16),
        ),
        ClassFactModel(
            tenant_id=t, teacher_id="t-1", student_id="s-1", class_date=date(2024, 11, 4),
            sent_at=datetime(2024, 11, 4, 8, 12, tzinfo=timezone.utc),
        ),
        BonusRecordModel(
            tenant_id=t, teacher_id="t-1", period_label="2024-11",
            amount=Decimal("100"), reason="Extra sessions",
        ),
        PackageSalaryRateModel(tenant_id=t, package="3 days", monthly_amount=Decimal("1200")),
        PackageSalaryRateModel(tenant_id=t, package="5 days", monthly_amount=Decimal("3000")),
        PackageDeductionBaseModel(
            tenant_id=t, package="3 days",
            lateness_base_amount=Decimal("40"), absence_base_amount=Decimal("60"),
        ),
        PackageDeductionBaseModel(
            tenant_id=t, package="5 days",
            lateness_base_amount=Decimal("100"), absence_base_amount=Decimal("80"),
        ),
        TenantSettingModel(tenant_id=t, key="currency", value="ETB"),
        TenantSettingModel(tenant_id=t, key="timezone", value="UTC"),
        TenantSettingModel(tenant_id=t, key="include_sundays_in_salary", value="true"),
        TenantSettingModel(tenant_id=t, key="absence_grace_days", value="60"),
        SchoolSubscriptionModel(
            tenant_id=t, plan_code="plan-standard", status="active",
            active_student_count=48, billing_cycle="monthly",
            period_start=date(2024, 11, 1), period_end=date(2024, 11, 30),
        ),
    ])
    for start, end, percent in (
        (0, 5, "0"), (5, 10, "10"), (10, 20, "25"), (20, 30, "50"), (30, None, "100"),
    ):
        session.add(LatenessTierModel(
            tenant_id=t, start_minute=start, end_minute=end, deduction_percent=Decimal(percent),
        ))
    add_standard_plans(session)
    session.flush()
    return t
