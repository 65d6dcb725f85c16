"""
Tests for the Salary Orchestrator.

Covers:
- Month-chunked base pay and teacher reassignment mid-month
- Sunday inclusion setting
- Lateness, absence and bonus composition into the net figure
- Missing configuration warnings, payment status, deadlines
- Deterministic, reconciled output
- Strict and lenient reconciliation of totals
"""

import json
from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from compensation_engines.rates import RateTable
from compensation_engines.salary import (
    CalculationStage,
    SalaryInput,
    StageTracker,
    _reconcile,
    calculate_salary,
)
from compensation_kernel.domain.clock import Deadline
from compensation_kernel.domain.records import (
    AssignmentInterval,
    BonusRecord,
    ClassFact,
    PackageSalaryRate,
    PaymentStatus,
    SalaryPayment,
)
from compensation_kernel.exceptions import (
    ComputationTimeoutError,
    InvalidRangeError,
    InvariantViolationError,
)

UTC = timezone.utc
NOV_1 = date(2024, 11, 1)
NOV_30 = date(2024, 11, 30)


def _interval(teacher, start, end=None, *, package="3 days", day_package=None, student="s-1"):
    return AssignmentInterval(
        subject_id=teacher,
        student_id=student,
        time_slot="08:00",
        start_date=start,
        end_date=end,
        package=package,
        day_package=day_package,
        student_name="Abebe",
    )


def _sent(day, minute, student="s-1", teacher="t-1"):
    return ClassFact(
        teacher, student, day, sent_at=datetime(day.year, day.month, day.day, 8, minute, tzinfo=UTC),
    )


class TestBasePay:
    """Base pay from month chunks."""

    def test_full_month_pays_the_monthly_rate(self, salary_rules):
        result = calculate_salary(
            inputs=SalaryInput(
                subject_id="t-1", start=NOV_1, end=NOV_30, today=date(2024, 10, 31),
                intervals=(_interval("t-1", date(2024, 9, 1)),),
            ),
            rules=salary_rules,
        )
        assert result.base_salary == Decimal("1200.00")
        assert result.total_salary == Decimal("1200.00")

    def test_mid_month_reassignment_splits_the_month(self, salary_rules):
        today = date(2024, 10, 31)
        teacher_a = calculate_salary(
            inputs=SalaryInput(
                subject_id="t-a", start=NOV_1, end=NOV_30, today=today,
                intervals=(_interval("t-a", date(2024, 10, 1), date(2024, 11, 15)),),
            ),
            rules=salary_rules,
        )
        teacher_b = calculate_salary(
            inputs=SalaryInput(
                subject_id="t-b", start=NOV_1, end=NOV_30, today=today,
                intervals=(_interval("t-b", date(2024, 11, 16)),),
            ),
            rules=salary_rules,
        )

        assert teacher_a.base_salary == Decimal("600.00")
        assert teacher_b.base_salary == Decimal("600.00")
        assert teacher_a.base_salary + teacher_b.base_salary == Decimal("1200.00")
        assert teacher_a.has_teacher_changes
        assert teacher_b.has_teacher_changes
        assert teacher_a.breakdown.student_breakdown[0].days_worked == 15

    def test_odd_cent_rate_split_pays_the_month_once(self, salary_rules):
        rules = replace(salary_rules, rate_table=RateTable(
            salary_rates=(PackageSalaryRate("3 days", Decimal("1500.05")),),
        ))
        today = date(2024, 10, 31)
        teacher_a = calculate_salary(
            inputs=SalaryInput(
                subject_id="t-a", start=NOV_1, end=NOV_30, today=today,
                intervals=(_interval("t-a", date(2024, 10, 1), date(2024, 11, 15)),),
            ),
            rules=rules,
        )
        teacher_b = calculate_salary(
            inputs=SalaryInput(
                subject_id="t-b", start=NOV_1, end=NOV_30, today=today,
                intervals=(_interval("t-b", date(2024, 11, 16)),),
            ),
            rules=rules,
        )

        assert teacher_a.base_salary == Decimal("750.03")
        assert teacher_b.base_salary == Decimal("750.02")
        assert teacher_a.base_salary + teacher_b.base_salary == Decimal("1500.05")

    def test_student_returning_to_a_teacher_pays_the_month_once(self, salary_rules):
        rules = replace(salary_rules, rate_table=RateTable(
            salary_rates=(PackageSalaryRate("3 days", Decimal("1000")),),
        ))
        today = date(2024, 10, 31)
        teacher_a = calculate_salary(
            inputs=SalaryInput(
                subject_id="t-a", start=NOV_1, end=NOV_30, today=today,
                intervals=(
                    _interval("t-a", date(2024, 10, 1), date(2024, 11, 10)),
                    _interval("t-a", date(2024, 11, 21)),
                ),
            ),
            rules=rules,
        )
        teacher_b = calculate_salary(
            inputs=SalaryInput(
                subject_id="t-b", start=NOV_1, end=NOV_30, today=today,
                intervals=(_interval("t-b", date(2024, 11, 11), date(2024, 11, 20)),),
            ),
            rules=rules,
        )

        periods = teacher_a.breakdown.student_breakdown[0].periods
        assert [p.amount for p in periods] == [Decimal("333.33"), Decimal("333.33")]
        assert teacher_b.base_salary == Decimal("333.34")
        assert teacher_a.base_salary + teacher_b.base_salary == Decimal("1000.00")

    def test_range_spanning_months(self, salary_rules):
        result = calculate_salary(
            inputs=SalaryInput(
                subject_id="t-1", start=date(2024, 11, 16), end=date(2024, 12, 31),
                today=date(2024, 10, 31),
                intervals=(_interval("t-1", date(2024, 9, 1)),),
            ),
            rules=salary_rules,
        )
        periods = result.breakdown.student_breakdown[0].periods
        assert [p.amount for p in periods] == [Decimal("600.00"), Decimal("1200.00")]
        assert result.base_salary == Decimal("1800.00")

    def test_sundays_excluded(self, salary_rules):
        rules = replace(salary_rules, include_sundays=False)
        result = calculate_salary(
            inputs=SalaryInput(
                subject_id="t-1", start=NOV_1, end=date(2024, 11, 10), today=date(2024, 10, 31),
                intervals=(_interval("t-1", date(2024, 9, 1)),),
            ),
            rules=rules,
        )
        period = result.breakdown.student_breakdown[0].periods[0]
        assert period.billable_days == 8
        assert period.month_billable_days == 26
        assert result.base_salary == Decimal("369.23")
        assert result.breakdown.summary.working_days_in_period == 8

    def test_sundays_included(self, salary_rules):
        result = calculate_salary(
            inputs=SalaryInput(
                subject_id="t-1", start=NOV_1, end=date(2024, 11, 10), today=date(2024, 10, 31),
                intervals=(_interval("t-1", date(2024, 9, 1)),),
            ),
            rules=salary_rules,
        )
        assert result.base_salary == Decimal("400.00")
        assert result.breakdown.summary.working_days_in_period == 10

    def test_unknown_package_zeroes_with_warning(self, salary_rules):
        result = calculate_salary(
            inputs=SalaryInput(
                subject_id="t-1", start=NOV_1, end=NOV_30, today=date(2024, 10, 31),
                intervals=(_interval("t-1", date(2024, 9, 1), package="Weekend"),),
            ),
            rules=salary_rules,
        )
        assert result.base_salary == Decimal("0.00")
        assert result.breakdown.student_breakdown[0].rate_missing
        assert {w.code for w in result.warnings} == {"CONFIGURATION_MISSING"}

    def test_no_assignments_is_zero(self, salary_rules):
        result = calculate_salary(
            inputs=SalaryInput(subject_id="t-1", start=NOV_1, end=NOV_30, today=NOV_30),
            rules=salary_rules,
        )
        assert result.total_salary == Decimal("0.00")
        assert result.num_students == 0


class TestComposition:
    """Deductions and bonuses folded into the net figure."""

    @pytest.fixture
    def three_day_inputs(self):
        return SalaryInput(
            subject_id="t-1",
            subject_name="Teacher One",
            start=date(2024, 11, 4),
            end=date(2024, 11, 6),
            today=date(2024, 12, 15),
            intervals=(_interval("t-1", date(2024, 9, 1)),),
            facts=(_sent(date(2024, 11, 4), 12), _sent(date(2024, 11, 5), 0)),
            bonus_records=(BonusRecord("t-1", "2024-11-05", Decimal("50"), reason="Cover"),),
            payments=(SalaryPayment("t-1", "2024-11", PaymentStatus.PAID),),
        )

    def test_net_salary(self, salary_rules, three_day_inputs):
        result = calculate_salary(inputs=three_day_inputs, rules=salary_rules)

        assert result.base_salary == Decimal("120.00")
        assert result.lateness_deduction == Decimal("10.00")
        assert result.absence_deduction == Decimal("60.00")
        assert result.bonuses == Decimal("50.00")
        assert result.total_salary == Decimal("100.00")

    def test_summary(self, salary_rules, three_day_inputs):
        summary = calculate_salary(inputs=three_day_inputs, rules=salary_rules).breakdown.summary
        assert summary.actual_teaching_days == 2
        assert summary.average_daily_earning == Decimal("60.00")
        assert summary.total_deductions == Decimal("70.00")

    def test_total_is_summary_net(self, salary_rules, three_day_inputs):
        data = calculate_salary(inputs=three_day_inputs, rules=salary_rules).to_dict()
        assert data["totalSalary"] == data["breakdown"]["summary"]["netSalary"]

    def test_line_items_reconcile(self, salary_rules, three_day_inputs):
        result = calculate_salary(inputs=three_day_inputs, rules=salary_rules)
        breakdown = result.breakdown
        assert result.lateness_deduction == sum(l.deduction for l in breakdown.lateness_breakdown)
        assert result.absence_deduction == sum(a.deduction for a in breakdown.absence_breakdown)
        assert result.base_salary == sum(s.total_earned for s in breakdown.student_breakdown)

    def test_payment_status(self, salary_rules, three_day_inputs):
        result = calculate_salary(inputs=three_day_inputs, rules=salary_rules)
        assert result.status is PaymentStatus.PAID
        assert result.to_dict()["status"] == "Paid"

    def test_identical_inputs_give_identical_output(self, salary_rules, three_day_inputs):
        first = calculate_salary(inputs=three_day_inputs, rules=salary_rules, config_fingerprint="abc")
        second = calculate_salary(inputs=three_day_inputs, rules=salary_rules, config_fingerprint="abc")
        assert json.dumps(first.to_dict(), sort_keys=True) == json.dumps(second.to_dict(), sort_keys=True)
        assert first.to_dict()["configFingerprint"] == "abc"


class TestFailures:

    def test_inverted_range(self):
        with pytest.raises(InvalidRangeError):
            SalaryInput(subject_id="t-1", start=NOV_30, end=NOV_1, today=NOV_30)

    def test_expired_deadline(self, salary_rules):
        ticks = iter([0.0, 100.0, 100.0, 100.0])
        deadline = Deadline(5.0, "salary_calculation", monotonic=lambda: next(ticks))
        with pytest.raises(ComputationTimeoutError) as exc_info:
            calculate_salary(
                inputs=SalaryInput(
                    subject_id="t-1", start=NOV_1, end=NOV_30, today=NOV_30,
                    intervals=(_interval("t-1", date(2024, 9, 1)),),
                ),
                rules=salary_rules,
                deadline=deadline,
            )
        assert exc_info.value.retryable


class TestStageTracker:

    def test_stages_in_order(self):
        tracker = StageTracker("nov")
        for stage in (
            CalculationStage.RESOLVED,
            CalculationStage.PENALIZED,
            CalculationStage.BONUSED,
            CalculationStage.SUMMED,
        ):
            tracker.advance(stage)
        assert tracker.stage is CalculationStage.SUMMED

    def test_skipping_a_stage_raises(self):
        tracker = StageTracker("nov")
        tracker.advance(CalculationStage.RESOLVED)
        with pytest.raises(InvariantViolationError):
            tracker.advance(CalculationStage.BONUSED)


class TestReconcile:
    """Totals disagreeing with their line items."""

    def test_equal_totals_pass_through(self):
        warnings = []
        assert _reconcile(
            "bonuses", Decimal("100.00"), Decimal("100.00"), strict=True, warnings=warnings,
        ) == Decimal("100.00")
        assert warnings == []

    def test_strict_mismatch_raises(self):
        with pytest.raises(InvariantViolationError):
            _reconcile(
                "bonuses", Decimal("100.00"), Decimal("90.00"), strict=True, warnings=[],
            )

    def test_lenient_mismatch_publishes_line_items(self, captured_logs):
        warnings = []
        published = _reconcile(
            "lateness_deduction", Decimal("25.00"), Decimal("10.00"),
            strict=False, warnings=warnings,
        )

        assert published == Decimal("10.00")
        assert [w.code for w in warnings] == ["INVARIANT_VIOLATION"]
        errors = [r for r in captured_logs() if r["message"] == "salary_total_mismatch"]
        assert len(errors) == 1
        assert errors[0]["level"] == "ERROR"
        assert errors[0]["invariant"] == "lateness_deduction"
        assert errors[0]["reported"] == "25.00"
        assert errors[0]["line_items"] == "10.00"
