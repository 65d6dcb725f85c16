"""
Hypothesis-based property tests for the compensation engines.

Properties checked:
- Lateness deductions never decrease as minutes grow and never exceed the base
- Prorator sub-ranges exactly tile the requested range
- Month chunks exactly tile the requested range
- A reassignment at any day of the month pays the month exactly once, at any rate
- A student leaving and returning to a teacher still pays the month once
- School bills always equal base fee plus enabled feature fees
- Bill breakdown text multiplies and adds up to the published figures
- Plan-change day counts always add up to the cycle
"""

from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from compensation_engines.absence import AbsencePolicy
from compensation_engines.billing import NO_FEATURES_TEXT, calculate_school_bill
from compensation_engines.dates import split_by_month
from compensation_engines.lateness import LatenessPolicy, OverflowPolicy, assess_minutes
from compensation_engines.proration import calculate_plan_change_proration, prorate_assignments
from compensation_engines.rates import RateTable
from compensation_engines.salary import SalaryInput, SalaryRules, calculate_salary
from compensation_kernel.domain.records import (
    AssignmentInterval,
    BillingCycle,
    LatenessTier,
    PackageSalaryRate,
    PlanFeature,
    PricingPlan,
)
from compensation_kernel.domain.values import round_amount

TIERS = (
    LatenessTier(0, 5, Decimal("0")),
    LatenessTier(5, 10, Decimal("10")),
    LatenessTier(10, 20, Decimal("25")),
    LatenessTier(20, 30, Decimal("50")),
    LatenessTier(30, None, Decimal("100")),
)

RULES = SalaryRules(
    rate_table=RateTable(salary_rates=(PackageSalaryRate("3 days", Decimal("1200")),)),
    lateness=LatenessPolicy(tiers=TIERS),
    absence=AbsencePolicy(),
    include_sundays=True,
    timezone_name="UTC",
    strict_invariants=True,
)

amounts = st.decimals(min_value=Decimal("0"), max_value=Decimal("100000"), places=2)
fine_amounts = st.decimals(min_value=Decimal("0"), max_value=Decimal("10000"), places=4)
days = st.dates(min_value=date(2023, 1, 1), max_value=date(2026, 12, 31))


@st.composite
def date_ranges(draw, max_days=120):
    start = draw(days)
    length = draw(st.integers(min_value=0, max_value=max_days))
    return start, start + timedelta(days=length)


@st.composite
def intervals(draw, around: date):
    count = draw(st.integers(min_value=0, max_value=6))
    result = []
    for _ in range(count):
        start = around + timedelta(days=draw(st.integers(min_value=-60, max_value=60)))
        open_ended = draw(st.booleans())
        end = None if open_ended else start + timedelta(days=draw(st.integers(0, 90)))
        result.append(AssignmentInterval(
            subject_id="t-1",
            student_id=f"s-{draw(st.integers(min_value=0, max_value=3))}",
            time_slot="08:00",
            start_date=start,
            end_date=end,
            package="3 days",
        ))
    return result


class TestLatenessProperties:

    @given(
        first=st.integers(min_value=0, max_value=600),
        second=st.integers(min_value=0, max_value=600),
        base=amounts,
        overflow=st.sampled_from([OverflowPolicy.CLAMP, OverflowPolicy.FULL]),
    )
    def test_deduction_is_monotonic_and_bounded(self, first, second, base, overflow):
        policy = LatenessPolicy(tiers=TIERS, overflow=overflow)
        low, high = sorted((first, second))

        low_result = assess_minutes(policy, low, base, "ETB")
        high_result = assess_minutes(policy, high, base, "ETB")

        assert low_result.deduction <= high_result.deduction
        assert high_result.deduction <= base
        assert low_result.deduction >= Decimal("0")

    @given(minutes=st.integers(min_value=0, max_value=3), base=amounts)
    def test_excused_is_free(self, minutes, base):
        result = assess_minutes(LatenessPolicy(tiers=TIERS), minutes, base, "ETB")
        assert result.excused
        assert result.deduction == Decimal("0")


class TestRangeProperties:

    @given(data=st.data(), bounds=date_ranges())
    @settings(max_examples=150, deadline=None)
    def test_sub_ranges_tile_the_range(self, data, bounds):
        start, end = bounds
        result = prorate_assignments(
            intervals=data.draw(intervals(start)), start=start, end=end,
        )
        ranges = result.sub_ranges

        assert ranges[0].start == start
        assert ranges[-1].end == end
        for previous, current in zip(ranges, ranges[1:]):
            assert current.start == previous.end + timedelta(days=1)
            assert previous.student_ids != current.student_ids or (
                previous.assignments != current.assignments
            )
        assert sum(r.days for r in ranges) == (end - start).days + 1

    @given(bounds=date_ranges(max_days=800))
    def test_month_chunks_tile_the_range(self, bounds):
        start, end = bounds
        chunks = split_by_month(start, end)

        assert chunks[0][0] == start
        assert chunks[-1][1] == end
        for lo, hi in chunks:
            assert (lo.year, lo.month) == (hi.year, hi.month)
        for (_, previous_end), (next_start, _) in zip(chunks, chunks[1:]):
            assert next_start == previous_end + timedelta(days=1)


def _base_pay(teacher, rate, *spans):
    """Base pay of ``teacher`` for November 2024 teaching s-1 over ``spans``."""
    rules = replace(RULES, rate_table=RateTable(
        salary_rates=(PackageSalaryRate("3 days", rate),),
    ))
    return calculate_salary(
        inputs=SalaryInput(
            subject_id=teacher, start=date(2024, 11, 1), end=date(2024, 11, 30),
            today=date(2024, 10, 31),
            intervals=tuple(
                AssignmentInterval(
                    subject_id=teacher, student_id="s-1", time_slot="08:00",
                    start_date=start, end_date=end, package="3 days",
                )
                for start, end in spans
            ),
        ),
        rules=rules,
    ).base_salary


salary_rates = st.decimals(min_value=Decimal("0"), max_value=Decimal("50000"), places=2)


class TestSalaryProperties:

    @given(switch_day=st.integers(min_value=2, max_value=30), rate=salary_rates)
    @settings(max_examples=50, deadline=None)
    def test_reassignment_pays_the_month_once(self, switch_day, rate):
        switch = date(2024, 11, switch_day)

        outgoing = _base_pay("t-a", rate, (date(2024, 10, 1), switch - timedelta(days=1)))
        incoming = _base_pay("t-b", rate, (switch, None))

        assert outgoing + incoming == round_amount(rate, "ETB")

    @given(
        leave_day=st.integers(min_value=2, max_value=28),
        away=st.integers(min_value=1, max_value=10),
        rate=salary_rates,
    )
    @settings(max_examples=50, deadline=None)
    def test_return_to_first_teacher_pays_the_month_once(self, leave_day, away, rate):
        leave = date(2024, 11, leave_day)
        back = min(leave + timedelta(days=away), date(2024, 11, 30))

        first = _base_pay(
            "t-a", rate, (date(2024, 10, 1), leave - timedelta(days=1)), (back, None),
        )
        cover = _base_pay("t-b", rate, (leave, back - timedelta(days=1)))

        assert first + cover == round_amount(rate, "ETB")


class TestBillingProperties:

    @given(
        students=st.integers(min_value=0, max_value=5000),
        rate=amounts,
        prices=st.lists(amounts, max_size=4),
        enabled=st.lists(st.booleans(), min_size=4, max_size=4),
    )
    def test_total_is_base_plus_enabled_features(self, students, rate, prices, enabled):
        plan = PricingPlan(
            plan_id="plan-x",
            name="X",
            base_rate_per_student=rate,
            currency="ETB",
            features=tuple(
                PlanFeature(f"f{i}", f"Feature {i}", price, is_enabled=enabled[i])
                for i, price in enumerate(prices)
            ),
        )
        bill = calculate_school_bill(plan=plan, active_student_count=students)

        expected_features = sum(
            (p for p, on in zip(prices, enabled) if on), Decimal("0"),
        )
        assert bill.feature_total == expected_features
        assert bill.total_fee == bill.base_fee + bill.feature_total

    @given(
        students=st.integers(min_value=0, max_value=5000),
        rate=fine_amounts,
        prices=st.lists(fine_amounts, max_size=4),
        currency=st.sampled_from(["ETB", "KWD", "JPY"]),
    )
    def test_breakdown_text_matches_the_figures(self, students, rate, prices, currency):
        plan = PricingPlan(
            plan_id="plan-x",
            name="X",
            base_rate_per_student=rate,
            currency=currency,
            features=tuple(
                PlanFeature(f"f{i}", f"Feature {i}", price) for i, price in enumerate(prices)
            ),
        )
        bill = calculate_school_bill(plan=plan, active_student_count=students)

        def amount(text):
            code, figure = text.split(" ")
            assert code == currency
            return Decimal(figure)

        shown_rate, rest = bill.breakdown.base_calculation.split(" × ")
        count, shown_fee = rest.split(" students = ")
        assert int(count) == students
        assert amount(shown_rate) * students == amount(shown_fee) == bill.base_fee

        if bill.breakdown.feature_calculation == NO_FEATURES_TEXT:
            shown_features = Decimal("0")
        else:
            shown_features = sum(
                amount(part.split(": ")[1])
                for part in bill.breakdown.feature_calculation.split(", ")
            )
        assert shown_features == bill.feature_total

        assert amount(bill.breakdown.total) == bill.total_fee
        assert amount(shown_fee) + shown_features == bill.total_fee

    @given(
        current=amounts,
        new=amounts,
        offset=st.integers(min_value=-10, max_value=400),
        cycle=st.sampled_from(list(BillingCycle)),
    )
    def test_plan_change_days_add_up(self, current, new, offset, cycle):
        period_start = date(2024, 1, 1)
        proration = calculate_plan_change_proration(
            current_price=current,
            new_price=new,
            period_start=period_start,
            change_date=period_start + timedelta(days=offset),
            billing_cycle=cycle,
            currency="ETB",
        )
        assert proration.days_used + proration.days_remaining == proration.total_days
        assert Decimal("0") <= proration.credit <= current
        assert proration.net_amount == new - proration.credit
