"""
Tests for the compensation selectors against a real (SQLite) session.

Verifies:
- Roster reads: overlap filtering, student join, live student count
- Malformed rows are skipped and reported, never fatal
- Configuration rows load and assemble into a valid snapshot
- Billing reads: plans, subscription, not-found errors
- Tenant scoping
"""

from datetime import date
from decimal import Decimal

import pytest

from compensation_config import assemble_from_rows, validate_configuration
from compensation_kernel.domain.records import AttendanceStatus, PermissionStatus
from compensation_kernel.exceptions import PlanNotFoundError, SubjectNotFoundError
from compensation_kernel.models.adjustments import (
    BonusRecordModel,
    PermissionRequestModel,
    QualityAssessmentModel,
)
from compensation_kernel.models.roster import (
    AssignmentModel,
    ClassFactModel,
    StudentModel,
    TeacherModel,
)
from compensation_kernel.selectors import (
    AdjustmentSelector,
    BillingSelector,
    ConfigurationSelector,
    RosterSelector,
)

NOV_1 = date(2024, 11, 1)
NOV_30 = date(2024, 11, 30)


class TestRosterSelector:

    def test_require_teacher(self, session, seeded_school):
        teacher = RosterSelector(session, seeded_school).require_teacher("t-1")
        assert teacher.name == "Almaz"

    def test_unknown_teacher(self, session, seeded_school):
        with pytest.raises(SubjectNotFoundError) as exc_info:
            RosterSelector(session, seeded_school).require_teacher("t-404")
        assert exc_info.value.code == "SUBJECT_NOT_FOUND"

    def test_other_tenant_sees_nothing(self, session, seeded_school):
        assert RosterSelector(session, "school-2").get_teacher("t-1") is None

    def test_active_teacher_ids(self, session, seeded_school):
        selector = RosterSelector(session, seeded_school)
        assert selector.list_teacher_ids() == ["t-1", "t-2"]
        assert selector.list_teacher_ids(active_only=False) == ["t-1", "t-2", "t-3"]

    def test_assignments_overlap_and_join_students(self, session, seeded_school):
        warnings = []
        intervals = RosterSelector(session, seeded_school).assignments_for(
            "t-1", NOV_1, NOV_30, warnings,
        )
        assert [(a.student_id, a.package, a.student_name) for a in intervals] == [
            ("s-1", "3 days", "Abebe"),
            ("s-2", "5 days", "Hana"),
        ]
        assert warnings == []

    def test_assignment_outside_range_excluded(self, session, seeded_school):
        intervals = RosterSelector(session, seeded_school).assignments_for(
            "t-2", date(2024, 10, 1), date(2024, 10, 31), [],
        )
        assert intervals == []

    def test_facts_are_read_as_utc(self, session, seeded_school):
        facts = RosterSelector(session, seeded_school).facts_for("t-1", NOV_1, NOV_30, [])
        assert len(facts) == 1
        assert facts[0].sent_at.replace(tzinfo=None).hour == 8
        assert facts[0].fact_id

    def test_live_student_count(self, session, seeded_school):
        assert RosterSelector(session, seeded_school).active_student_count() == 2

    def test_inverted_assignment_is_skipped_with_warning(self, session, seeded_school, captured_logs):
        session.add(AssignmentModel(
            tenant_id=seeded_school, teacher_id="t-1", student_id="s-1", time_slot="09:00",
            start_date=date(2024, 11, 20), end_date=date(2024, 11, 10),
        ))
        session.flush()

        snapshot = RosterSelector(session, seeded_school).snapshot("t-1", NOV_1, NOV_30)

        assert len(snapshot.intervals) == 2
        assert [w.code for w in snapshot.warnings] == ["MALFORMED_RECORD"]
        assert any(r["message"] == "malformed_record_skipped" for r in captured_logs())

    def test_unknown_attendance_status_is_skipped(self, session, seeded_school):
        session.add(ClassFactModel(
            tenant_id=seeded_school, teacher_id="t-1", student_id="s-1",
            class_date=date(2024, 11, 5), attendance_status="Late",
        ))
        session.add(ClassFactModel(
            tenant_id=seeded_school, teacher_id="t-1", student_id="s-1",
            class_date=date(2024, 11, 6), attendance_status="Absent",
        ))
        session.flush()

        warnings = []
        facts = RosterSelector(session, seeded_school).facts_for("t-1", NOV_1, NOV_30, warnings)

        assert [f.attendance_status for f in facts] == [None, AttendanceStatus.ABSENT]
        assert len(warnings) == 1


class TestAdjustmentSelector:

    def test_snapshot(self, session, seeded_school):
        session.add_all([
            QualityAssessmentModel(
                tenant_id=seeded_school, teacher_id="t-1", week_start=date(2024, 11, 4),
                manager_approved=True, bonus_awarded=Decimal("75"),
            ),
            QualityAssessmentModel(
                tenant_id=seeded_school, teacher_id="t-1", week_start=date(2024, 10, 28),
                manager_approved=True, bonus_awarded=Decimal("75"),
            ),
            PermissionRequestModel(
                tenant_id=seeded_school, teacher_id="t-1",
                requested_dates="2024-11-07, 2024-11-08", status="Approved",
            ),
        ])
        session.flush()

        snapshot = AdjustmentSelector(session, seeded_school).snapshot("t-1", NOV_1, NOV_30)

        assert [b.period_label for b in snapshot.bonus_records] == ["2024-11"]
        assert [a.week_start for a in snapshot.assessments] == [date(2024, 11, 4)]
        assert snapshot.permissions[0].dates == (date(2024, 11, 7), date(2024, 11, 8))
        assert snapshot.permissions[0].status is PermissionStatus.APPROVED
        assert snapshot.warnings == ()

    def test_bonus_updated_at_is_populated(self, session, seeded_school):
        records = AdjustmentSelector(session, seeded_school).bonus_records("t-1", [])
        assert records[0].updated_at is not None

    def test_bad_permission_dates_skipped(self, session, seeded_school):
        session.add(PermissionRequestModel(
            tenant_id=seeded_school, teacher_id="t-1",
            requested_dates="next tuesday", status="Approved",
        ))
        session.flush()
        warnings = []
        assert AdjustmentSelector(session, seeded_school).permissions("t-1", warnings) == []
        assert warnings[0].code == "MALFORMED_RECORD"

    def test_other_teacher_bonus_not_returned(self, session, seeded_school):
        session.add(BonusRecordModel(
            tenant_id=seeded_school, teacher_id="t-2", period_label="2024-11", amount=Decimal("5"),
        ))
        session.flush()
        records = AdjustmentSelector(session, seeded_school).bonus_records("t-1", [])
        assert [r.amount for r in records] == [Decimal("100")]


class TestConfigurationSelector:

    def test_load_assembles_into_valid_config(self, session, seeded_school):
        rows = ConfigurationSelector(session, seeded_school).load()
        config = assemble_from_rows(
            rows.tenant_id,
            salary_rates=rows.salary_rates,
            deduction_bases=rows.deduction_bases,
            tiers=rows.tiers,
            settings=rows.settings,
        )

        assert [t.start_minute for t in rows.tiers] == [0, 5, 10, 20, 30]
        assert config.absence.grace_days == 60
        assert config.rate_table.packages == frozenset({"3 days", "5 days"})
        assert validate_configuration(config).is_valid

    def test_setting(self, session, seeded_school):
        selector = ConfigurationSelector(session, seeded_school)
        assert selector.setting("timezone") == "UTC"
        assert selector.setting("missing") is None

    def test_empty_tenant(self, session):
        rows = ConfigurationSelector(session, "school-empty").load()
        assert rows.salary_rates == ()
        assert rows.settings == {}


class TestBillingSelector:

    def test_plans_ordered_by_code(self, session, seeded_school):
        plans = BillingSelector(session, seeded_school).plans()
        assert [p.plan_id for p in plans] == ["plan-basic", "plan-standard"]
        standard = plans[1]
        assert {f.feature_code for f in standard.features} == {"zoom", "analytics", "branding"}

    def test_unknown_plan(self, session, seeded_school):
        with pytest.raises(PlanNotFoundError):
            BillingSelector(session, seeded_school).plan("plan-gold")

    def test_subscription(self, session, seeded_school):
        subscription = BillingSelector(session, seeded_school).subscription()
        assert subscription.plan_id == "plan-standard"
        assert subscription.active_student_count == 48
        assert subscription.is_active

    def test_school_without_subscription(self, session, seeded_school):
        with pytest.raises(SubjectNotFoundError):
            BillingSelector(session, "school-2").subscription()


class TestTenantIsolation:

    def test_second_school_rows_are_invisible(self, session, seeded_school):
        session.add_all([
            TeacherModel(tenant_id="school-2", teacher_id="t-1", name="Other"),
            StudentModel(tenant_id="school-2", student_id="s-9", name="Other student"),
        ])
        session.flush()
        assert RosterSelector(session, seeded_school).require_teacher("t-1").name == "Almaz"
        assert RosterSelector(session, "school-2").active_student_count() == 1
