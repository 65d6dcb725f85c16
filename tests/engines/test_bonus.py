"""Tests for the Bonus & Override Aggregator."""

from datetime import date, datetime, timezone
from decimal import Decimal

from compensation_engines.bonus import aggregate_bonuses
from compensation_kernel.domain.records import BonusRecord, QualityAssessment

NOV_1 = date(2024, 11, 1)
NOV_30 = date(2024, 11, 30)


def _record(label, amount, updated=None, record_id=None):
    return BonusRecord(
        subject_id="t-1",
        period_label=label,
        amount=Decimal(amount),
        reason=f"bonus {amount}",
        updated_at=updated,
        record_id=record_id,
    )


def _aggregate(records=(), assessments=()):
    return aggregate_bonuses(
        bonus_records=records,
        assessments=assessments,
        start=NOV_1,
        end=NOV_30,
        currency="ETB",
    )


class TestManualBonuses:

    def test_records_inside_range_are_summed(self):
        result = _aggregate([_record("2024-11", "100"), _record("2024-W47", "50")])
        assert result.total == Decimal("150.00")
        assert [line.booked_on for line in result.manual] == [NOV_1, date(2024, 11, 18)]

    def test_records_outside_range_are_ignored(self):
        result = _aggregate([_record("2024-10", "100"), _record("2024-12-01", "70")])
        assert result.total == Decimal("0.00")
        assert result.manual == ()

    def test_duplicate_period_keeps_latest_update(self):
        older = _record("2024-11", "100", datetime(2024, 11, 2, tzinfo=timezone.utc))
        newer = _record("2024-11", "250", datetime(2024, 11, 5, tzinfo=timezone.utc))
        result = _aggregate([newer, older])
        assert [line.amount for line in result.manual] == [Decimal("250.00")]

    def test_duplicate_without_timestamps_keeps_last_seen(self):
        result = _aggregate([_record("2024-11", "100"), _record("2024-11", "300")])
        assert result.total == Decimal("300.00")

    def test_unparseable_label_becomes_warning(self):
        result = _aggregate([_record("sometime", "100", record_id="b-9")])
        assert result.total == Decimal("0.00")
        assert [w.code for w in result.warnings] == ["MALFORMED_RECORD"]


class TestQualityBonuses:

    def test_approved_bonus_pays(self):
        assessment = QualityAssessment(
            "t-1", date(2024, 11, 4), overall_quality="Excellent",
            manager_approved=True, bonus_awarded=Decimal("75"),
        )
        result = _aggregate(assessments=[assessment])
        assert result.total == Decimal("75.00")
        assert result.quality[0].reason == "Excellent"

    def test_override_without_approval_never_pays(self):
        assessment = QualityAssessment(
            "t-1", date(2024, 11, 4), manager_override=True, bonus_awarded=Decimal("75"),
        )
        result = _aggregate(assessments=[assessment])
        assert result.total == Decimal("0.00")
        assert result.quality == ()
        assert "manager override without approval" in result.audit_notes[0]

    def test_unapproved_bonus_is_noted(self):
        assessment = QualityAssessment("t-1", date(2024, 11, 11), bonus_awarded=Decimal("40"))
        result = _aggregate(assessments=[assessment])
        assert result.total == Decimal("0.00")
        assert "awaiting manager approval" in result.audit_notes[0]

    def test_week_outside_range_ignored(self):
        assessment = QualityAssessment(
            "t-1", date(2024, 10, 28), manager_approved=True, bonus_awarded=Decimal("75"),
        )
        assert _aggregate(assessments=[assessment]).total == Decimal("0.00")

    def test_total_is_manual_plus_quality(self):
        assessment = QualityAssessment(
            "t-1", date(2024, 11, 4), manager_approved=True, bonus_awarded=Decimal("75"),
        )
        result = _aggregate([_record("2024-11", "100")], [assessment])
        assert result.total == sum(line.amount for line in result.manual + result.quality)
