"""
Adjustment ORM models: bonuses, quality assessments, permission requests,
deduction waivers and salary payment status.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from compensation_kernel.db.base import TenantScopedBase
from compensation_kernel.domain.records import (
    BonusRecord,
    DeductionType,
    DeductionWaiver,
    PaymentStatus,
    PermissionRequest,
    PermissionStatus,
    QualityAssessment,
    SalaryPayment,
)


class BonusRecordModel(TenantScopedBase):
    """A manual bonus; one row per (teacher, period label)."""

    __tablename__ = "bonus_records"

    teacher_id: Mapped[str] = mapped_column(String(64), nullable=False)
    period_label: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")

    __table_args__ = (
        UniqueConstraint("tenant_id", "teacher_id", "period_label", name="uq_bonus_teacher_period"),
    )

    def to_dto(self) -> BonusRecord:
        return BonusRecord(
            subject_id=self.teacher_id,
            period_label=self.period_label,
            amount=self.amount,
            reason=self.reason or "",
            updated_at=self.updated_at,
            record_id=str(self.id),
        )


class QualityAssessmentModel(TenantScopedBase):
    """Weekly quality review of a teacher."""

    __tablename__ = "quality_assessments"

    teacher_id: Mapped[str] = mapped_column(String(64), nullable=False)
    week_start: Mapped[date] = mapped_column(Date, nullable=False)
    supervisor_feedback: Mapped[str] = mapped_column(Text, nullable=False, default="")
    overall_quality: Mapped[str] = mapped_column(String(30), nullable=False, default="")
    examiner_rating: Mapped[Decimal | None] = mapped_column(nullable=True)
    student_pass_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    manager_approved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    manager_override: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    bonus_awarded: Mapped[Decimal | None] = mapped_column(nullable=True)

    __table_args__ = (
        Index("idx_quality_teacher_week", "tenant_id", "teacher_id", "week_start"),
    )

    def to_dto(self) -> QualityAssessment:
        return QualityAssessment(
            subject_id=self.teacher_id,
            week_start=self.week_start,
            overall_quality=self.overall_quality or "",
            supervisor_feedback=self.supervisor_feedback or "",
            manager_approved=self.manager_approved,
            manager_override=self.manager_override,
            bonus_awarded=self.bonus_awarded,
            examiner_rating=self.examiner_rating,
            student_pass_rate=self.student_pass_rate,
            assessment_id=str(self.id),
        )


class PermissionRequestModel(TenantScopedBase):
    """
    A leave request.

    ``requested_dates`` holds comma-separated ISO dates.
    """

    __tablename__ = "permission_requests"

    teacher_id: Mapped[str] = mapped_column(String(64), nullable=False)
    requested_dates: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")

    __table_args__ = (
        Index("idx_permission_teacher", "tenant_id", "teacher_id", "status"),
    )

    def to_dto(self) -> PermissionRequest:
        dates = tuple(
            date.fromisoformat(part.strip())
            for part in (self.requested_dates or "").split(",")
            if part.strip()
        )
        return PermissionRequest(
            subject_id=self.teacher_id,
            dates=dates,
            status=PermissionStatus(self.status),
            reason=self.reason or "",
            request_id=str(self.id),
        )


class DeductionWaiverModel(TenantScopedBase):
    """A manager-granted waiver of one day's lateness or absence deduction."""

    __tablename__ = "deduction_waivers"

    teacher_id: Mapped[str] = mapped_column(String(64), nullable=False)
    deduction_type: Mapped[str] = mapped_column(String(20), nullable=False)
    waiver_date: Mapped[date] = mapped_column(Date, nullable=False)
    student_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")

    __table_args__ = (
        Index("idx_waiver_teacher_date", "tenant_id", "teacher_id", "waiver_date"),
    )

    def to_dto(self) -> DeductionWaiver:
        return DeductionWaiver(
            subject_id=self.teacher_id,
            deduction_type=DeductionType(self.deduction_type),
            waiver_date=self.waiver_date,
            student_id=self.student_id,
            reason=self.reason or "",
        )


class SalaryPaymentModel(TenantScopedBase):
    """Payment status of a teacher's salary for a "YYYY-MM" period."""

    __tablename__ = "salary_payments"

    teacher_id: Mapped[str] = mapped_column(String(64), nullable=False)
    period: Mapped[str] = mapped_column(String(7), nullable=False)
    status: Mapped[str] = mapped_column(String(10), nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "teacher_id", "period", name="uq_salary_payment_period"),
    )

    def to_dto(self) -> SalaryPayment:
        return SalaryPayment(
            subject_id=self.teacher_id,
            period=self.period,
            status=PaymentStatus(self.status),
        )
