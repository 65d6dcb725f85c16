"""
Module: compensation_kernel.selectors.adjustment_selector
Responsibility: Read-only queries for everything that adjusts a teacher's
    pay: bonuses, quality assessments, permission requests, deduction
    waivers and salary payment status.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Bonus records are returned for every period label; the bonus engine
      decides which ones fall in the range, since labels are not dates.
    - Permission requests are returned regardless of status; the absence
      engine only honors approved ones.
"""

from dataclasses import dataclass
from datetime import date

from sqlalchemy import select

from compensation_kernel.domain.records import (
    BonusRecord,
    CalculationWarning,
    DeductionWaiver,
    PermissionRequest,
    QualityAssessment,
    SalaryPayment,
)
from compensation_kernel.models.adjustments import (
    BonusRecordModel,
    DeductionWaiverModel,
    PermissionRequestModel,
    QualityAssessmentModel,
    SalaryPaymentModel,
)
from compensation_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class AdjustmentSnapshot:
    bonus_records: tuple[BonusRecord, ...]
    assessments: tuple[QualityAssessment, ...]
    permissions: tuple[PermissionRequest, ...]
    waivers: tuple[DeductionWaiver, ...]
    payments: tuple[SalaryPayment, ...]
    warnings: tuple[CalculationWarning, ...]


class AdjustmentSelector(BaseSelector[BonusRecordModel]):
    """Selector for bonuses, reviews, leave, waivers and payments."""

    def bonus_records(
        self, teacher_id: str, warnings: list[CalculationWarning]
    ) -> list[BonusRecord]:
        rows = self.session.execute(
            select(BonusRecordModel)
            .where(
                BonusRecordModel.tenant_id == self.tenant_id,
                BonusRecordModel.teacher_id == teacher_id,
            )
            .order_by(BonusRecordModel.period_label)
        ).scalars()
        return self._convert(rows, "bonus_record", BonusRecordModel.to_dto, warnings)

    def assessments(
        self, teacher_id: str, start: date, end: date, warnings: list[CalculationWarning]
    ) -> list[QualityAssessment]:
        rows = self.session.execute(
            select(QualityAssessmentModel)
            .where(
                QualityAssessmentModel.tenant_id == self.tenant_id,
                QualityAssessmentModel.teacher_id == teacher_id,
                QualityAssessmentModel.week_start >= start,
                QualityAssessmentModel.week_start <= end,
            )
            .order_by(QualityAssessmentModel.week_start)
        ).scalars()
        return self._convert(rows, "quality_assessment", QualityAssessmentModel.to_dto, warnings)

    def permissions(
        self, teacher_id: str, warnings: list[CalculationWarning]
    ) -> list[PermissionRequest]:
        rows = self.session.execute(
            select(PermissionRequestModel).where(
                PermissionRequestModel.tenant_id == self.tenant_id,
                PermissionRequestModel.teacher_id == teacher_id,
            )
        ).scalars()
        return self._convert(rows, "permission_request", PermissionRequestModel.to_dto, warnings)

    def waivers(
        self, teacher_id: str, start: date, end: date, warnings: list[CalculationWarning]
    ) -> list[DeductionWaiver]:
        rows = self.session.execute(
            select(DeductionWaiverModel).where(
                DeductionWaiverModel.tenant_id == self.tenant_id,
                DeductionWaiverModel.teacher_id == teacher_id,
                DeductionWaiverModel.waiver_date >= start,
                DeductionWaiverModel.waiver_date <= end,
            )
        ).scalars()
        return self._convert(rows, "deduction_waiver", DeductionWaiverModel.to_dto, warnings)

    def payments(
        self, teacher_id: str, warnings: list[CalculationWarning]
    ) -> list[SalaryPayment]:
        rows = self.session.execute(
            select(SalaryPaymentModel).where(
                SalaryPaymentModel.tenant_id == self.tenant_id,
                SalaryPaymentModel.teacher_id == teacher_id,
            )
        ).scalars()
        return self._convert(rows, "salary_payment", SalaryPaymentModel.to_dto, warnings)

    def snapshot(self, teacher_id: str, start: date, end: date) -> AdjustmentSnapshot:
        warnings: list[CalculationWarning] = []
        return AdjustmentSnapshot(
            bonus_records=tuple(self.bonus_records(teacher_id, warnings)),
            assessments=tuple(self.assessments(teacher_id, start, end, warnings)),
            permissions=tuple(self.permissions(teacher_id, warnings)),
            waivers=tuple(self.waivers(teacher_id, start, end, warnings)),
            payments=tuple(self.payments(teacher_id, warnings)),
            warnings=tuple(warnings),
        )
