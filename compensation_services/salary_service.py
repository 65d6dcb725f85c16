"""
compensation_services.salary_service -- teacher salary reads.

Responsibility:
    Load a teacher's facts and the school's configuration, run the salary
    orchestrator under a deadline and memoize the result.  Serves the
    administrative salary read, the teacher-facing read (gated by the
    school's salary-visibility setting), the itemized detail read and the
    whole-school batch.

Architecture position:
    Services -- composes the roster and adjustment selectors, the
    configuration service, ``compensation_engines.calculate_salary`` and the
    ResultCache.

Invariants enforced:
    - The range is validated before any I/O.
    - Cache keys carry the configuration fingerprint and the calculation
      date, so a result is only reused under the same configuration and the
      same "today".
    - Every calculation runs under ``EngineSettings.timeout_seconds``; a
      timeout produces no result and nothing is cached.
    - Teacher-facing reads never reveal figures while the school hides them.

Failure modes:
    - InvalidRangeError, SubjectNotFoundError, SalaryHiddenError.
    - ComputationTimeoutError (retryable).
    - InvariantViolationError in strict mode.

Audit relevance:
    Every calculation logs ``salary_calculation_started`` and
    ``salary_calculation_completed`` with the configuration fingerprint the
    result was computed under.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import date
from typing import Any

from sqlalchemy.orm import Session

from compensation_config import CompensationConfig
from compensation_engines.absence import AbsenceLine
from compensation_engines.bonus import BonusLine
from compensation_engines.dates import resolve_timezone
from compensation_engines.lateness import LatenessLine
from compensation_engines.salary import SalaryInput, SalaryResult, calculate_salary
from compensation_kernel.domain.clock import Clock, Deadline, SystemClock
from compensation_kernel.domain.records import BonusRecord, ClassFact
from compensation_kernel.exceptions import (
    CompensationError,
    InvalidRangeError,
    SalaryHiddenError,
)
from compensation_kernel.logging_config import LogContext, get_logger
from compensation_kernel.selectors.adjustment_selector import AdjustmentSelector
from compensation_kernel.selectors.roster_selector import RosterSelector
from compensation_services.configuration_service import ConfigurationService
from compensation_services.result_cache import CacheKey, ResultCache

logger = get_logger("services.salary")


@dataclass(frozen=True)
class SalaryDetails:
    """Itemized view of one teacher's salary for a range."""

    salary: SalaryResult
    lateness: tuple[LatenessLine, ...]
    absences: tuple[AbsenceLine, ...]
    bonus_records: tuple[BonusRecord, ...]
    quality_bonuses: tuple[BonusLine, ...]
    class_facts: tuple[ClassFact, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "salary": self.salary.to_dict(),
            "latenessRecords": [line.to_dict() for line in self.lateness],
            "absenceRecords": [line.to_dict() for line in self.absences],
            "bonusRecords": [
                {
                    "period": r.period_label,
                    "amount": str(r.amount),
                    "reason": r.reason,
                }
                for r in self.bonus_records
            ],
            "qualityBonuses": [line.to_dict() for line in self.quality_bonuses],
            "classFacts": [
                {
                    "studentId": f.student_id,
                    "date": f.class_date.isoformat(),
                    "sentAt": f.sent_at.isoformat() if f.sent_at else None,
                    "startedAt": f.started_at.isoformat() if f.started_at else None,
                    "clickedAt": f.clicked_at.isoformat() if f.clicked_at else None,
                    "attendance": f.attendance_status.value if f.attendance_status else None,
                }
                for f in self.class_facts
            ],
        }


@dataclass(frozen=True)
class BatchFailure:
    teacher_id: str
    code: str
    message: str


@dataclass(frozen=True)
class SalaryBatch:
    """Salaries of every teacher of a school for one range."""

    tenant_id: str
    period_start: date
    period_end: date
    results: tuple[SalaryResult, ...]
    failures: tuple[BatchFailure, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "tenantId": self.tenant_id,
            "periodStart": self.period_start.isoformat(),
            "periodEnd": self.period_end.isoformat(),
            "results": [r.to_dict() for r in self.results],
            "failures": [
                {"teacherId": f.teacher_id, "code": f.code, "message": f.message}
                for f in self.failures
            ],
        }


class SalaryService:
    """
    Teacher salary calculations for one school.

    Contract:
        Receives Session, tenant id, ResultCache and Clock via constructor
        injection.  Read-only against the store.
    Non-goals:
        - Does not mark salaries paid; payment status is read, not written.
    """

    def __init__(
        self,
        session: Session,
        tenant_id: str,
        cache: ResultCache,
        clock: Clock | None = None,
        configuration: ConfigurationService | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self._session = session
        self._tenant_id = tenant_id
        self._cache = cache
        self._clock = clock or SystemClock()
        self._configuration = configuration or ConfigurationService(session, tenant_id, cache)
        self._monotonic = monotonic
        self._roster = RosterSelector(session, tenant_id)
        self._adjustments = AdjustmentSelector(session, tenant_id)

    def _today(self, config: CompensationConfig) -> date:
        tz = resolve_timezone(config.settings.timezone)
        return self._clock.now().astimezone(tz).date()

    def _deadline(self, config: CompensationConfig, operation: str) -> Deadline:
        return Deadline(config.engine.timeout_seconds, operation, monotonic=self._monotonic)

    # -- public reads ------------------------------------------------------

    def calculate(self, teacher_id: str, start: date, end: date) -> SalaryResult:
        """Administrative salary read; ignores the visibility setting."""
        if start > end:
            raise InvalidRangeError(start, end)
        config = self._configuration.active_config()
        return self._cached_salary(config, teacher_id, start, end)

    def calculate_for_teacher(self, teacher_id: str, start: date, end: date) -> SalaryResult:
        """Teacher-facing salary read.

        Raises:
            SalaryHiddenError: When the school hides salaries from teachers.
        """
        if start > end:
            raise InvalidRangeError(start, end)
        config = self._configuration.active_config()
        self._require_visible(config, teacher_id)
        return self._cached_salary(config, teacher_id, start, end)

    def get_details(
        self,
        teacher_id: str,
        start: date,
        end: date,
        teacher_facing: bool = False,
    ) -> SalaryDetails:
        """Itemized lateness, absences, bonuses and raw class facts."""
        if start > end:
            raise InvalidRangeError(start, end)
        config = self._configuration.active_config()
        if teacher_facing:
            self._require_visible(config, teacher_id)
        salary = self._cached_salary(config, teacher_id, start, end)
        facts = self._roster.facts_for(teacher_id, start, end, [])
        adjustments = self._adjustments.snapshot(teacher_id, start, end)
        breakdown = salary.breakdown
        return SalaryDetails(
            salary=salary,
            lateness=breakdown.lateness_breakdown,
            absences=breakdown.absence_breakdown,
            bonus_records=adjustments.bonus_records,
            quality_bonuses=breakdown.bonus_breakdown.quality,
            class_facts=tuple(facts),
        )

    def calculate_all(self, start: date, end: date) -> SalaryBatch:
        """Salaries of every active teacher; one failing teacher is skipped."""
        if start > end:
            raise InvalidRangeError(start, end)
        config = self._configuration.active_config()
        results: list[SalaryResult] = []
        failures: list[BatchFailure] = []
        for teacher_id in self._roster.list_teacher_ids():
            try:
                results.append(self._cached_salary(config, teacher_id, start, end))
            except CompensationError as e:
                logger.error(
                    "salary_batch_teacher_failed",
                    extra={
                        "tenant_id": self._tenant_id,
                        "teacher_id": teacher_id,
                        "error_code": e.code,
                        "error": str(e),
                    },
                )
                failures.append(BatchFailure(teacher_id=teacher_id, code=e.code, message=str(e)))
        logger.info(
            "salary_batch_completed",
            extra={
                "tenant_id": self._tenant_id,
                "teachers": len(results),
                "failures": len(failures),
            },
        )
        return SalaryBatch(
            tenant_id=self._tenant_id,
            period_start=start,
            period_end=end,
            results=tuple(results),
            failures=tuple(failures),
        )

    # -- internals ---------------------------------------------------------

    def _require_visible(self, config: CompensationConfig, teacher_id: str) -> None:
        if config.settings.teacher_salary_visible:
            return
        logger.info(
            "salary_hidden_from_teacher",
            extra={"tenant_id": self._tenant_id, "teacher_id": teacher_id},
        )
        raise SalaryHiddenError(
            self._tenant_id,
            config.settings.salary_hidden_message,
            config.settings.admin_contact,
        )

    def _cached_salary(
        self,
        config: CompensationConfig,
        teacher_id: str,
        start: date,
        end: date,
    ) -> SalaryResult:
        today = self._today(config)
        deadline = self._deadline(config, "salary_calculation")
        key = CacheKey(
            tenant_id=self._tenant_id,
            kind="salary",
            subject_id=teacher_id,
            period_start=start,
            period_end=end,
            fingerprint=f"{config.fingerprint}:{today.isoformat()}",
        )
        with LogContext.bind(tenant_id=self._tenant_id, subject_id=teacher_id):
            return self._cache.get_or_compute(
                key,
                lambda: self._compute(config, teacher_id, start, end, today, deadline),
                deadline=deadline,
            )

    def _compute(
        self,
        config: CompensationConfig,
        teacher_id: str,
        start: date,
        end: date,
        today: date,
        deadline: Deadline,
    ) -> SalaryResult:
        t0 = self._monotonic()
        logger.info(
            "salary_calculation_started",
            extra={
                "teacher_id": teacher_id,
                "period_start": start,
                "period_end": end,
                "config_fingerprint": config.fingerprint,
            },
        )
        roster = self._roster.snapshot(teacher_id, start, end)
        deadline.check()
        adjustments = self._adjustments.snapshot(teacher_id, start, end)
        deadline.check()

        inputs = SalaryInput(
            subject_id=teacher_id,
            subject_name=roster.teacher.name,
            start=start,
            end=end,
            today=today,
            intervals=roster.intervals,
            facts=roster.facts,
            permissions=adjustments.permissions,
            waivers=adjustments.waivers,
            bonus_records=adjustments.bonus_records,
            assessments=adjustments.assessments,
            payments=adjustments.payments,
        )
        result = calculate_salary(
            inputs=inputs,
            rules=config.salary_rules(),
            deadline=deadline,
            config_fingerprint=config.fingerprint,
        )
        load_warnings = roster.warnings + adjustments.warnings
        if load_warnings:
            result = replace(result, warnings=load_warnings + result.warnings)

        logger.info(
            "salary_calculation_completed",
            extra={
                "teacher_id": teacher_id,
                "total_salary": result.total_salary,
                "warnings": len(result.warnings),
                "duration_ms": round((self._monotonic() - t0) * 1000, 3),
                "config_fingerprint": config.fingerprint,
            },
        )
        return result
