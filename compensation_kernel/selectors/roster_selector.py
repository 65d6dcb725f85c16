"""
Module: compensation_kernel.selectors.roster_selector
Responsibility: Read-only queries over teachers, students, assignments and
    class facts.  Assignments are joined with their student so every interval
    carries the student's package, day package and name.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Only assignments overlapping the requested range are returned.
    - The active student count is always computed live from the students
      table; the subscription's stored counter is never consulted here.

Failure modes:
    - SubjectNotFoundError from require_teacher() for unknown teachers.
    - Rows that fail record validation are skipped with MALFORMED_RECORD
      warnings.
"""

from dataclasses import dataclass
from datetime import date

from sqlalchemy import func, or_, select

from compensation_kernel.domain.records import (
    AssignmentInterval,
    CalculationWarning,
    ClassFact,
    Student,
)
from compensation_kernel.exceptions import SubjectNotFoundError
from compensation_kernel.models.roster import (
    AssignmentModel,
    ClassFactModel,
    StudentModel,
    TeacherModel,
)
from compensation_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class TeacherDTO:
    teacher_id: str
    name: str
    is_active: bool


@dataclass(frozen=True)
class RosterSnapshot:
    """Assignments and class facts of one teacher over one range."""

    teacher: TeacherDTO
    intervals: tuple[AssignmentInterval, ...]
    facts: tuple[ClassFact, ...]
    warnings: tuple[CalculationWarning, ...]


class RosterSelector(BaseSelector[AssignmentModel]):
    """Selector for the roster facts the salary calculation reads."""

    def get_teacher(self, teacher_id: str) -> TeacherDTO | None:
        row = self.session.execute(
            select(TeacherModel).where(
                TeacherModel.tenant_id == self.tenant_id,
                TeacherModel.teacher_id == teacher_id,
            )
        ).scalar_one_or_none()
        if row is None:
            return None
        return TeacherDTO(teacher_id=row.teacher_id, name=row.name, is_active=row.is_active)

    def require_teacher(self, teacher_id: str) -> TeacherDTO:
        teacher = self.get_teacher(teacher_id)
        if teacher is None:
            raise SubjectNotFoundError(teacher_id, "teacher")
        return teacher

    def list_teacher_ids(self, active_only: bool = True) -> list[str]:
        stmt = select(TeacherModel.teacher_id).where(TeacherModel.tenant_id == self.tenant_id)
        if active_only:
            stmt = stmt.where(TeacherModel.is_active.is_(True))
        return list(self.session.execute(stmt.order_by(TeacherModel.teacher_id)).scalars())

    def students_by_id(self, student_ids: set[str]) -> dict[str, Student]:
        if not student_ids:
            return {}
        rows = self.session.execute(
            select(StudentModel).where(
                StudentModel.tenant_id == self.tenant_id,
                StudentModel.student_id.in_(student_ids),
            )
        ).scalars()
        return {row.student_id: row.to_dto() for row in rows}

    def assignments_for(
        self,
        teacher_id: str,
        start: date,
        end: date,
        warnings: list[CalculationWarning],
    ) -> list[AssignmentInterval]:
        """Assignments of ``teacher_id`` overlapping [start, end], with student data."""
        rows = list(self.session.execute(
            select(AssignmentModel)
            .where(
                AssignmentModel.tenant_id == self.tenant_id,
                AssignmentModel.teacher_id == teacher_id,
                AssignmentModel.start_date <= end,
                or_(AssignmentModel.end_date.is_(None), AssignmentModel.end_date >= start),
            )
            .order_by(AssignmentModel.start_date, AssignmentModel.student_id)
        ).scalars())
        students = self.students_by_id({row.student_id for row in rows})
        return self._convert(
            rows,
            "assignment",
            lambda row: row.to_dto(students.get(row.student_id)),
            warnings,
        )

    def facts_for(
        self,
        teacher_id: str,
        start: date,
        end: date,
        warnings: list[CalculationWarning],
    ) -> list[ClassFact]:
        rows = self.session.execute(
            select(ClassFactModel)
            .where(
                ClassFactModel.tenant_id == self.tenant_id,
                ClassFactModel.teacher_id == teacher_id,
                ClassFactModel.class_date >= start,
                ClassFactModel.class_date <= end,
            )
            .order_by(ClassFactModel.class_date, ClassFactModel.student_id)
        ).scalars()
        return self._convert(rows, "class_fact", ClassFactModel.to_dto, warnings)

    def snapshot(self, teacher_id: str, start: date, end: date) -> RosterSnapshot:
        """Everything the salary calculation needs from the roster, in one call."""
        teacher = self.require_teacher(teacher_id)
        warnings: list[CalculationWarning] = []
        intervals = self.assignments_for(teacher_id, start, end, warnings)
        facts = self.facts_for(teacher_id, start, end, warnings)
        return RosterSnapshot(
            teacher=teacher,
            intervals=tuple(intervals),
            facts=tuple(facts),
            warnings=tuple(warnings),
        )

    def active_student_count(self) -> int:
        """Live count of active students of the school."""
        return self.session.execute(
            select(func.count(StudentModel.id)).where(
                StudentModel.tenant_id == self.tenant_id,
                StudentModel.status == "active",
            )
        ).scalar_one()
