"""
Roster ORM models: teachers, students, assignments and class facts.

Responsibility:
    Persistence shape of the time-series facts the salary engine reads.
    Each model provides ``to_dto()`` returning a frozen domain record.

Invariants enforced:
    - Every row is tenant-scoped (TenantScopedBase.tenant_id).
    - ``teacher_assignments.end_date`` is the inclusive last day; NULL means
      the assignment is still open.
"""

from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from compensation_kernel.db.base import TenantScopedBase
from compensation_kernel.domain.records import (
    AssignmentInterval,
    AttendanceStatus,
    ClassFact,
    Student,
)


class TeacherModel(TenantScopedBase):
    """A teacher (compensation subject) of a school."""

    __tablename__ = "teachers"

    teacher_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "teacher_id", name="uq_teacher_tenant_teacher"),
    )

    def __repr__(self) -> str:
        return f"<TeacherModel {self.tenant_id}/{self.teacher_id}: {self.name}>"


class StudentModel(TenantScopedBase):
    """A student; ``package`` names the salary/deduction package."""

    __tablename__ = "students"

    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    package: Mapped[str | None] = mapped_column(String(100), nullable=True)
    day_package: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="active")

    __table_args__ = (
        UniqueConstraint("tenant_id", "student_id", name="uq_student_tenant_student"),
        Index("idx_student_status", "tenant_id", "status"),
    )

    def to_dto(self) -> Student:
        return Student(
            student_id=self.student_id,
            name=self.name or "",
            package=self.package,
            day_package=self.day_package,
            status=self.status,
        )


class AssignmentModel(TenantScopedBase):
    """A student assigned to a teacher for an inclusive date interval."""

    __tablename__ = "teacher_assignments"

    teacher_id: Mapped[str] = mapped_column(String(64), nullable=False)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    time_slot: Mapped[str] = mapped_column(String(20), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        Index("idx_assignment_teacher", "tenant_id", "teacher_id"),
        Index("idx_assignment_student", "tenant_id", "student_id"),
    )

    def to_dto(self, student: Student | None = None) -> AssignmentInterval:
        return AssignmentInterval(
            subject_id=self.teacher_id,
            student_id=self.student_id,
            time_slot=self.time_slot,
            start_date=self.start_date,
            end_date=self.end_date,
            package=student.package if student else None,
            day_package=student.day_package if student else None,
            student_name=student.name if student else "",
        )


class ClassFactModel(TenantScopedBase):
    """Class-link and attendance observations for one student-day."""

    __tablename__ = "class_facts"

    teacher_id: Mapped[str] = mapped_column(String(64), nullable=False)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    class_date: Mapped[date] = mapped_column(Date, nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    clicked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    attendance_status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    __table_args__ = (
        Index("idx_class_fact_teacher_date", "tenant_id", "teacher_id", "class_date"),
    )

    def to_dto(self) -> ClassFact:
        return ClassFact(
            subject_id=self.teacher_id,
            student_id=self.student_id,
            class_date=self.class_date,
            sent_at=self.sent_at,
            started_at=self.started_at,
            clicked_at=self.clicked_at,
            attendance_status=(
                AttendanceStatus(self.attendance_status) if self.attendance_status else None
            ),
            fact_id=str(self.id),
        )
