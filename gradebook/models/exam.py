"""Examination, schedule, result and marking session models."""

import enum
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    DECIMAL,
    BigInteger,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from gradebook.core.database import Base
from gradebook.models.base import IDMixin, JSONType, TimestampMixin


class ResultStatus(str, enum.Enum):
    """Outcome of one student's sitting."""

    PASS = "pass"
    FAIL = "fail"
    ABSENT = "absent"


class Examination(Base, IDMixin, TimestampMixin):
    """An examination period such as a mid-term or final."""

    __tablename__ = "examinations"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    exam_type: Mapped[str] = mapped_column(String(50), nullable=False)
    academic_year: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    term: Mapped[str | None] = mapped_column(String(20), nullable=True)

    def __repr__(self) -> str:
        return f"<Examination(id={self.id}, name={self.name})>"


class ExamSchedule(Base, IDMixin, TimestampMixin):
    """One sitting of one subject for one class within an examination."""

    __tablename__ = "exam_schedules"

    examination_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("examinations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    class_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    class_number: Mapped[int] = mapped_column(Integer, nullable=False)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False)
    subject_name: Mapped[str] = mapped_column(String(255), nullable=False)
    exam_date: Mapped[date] = mapped_column(Date, nullable=False)

    total_marks: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    passing_marks: Mapped[int] = mapped_column(Integer, nullable=False, default=40)

    # User IDs of authorized markers
    invigilators: Mapped[list[int]] = mapped_column(JSONType, nullable=False, default=list)

    def __repr__(self) -> str:
        return f"<ExamSchedule(id={self.id}, class={self.class_number}, subject={self.subject_name})>"


class ExamResult(Base, IDMixin, TimestampMixin):
    """At most one result per student per schedule."""

    __tablename__ = "exam_results"

    exam_schedule_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("exam_schedules.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    examination_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("examinations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    student_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Denormalized from the schedule
    class_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    class_number: Mapped[int] = mapped_column(Integer, nullable=False)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False)

    obtained_marks: Mapped[Decimal] = mapped_column(DECIMAL(10, 2), nullable=False)
    total_marks: Mapped[int] = mapped_column(Integer, nullable=False)
    percentage: Mapped[str] = mapped_column(String(10), nullable=False)  # e.g. "85.50"
    grade: Mapped[str] = mapped_column(String(5), nullable=False)
    status: Mapped[ResultStatus] = mapped_column(Enum(ResultStatus), nullable=False)

    marked_by: Mapped[int] = mapped_column(BigInteger, nullable=False)
    marked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "exam_schedule_id", "student_id",
            name="uq_exam_result_schedule_student",
        ),
    )

    def __repr__(self) -> str:
        return f"<ExamResult(schedule_id={self.exam_schedule_id}, student_id={self.student_id})>"


class BulkMarkingSession(Base, IDMixin):
    """Append-only audit row for one bulk marking call."""

    __tablename__ = "bulk_marking_sessions"

    exam_schedule_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("exam_schedules.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    examination_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    class_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    class_number: Mapped[int] = mapped_column(Integer, nullable=False)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False)

    total_students: Mapped[int] = mapped_column(Integer, nullable=False)
    students_marked: Mapped[int] = mapped_column(Integer, nullable=False)
    students_absent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    marked_by: Mapped[int] = mapped_column(BigInteger, nullable=False)
    marked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<BulkMarkingSession(id={self.id}, schedule_id={self.exam_schedule_id})>"
