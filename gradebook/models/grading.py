"""Class roster and yearly grade models."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import DECIMAL, BigInteger, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from gradebook.core.database import Base
from gradebook.models.base import JSONType


class ClassSubjectRoster(Base):
    """Subjects configured for a class number."""

    __tablename__ = "class_subjects"

    class_number: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    subject_ids: Mapped[list[str]] = mapped_column(JSONType, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ClassSubjectRoster(class={self.class_number}, subjects={len(self.subject_ids)})>"


class StudentYearlyGrade(Base):
    """One grade row per (student, class, year).

    ``subjects`` holds the raw submitted marks as JSON text. The summary
    columns are a cache written alongside them; readers recompute from
    ``subjects`` instead of returning these.
    """

    __tablename__ = "student_grades"

    student_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("students.id", ondelete="CASCADE"),
        primary_key=True,
        autoincrement=False,
    )
    class_number: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    year: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)

    subjects: Mapped[str] = mapped_column(Text, nullable=False)

    # Cached totals, overwritten on every upsert
    total_obtained: Mapped[Decimal] = mapped_column(DECIMAL(10, 2), nullable=False, default=Decimal("0"))
    total_marks: Mapped[Decimal] = mapped_column(DECIMAL(10, 2), nullable=False, default=Decimal("0"))
    percentage: Mapped[Decimal] = mapped_column(DECIMAL(5, 2), nullable=False, default=Decimal("0"))
    grade: Mapped[str] = mapped_column(String(5), nullable=False, default="F")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<StudentYearlyGrade(student_id={self.student_id}, class={self.class_number}, year={self.year})>"
