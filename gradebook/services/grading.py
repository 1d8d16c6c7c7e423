"""Yearly grade entry, recomputation and lifetime summaries."""

import logging
from dataclasses import asdict

from pydantic import TypeAdapter
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from gradebook.core.clock import Clock, get_clock
from gradebook.core.config import settings
from gradebook.core.database import store_errors, upsert_statement
from gradebook.core.exceptions import InternalError, NotFoundError, ValidationError
from gradebook.models.grading import StudentYearlyGrade
from gradebook.models.student import Student
from gradebook.schemas.grading import (
    GradeSummary,
    LifetimeSummaryResponse,
    StaleGradeCache,
    SubjectMark,
    YearlyGradeCreate,
    YearlyGradeResponse,
)
from gradebook.services import grade_calculator
from gradebook.services.grade_calculator import Rollup
from gradebook.services.roster import RosterService

logger = logging.getLogger(__name__)

_subject_list = TypeAdapter(list[SubjectMark])

GRADE_KEY = ("student_id", "class_number", "year")


def encode_subjects(subjects: list[SubjectMark]) -> str:
    """Serialize raw subject marks for storage."""
    return _subject_list.dump_json(subjects).decode()


def decode_subjects(row: StudentYearlyGrade) -> list[SubjectMark]:
    """Parse the stored raw marks of a grade row."""
    try:
        return _subject_list.validate_json(row.subjects)
    except SchemaValidationError as e:
        logger.error(
            f"Unreadable subject marks for student {row.student_id}, "
            f"class {row.class_number}, year {row.year}: {e.error_count()} errors"
        )
        raise InternalError(
            "Stored subject marks could not be decoded",
            details={
                "student_id": row.student_id,
                "class_number": row.class_number,
                "year": row.year,
            },
        ) from e


class GradingService:
    """Yearly grade service. Cached summary columns are never returned as-is."""

    def __init__(self, db: Session, clock: Clock | None = None):
        self.db = db
        self.clock = clock or get_clock()
        self.rosters = RosterService(db, self.clock)

    def _get_student(self, student_id: int) -> Student:
        student = self.db.get(Student, student_id)
        if not student:
            raise NotFoundError("Student", str(student_id))
        return student

    def _resolve_year(self, year: int | None) -> int:
        current_year = self.clock.today().year
        if year is None:
            return current_year
        if year < settings.MIN_GRADE_YEAR or year > current_year:
            raise ValidationError(
                f"Year must be between {settings.MIN_GRADE_YEAR} and {current_year}",
                details={"year": year},
            )
        return year

    def _to_response(self, row: StudentYearlyGrade) -> YearlyGradeResponse:
        summary = grade_calculator.rollup(decode_subjects(row))
        return YearlyGradeResponse(
            student_id=row.student_id,
            class_number=row.class_number,
            year=row.year,
            **asdict(summary),
        )

    def submit_yearly_grade(self, request: YearlyGradeCreate) -> YearlyGradeResponse:
        """Validate marks against the roster and replace the grade row."""
        year = self._resolve_year(request.year)
        self._get_student(request.student_id)
        subjects = self.rosters.validate_subjects(request.class_number, request.subjects)

        summary = grade_calculator.rollup(subjects)
        now = self.clock.now()
        values = {
            "student_id": request.student_id,
            "class_number": request.class_number,
            "year": year,
            "subjects": encode_subjects(subjects),
            "total_obtained": summary.total_obtained,
            "total_marks": summary.total_marks,
            "percentage": summary.percentage,
            "grade": summary.grade,
            "created_at": now,
            "updated_at": now,
        }

        stmt = upsert_statement(self.db, StudentYearlyGrade).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=list(GRADE_KEY),
            set_={name: stmt.excluded[name] for name in values if name not in GRADE_KEY},
        )
        with store_errors("student grade"):
            self.db.execute(stmt)

        logger.info(
            f"Grade stored for student {request.student_id}, class {request.class_number}, "
            f"year {year}: {summary.percentage}% ({summary.grade})"
        )
        return YearlyGradeResponse(
            student_id=request.student_id,
            class_number=request.class_number,
            year=year,
            **asdict(summary),
        )

    def _list_rows(
        self,
        student_id: int | None = None,
        class_number: int | None = None,
        year: int | None = None,
    ) -> list[StudentYearlyGrade]:
        query = select(StudentYearlyGrade)
        if student_id is not None:
            query = query.where(StudentYearlyGrade.student_id == student_id)
        if class_number is not None:
            query = query.where(StudentYearlyGrade.class_number == class_number)
        if year is not None:
            query = query.where(StudentYearlyGrade.year == year)
        query = query.order_by(
            StudentYearlyGrade.student_id,
            StudentYearlyGrade.class_number,
            StudentYearlyGrade.year,
        ).execution_options(populate_existing=True)
        return list(self.db.execute(query).scalars().all())

    def get_student_grades(
        self,
        student_id: int,
        class_number: int | None = None,
        year: int | None = None,
    ) -> list[YearlyGradeResponse]:
        """Get a student's grades, recomputed from their raw marks."""
        rows = self._list_rows(student_id, class_number, year)
        if not rows:
            raise NotFoundError("Grades", str(student_id))
        return [self._to_response(row) for row in rows]

    def get_lifetime_summary(self, student_id: int) -> LifetimeSummaryResponse:
        """Sum every class/year rollup of a student into a lifetime grade."""
        self._get_student(student_id)
        rows = self._list_rows(student_id)
        if not rows:
            raise NotFoundError("Grades", str(student_id))

        class_results = [self._to_response(row) for row in rows]
        lifetime = grade_calculator.combine(
            Rollup(
                total_obtained=r.total_obtained,
                total_marks=r.total_marks,
                percentage=r.percentage,
                grade=r.grade,
            )
            for r in class_results
        )
        return LifetimeSummaryResponse(
            student_id=student_id,
            class_results=class_results,
            lifetime=GradeSummary(**asdict(lifetime)),
        )

    def find_stale_caches(self) -> list[StaleGradeCache]:
        """Report grade rows whose cached summary disagrees with their raw marks."""
        stale: list[StaleGradeCache] = []
        for row in self._list_rows():
            recomputed = grade_calculator.rollup(decode_subjects(row))
            cached = GradeSummary(
                total_obtained=row.total_obtained,
                total_marks=row.total_marks,
                percentage=row.percentage,
                grade=row.grade,
            )
            if (
                cached.total_obtained == recomputed.total_obtained
                and cached.total_marks == recomputed.total_marks
                and cached.percentage == recomputed.percentage
                and cached.grade == recomputed.grade
            ):
                continue
            logger.warning(
                f"Stale grade cache for student {row.student_id}, class {row.class_number}, "
                f"year {row.year}: cached {cached.percentage}% vs {recomputed.percentage}%"
            )
            stale.append(StaleGradeCache(
                student_id=row.student_id,
                class_number=row.class_number,
                year=row.year,
                cached=cached,
                recomputed=GradeSummary(**asdict(recomputed)),
            ))
        return stale
