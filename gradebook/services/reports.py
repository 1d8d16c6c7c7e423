"""Read-only exam summaries built from stored results."""

from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from gradebook.core.exceptions import NotFoundError
from gradebook.models.exam import ExamResult, ResultStatus
from gradebook.models.student import Student
from gradebook.schemas.exam import (
    ClassExamOverall,
    ClassExamSummaryResponse,
    StudentExamReportResponse,
    StudentExamReportSummary,
    SubjectExamSummary,
)
from gradebook.services import grade_calculator
from gradebook.services.exam import result_to_response


def summarize_subject(subject_id: str, results: Sequence[ExamResult]) -> SubjectExamSummary:
    """Pass/fail/absent counts and the pooled percentage of one subject.

    ``average_percentage`` is total obtained over total possible across
    all results, so it weights by marks rather than by student.
    """
    pool = grade_calculator.pooled((r.obtained_marks, r.total_marks) for r in results)
    return SubjectExamSummary(
        subject_id=subject_id,
        total_students=len(results),
        passed=sum(1 for r in results if r.status == ResultStatus.PASS),
        failed=sum(1 for r in results if r.status == ResultStatus.FAIL),
        absent=sum(1 for r in results if r.status == ResultStatus.ABSENT),
        total_obtained=pool.total_obtained,
        total_marks=int(pool.total_marks),
        average_percentage=pool.percentage,
    )


class ReportService:
    """Class and student exam summaries."""

    def __init__(self, db: Session):
        self.db = db

    def get_class_exam_summary(self, class_id: int, examination_id: int) -> ClassExamSummaryResponse:
        """Summarize every subject a class sat in one examination."""
        result = self.db.execute(
            select(ExamResult)
            .where(
                ExamResult.class_id == class_id,
                ExamResult.examination_id == examination_id,
            )
            .order_by(ExamResult.subject_id, ExamResult.student_id)
            .execution_options(populate_existing=True)
        )
        results = result.scalars().all()
        if not results:
            raise NotFoundError(
                "Exam results",
                details={"class_id": class_id, "examination_id": examination_id},
            )

        by_subject: dict[str, list[ExamResult]] = {}
        for r in results:
            by_subject.setdefault(r.subject_id, []).append(r)

        return ClassExamSummaryResponse(
            class_id=class_id,
            examination_id=examination_id,
            subjects=[summarize_subject(sid, rows) for sid, rows in by_subject.items()],
            overall=ClassExamOverall(
                total_students=len({r.student_id for r in results}),
                total_subjects=len(by_subject),
            ),
        )

    def get_student_exam_report(
        self,
        student_id: int,
        examination_id: int | None = None,
    ) -> StudentExamReportResponse:
        """A student's results with totals pooled over the sittings attended."""
        student = self.db.get(Student, student_id)
        if not student:
            raise NotFoundError("Student", str(student_id))

        query = select(ExamResult).where(ExamResult.student_id == student_id)
        if examination_id is not None:
            query = query.where(ExamResult.examination_id == examination_id)
        query = query.order_by(ExamResult.class_number, ExamResult.id).execution_options(
            populate_existing=True
        )
        results = self.db.execute(query).scalars().all()

        attended = [r for r in results if r.status != ResultStatus.ABSENT]
        pool = grade_calculator.pooled((r.obtained_marks, r.total_marks) for r in attended)

        return StudentExamReportResponse(
            student_id=student_id,
            student_name=student.student_name,
            results=[result_to_response(r) for r in results],
            summary=StudentExamReportSummary(
                total_subjects=len(results),
                passed_subjects=sum(1 for r in results if r.status == ResultStatus.PASS),
                failed_subjects=sum(1 for r in results if r.status == ResultStatus.FAIL),
                absent_subjects=len(results) - len(attended),
                total_obtained=pool.total_obtained,
                total_marks=int(pool.total_marks),
                overall_percentage=pool.percentage,
                overall_grade=pool.grade,
            ),
        )
