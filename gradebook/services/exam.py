"""Exam marking service: result derivation, bulk and single re-marking."""

import logging
from collections import Counter
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from gradebook.core.clock import Clock, get_clock
from gradebook.core.database import store_errors, upsert_statement
from gradebook.core.exceptions import ConflictError, NotFoundError, ValidationError
from gradebook.models.exam import (
    BulkMarkingSession,
    ExamResult,
    ExamSchedule,
    Examination,
    ResultStatus,
)
from gradebook.models.student import Student
from gradebook.schemas.exam import (
    BulkMarkCreate,
    BulkMarkResponse,
    ExamResultResponse,
    MarkStatus,
    ResultFilter,
    ResultUpdate,
    StudentMarkInput,
)
from gradebook.services import grade_calculator

logger = logging.getLogger(__name__)

RESULT_KEY = ("exam_schedule_id", "student_id")

# Columns rewritten when a student is re-marked
REMARK_COLUMNS = (
    "examination_id",
    "class_id",
    "class_number",
    "subject_id",
    "obtained_marks",
    "total_marks",
    "percentage",
    "grade",
    "status",
    "remarks",
    "marked_by",
    "marked_at",
    "updated_at",
)

ABSENT_PERCENTAGE = "0.00"


def derive_result(schedule: ExamSchedule, entry: StudentMarkInput) -> dict:
    """Compute the stored fields of one result from a mark entry.

    Absent students get zero marks and an F; otherwise the status is pass
    when the obtained marks reach the schedule's passing marks.
    """
    if entry.status == MarkStatus.ABSENT:
        obtained = Decimal("0")
        pct = ABSENT_PERCENTAGE
        grade = grade_calculator.FAILING_GRADE
        status = ResultStatus.ABSENT
    else:
        # Outcome is derived from the marks as stored, not as submitted
        obtained = grade_calculator.round_marks(entry.obtained_marks)
        if obtained > schedule.total_marks:
            raise ValidationError(
                f"obtained_marks ({obtained}) exceeds total_marks ({schedule.total_marks}) "
                f"for student {entry.student_id}",
                details={"student_id": entry.student_id},
            )
        percentage = grade_calculator.percentage(obtained, schedule.total_marks)
        pct = grade_calculator.format_percentage(percentage)
        grade = grade_calculator.letter_grade(percentage)
        status = ResultStatus.PASS if obtained >= schedule.passing_marks else ResultStatus.FAIL

    return {
        "exam_schedule_id": schedule.id,
        "examination_id": schedule.examination_id,
        "student_id": entry.student_id,
        "class_id": schedule.class_id,
        "class_number": schedule.class_number,
        "subject_id": schedule.subject_id,
        "obtained_marks": obtained,
        "total_marks": schedule.total_marks,
        "percentage": pct,
        "grade": grade,
        "status": status,
        "remarks": entry.remarks,
    }


def result_to_response(result: ExamResult) -> ExamResultResponse:
    """Build a response with percentage and grade recomputed from the marks."""
    response = ExamResultResponse.model_validate(result)
    if result.status == ResultStatus.ABSENT:
        pct, grade = ABSENT_PERCENTAGE, grade_calculator.FAILING_GRADE
    else:
        percentage = grade_calculator.percentage(result.obtained_marks, result.total_marks)
        pct = grade_calculator.format_percentage(percentage)
        grade = grade_calculator.letter_grade(percentage)
    return response.model_copy(update={"percentage": pct, "grade": grade})


class ExamService:
    """Exam result management service."""

    def __init__(self, db: Session, clock: Clock | None = None):
        self.db = db
        self.clock = clock or get_clock()

    def get_schedule(self, schedule_id: int) -> ExamSchedule:
        """Get exam schedule by ID."""
        schedule = self.db.get(ExamSchedule, schedule_id, populate_existing=True)
        if not schedule:
            raise NotFoundError("Exam schedule", str(schedule_id))
        return schedule

    def get_result(self, result_id: int) -> ExamResult:
        """Get exam result by ID."""
        result = self.db.get(ExamResult, result_id, populate_existing=True)
        if not result:
            raise NotFoundError("Exam result", str(result_id))
        return result

    def get_class_students(self, schedule: ExamSchedule) -> list[Student]:
        """Students enrolled in the schedule's class, ordered by name."""
        result = self.db.execute(
            select(Student)
            .where(Student.class_id == schedule.class_id)
            .order_by(Student.student_name, Student.id)
        )
        return list(result.scalars().all())

    def _check_membership(self, schedule: ExamSchedule, student_ids: list[int]) -> None:
        """All students must exist and belong to the schedule's class."""
        result = self.db.execute(select(Student).where(Student.id.in_(student_ids)))
        students = result.scalars().all()

        if len(students) != len(student_ids):
            found = {s.id for s in students}
            missing = [sid for sid in student_ids if sid not in found]
            raise NotFoundError("Students", details={"student_ids": missing})

        outsiders = [s.id for s in students if s.class_id != schedule.class_id]
        if outsiders:
            raise ValidationError(
                f"Students do not belong to class {schedule.class_number}",
                details={"student_ids": outsiders},
            )

    def upsert_results(self, rows: list[dict], marker_id: int) -> None:
        """Write derived results in one statement, replacing existing ones.

        Keyed on (exam_schedule_id, student_id); a re-mark overwrites every
        derived column, so the last write wins.
        """
        now = self.clock.now()
        values = [
            {**row, "marked_by": marker_id, "marked_at": now, "created_at": now, "updated_at": now}
            for row in rows
        ]
        stmt = upsert_statement(self.db, ExamResult).values(values)
        stmt = stmt.on_conflict_do_update(
            index_elements=list(RESULT_KEY),
            set_={name: stmt.excluded[name] for name in REMARK_COLUMNS},
        )
        with store_errors("exam results"):
            self.db.execute(stmt)

    # ==========================================
    # Marking
    # ==========================================

    def submit_bulk_marks(self, request: BulkMarkCreate, marker_id: int) -> BulkMarkResponse:
        """Mark many students of one schedule.

        Every check runs before any write; a failure rejects the whole
        batch. One audit session is appended after the results are written.
        """
        schedule = self.get_schedule(request.exam_schedule_id)
        student_ids = [m.student_id for m in request.marks]

        dupes = sorted(sid for sid, count in Counter(student_ids).items() if count > 1)
        if dupes:
            raise ValidationError(
                "A student may appear only once per batch",
                details={"student_ids": dupes},
            )

        try:
            self._check_membership(schedule, student_ids)
            rows = [derive_result(schedule, mark) for mark in request.marks]
        except (NotFoundError, ValidationError) as e:
            logger.warning(f"Bulk marking rejected for schedule {schedule.id}: {e.message}")
            raise

        self.upsert_results(rows, marker_id)

        total = len(request.marks)
        absent = sum(1 for m in request.marks if m.status == MarkStatus.ABSENT)
        present = total - absent

        audit = BulkMarkingSession(
            exam_schedule_id=schedule.id,
            examination_id=schedule.examination_id,
            class_id=schedule.class_id,
            class_number=schedule.class_number,
            subject_id=schedule.subject_id,
            total_students=total,
            students_marked=present,
            students_absent=absent,
            marked_by=marker_id,
            marked_at=self.clock.now(),
        )
        with store_errors("bulk marking session"):
            self.db.add(audit)
            self.db.flush()

        logger.info(
            f"Schedule {schedule.id} marked by {marker_id}: "
            f"{total} students, {present} present, {absent} absent"
        )
        return BulkMarkResponse(
            total_marked=len(rows),
            present=present,
            absent=absent,
            message=f"{len(rows)} students marked successfully",
        )

    def update_single_result(
        self,
        result_id: int,
        request: ResultUpdate,
        marker_id: int,
    ) -> ExamResultResponse:
        """Re-mark one stored result against its schedule's current totals.

        ``status`` only selects presence: ``absent`` marks the student
        absent, ``pass``/``fail`` mark them present and the outcome is
        derived from the marks. Omitted fields keep their stored values.
        """
        result = self.get_result(result_id)
        schedule = self.get_schedule(result.exam_schedule_id)

        if request.status == ResultStatus.ABSENT:
            presence = MarkStatus.ABSENT
        elif request.status is not None or request.obtained_marks is not None:
            presence = MarkStatus.PRESENT
        elif result.status == ResultStatus.ABSENT:
            presence = MarkStatus.ABSENT
        else:
            presence = MarkStatus.PRESENT

        obtained = request.obtained_marks
        if presence == MarkStatus.PRESENT and obtained is None:
            if result.status == ResultStatus.ABSENT:
                raise ValidationError(
                    "obtained_marks is required to mark an absent student present",
                    details={"result_id": result_id},
                )
            obtained = result.obtained_marks

        remarks = request.remarks if "remarks" in request.model_fields_set else result.remarks
        entry = StudentMarkInput(
            student_id=result.student_id,
            obtained_marks=obtained,
            status=presence,
            remarks=remarks,
        )
        self.upsert_results([derive_result(schedule, entry)], marker_id)

        logger.info(f"Result {result_id} re-marked by {marker_id}")
        return result_to_response(self.get_result(result_id))

    # ==========================================
    # Queries
    # ==========================================

    def list_results(self, filters: ResultFilter) -> list[ExamResultResponse]:
        """List results matching at least one filter."""
        conditions = []
        if filters.examination_id is not None:
            conditions.append(ExamResult.examination_id == filters.examination_id)
        if filters.exam_schedule_id is not None:
            conditions.append(ExamResult.exam_schedule_id == filters.exam_schedule_id)
        if filters.student_id is not None:
            conditions.append(ExamResult.student_id == filters.student_id)
        if filters.class_id is not None:
            conditions.append(ExamResult.class_id == filters.class_id)

        if not conditions:
            raise ValidationError("At least one filter parameter is required")

        result = self.db.execute(
            select(ExamResult)
            .where(*conditions)
            .order_by(ExamResult.class_number, ExamResult.student_id, ExamResult.id)
            .execution_options(populate_existing=True)
        )
        return [result_to_response(r) for r in result.scalars().all()]

    # ==========================================
    # Delete guards
    # ==========================================

    def _has_results(self, *conditions) -> bool:
        result = self.db.execute(select(ExamResult.id).where(*conditions).limit(1))
        return result.first() is not None

    def delete_schedule(self, schedule_id: int) -> None:
        """Delete a schedule that has no results yet."""
        schedule = self.get_schedule(schedule_id)
        if self._has_results(ExamResult.exam_schedule_id == schedule_id):
            raise ConflictError(
                "Cannot delete schedule with existing results",
                details={"exam_schedule_id": schedule_id},
            )
        self.db.delete(schedule)
        with store_errors("exam schedule"):
            self.db.flush()

    def delete_examination(self, examination_id: int) -> None:
        """Delete an examination that has no results yet."""
        examination = self.db.get(Examination, examination_id)
        if not examination:
            raise NotFoundError("Examination", str(examination_id))
        if self._has_results(ExamResult.examination_id == examination_id):
            raise ConflictError(
                "Cannot delete examination with existing results",
                details={"examination_id": examination_id},
            )
        self.db.delete(examination)
        with store_errors("examination"):
            self.db.flush()
