"""Exam marking and reporting schemas."""

import enum
from datetime import datetime
from decimal import Decimal

from pydantic import Field, model_validator

from gradebook.models.exam import ResultStatus
from gradebook.schemas.common import BaseSchema


class MarkStatus(str, enum.Enum):
    """Attendance of a student at a sitting."""

    PRESENT = "present"
    ABSENT = "absent"


# ==========================================
# Marking
# ==========================================

class StudentMarkInput(BaseSchema):
    """One student's entry in a bulk marking call."""

    student_id: int
    obtained_marks: Decimal | None = Field(None, ge=0)
    status: MarkStatus = MarkStatus.PRESENT
    remarks: str | None = None

    @model_validator(mode="after")
    def require_marks_when_present(self) -> "StudentMarkInput":
        if self.status == MarkStatus.PRESENT and self.obtained_marks is None:
            raise ValueError("obtained_marks is required unless the student is absent")
        return self


class BulkMarkCreate(BaseSchema):
    """Marks for many students of one exam schedule."""

    exam_schedule_id: int
    marks: list[StudentMarkInput] = Field(..., min_length=1)


class BulkMarkResponse(BaseSchema):
    """Result of a bulk marking call."""

    total_marked: int
    present: int
    absent: int
    message: str


class ResultUpdate(BaseSchema):
    """Re-mark a single stored result."""

    obtained_marks: Decimal | None = Field(None, ge=0)
    status: ResultStatus | None = None
    remarks: str | None = None


class ExamResultResponse(BaseSchema):
    """Exam result response schema."""

    id: int
    exam_schedule_id: int
    examination_id: int
    student_id: int
    class_id: int
    class_number: int
    subject_id: str
    obtained_marks: Decimal
    total_marks: int
    percentage: str
    grade: str
    status: ResultStatus
    marked_by: int
    marked_at: datetime
    remarks: str | None
    created_at: datetime
    updated_at: datetime


class ResultFilter(BaseSchema):
    """Exam result filtering options."""

    examination_id: int | None = None
    exam_schedule_id: int | None = None
    student_id: int | None = None
    class_id: int | None = None


# ==========================================
# Summaries
# ==========================================

class SubjectExamSummary(BaseSchema):
    """Pooled statistics for one subject of a class examination."""

    subject_id: str
    total_students: int
    passed: int
    failed: int
    absent: int
    total_obtained: Decimal
    total_marks: int
    average_percentage: Decimal


class ClassExamOverall(BaseSchema):
    total_students: int
    total_subjects: int


class ClassExamSummaryResponse(BaseSchema):
    """Per-subject summary of a class in one examination."""

    class_id: int
    examination_id: int
    subjects: list[SubjectExamSummary]
    overall: ClassExamOverall


class StudentExamReportSummary(BaseSchema):
    total_subjects: int
    passed_subjects: int
    failed_subjects: int
    absent_subjects: int
    total_obtained: Decimal
    total_marks: int
    overall_percentage: Decimal
    overall_grade: str


class StudentExamReportResponse(BaseSchema):
    """A student's results with an overall rollup."""

    student_id: int
    student_name: str
    results: list[ExamResultResponse]
    summary: StudentExamReportSummary


# ==========================================
# Marks Sheet Upload
# ==========================================

class MarksheetRowError(BaseSchema):
    """Error detail for one marks sheet row."""

    row: int
    column: str | None = None
    message: str
