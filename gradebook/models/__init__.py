"""Database models package."""

from gradebook.models.exam import (
    BulkMarkingSession,
    ExamResult,
    ExamSchedule,
    Examination,
    ResultStatus,
)
from gradebook.models.grading import ClassSubjectRoster, StudentYearlyGrade
from gradebook.models.student import Student

__all__ = [
    # Student
    "Student",
    # Grading
    "ClassSubjectRoster",
    "StudentYearlyGrade",
    # Exam
    "Examination",
    "ExamSchedule",
    "ExamResult",
    "ResultStatus",
    "BulkMarkingSession",
]
