"""Roster and yearly grade schemas."""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from pydantic import Field, field_validator, model_validator

from gradebook.schemas.common import BaseSchema


# ==========================================
# Class Roster
# ==========================================

class RosterUpdate(BaseSchema):
    """Replace the subjects configured for a class."""

    class_number: int = Field(..., ge=1, le=12)
    subject_ids: list[str] = Field(..., min_length=1)


class RosterResponse(BaseSchema):
    """Class roster response schema."""

    class_number: int
    subject_ids: list[str]
    updated_at: datetime


# ==========================================
# Yearly Grades
# ==========================================

class SubjectMark(BaseSchema):
    """Raw marks for one subject."""

    subject_id: str = Field(..., min_length=1, max_length=64)
    obtained_marks: Decimal = Field(..., ge=0)
    total_marks: Decimal = Field(..., gt=0)

    @field_validator("obtained_marks", "total_marks")
    @classmethod
    def round_to_stored_precision(cls, v: Decimal) -> Decimal:
        """Raw marks keep the same two places as the cached totals."""
        return v.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    @model_validator(mode="after")
    def validate_marks(self) -> "SubjectMark":
        """Obtained marks must not exceed total marks."""
        if self.total_marks == 0:
            raise ValueError("total_marks must be at least 0.01")
        if self.obtained_marks > self.total_marks:
            raise ValueError(
                f"obtained_marks ({self.obtained_marks}) exceeds total_marks ({self.total_marks})"
            )
        return self


class YearlyGradeCreate(BaseSchema):
    """Add or replace a student's grade for one class and year."""

    student_id: int
    class_number: int = Field(..., ge=1, le=12)
    year: int | None = Field(None, description="Defaults to the current year.")
    subjects: list[SubjectMark] = Field(..., min_length=1)


class GradeSummary(BaseSchema):
    """Rollup of summed marks."""

    total_obtained: Decimal
    total_marks: Decimal
    percentage: Decimal
    grade: str


class YearlyGradeResponse(GradeSummary):
    """Recomputed grade for one class and year."""

    student_id: int
    class_number: int
    year: int


class LifetimeSummaryResponse(BaseSchema):
    """All yearly grades of a student plus the lifetime rollup."""

    student_id: int
    class_results: list[YearlyGradeResponse]
    lifetime: GradeSummary


class StaleGradeCache(BaseSchema):
    """Stored summary that no longer matches its raw marks."""

    student_id: int
    class_number: int
    year: int
    cached: GradeSummary
    recomputed: GradeSummary
