"""Class roster and yearly grade endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from gradebook.core.database import get_db
from gradebook.core.dependencies import ClockDep
from gradebook.schemas.grading import (
    LifetimeSummaryResponse,
    RosterResponse,
    RosterUpdate,
    YearlyGradeCreate,
    YearlyGradeResponse,
)
from gradebook.services.grading import GradingService
from gradebook.services.roster import RosterService

router = APIRouter()


@router.get("/class-subjects/{class_number}", response_model=RosterResponse)
def get_class_subjects(
    class_number: int,
    db: Annotated[Session, Depends(get_db)],
):
    """
    Get the subjects configured for a class.
    """
    service = RosterService(db)
    return service.get_roster(class_number)


@router.put("/class-subjects", response_model=RosterResponse)
def update_class_subjects(
    request: RosterUpdate,
    clock: ClockDep,
    db: Annotated[Session, Depends(get_db)],
):
    """
    Replace the subjects of an existing class roster.
    """
    service = RosterService(db, clock)
    return service.update_roster(request)


@router.post("/grades", response_model=YearlyGradeResponse, status_code=201)
def submit_yearly_grade(
    request: YearlyGradeCreate,
    clock: ClockDep,
    db: Annotated[Session, Depends(get_db)],
):
    """
    Add or replace a student's grade for a class and year.
    Subjects must belong to the class roster; the stored row is replaced
    in full.
    """
    service = GradingService(db, clock)
    return service.submit_yearly_grade(request)


@router.get("/students/{student_id}/grades", response_model=list[YearlyGradeResponse])
def get_student_grades(
    student_id: int,
    db: Annotated[Session, Depends(get_db)],
    class_number: int | None = Query(None, ge=1, le=12),
    year: int | None = None,
):
    """
    Get a student's grades, recomputed from the stored subject marks.
    """
    service = GradingService(db)
    return service.get_student_grades(student_id, class_number=class_number, year=year)


@router.get("/students/{student_id}/overall", response_model=LifetimeSummaryResponse)
def get_student_overall(
    student_id: int,
    db: Annotated[Session, Depends(get_db)],
):
    """
    Get every class result of a student plus the lifetime summary.
    """
    service = GradingService(db)
    return service.get_lifetime_summary(student_id)
