"""Exam marking and reporting endpoints."""

from io import BytesIO
from typing import Annotated

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from gradebook.core.config import settings
from gradebook.core.database import get_db
from gradebook.core.dependencies import Actor, ClockDep
from gradebook.core.exceptions import UploadError
from gradebook.schemas.common import MessageResponse
from gradebook.schemas.exam import (
    BulkMarkCreate,
    BulkMarkResponse,
    ClassExamSummaryResponse,
    ExamResultResponse,
    ResultFilter,
    ResultUpdate,
    StudentExamReportResponse,
)
from gradebook.services.exam import ExamService
from gradebook.services.marksheet import MarksheetService
from gradebook.services.reports import ReportService

router = APIRouter()


@router.post("/bulk-mark", response_model=BulkMarkResponse, status_code=201)
def submit_bulk_marks(
    request: BulkMarkCreate,
    actor: Actor,
    db: Annotated[Session, Depends(get_db)],
):
    """
    Mark students of one exam schedule.
    Re-submitting a batch overwrites the previous results; any invalid
    entry rejects the whole batch.
    """
    service = ExamService(db, actor.clock)
    return service.submit_bulk_marks(request, marker_id=actor.user_id)


@router.get("/results", response_model=list[ExamResultResponse])
def list_exam_results(
    db: Annotated[Session, Depends(get_db)],
    examination_id: int | None = None,
    exam_schedule_id: int | None = None,
    student_id: int | None = None,
    class_id: int | None = None,
):
    """
    List exam results. At least one filter is required.
    """
    service = ExamService(db)
    return service.list_results(
        ResultFilter(
            examination_id=examination_id,
            exam_schedule_id=exam_schedule_id,
            student_id=student_id,
            class_id=class_id,
        )
    )


@router.patch("/results/{result_id}", response_model=ExamResultResponse)
def update_exam_result(
    result_id: int,
    request: ResultUpdate,
    actor: Actor,
    db: Annotated[Session, Depends(get_db)],
):
    """
    Re-mark a single result against its schedule's totals.
    """
    service = ExamService(db, actor.clock)
    return service.update_single_result(result_id, request, marker_id=actor.user_id)


@router.get("/classes/{class_id}/summary", response_model=ClassExamSummaryResponse)
def get_class_exam_summary(
    class_id: int,
    examination_id: int,
    db: Annotated[Session, Depends(get_db)],
):
    """
    Per-subject pass/fail counts and pooled percentages for a class.
    """
    service = ReportService(db)
    return service.get_class_exam_summary(class_id, examination_id)


@router.get("/students/{student_id}/report", response_model=StudentExamReportResponse)
def get_student_exam_report(
    student_id: int,
    db: Annotated[Session, Depends(get_db)],
    examination_id: int | None = None,
):
    """
    A student's results with an overall percentage over attended sittings.
    """
    service = ReportService(db)
    return service.get_student_exam_report(student_id, examination_id)


@router.get("/schedules/{schedule_id}/template")
def download_marks_template(
    schedule_id: int,
    clock: ClockDep,
    db: Annotated[Session, Depends(get_db)],
):
    """
    Download an Excel marks sheet pre-filled with the class's students.
    """
    service = MarksheetService(db, clock)
    content = service.generate_template(schedule_id)
    filename = f"marks_schedule_{schedule_id}.xlsx"

    return StreamingResponse(
        BytesIO(content),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.post("/schedules/{schedule_id}/upload", response_model=BulkMarkResponse, status_code=201)
def upload_marks_sheet(
    schedule_id: int,
    actor: Actor,
    db: Annotated[Session, Depends(get_db)],
    file: UploadFile = File(...),
):
    """
    Upload a filled marks sheet. Processed as one bulk marking call.
    """
    if not file.filename:
        raise UploadError("No file provided")

    if not any(file.filename.lower().endswith(ext) for ext in settings.ALLOWED_EXTENSIONS):
        raise UploadError(f"Only {', '.join(settings.ALLOWED_EXTENSIONS)} files are allowed")

    content = file.file.read()
    if len(content) > settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024:
        raise UploadError(f"File size exceeds {settings.MAX_UPLOAD_SIZE_MB}MB limit")

    service = MarksheetService(db, actor.clock)
    return service.upload(schedule_id, content, marker_id=actor.user_id)


@router.delete("/schedules/{schedule_id}", response_model=MessageResponse)
def delete_exam_schedule(
    schedule_id: int,
    db: Annotated[Session, Depends(get_db)],
):
    """
    Delete an exam schedule. Refused once results exist.
    """
    service = ExamService(db)
    service.delete_schedule(schedule_id)
    return MessageResponse(message="Exam schedule deleted successfully")


@router.delete("/examinations/{examination_id}", response_model=MessageResponse)
def delete_examination(
    examination_id: int,
    db: Annotated[Session, Depends(get_db)],
):
    """
    Delete an examination. Refused once results exist.
    """
    service = ExamService(db)
    service.delete_examination(examination_id)
    return MessageResponse(message="Examination deleted successfully")
