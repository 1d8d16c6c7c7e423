"""Excel marks sheet generation and upload for bulk marking."""

import logging
from decimal import Decimal, InvalidOperation
from io import BytesIO
from typing import Any

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.orm import Session

from gradebook.core.clock import Clock
from gradebook.core.exceptions import UploadError, ValidationError
from gradebook.models.exam import Examination
from gradebook.schemas.exam import (
    BulkMarkCreate,
    BulkMarkResponse,
    MarkStatus,
    MarksheetRowError,
    StudentMarkInput,
)
from gradebook.services.exam import ExamService

logger = logging.getLogger(__name__)

HEADERS = ["Student ID", "Student Name", "Obtained Marks", "Absent", "Remarks"]
HEADER_ROW = 2
ABSENT_VALUES = {"yes", "y", "true", "1", "absent"}


def _cell_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class MarksheetService:
    """Marks sheet template and upload service."""

    def __init__(self, db: Session, clock: Clock | None = None):
        self.db = db
        self.exams = ExamService(db, clock)

    def generate_template(self, schedule_id: int) -> bytes:
        """Build an .xlsx marks sheet pre-filled with the class's students."""
        schedule = self.exams.get_schedule(schedule_id)
        examination = self.db.get(Examination, schedule.examination_id)
        students = self.exams.get_class_students(schedule)

        wb = Workbook()
        ws = wb.active
        ws.title = "Marks"

        title_font = Font(bold=True, size=14)
        header_font = Font(bold=True, color="FFFFFF")
        header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
        thin_border = Border(
            left=Side(style='thin'),
            right=Side(style='thin'),
            top=Side(style='thin'),
            bottom=Side(style='thin')
        )
        center_align = Alignment(horizontal='center', vertical='center')

        exam_name = examination.name if examination else f"Examination {schedule.examination_id}"
        title_text = (
            f"{exam_name} - Class {schedule.class_number} - {schedule.subject_name} "
            f"(Total {schedule.total_marks}, Pass {schedule.passing_marks})"
        )
        ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=len(HEADERS))
        title_cell = ws.cell(row=1, column=1, value=title_text)
        title_cell.font = title_font
        title_cell.alignment = center_align

        for col_idx, header in enumerate(HEADERS, start=1):
            cell = ws.cell(row=HEADER_ROW, column=col_idx, value=header)
            cell.font = header_font
            cell.fill = header_fill
            cell.border = thin_border
            cell.alignment = center_align

        for row_idx, student in enumerate(students, start=HEADER_ROW + 1):
            ws.cell(row=row_idx, column=1, value=student.id).border = thin_border
            ws.cell(row=row_idx, column=2, value=student.student_name).border = thin_border
            for col_idx in range(3, len(HEADERS) + 1):
                ws.cell(row=row_idx, column=col_idx, value="").border = thin_border

        for col, width in {"A": 12, "B": 30, "C": 16, "D": 10, "E": 30}.items():
            ws.column_dimensions[col].width = width

        output = BytesIO()
        wb.save(output)
        output.seek(0)
        return output.getvalue()

    def parse_upload(self, schedule_id: int, file_content: bytes) -> BulkMarkCreate:
        """Read a filled marks sheet into a bulk marking request.

        Any invalid row rejects the whole sheet.
        """
        try:
            wb = load_workbook(BytesIO(file_content), data_only=True)
            ws = wb.active
        except Exception as e:
            logger.error(f"[MARKSHEET] Failed to load Excel: {str(e)}")
            raise UploadError(f"Invalid Excel file: {str(e)}")

        header_cells = next(ws.iter_rows(min_row=HEADER_ROW, max_row=HEADER_ROW, values_only=True), ())
        headers = [str(h).strip().lower() if h else "" for h in header_cells]
        col_map = {name.lower(): headers.index(name.lower()) for name in HEADERS if name.lower() in headers}
        missing = [name for name in HEADERS if name.lower() not in col_map and name != "Remarks"]
        if missing:
            raise UploadError(
                f"Marks sheet is missing columns: {', '.join(missing)}",
                details={"missing_columns": missing},
            )

        def value(row: tuple, header: str) -> Any:
            idx = col_map.get(header.lower())
            if idx is None or idx >= len(row):
                return None
            return row[idx]

        marks: list[StudentMarkInput] = []
        errors: list[MarksheetRowError] = []
        for row_num, row in enumerate(ws.iter_rows(min_row=HEADER_ROW + 1, values_only=True), start=HEADER_ROW + 1):
            if not any(_cell_text(v) for v in row):
                continue

            student_text = _cell_text(value(row, "Student ID"))
            if student_text is None:
                errors.append(MarksheetRowError(row=row_num, column="Student ID", message="Student ID is required"))
                continue
            try:
                student_number = Decimal(student_text)
                if student_number != student_number.to_integral_value():
                    raise ValueError
                student_id = int(student_number)
            except (InvalidOperation, ValueError, OverflowError):
                errors.append(MarksheetRowError(
                    row=row_num,
                    column="Student ID",
                    message=f"Student ID must be a whole number: '{student_text}'",
                ))
                continue

            absent_text = _cell_text(value(row, "Absent"))
            status = MarkStatus.ABSENT if absent_text and absent_text.lower() in ABSENT_VALUES else MarkStatus.PRESENT

            obtained = None
            marks_text = _cell_text(value(row, "Obtained Marks"))
            if marks_text is not None:
                try:
                    obtained = Decimal(marks_text)
                except InvalidOperation:
                    errors.append(MarksheetRowError(
                        row=row_num,
                        column="Obtained Marks",
                        message=f"Invalid marks value: '{marks_text}'",
                    ))
                    continue

            try:
                marks.append(StudentMarkInput(
                    student_id=student_id,
                    obtained_marks=obtained,
                    status=status,
                    remarks=_cell_text(value(row, "Remarks")),
                ))
            except SchemaValidationError as e:
                errors.append(MarksheetRowError(
                    row=row_num,
                    column="Obtained Marks",
                    message=e.errors()[0]["msg"],
                ))

        if errors:
            logger.warning(f"[MARKSHEET] Schedule {schedule_id}: {len(errors)} invalid rows")
            raise ValidationError(
                "Marks sheet has invalid rows. No marks were saved.",
                details={"errors": [e.model_dump() for e in errors]},
            )
        if not marks:
            raise ValidationError("Marks sheet contains no student rows")

        logger.info(f"[MARKSHEET] Schedule {schedule_id}: parsed {len(marks)} rows")
        return BulkMarkCreate(exam_schedule_id=schedule_id, marks=marks)

    def upload(self, schedule_id: int, file_content: bytes, marker_id: int) -> BulkMarkResponse:
        """Parse a marks sheet and submit it as one bulk marking call."""
        request = self.parse_upload(schedule_id, file_content)
        return self.exams.submit_bulk_marks(request, marker_id)
