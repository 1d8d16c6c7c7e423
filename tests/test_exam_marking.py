from decimal import Decimal

import pytest
from sqlalchemy import func, select

from gradebook.core.exceptions import ConflictError, NotFoundError, ValidationError
from gradebook.models import BulkMarkingSession, ExamResult, ResultStatus
from gradebook.schemas.exam import BulkMarkCreate, ResultFilter, ResultUpdate
from gradebook.services.exam import ExamService

from tests.conftest import MARKER_ID


def bulk(schedule, *marks):
    return BulkMarkCreate.model_validate({"exam_schedule_id": schedule.id, "marks": list(marks)})


def present(student, obtained, remarks=None):
    return {"student_id": student.id, "obtained_marks": obtained, "remarks": remarks}


def absent(student):
    return {"student_id": student.id, "status": "absent"}


def stored_results(db, schedule):
    query = (
        select(ExamResult)
        .where(ExamResult.exam_schedule_id == schedule.id)
        .order_by(ExamResult.student_id)
        .execution_options(populate_existing=True)
    )
    return {r.student_id: r for r in db.execute(query).scalars().all()}


def session_count(db):
    return db.execute(select(func.count()).select_from(BulkMarkingSession)).scalar()


def test_bulk_marks_with_absent_student(db, school, clock):
    service = ExamService(db, clock)

    response = service.submit_bulk_marks(
        bulk(school.math_schedule, present(school.asha, 35), absent(school.ben)),
        marker_id=MARKER_ID,
    )

    assert response.total_marked == 2
    assert response.present == 1
    assert response.absent == 1

    results = stored_results(db, school.math_schedule)
    asha, ben = results[school.asha.id], results[school.ben.id]
    assert asha.obtained_marks == Decimal("35")
    assert asha.percentage == "35.00"
    assert asha.grade == "F"
    assert asha.status == ResultStatus.FAIL
    assert ben.obtained_marks == 0
    assert ben.percentage == "0.00"
    assert ben.grade == "F"
    assert ben.status == ResultStatus.ABSENT
    assert asha.marked_by == MARKER_ID


def test_remarking_overwrites_and_keeps_one_row_per_student(db, school, clock):
    service = ExamService(db, clock)
    service.submit_bulk_marks(
        bulk(school.math_schedule, present(school.asha, 35), present(school.ben, 80)),
        marker_id=MARKER_ID,
    )

    service.submit_bulk_marks(
        bulk(school.math_schedule, present(school.asha, 90), absent(school.ben)),
        marker_id=MARKER_ID + 1,
    )

    results = stored_results(db, school.math_schedule)
    assert len(results) == 2
    asha, ben = results[school.asha.id], results[school.ben.id]
    assert asha.obtained_marks == Decimal("90")
    assert asha.percentage == "90.00"
    assert asha.grade == "A+"
    assert asha.status == ResultStatus.PASS
    assert asha.marked_by == MARKER_ID + 1
    assert ben.status == ResultStatus.ABSENT
    assert ben.obtained_marks == 0


def test_each_call_appends_one_marking_session(db, school, clock):
    service = ExamService(db, clock)
    request = bulk(school.math_schedule, present(school.asha, 35), absent(school.ben))

    service.submit_bulk_marks(request, marker_id=MARKER_ID)
    service.submit_bulk_marks(request, marker_id=MARKER_ID)

    sessions = db.execute(select(BulkMarkingSession)).scalars().all()
    assert len(sessions) == 2
    assert sessions[0].total_students == 2
    assert sessions[0].students_marked == 1
    assert sessions[0].students_absent == 1
    assert sessions[0].marked_by == MARKER_ID
    assert sessions[0].subject_id == "MATH"


def test_passing_marks_boundary_passes(db, school, clock):
    ExamService(db, clock).submit_bulk_marks(
        bulk(school.math_schedule, present(school.asha, 40)), marker_id=MARKER_ID
    )

    result = stored_results(db, school.math_schedule)[school.asha.id]
    assert result.status == ResultStatus.PASS
    assert result.grade == "D"


def test_unknown_schedule_is_not_found(db, school, clock):
    request = BulkMarkCreate.model_validate(
        {"exam_schedule_id": 9999, "marks": [present(school.asha, 50)]}
    )
    with pytest.raises(NotFoundError):
        ExamService(db, clock).submit_bulk_marks(request, marker_id=MARKER_ID)


def test_unknown_student_rejects_batch(db, school, clock):
    request = BulkMarkCreate.model_validate({
        "exam_schedule_id": school.math_schedule.id,
        "marks": [present(school.asha, 50), {"student_id": 9999, "obtained_marks": 50}],
    })

    with pytest.raises(NotFoundError) as exc:
        ExamService(db, clock).submit_bulk_marks(request, marker_id=MARKER_ID)

    assert exc.value.details["student_ids"] == [9999]
    assert stored_results(db, school.math_schedule) == {}
    assert session_count(db) == 0


def test_student_from_another_class_rejects_batch(db, school, clock):
    with pytest.raises(ValidationError) as exc:
        ExamService(db, clock).submit_bulk_marks(
            bulk(school.math_schedule, present(school.asha, 50), present(school.dev, 70)),
            marker_id=MARKER_ID,
        )

    assert exc.value.details["student_ids"] == [school.dev.id]
    assert stored_results(db, school.math_schedule) == {}
    assert session_count(db) == 0


def test_marks_above_total_reject_batch(db, school, clock):
    with pytest.raises(ValidationError):
        ExamService(db, clock).submit_bulk_marks(
            bulk(school.english_schedule, present(school.asha, 30), present(school.ben, 51)),
            marker_id=MARKER_ID,
        )

    assert stored_results(db, school.english_schedule) == {}


def test_duplicate_student_rejects_batch(db, school, clock):
    with pytest.raises(ValidationError) as exc:
        ExamService(db, clock).submit_bulk_marks(
            bulk(school.math_schedule, present(school.asha, 30), present(school.asha, 60)),
            marker_id=MARKER_ID,
        )

    assert exc.value.details["student_ids"] == [school.asha.id]


def test_present_entry_requires_marks():
    with pytest.raises(ValueError):
        BulkMarkCreate.model_validate(
            {"exam_schedule_id": 1, "marks": [{"student_id": 1, "status": "present"}]}
        )


def marked_result(db, school, clock, *marks):
    ExamService(db, clock).submit_bulk_marks(bulk(school.math_schedule, *marks), marker_id=MARKER_ID)
    return stored_results(db, school.math_schedule)


def test_update_single_result_rederives_outcome(db, school, clock):
    results = marked_result(db, school, clock, present(school.asha, 35, remarks="retest"))
    result_id = results[school.asha.id].id

    updated = ExamService(db, clock).update_single_result(
        result_id, ResultUpdate(obtained_marks=Decimal("75")), marker_id=MARKER_ID + 5
    )

    assert updated.obtained_marks == Decimal("75")
    assert updated.percentage == "75.00"
    assert updated.grade == "B+"
    assert updated.status == ResultStatus.PASS
    assert updated.marked_by == MARKER_ID + 5
    assert updated.remarks == "retest"


def test_update_single_result_can_mark_absent(db, school, clock):
    results = marked_result(db, school, clock, present(school.asha, 80))

    updated = ExamService(db, clock).update_single_result(
        results[school.asha.id].id, ResultUpdate(status=ResultStatus.ABSENT), marker_id=MARKER_ID
    )

    assert updated.status == ResultStatus.ABSENT
    assert updated.obtained_marks == 0
    assert updated.percentage == "0.00"
    assert updated.grade == "F"


def test_update_absent_result_to_present_needs_marks(db, school, clock):
    results = marked_result(db, school, clock, absent(school.ben))

    with pytest.raises(ValidationError):
        ExamService(db, clock).update_single_result(
            results[school.ben.id].id, ResultUpdate(status=ResultStatus.PASS), marker_id=MARKER_ID
        )


def test_update_absent_result_with_marks_marks_present(db, school, clock):
    results = marked_result(db, school, clock, absent(school.ben))

    updated = ExamService(db, clock).update_single_result(
        results[school.ben.id].id, ResultUpdate(obtained_marks=Decimal("20")), marker_id=MARKER_ID
    )

    assert updated.status == ResultStatus.FAIL
    assert updated.percentage == "20.00"


def test_update_remarks_only_keeps_marks(db, school, clock):
    results = marked_result(db, school, clock, present(school.asha, 64))

    updated = ExamService(db, clock).update_single_result(
        results[school.asha.id].id, ResultUpdate(remarks="checked twice"), marker_id=MARKER_ID
    )

    assert updated.obtained_marks == Decimal("64")
    assert updated.status == ResultStatus.PASS
    assert updated.remarks == "checked twice"


def test_update_unknown_result_is_not_found(db, school, clock):
    with pytest.raises(NotFoundError):
        ExamService(db, clock).update_single_result(
            9999, ResultUpdate(obtained_marks=Decimal("10")), marker_id=MARKER_ID
        )


def test_list_results_requires_a_filter(db, school, clock):
    with pytest.raises(ValidationError):
        ExamService(db, clock).list_results(ResultFilter())


def test_list_results_by_schedule(db, school, clock):
    marked_result(db, school, clock, present(school.ben, 55), present(school.asha, 70))

    results = ExamService(db, clock).list_results(
        ResultFilter(exam_schedule_id=school.math_schedule.id)
    )

    assert [r.student_id for r in results] == [school.asha.id, school.ben.id]
    assert [r.grade for r in results] == ["B+", "C"]


def test_schedule_with_results_cannot_be_deleted(db, school, clock):
    marked_result(db, school, clock, present(school.asha, 70))

    with pytest.raises(ConflictError):
        ExamService(db, clock).delete_schedule(school.math_schedule.id)


def test_schedule_without_results_can_be_deleted(db, school, clock):
    service = ExamService(db, clock)
    schedule_id = school.english_schedule.id

    service.delete_schedule(schedule_id)

    with pytest.raises(NotFoundError):
        service.get_schedule(schedule_id)


def test_examination_with_results_cannot_be_deleted(db, school, clock):
    marked_result(db, school, clock, present(school.asha, 70))

    with pytest.raises(ConflictError):
        ExamService(db, clock).delete_examination(school.examination.id)


def test_outcome_follows_marks_rounded_to_stored_precision(db, school, clock):
    ExamService(db, clock).submit_bulk_marks(
        bulk(school.math_schedule, present(school.asha, Decimal("39.996")), present(school.ben, Decimal("39.994"))),
        marker_id=MARKER_ID,
    )

    results = stored_results(db, school.math_schedule)
    asha, ben = results[school.asha.id], results[school.ben.id]
    assert asha.obtained_marks == Decimal("40.00")
    assert asha.percentage == "40.00"
    assert asha.grade == "D"
    assert asha.status == ResultStatus.PASS
    assert ben.obtained_marks == Decimal("39.99")
    assert ben.status == ResultStatus.FAIL


def test_update_single_result_rounds_marks_before_deriving(db, school, clock):
    results = marked_result(db, school, clock, present(school.asha, 10))

    updated = ExamService(db, clock).update_single_result(
        results[school.asha.id].id, ResultUpdate(obtained_marks=Decimal("39.995")), marker_id=MARKER_ID
    )

    assert updated.obtained_marks == Decimal("40.00")
    assert updated.status == ResultStatus.PASS


def test_marks_rounding_above_total_are_rejected(db, school, clock):
    with pytest.raises(ValidationError):
        ExamService(db, clock).submit_bulk_marks(
            bulk(school.english_schedule, present(school.asha, Decimal("50.005"))),
            marker_id=MARKER_ID,
        )
