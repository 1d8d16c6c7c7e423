from decimal import Decimal

import pytest
from sqlalchemy import func, select, update

from gradebook.core.exceptions import InternalError, NotFoundError, ValidationError
from gradebook.models import StudentYearlyGrade
from gradebook.schemas.grading import YearlyGradeCreate
from gradebook.services.grading import GradingService


def grade_request(student_id, class_number=5, year=2024, **subjects):
    return YearlyGradeCreate(
        student_id=student_id,
        class_number=class_number,
        year=year,
        subjects=[
            {"subject_id": sid, "obtained_marks": obtained, "total_marks": total}
            for sid, (obtained, total) in subjects.items()
        ],
    )


def grade_rows(db):
    return db.execute(select(func.count()).select_from(StudentYearlyGrade)).scalar()


def test_submit_yearly_grade_rolls_up_summed_marks(db, school, clock):
    service = GradingService(db, clock)

    summary = service.submit_yearly_grade(
        grade_request(school.asha.id, MATH=(95, 100), ENG=(88, 100))
    )

    assert summary.total_obtained == Decimal("183")
    assert summary.total_marks == Decimal("200")
    assert summary.percentage == Decimal("91.50")
    assert summary.grade == "A+"
    assert summary.year == 2024


def test_resubmission_replaces_the_row(db, school, clock):
    service = GradingService(db, clock)
    service.submit_yearly_grade(grade_request(school.asha.id, MATH=(95, 100), ENG=(88, 100)))

    service.submit_yearly_grade(grade_request(school.asha.id, MATH=(50, 100)))

    grades = service.get_student_grades(school.asha.id)
    assert len(grades) == 1
    assert grades[0].total_obtained == Decimal("50")
    assert grades[0].total_marks == Decimal("100")
    assert grades[0].grade == "C"
    assert grade_rows(db) == 1


def test_roster_mismatch_persists_nothing(db, school, clock):
    service = GradingService(db, clock)

    with pytest.raises(ValidationError):
        service.submit_yearly_grade(grade_request(school.asha.id, MATH=(95, 100), ART=(70, 100)))

    assert grade_rows(db) == 0
    with pytest.raises(NotFoundError):
        service.get_student_grades(school.asha.id)


def test_read_ignores_tampered_cache(db, school, clock):
    service = GradingService(db, clock)
    service.submit_yearly_grade(grade_request(school.asha.id, MATH=(95, 100), ENG=(88, 100)))

    db.execute(
        update(StudentYearlyGrade)
        .where(StudentYearlyGrade.student_id == school.asha.id)
        .values(percentage=Decimal("12.34"), grade="F", total_obtained=Decimal("1"))
    )

    [grade] = service.get_student_grades(school.asha.id)
    assert grade.percentage == Decimal("91.50")
    assert grade.grade == "A+"
    assert grade.total_obtained == Decimal("183")


def test_unreadable_raw_marks_raise_internal_error(db, school, clock):
    service = GradingService(db, clock)
    service.submit_yearly_grade(grade_request(school.asha.id, MATH=(95, 100)))

    db.execute(
        update(StudentYearlyGrade)
        .where(StudentYearlyGrade.student_id == school.asha.id)
        .values(subjects="not json")
    )

    with pytest.raises(InternalError):
        service.get_student_grades(school.asha.id)


def test_year_defaults_to_clock_year(db, school, clock):
    summary = GradingService(db, clock).submit_yearly_grade(
        grade_request(school.asha.id, year=None, MATH=(60, 100))
    )
    assert summary.year == 2024


@pytest.mark.parametrize("year", [1999, 2025])
def test_year_outside_allowed_range_is_rejected(db, school, clock, year):
    with pytest.raises(ValidationError):
        GradingService(db, clock).submit_yearly_grade(
            grade_request(school.asha.id, year=year, MATH=(60, 100))
        )


def test_unknown_student_is_not_found(db, school, clock):
    with pytest.raises(NotFoundError):
        GradingService(db, clock).submit_yearly_grade(grade_request(9999, MATH=(60, 100)))


def test_get_student_grades_filters_by_class(db, school, clock):
    service = GradingService(db, clock)
    service.submit_yearly_grade(grade_request(school.asha.id, class_number=5, year=2023, MATH=(95, 100)))
    service.submit_yearly_grade(grade_request(school.asha.id, class_number=6, year=2024, SCI=(30, 50)))

    grades = service.get_student_grades(school.asha.id, class_number=6)

    assert [(g.class_number, g.year) for g in grades] == [(6, 2024)]


def test_lifetime_summary_sums_every_class(db, school, clock):
    service = GradingService(db, clock)
    service.submit_yearly_grade(
        grade_request(school.asha.id, class_number=6, year=2024, MATH=(20, 50), SCI=(30, 50))
    )
    service.submit_yearly_grade(
        grade_request(school.asha.id, class_number=5, year=2023, MATH=(95, 100), ENG=(88, 100))
    )

    overall = service.get_lifetime_summary(school.asha.id)

    assert [r.class_number for r in overall.class_results] == [5, 6]
    assert overall.lifetime.total_obtained == Decimal("233")
    assert overall.lifetime.total_marks == Decimal("300")
    assert overall.lifetime.percentage == Decimal("77.67")
    assert overall.lifetime.grade == "B+"


def test_lifetime_summary_without_grades_is_not_found(db, school, clock):
    with pytest.raises(NotFoundError):
        GradingService(db, clock).get_lifetime_summary(school.ben.id)


def test_lifetime_summary_unknown_student_is_not_found(db, school, clock):
    with pytest.raises(NotFoundError):
        GradingService(db, clock).get_lifetime_summary(9999)


def test_find_stale_caches_reports_drifted_rows(db, school, clock):
    service = GradingService(db, clock)
    service.submit_yearly_grade(grade_request(school.asha.id, MATH=(95, 100), ENG=(88, 100)))
    service.submit_yearly_grade(grade_request(school.ben.id, MATH=(40, 100)))
    assert service.find_stale_caches() == []

    db.execute(
        update(StudentYearlyGrade)
        .where(StudentYearlyGrade.student_id == school.asha.id)
        .values(percentage=Decimal("12.34"))
    )

    [stale] = service.find_stale_caches()
    assert stale.student_id == school.asha.id
    assert stale.cached.percentage == Decimal("12.34")
    assert stale.recomputed.percentage == Decimal("91.50")


def test_fractional_marks_are_kept_at_stored_precision(db, school, clock):
    service = GradingService(db, clock)

    summary = service.submit_yearly_grade(
        grade_request(school.asha.id, MATH=(Decimal("33.333"), 100), ENG=(Decimal("20.005"), Decimal("49.999")))
    )

    assert summary.total_obtained == Decimal("53.34")
    assert summary.total_marks == Decimal("150.00")
    [grade] = service.get_student_grades(school.asha.id)
    assert grade.total_obtained == summary.total_obtained
    assert grade.percentage == summary.percentage
    assert service.find_stale_caches() == []


def test_total_marks_rounding_to_zero_is_rejected():
    with pytest.raises(ValueError):
        YearlyGradeCreate(
            student_id=1,
            class_number=5,
            subjects=[{"subject_id": "MATH", "obtained_marks": 0, "total_marks": Decimal("0.001")}],
        )
