from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from gradebook.core.clock import FixedClock, get_clock
from gradebook.core.database import Base, get_db
from gradebook.models import ClassSubjectRoster, ExamSchedule, Examination, Student

CLASS_FIVE_ID = 501
CLASS_SIX_ID = 601
MARKER_ID = 77


@dataclass
class School:
    asha: Student
    ben: Student
    chen: Student
    dev: Student
    examination: Examination
    math_schedule: ExamSchedule
    english_schedule: ExamSchedule


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = Session(bind=engine, expire_on_commit=False, autoflush=False)
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def school(db) -> School:
    asha = Student(student_name="Asha", class_id=CLASS_FIVE_ID, class_number=5)
    ben = Student(student_name="Ben", class_id=CLASS_FIVE_ID, class_number=5)
    chen = Student(student_name="Chen", class_id=CLASS_FIVE_ID, class_number=5)
    dev = Student(student_name="Dev", class_id=CLASS_SIX_ID, class_number=6)
    examination = Examination(name="Mid-Term 2024", exam_type="mid_term", academic_year=2024)
    db.add_all([asha, ben, chen, dev, examination])
    db.add_all([
        ClassSubjectRoster(class_number=5, subject_ids=["MATH", "ENG"]),
        ClassSubjectRoster(class_number=6, subject_ids=["MATH", "SCI"]),
    ])
    db.flush()

    math_schedule = ExamSchedule(
        examination_id=examination.id,
        class_id=CLASS_FIVE_ID,
        class_number=5,
        subject_id="MATH",
        subject_name="Mathematics",
        exam_date=date(2024, 5, 20),
        total_marks=100,
        passing_marks=40,
        invigilators=[MARKER_ID],
    )
    english_schedule = ExamSchedule(
        examination_id=examination.id,
        class_id=CLASS_FIVE_ID,
        class_number=5,
        subject_id="ENG",
        subject_name="English",
        exam_date=date(2024, 5, 21),
        total_marks=50,
        passing_marks=20,
        invigilators=[MARKER_ID],
    )
    db.add_all([math_schedule, english_schedule])
    db.flush()

    return School(
        asha=asha,
        ben=ben,
        chen=chen,
        dev=dev,
        examination=examination,
        math_schedule=math_schedule,
        english_schedule=english_schedule,
    )


@pytest.fixture
def client(db, clock):
    from gradebook.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    yield TestClient(app)
    app.dependency_overrides.clear()
