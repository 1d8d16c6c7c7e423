"""Create evaluation tables.

Revision ID: 0001_evaluation_tables
Revises:
Create Date: 2026-10-19

Creates rosters, yearly grades, examinations, schedules, results and
bulk marking sessions. The (exam_schedule_id, student_id) unique
constraint and the (student_id, class_number, year) primary key are the
conflict targets of the result and grade upserts.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_evaluation_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


resultstatus = postgresql.ENUM('PASS', 'FAIL', 'ABSENT', name='resultstatus', create_type=False)


def timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create evaluation tables."""
    resultstatus_type = postgresql.ENUM('PASS', 'FAIL', 'ABSENT', name='resultstatus')
    resultstatus_type.create(op.get_bind(), checkfirst=True)

    op.create_table(
        'students',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('student_name', sa.String(255), nullable=False),
        sa.Column('class_id', sa.BigInteger(), nullable=False),
        sa.Column('class_number', sa.Integer(), nullable=False),
        sa.Column('section', sa.String(50), nullable=True),
        *timestamps(),
    )
    op.create_index('ix_students_class_id', 'students', ['class_id'])

    op.create_table(
        'class_subjects',
        sa.Column('class_number', sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column('subject_ids', postgresql.JSONB(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'student_grades',
        sa.Column('student_id', sa.BigInteger(), sa.ForeignKey('students.id', ondelete='CASCADE'), nullable=False),
        sa.Column('class_number', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('subjects', sa.Text(), nullable=False),
        sa.Column('total_obtained', sa.DECIMAL(10, 2), nullable=False, server_default='0'),
        sa.Column('total_marks', sa.DECIMAL(10, 2), nullable=False, server_default='0'),
        sa.Column('percentage', sa.DECIMAL(5, 2), nullable=False, server_default='0'),
        sa.Column('grade', sa.String(5), nullable=False, server_default='F'),
        *timestamps(),
        sa.PrimaryKeyConstraint('student_id', 'class_number', 'year'),
    )

    op.create_table(
        'examinations',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('exam_type', sa.String(50), nullable=False),
        sa.Column('academic_year', sa.Integer(), nullable=False),
        sa.Column('term', sa.String(20), nullable=True),
        *timestamps(),
    )
    op.create_index('ix_examinations_academic_year', 'examinations', ['academic_year'])

    op.create_table(
        'exam_schedules',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('examination_id', sa.BigInteger(), sa.ForeignKey('examinations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('class_id', sa.BigInteger(), nullable=False),
        sa.Column('class_number', sa.Integer(), nullable=False),
        sa.Column('subject_id', sa.String(64), nullable=False),
        sa.Column('subject_name', sa.String(255), nullable=False),
        sa.Column('exam_date', sa.Date(), nullable=False),
        sa.Column('total_marks', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('passing_marks', sa.Integer(), nullable=False, server_default='40'),
        sa.Column('invigilators', postgresql.JSONB(), nullable=False, server_default='[]'),
        *timestamps(),
    )
    op.create_index('ix_exam_schedules_examination_id', 'exam_schedules', ['examination_id'])
    op.create_index('ix_exam_schedules_class_id', 'exam_schedules', ['class_id'])

    op.create_table(
        'exam_results',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('exam_schedule_id', sa.BigInteger(), sa.ForeignKey('exam_schedules.id', ondelete='CASCADE'), nullable=False),
        sa.Column('examination_id', sa.BigInteger(), sa.ForeignKey('examinations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('student_id', sa.BigInteger(), sa.ForeignKey('students.id', ondelete='CASCADE'), nullable=False),
        sa.Column('class_id', sa.BigInteger(), nullable=False),
        sa.Column('class_number', sa.Integer(), nullable=False),
        sa.Column('subject_id', sa.String(64), nullable=False),
        sa.Column('obtained_marks', sa.DECIMAL(10, 2), nullable=False),
        sa.Column('total_marks', sa.Integer(), nullable=False),
        sa.Column('percentage', sa.String(10), nullable=False),
        sa.Column('grade', sa.String(5), nullable=False),
        sa.Column('status', resultstatus, nullable=False),
        sa.Column('marked_by', sa.BigInteger(), nullable=False),
        sa.Column('marked_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('remarks', sa.Text(), nullable=True),
        *timestamps(),
        sa.UniqueConstraint('exam_schedule_id', 'student_id', name='uq_exam_result_schedule_student'),
    )
    op.create_index('ix_exam_results_exam_schedule_id', 'exam_results', ['exam_schedule_id'])
    op.create_index('ix_exam_results_examination_id', 'exam_results', ['examination_id'])
    op.create_index('ix_exam_results_student_id', 'exam_results', ['student_id'])
    op.create_index('ix_exam_results_class_id', 'exam_results', ['class_id'])

    op.create_table(
        'bulk_marking_sessions',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('exam_schedule_id', sa.BigInteger(), sa.ForeignKey('exam_schedules.id', ondelete='CASCADE'), nullable=False),
        sa.Column('examination_id', sa.BigInteger(), nullable=False),
        sa.Column('class_id', sa.BigInteger(), nullable=False),
        sa.Column('class_number', sa.Integer(), nullable=False),
        sa.Column('subject_id', sa.String(64), nullable=False),
        sa.Column('total_students', sa.Integer(), nullable=False),
        sa.Column('students_marked', sa.Integer(), nullable=False),
        sa.Column('students_absent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('marked_by', sa.BigInteger(), nullable=False),
        sa.Column('marked_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_bulk_marking_sessions_exam_schedule_id', 'bulk_marking_sessions', ['exam_schedule_id'])
    op.create_index('ix_bulk_marking_sessions_marked_at', 'bulk_marking_sessions', ['marked_at'])


def downgrade() -> None:
    """Drop evaluation tables."""
    op.drop_table('bulk_marking_sessions')
    op.drop_table('exam_results')
    op.drop_table('exam_schedules')
    op.drop_table('examinations')
    op.drop_table('student_grades')
    op.drop_table('class_subjects')
    op.drop_table('students')
    postgresql.ENUM(name='resultstatus').drop(op.get_bind(), checkfirst=True)
