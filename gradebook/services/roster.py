"""Class roster lookup, administration and subject validation."""

import logging
from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from gradebook.core.clock import Clock, get_clock
from gradebook.core.exceptions import NotFoundError, ValidationError
from gradebook.models.grading import ClassSubjectRoster
from gradebook.schemas.grading import RosterResponse, RosterUpdate, SubjectMark

logger = logging.getLogger(__name__)


def _duplicates(values: Sequence[str]) -> list[str]:
    seen: set[str] = set()
    dupes: list[str] = []
    for value in values:
        if value in seen and value not in dupes:
            dupes.append(value)
        seen.add(value)
    return dupes


class RosterService:
    """Class subject roster service."""

    def __init__(self, db: Session, clock: Clock | None = None):
        self.db = db
        self.clock = clock or get_clock()

    def _get_roster(self, class_number: int) -> ClassSubjectRoster:
        result = self.db.execute(
            select(ClassSubjectRoster)
            .where(ClassSubjectRoster.class_number == class_number)
            .execution_options(populate_existing=True)
        )
        roster = result.scalar_one_or_none()
        if not roster:
            raise NotFoundError("Class roster", str(class_number))
        return roster

    def get_roster(self, class_number: int) -> RosterResponse:
        """Get the subjects configured for a class."""
        return RosterResponse.model_validate(self._get_roster(class_number))

    def update_roster(self, request: RosterUpdate) -> RosterResponse:
        """Replace the subject list of an existing roster.

        Rosters are provisioned elsewhere; a missing class is an error
        rather than an implicit create.
        """
        dupes = _duplicates(request.subject_ids)
        if dupes:
            raise ValidationError(
                f"Duplicate subjects for class {request.class_number}: {', '.join(dupes)}",
                details={"subject_ids": dupes},
            )

        roster = self._get_roster(request.class_number)
        roster.subject_ids = list(request.subject_ids)
        roster.updated_at = self.clock.now()
        self.db.flush()

        logger.info(
            f"Roster for class {request.class_number} set to {len(roster.subject_ids)} subjects"
        )
        return RosterResponse.model_validate(roster)

    def validate_subjects(
        self,
        class_number: int,
        subjects: list[SubjectMark],
    ) -> list[SubjectMark]:
        """Check submitted subject marks against the class roster.

        Returns the marks unchanged. Any subject outside the roster, or
        repeated in the submission, rejects the whole submission.
        """
        roster = self._get_roster(class_number)
        submitted = [s.subject_id for s in subjects]

        dupes = _duplicates(submitted)
        if dupes:
            raise ValidationError(
                f"Duplicate subjects in submission: {', '.join(dupes)}",
                details={"subject_ids": dupes},
            )

        allowed = set(roster.subject_ids)
        invalid = [subject_id for subject_id in submitted if subject_id not in allowed]
        if invalid:
            logger.warning(f"Rejected grade for class {class_number}: subjects {invalid} not in roster")
            raise ValidationError(
                f"Invalid subjects for class {class_number}: {', '.join(invalid)}",
                details={"subject_ids": invalid},
            )
        return subjects
