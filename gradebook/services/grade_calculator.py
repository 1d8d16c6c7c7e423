"""Percentage, letter grade and rollup calculations.

Every grade in the system is produced here. Percentages are ``Decimal``
values rounded half-up to two places; a zero total yields ``0.00``.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0")

# Evaluated top-down, first match wins
GRADE_THRESHOLDS: tuple[tuple[int, str], ...] = (
    (90, "A+"),
    (80, "A"),
    (70, "B+"),
    (60, "B"),
    (50, "C"),
    (40, "D"),
)
FAILING_GRADE = "F"


@dataclass(frozen=True)
class Rollup:
    """Summed marks with the derived percentage and grade."""

    total_obtained: Decimal
    total_marks: Decimal
    percentage: Decimal
    grade: str


def _to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps floats like 0.1 from dragging in binary noise
    return Decimal(str(value))


def round_marks(value) -> Decimal:
    """Round a mark to the two places the store keeps."""
    return _to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def percentage(obtained, total) -> Decimal:
    """Return ``obtained / total * 100`` rounded to two places."""
    total = _to_decimal(total)
    if total == 0:
        return ZERO.quantize(TWO_PLACES)
    value = _to_decimal(obtained) / total * 100
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def letter_grade(pct) -> str:
    """Map a percentage to its letter grade."""
    pct = _to_decimal(pct)
    for threshold, grade in GRADE_THRESHOLDS:
        if pct >= threshold:
            return grade
    return FAILING_GRADE


def format_percentage(pct: Decimal) -> str:
    """Render a percentage the way results store it, e.g. ``"85.50"``."""
    return f"{pct.quantize(TWO_PLACES, rounding=ROUND_HALF_UP):.2f}"


def pooled(pairs: Iterable[tuple]) -> Rollup:
    """Sum ``(obtained, total)`` pairs and grade the pooled percentage.

    The result weights each pair by its total marks; it is not the mean
    of the individual percentages.
    """
    total_obtained = ZERO
    total_marks = ZERO
    for obtained, total in pairs:
        total_obtained += _to_decimal(obtained)
        total_marks += _to_decimal(total)
    pct = percentage(total_obtained, total_marks)
    return Rollup(
        total_obtained=total_obtained,
        total_marks=total_marks,
        percentage=pct,
        grade=letter_grade(pct),
    )


def rollup(subjects: Iterable) -> Rollup:
    """Roll up decoded subject marks (objects with obtained/total marks)."""
    return pooled((s.obtained_marks, s.total_marks) for s in subjects)


def combine(rollups: Iterable[Rollup]) -> Rollup:
    """Fold several rollups into one by summing their totals."""
    return pooled((r.total_obtained, r.total_marks) for r in rollups)
