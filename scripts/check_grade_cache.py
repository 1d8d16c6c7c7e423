"""Report yearly grade rows whose cached summary drifted from their raw marks."""
from gradebook.core.database import SessionLocal
from gradebook.services.grading import GradingService

with SessionLocal() as session:
    stale = GradingService(session).find_stale_caches()

    if not stale:
        print("All cached grade summaries match their subject marks - good!")

    for row in stale:
        print(
            f"student={row.student_id} class={row.class_number} year={row.year}: "
            f"cached {row.cached.total_obtained}/{row.cached.total_marks} "
            f"{row.cached.percentage}% {row.cached.grade} -> "
            f"recomputed {row.recomputed.total_obtained}/{row.recomputed.total_marks} "
            f"{row.recomputed.percentage}% {row.recomputed.grade}"
        )
    print(f"{len(stale)} stale rows found")
