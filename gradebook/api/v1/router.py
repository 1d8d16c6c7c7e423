"""Main API router aggregating all module routers."""

from fastapi import APIRouter

from gradebook.api.v1.endpoints import exams, grading
from gradebook.schemas.common import ERROR_RESPONSES

api_router = APIRouter(responses=ERROR_RESPONSES)

# Rosters and yearly grades
api_router.include_router(
    grading.router,
    prefix="/grading",
    tags=["Grading"],
)

# Exam marking, results and summaries
api_router.include_router(
    exams.router,
    prefix="/exams",
    tags=["Exams"],
)
