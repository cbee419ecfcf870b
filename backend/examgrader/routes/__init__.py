"""API route registration."""

from fastapi import APIRouter
from .exams import router as exams_router
from .submissions import router as submissions_router
from .grading import router as grading_router


def register_all_routes(api_router: APIRouter):
    """Include all route modules on the main API router."""
    api_router.include_router(exams_router)
    api_router.include_router(submissions_router)
    api_router.include_router(grading_router)
