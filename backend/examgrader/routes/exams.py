"""Exam lifecycle routes - publish, finalize, comparison stats."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from examgrader.config import logger, GradingConfig
from examgrader.deps import (
    get_current_user_id,
    get_grading_config,
    get_notification_sender,
    get_repository,
    grading_http_error,
)
from examgrader.errors import GradingError
from examgrader.models import FinalizeRequest
from examgrader.repository import GradingRepository
from examgrader.services.analytics import compute_comparison_stats
from examgrader.services.exams import load_exam, publish_exam
from examgrader.services.finalization import FinalizationService
from examgrader.services.notifications import NotificationSender
from examgrader.utils.serialization import serialize_doc

router = APIRouter(tags=["exams"])


@router.post("/exams/{exam_id}/publish")
async def publish(
    exam_id: str,
    user_id: str = Depends(get_current_user_id),
    repo: GradingRepository = Depends(get_repository),
):
    """Publish a DRAFT exam"""
    try:
        exam = await publish_exam(repo, exam_id, owner_uid=user_id)
        return serialize_doc(exam)
    except GradingError as e:
        raise grading_http_error(e)
    except Exception as e:
        logger.error(f"Error publishing exam {exam_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to publish exam: {str(e)}")


@router.post("/exams/{exam_id}/finalize")
async def finalize(
    exam_id: str,
    body: Optional[FinalizeRequest] = None,
    user_id: str = Depends(get_current_user_id),
    repo: GradingRepository = Depends(get_repository),
    sender: NotificationSender = Depends(get_notification_sender),
    config: GradingConfig = Depends(get_grading_config),
):
    """Lock all draft grades, e-mail students and mark the exam EVALUATED"""
    request_id = body.request_id if body else None
    try:
        service = FinalizationService(repo, sender, config)
        result = await service.finalize(exam_id, request_id=request_id, owner_uid=user_id)
        return result.model_dump()
    except GradingError as e:
        raise grading_http_error(e)
    except Exception as e:
        logger.error(f"Error finalizing exam {exam_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to finalize exam: {str(e)}")


@router.get("/exams/{exam_id}/comparison-stats")
async def comparison_stats(
    exam_id: str,
    user_id: str = Depends(get_current_user_id),
    repo: GradingRepository = Depends(get_repository),
):
    """Manual vs AI agreement statistics"""
    try:
        await load_exam(repo, exam_id, owner_uid=user_id)
        submissions = await repo.list_submissions(exam_id)
        questions = await repo.list_questions(exam_id)
        stats = compute_comparison_stats(submissions, questions)
        if stats is None:
            return {"message": "No submissions are available for comparison yet.", "stats": None}
        return {"stats": stats}
    except GradingError as e:
        raise grading_http_error(e)
