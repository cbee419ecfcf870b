"""Submission routes - listing, detail, manual drafts and definitive source."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from examgrader.config import logger
from examgrader.deps import get_current_user_id, get_repository, grading_http_error
from examgrader.errors import GradingError, NotFoundError
from examgrader.models import SaveDraftRequest, SetSourceRequest
from examgrader.repository import GradingRepository
from examgrader.services import submissions as submission_views
from examgrader.services.aggregation import GradingAggregator
from examgrader.services.exams import load_exam, assert_exam_mutable
from examgrader.services.manual_grading import save_draft
from examgrader.services.resolver import DefinitiveSourceResolver
from examgrader.utils.serialization import serialize_doc

router = APIRouter(tags=["submissions"])


@router.get("/exams/{exam_id}/submissions")
async def list_submissions(
    exam_id: str,
    limit: int = Query(default=20, ge=1, le=50),
    cursor: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    repo: GradingRepository = Depends(get_repository),
):
    """List submissions, newest first"""
    try:
        return await submission_views.list_submissions(repo, exam_id, limit=limit, cursor=cursor, owner_uid=user_id)
    except GradingError as e:
        raise grading_http_error(e)


@router.get("/exams/{exam_id}/submissions/{submission_id}")
async def get_submission(
    exam_id: str,
    submission_id: str,
    user_id: str = Depends(get_current_user_id),
    repo: GradingRepository = Depends(get_repository),
):
    """Submission with both grading tracks per question"""
    try:
        return await submission_views.get_submission_detail(repo, exam_id, submission_id, owner_uid=user_id)
    except GradingError as e:
        raise grading_http_error(e)


@router.put("/exams/{exam_id}/submissions/{submission_id}/draft")
async def save_submission_draft(
    exam_id: str,
    submission_id: str,
    body: SaveDraftRequest,
    user_id: str = Depends(get_current_user_id),
    repo: GradingRepository = Depends(get_repository),
):
    """Save the professor's manual grading draft"""
    try:
        return await save_draft(
            repo, exam_id, submission_id, body.items,
            manual_comments_overall=body.manual_comments_overall,
            owner_uid=user_id,
        )
    except GradingError as e:
        raise grading_http_error(e)
    except Exception as e:
        logger.error(f"Error saving draft for {submission_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to save draft: {str(e)}")


@router.put("/exams/{exam_id}/submissions/{submission_id}/source")
async def set_definitive_source(
    exam_id: str,
    submission_id: str,
    body: SetSourceRequest,
    user_id: str = Depends(get_current_user_id),
    repo: GradingRepository = Depends(get_repository),
):
    """Choose whether the manual or AI total is the grade"""
    try:
        resolver = DefinitiveSourceResolver(repo)
        submission = await resolver.set_source(exam_id, submission_id, body.source, owner_uid=user_id)
        return {"success": True, "submission": serialize_doc(submission)}
    except GradingError as e:
        raise grading_http_error(e)


@router.post("/exams/{exam_id}/submissions/{submission_id}/recompute-totals")
async def recompute_totals(
    exam_id: str,
    submission_id: str,
    user_id: str = Depends(get_current_user_id),
    repo: GradingRepository = Depends(get_repository),
):
    """Re-derive both track totals from the per-question grades"""
    try:
        exam = await load_exam(repo, exam_id, owner_uid=user_id)
        assert_exam_mutable(exam)
        submission = await repo.get_submission(submission_id)
        if not submission or submission.exam_id != exam_id:
            raise NotFoundError("Submission not found")
        manual_total, ai_total = await GradingAggregator(repo).recompute_submission_totals(exam_id, submission_id)
        return {"manual_total_points": manual_total, "ai_total_points": ai_total}
    except GradingError as e:
        raise grading_http_error(e)
