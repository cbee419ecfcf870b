"""AI grading job routes and the per-user model credential."""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from examgrader.config import logger
from examgrader.deps import get_current_user_id, get_repository, grading_http_error
from examgrader.errors import GradingError
from examgrader.models import GradingJobCreate
from examgrader.repository import GradingRepository
from examgrader.services.grading_jobs import create_grading_job
from examgrader.utils.serialization import serialize_doc

router = APIRouter(tags=["grading"])


class UserSettingsUpdate(BaseModel):
    gemini_api_key: Optional[str] = None


@router.post("/exams/{exam_id}/grading-jobs", status_code=202)
async def schedule_ai_grading(
    exam_id: str,
    body: Optional[GradingJobCreate] = None,
    user_id: str = Depends(get_current_user_id),
    repo: GradingRepository = Depends(get_repository),
):
    """Schedule AI suggestions for every ungraded submission of the exam"""
    mode = body.mode if body else "NEUTRAL"
    try:
        job = await create_grading_job(repo, exam_id, user_id, mode)
        return {
            "job_id": job.job_id,
            "status": job.status,
            "message": "AI suggestion generation has been scheduled. Use job_id to check progress.",
        }
    except GradingError as e:
        raise grading_http_error(e)
    except Exception as e:
        logger.error(f"=== SCHEDULE AI GRADING ERROR === {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to start grading job: {str(e)}")


@router.get("/grading-jobs/{job_id}")
async def get_grading_job_status(
    job_id: str,
    user_id: str = Depends(get_current_user_id),
    repo: GradingRepository = Depends(get_repository),
):
    """Poll grading job status"""
    job = await repo.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    if job.owner_uid != user_id:
        raise HTTPException(status_code=403, detail="Access denied")
    return serialize_doc(job)


@router.get("/user/settings")
async def get_user_settings(
    user_id: str = Depends(get_current_user_id),
    repo: GradingRepository = Depends(get_repository),
):
    """Whether the caller has a model API key configured (the key is never returned)"""
    api_key = await repo.get_user_api_key(user_id)
    return {"has_api_key": bool(api_key)}


@router.put("/user/settings")
async def update_user_settings(
    body: UserSettingsUpdate,
    user_id: str = Depends(get_current_user_id),
    repo: GradingRepository = Depends(get_repository),
):
    """Store or clear the caller's model API key"""
    api_key = (body.gemini_api_key or "").strip() or None
    await repo.set_user_api_key(user_id, api_key, datetime.now(timezone.utc).isoformat())
    logger.info(f"Updated model API key for user {user_id} (configured: {bool(api_key)})")
    return {"has_api_key": bool(api_key)}
