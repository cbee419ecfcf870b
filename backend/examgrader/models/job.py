"""Grading job models"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Literal
from datetime import datetime, timezone

GradingMode = Literal["NEUTRAL", "STRICT", "LENIENT"]
JobStatus = Literal["PENDING", "PROCESSING", "COMPLETED", "FAILED"]


class FailedSubmission(BaseModel):
    submission_id: str
    error: str


class GradingJob(BaseModel):
    """
    A "generate AI suggestions" request for one exam.
    PENDING -> PROCESSING -> COMPLETED | FAILED, consumed exactly once.
    """
    model_config = ConfigDict(extra="ignore")
    job_id: str
    exam_id: str
    owner_uid: str
    status: JobStatus = "PENDING"
    mode: GradingMode = "NEUTRAL"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    graded_submissions: int = 0
    failed_submissions: List[FailedSubmission] = []


class GradingJobCreate(BaseModel):
    mode: GradingMode = "NEUTRAL"
