"""Exam-related Pydantic models"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, Literal
from datetime import datetime, timezone

ExamState = Literal["DRAFT", "PUBLISHED", "EVALUATED"]


class Question(BaseModel):
    """A single exam question. Immutable once the exam is published."""
    model_config = ConfigDict(extra="ignore")
    question_id: str
    exam_id: str
    order: int = 0
    text: str = ""
    max_points: int = Field(gt=0)
    rubric_text: str = ""


class Exam(BaseModel):
    model_config = ConfigDict(extra="ignore")
    exam_id: str
    owner_uid: str
    title: str = ""
    state: ExamState = "DRAFT"  # DRAFT -> PUBLISHED -> EVALUATED
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    published_at: Optional[datetime] = None
    finalized_at: Optional[datetime] = None
    questions_count: Optional[int] = None
    max_total_points: Optional[float] = None


class FinalizeResult(BaseModel):
    """Outcome of finalizing an exam; cached verbatim by the idempotency ledger."""
    success: bool = True
    message: str = "Finalization complete."
    sent: int = 0
    skipped: int = 0


class FinalizeRequest(BaseModel):
    request_id: Optional[str] = None
