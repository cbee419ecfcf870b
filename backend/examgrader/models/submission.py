"""Submission and answer models"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, Literal
from datetime import datetime, timezone

GradeState = Literal["UNGRADED", "GRADED_DRAFT", "GRADED_FINAL"]
DefinitiveSource = Literal["MANUAL", "AI"]


class Answer(BaseModel):
    """Student answer text for one question. Immutable once submitted."""
    model_config = ConfigDict(extra="ignore")
    submission_id: str
    question_id: str
    text: str = ""


class Submission(BaseModel):
    """
    Submission document. The totals and definitive source are a denormalized
    mirror of the Grade so listings don't need a join.
    """
    model_config = ConfigDict(extra="ignore")
    submission_id: str
    exam_id: str
    respondent_email: Optional[str] = None
    respondent_name: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    grade_state: GradeState = "UNGRADED"
    total_points: Optional[float] = None
    definitive_source: Optional[DefinitiveSource] = None
    manual_total_points: Optional[float] = None
    ai_total_points: Optional[float] = None
