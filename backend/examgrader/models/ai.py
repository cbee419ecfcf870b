"""AI grading request/response models"""

from pydantic import BaseModel, Field
from typing import Optional, List

from .job import GradingMode


class GradingRequest(BaseModel):
    student_label: str = "Anonymous"
    rubric_text: str = ""
    question_text: str = ""
    max_points: float = Field(gt=0)
    answer_text: str
    mode: GradingMode = "NEUTRAL"
    api_key: Optional[str] = None


class AIInlineComment(BaseModel):
    """Inline comment already reconciled against the answer text."""
    id: str
    start_index: int
    end_index: int
    text: str


class GradingResponse(BaseModel):
    """Fully validated model output. Invalid fields are defaulted, never propagated."""
    points_awarded: float = 0.0
    comment: str = ""
    overall_comment: str = ""
    inline_comments: List[AIInlineComment] = []
