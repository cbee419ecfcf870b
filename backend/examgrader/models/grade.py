"""Grade-related Pydantic models: the manual and AI scoring tracks."""

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Literal
from datetime import datetime, timezone

from .submission import DefinitiveSource

CommentSource = Literal["MANUAL", "AI"]
GradeRecordState = Literal["GRADED_DRAFT", "GRADED_FINAL"]


class InlineComment(BaseModel):
    """Annotation anchored to [start_index, end_index) of the answer text."""
    model_config = ConfigDict(extra="ignore")
    id: str
    start_index: int = Field(ge=0)
    end_index: int = Field(gt=0)
    text: str
    source: CommentSource
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class AnswerGrade(BaseModel):
    """
    Per (submission, question) grade record. The manual and AI tracks are
    written by different flows and never overwrite each other.
    """
    model_config = ConfigDict(extra="ignore")
    submission_id: str
    question_id: str

    # Manual track
    manual_points: Optional[float] = None
    manual_comment: Optional[str] = None
    manual_inline_comments: List[InlineComment] = []

    # AI track
    ai_suggested_points: Optional[float] = None
    ai_suggested_comment: Optional[str] = None
    ai_inline_comments: List[InlineComment] = []


class Grade(BaseModel):
    """One per submission; aggregates both tracks and the chosen source."""
    model_config = ConfigDict(extra="ignore")
    submission_id: str
    exam_id: str
    state: GradeRecordState = "GRADED_DRAFT"
    manual_total_points: Optional[float] = None
    ai_total_points: Optional[float] = None
    manual_comments_overall: Optional[str] = None
    ai_comments_overall: Optional[str] = None
    definitive_source: Optional[DefinitiveSource] = None
    updated_at: Optional[datetime] = None
    finalized_at: Optional[datetime] = None

    def total_for(self, source: Optional[str]) -> Optional[float]:
        if source == "MANUAL":
            return self.manual_total_points
        if source == "AI":
            return self.ai_total_points
        return None


# ============== MANUAL DRAFT INPUT ==============

class ManualInlineCommentInput(BaseModel):
    id: str
    start_index: int = Field(ge=0)
    end_index: int = Field(ge=0)
    text: str = Field(max_length=1000)


class ManualGradeItem(BaseModel):
    question_id: str
    points_awarded: float = Field(ge=0)
    comment: Optional[str] = Field(default=None, max_length=4000)
    inline_comments: List[ManualInlineCommentInput] = []


class SaveDraftRequest(BaseModel):
    items: List[ManualGradeItem]
    manual_comments_overall: Optional[str] = Field(default=None, max_length=8000)


class SetSourceRequest(BaseModel):
    source: DefinitiveSource
