"""Pydantic models for Exam Grader"""

from .exam import Exam, ExamState, Question, FinalizeResult, FinalizeRequest
from .submission import Answer, Submission, GradeState, DefinitiveSource
from .grade import (
    InlineComment, AnswerGrade, Grade, CommentSource,
    ManualInlineCommentInput, ManualGradeItem, SaveDraftRequest, SetSourceRequest,
)
from .job import GradingJob, GradingJobCreate, GradingMode, JobStatus, FailedSubmission
from .ai import GradingRequest, GradingResponse, AIInlineComment
