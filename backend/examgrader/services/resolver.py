"""
Definitive-source resolver - decides whether the manual or AI total is the grade.
"""

from datetime import datetime, timezone
from typing import Optional, Tuple

from examgrader.config import logger
from examgrader.errors import ConflictError, GradingValidationError, InvalidStateError, NotFoundError
from examgrader.models import Grade, Submission
from examgrader.repository import GradingRepository, WriteBatch, GRADES, SUBMISSIONS
from examgrader.services.exams import load_exam, assert_exam_mutable

VALID_SOURCES = ("MANUAL", "AI")


def resolve_final(grade: Optional[Grade], submission: Submission) -> Tuple[Optional[str], Optional[float]]:
    """
    (source, points) used at finalization.

    An explicit choice with a total wins. Otherwise human judgment comes first:
    manual total, then AI total, then any legacy total_points on the submission
    (source stays None), then nothing.
    """
    if grade is not None:
        explicit = grade.definitive_source
        if explicit and grade.total_for(explicit) is not None:
            return explicit, grade.total_for(explicit)
        if grade.manual_total_points is not None:
            return "MANUAL", grade.manual_total_points
        if grade.ai_total_points is not None:
            return "AI", grade.ai_total_points
    if submission.total_points is not None:
        return None, submission.total_points
    return None, None


class DefinitiveSourceResolver:

    def __init__(self, repo: GradingRepository):
        self.repo = repo

    async def set_source(self, exam_id: str, submission_id: str, source: str,
                         owner_uid: Optional[str] = None) -> Submission:
        """Explicitly choose the definitive track for one submission."""
        if source not in VALID_SOURCES:
            raise GradingValidationError(f"Invalid source '{source}'; expected MANUAL or AI")

        exam = await load_exam(self.repo, exam_id, owner_uid)
        assert_exam_mutable(exam)

        submission = await self.repo.get_submission(submission_id)
        if not submission or submission.exam_id != exam_id:
            raise NotFoundError("Submission not found")
        if submission.grade_state == "GRADED_FINAL":
            raise ConflictError("Submission grade is already final")

        grade = await self.repo.get_grade(submission_id)
        if grade is None:
            raise NotFoundError("No grade exists for this submission yet")

        total = grade.total_for(source)
        if total is None:
            raise InvalidStateError(f"No {source} total available for this submission")

        submission_fields = {"definitive_source": source, "total_points": total}
        if submission.grade_state == "UNGRADED":
            submission_fields["grade_state"] = "GRADED_DRAFT"

        batch = WriteBatch()
        batch.set(GRADES, {"submission_id": submission_id}, {
            "definitive_source": source,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        })
        batch.set(SUBMISSIONS, {"submission_id": submission_id}, submission_fields)
        await self.repo.commit(batch)

        logger.info(f"Definitive source for {submission_id} set to {source} ({total} pts)")
        return submission.model_copy(update=submission_fields)
