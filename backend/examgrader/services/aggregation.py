"""
AI total aggregation.

The aggregator owns ai_total_points on the Grade and its Submission mirror.
It never writes definitive_source; that belongs to the definitive-source
resolver, so a new AI run can't change a chosen grade. Drift repair keeps
submission.total_points equal to the chosen track's total.
"""

from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from examgrader.config import logger
from examgrader.errors import InvalidStateError, NotFoundError
from examgrader.models import AnswerGrade
from examgrader.repository import GradingRepository, WriteBatch, GRADES, SUBMISSIONS


def sum_points(points: Iterable[Optional[float]]) -> Optional[float]:
    """Sum of the points that exist; None when there are none."""
    present = [p for p in points if p is not None]
    if not present:
        return None
    return float(sum(present))


def rederive_totals(answer_grades: List[AnswerGrade]) -> Tuple[Optional[float], Optional[float]]:
    """(manual_total, ai_total) recomputed from the full AnswerGrade set."""
    manual_total = sum_points(ag.manual_points for ag in answer_grades)
    ai_total = sum_points(ag.ai_suggested_points for ag in answer_grades)
    return manual_total, ai_total


class GradingAggregator:

    def __init__(self, repo: GradingRepository):
        self.repo = repo

    async def apply_ai_total(self, exam_id: str, submission_id: str, ai_total: Optional[float],
                             ai_comments_overall: Optional[str] = None) -> bool:
        """
        Write the AI total to Grade and Submission in one batch.
        Returns False (nothing written) when no answer produced AI points.
        """
        if ai_total is None:
            logger.warning(f"No AI points produced for submission {submission_id}; total not written")
            return False

        submission = await self.repo.get_submission(submission_id)
        if not submission:
            raise NotFoundError("Submission not found")
        grade = await self.repo.get_grade(submission_id)

        now = datetime.now(timezone.utc).isoformat()
        grade_fields = {
            "exam_id": exam_id,
            "ai_total_points": ai_total,
            "updated_at": now,
        }
        if ai_comments_overall is not None:
            grade_fields["ai_comments_overall"] = ai_comments_overall
        if grade is None:
            grade_fields["state"] = "GRADED_DRAFT"

        submission_fields = {"ai_total_points": ai_total}
        if submission.grade_state == "UNGRADED":
            submission_fields["grade_state"] = "GRADED_DRAFT"

        batch = WriteBatch()
        batch.set(GRADES, {"submission_id": submission_id}, grade_fields, upsert=True)
        batch.set(SUBMISSIONS, {"submission_id": submission_id}, submission_fields)
        await self.repo.commit(batch)

        logger.info(f"Submission {submission_id} AI total = {ai_total}")
        return True

    async def recompute_submission_totals(self, exam_id: str, submission_id: str):
        """Rewrite both track totals from the AnswerGrade set to repair drift."""
        answer_grades = await self.repo.list_answer_grades(submission_id)
        manual_total, ai_total = rederive_totals(answer_grades)
        grade = await self.repo.get_grade(submission_id)
        if grade is None:
            raise NotFoundError("Grade not found")

        totals = {"manual_total_points": manual_total, "ai_total_points": ai_total}
        submission_fields = dict(totals)
        source = grade.definitive_source
        if source:
            chosen_total = manual_total if source == "MANUAL" else ai_total
            if chosen_total is None:
                raise InvalidStateError(
                    f"Recomputed {source} total is empty but {source} is the definitive source"
                )
            submission_fields["total_points"] = chosen_total

        batch = WriteBatch()
        batch.set(GRADES, {"submission_id": submission_id},
                  {**totals, "updated_at": datetime.now(timezone.utc).isoformat()})
        batch.set(SUBMISSIONS, {"submission_id": submission_id}, submission_fields)
        await self.repo.commit(batch)

        if (manual_total, ai_total) != (grade.manual_total_points, grade.ai_total_points):
            logger.warning(
                f"Repaired total drift on {submission_id} (exam {exam_id}): "
                f"manual {grade.manual_total_points} -> {manual_total}, ai {grade.ai_total_points} -> {ai_total}"
            )
        return manual_total, ai_total
