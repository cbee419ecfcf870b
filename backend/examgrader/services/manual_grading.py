"""
Manual grading - saves a professor's draft on the manual track.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional

from examgrader.config import logger
from examgrader.errors import ConflictError, GradingValidationError, NotFoundError
from examgrader.models import ManualGradeItem, InlineComment
from examgrader.repository import GradingRepository, WriteBatch, ANSWER_GRADES, GRADES, SUBMISSIONS
from examgrader.services.aggregation import sum_points
from examgrader.services.exams import load_exam, assert_exam_mutable


def _manual_inline_comments(item: ManualGradeItem, answer_text: str, now: datetime) -> List[Dict]:
    comments = []
    seen_ids = set()
    for ic in item.inline_comments:
        if not (0 <= ic.start_index < ic.end_index <= len(answer_text)):
            raise GradingValidationError(
                f"Inline comment {ic.id} range [{ic.start_index}, {ic.end_index}) "
                f"is outside the answer to question {item.question_id}"
            )
        if ic.id in seen_ids:
            raise GradingValidationError(f"Duplicate inline comment id {ic.id}")
        seen_ids.add(ic.id)
        comment = InlineComment(
            id=ic.id,
            start_index=ic.start_index,
            end_index=ic.end_index,
            text=ic.text,
            source="MANUAL",
            created_at=now,
        )
        comments.append({**comment.model_dump(), "created_at": now.isoformat()})
    return comments


async def save_draft(
    repo: GradingRepository,
    exam_id: str,
    submission_id: str,
    items: List[ManualGradeItem],
    manual_comments_overall: Optional[str] = None,
    owner_uid: Optional[str] = None,
) -> Dict:
    """
    Write the manual track for the given questions and re-derive the manual total.

    The manual total is selected as definitive unless the professor explicitly
    chose the AI track before.
    """
    exam = await load_exam(repo, exam_id, owner_uid)
    assert_exam_mutable(exam)

    submission = await repo.get_submission(submission_id)
    if not submission or submission.exam_id != exam_id:
        raise NotFoundError("Submission not found")
    if submission.grade_state == "GRADED_FINAL":
        raise ConflictError("Submission grade is already final")

    questions = {q.question_id: q for q in await repo.list_questions(exam_id)}
    answers = {a.question_id: a.text for a in await repo.list_answers(submission_id)}
    manual_points = {ag.question_id: ag.manual_points for ag in await repo.list_answer_grades(submission_id)}

    now = datetime.now(timezone.utc)
    batch = WriteBatch()

    for item in items:
        question = questions.get(item.question_id)
        if not question:
            raise GradingValidationError(f"Invalid question_id provided: {item.question_id}")

        points = max(0.0, min(float(item.points_awarded), float(question.max_points)))
        manual_points[item.question_id] = points

        batch.set(ANSWER_GRADES, {"submission_id": submission_id, "question_id": item.question_id}, {
            "manual_points": points,
            "manual_comment": item.comment or None,
            "manual_inline_comments": _manual_inline_comments(item, answers.get(item.question_id, ""), now),
        }, upsert=True)

    manual_total = sum_points(manual_points.values())

    grade = await repo.get_grade(submission_id)
    grade_fields = {
        "exam_id": exam_id,
        "state": "GRADED_DRAFT",
        "manual_total_points": manual_total,
        "manual_comments_overall": manual_comments_overall or None,
        "updated_at": now.isoformat(),
    }
    submission_fields = {
        "grade_state": "GRADED_DRAFT",
        "manual_total_points": manual_total,
    }

    current_source = grade.definitive_source if grade else None
    if current_source in (None, "MANUAL") and manual_total is not None:
        grade_fields["definitive_source"] = "MANUAL"
        submission_fields["definitive_source"] = "MANUAL"
        submission_fields["total_points"] = manual_total

    batch.set(GRADES, {"submission_id": submission_id}, grade_fields, upsert=True)
    batch.set(SUBMISSIONS, {"submission_id": submission_id}, submission_fields)
    await repo.commit(batch)

    logger.info(f"Draft saved for submission {submission_id} (manual total {manual_total})")
    return {
        "success": True,
        "manual_total_points": manual_total,
        "definitive_source": submission_fields.get("definitive_source", current_source),
    }
