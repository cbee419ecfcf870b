"""
Exam lifecycle: DRAFT -> PUBLISHED -> EVALUATED, and the guards every
mutating grading operation runs first.
"""

from datetime import datetime, timezone
from typing import Optional

from examgrader.config import logger
from examgrader.errors import ConflictError, ForbiddenError, GradingValidationError, NotFoundError
from examgrader.models import Exam
from examgrader.repository import GradingRepository, WriteBatch, EXAMS


def assert_owner(exam: Exam, owner_uid: Optional[str]) -> None:
    if owner_uid is not None and exam.owner_uid != owner_uid:
        raise ForbiddenError("You do not have access to this exam")


def assert_exam_mutable(exam: Exam) -> None:
    """Grades of an EVALUATED exam are locked."""
    if exam.state == "EVALUATED":
        raise ConflictError("Exam has already been finalized; grades are locked", code="EXAM_EVALUATED")


async def load_exam(repo: GradingRepository, exam_id: str, owner_uid: Optional[str] = None) -> Exam:
    exam = await repo.get_exam(exam_id)
    if not exam:
        raise NotFoundError("Exam not found")
    assert_owner(exam, owner_uid)
    return exam


async def publish_exam(repo: GradingRepository, exam_id: str, owner_uid: Optional[str] = None) -> Exam:
    """Freeze the question set and open the exam for submissions."""
    exam = await load_exam(repo, exam_id, owner_uid)
    if exam.state != "DRAFT":
        raise ConflictError(f"Only DRAFT exams can be published (exam is {exam.state})")

    questions = await repo.list_questions(exam_id)
    if not questions:
        raise GradingValidationError("Exam needs at least one question before publishing")

    now = datetime.now(timezone.utc).isoformat()
    fields = {
        "state": "PUBLISHED",
        "published_at": now,
        "questions_count": len(questions),
        "max_total_points": float(sum(q.max_points for q in questions)),
    }
    await repo.commit(WriteBatch().set(EXAMS, {"exam_id": exam_id}, fields))
    logger.info(f"📢 Exam {exam_id} published with {len(questions)} questions")
    return exam.model_copy(update={**fields, "published_at": datetime.fromisoformat(now)})
