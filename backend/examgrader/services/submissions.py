"""
Submission views - paginated listing and the per-question grading detail.
"""

from typing import Dict, Optional

from pymongo import DESCENDING

from examgrader.errors import GradingValidationError, NotFoundError
from examgrader.models import Submission
from examgrader.repository import GradingRepository, SUBMISSIONS
from examgrader.services.exams import load_exam
from examgrader.utils.serialization import serialize_doc

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 50


async def list_submissions(repo: GradingRepository, exam_id: str, limit: int = DEFAULT_PAGE_SIZE,
                           cursor: Optional[str] = None, owner_uid: Optional[str] = None) -> Dict:
    """
    Newest first. `cursor` is the submission_id of the last item of the previous
    page; an unknown cursor restarts from the first page.
    """
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise GradingValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    await load_exam(repo, exam_id, owner_uid)

    query = {"exam_id": exam_id}
    if cursor:
        after = await repo.find_one(SUBMISSIONS, {"submission_id": cursor, "exam_id": exam_id})
        if after:
            query["$or"] = [
                {"created_at": {"$lt": after["created_at"]}},
                {"created_at": after["created_at"], "submission_id": {"$lt": after["submission_id"]}},
            ]

    docs = await repo.find(
        SUBMISSIONS, query,
        sort=[("created_at", DESCENDING), ("submission_id", DESCENDING)],
        limit=limit,
    )
    submissions = [Submission(**d) for d in docs]
    next_cursor = submissions[-1].submission_id if len(submissions) == limit else None

    return {
        "submissions": serialize_doc(submissions),
        "next_cursor": next_cursor,
    }


async def get_submission_detail(repo: GradingRepository, exam_id: str, submission_id: str,
                                owner_uid: Optional[str] = None) -> Dict:
    exam = await load_exam(repo, exam_id, owner_uid)
    submission = await repo.get_submission(submission_id)
    if not submission or submission.exam_id != exam_id:
        raise NotFoundError("Submission not found")

    questions = await repo.list_questions(exam_id)
    answers = {a.question_id: a.text for a in await repo.list_answers(submission_id)}
    answer_grades = {ag.question_id: ag for ag in await repo.list_answer_grades(submission_id)}
    grade = await repo.get_grade(submission_id)

    return {
        "exam": {"exam_id": exam.exam_id, "title": exam.title, "state": exam.state},
        "submission": serialize_doc(submission),
        "grade": serialize_doc(grade),
        "questions": [
            {
                "question": serialize_doc(q),
                "answer_text": answers.get(q.question_id, ""),
                "answer_grade": serialize_doc(answer_grades.get(q.question_id)),
            }
            for q in questions
        ],
    }
