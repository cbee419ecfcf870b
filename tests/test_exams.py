"""
Test: exam lifecycle guards and publishing.
"""
import asyncio

import pytest

from examgrader.errors import ConflictError, ForbiddenError, GradingValidationError, NotFoundError
from examgrader.repository import EXAMS
from examgrader.services.exams import assert_exam_mutable, load_exam, publish_exam


class TestPublishExam:
    def test_draft_is_published(self, repo, seed):
        seed.exam(state="DRAFT", questions=(("q1", 4), ("q2", 6), ("q3", 10)))

        exam = asyncio.run(publish_exam(repo, "exam_1", owner_uid="prof_1"))

        assert exam.state == "PUBLISHED"
        assert exam.published_at is not None
        stored = repo.doc(EXAMS, exam_id="exam_1")
        assert stored["state"] == "PUBLISHED"
        assert (stored["questions_count"], stored["max_total_points"]) == (3, 20.0)

    def test_only_drafts(self, repo, seed):
        seed.exam(state="PUBLISHED")
        with pytest.raises(ConflictError):
            asyncio.run(publish_exam(repo, "exam_1"))

    def test_needs_questions(self, repo, seed):
        seed.exam(state="DRAFT", questions=())
        with pytest.raises(GradingValidationError):
            asyncio.run(publish_exam(repo, "exam_1"))
        assert repo.doc(EXAMS, exam_id="exam_1")["state"] == "DRAFT"


class TestGuards:
    def test_missing_exam(self, repo):
        with pytest.raises(NotFoundError):
            asyncio.run(load_exam(repo, "ghost"))

    def test_other_owner(self, repo, seed):
        seed.exam()
        with pytest.raises(ForbiddenError):
            asyncio.run(load_exam(repo, "exam_1", owner_uid="prof_2"))

    def test_no_owner_check_for_internal_callers(self, repo, seed):
        seed.exam()
        assert asyncio.run(load_exam(repo, "exam_1")).owner_uid == "prof_1"

    def test_evaluated_exam_is_locked(self, repo, seed):
        seed.exam(state="EVALUATED")
        exam = asyncio.run(load_exam(repo, "exam_1"))
        with pytest.raises(ConflictError) as excinfo:
            assert_exam_mutable(exam)
        assert excinfo.value.code == "EXAM_EVALUATED"
        assert excinfo.value.status_code == 409
