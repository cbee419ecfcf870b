"""
Test: submission listing (cursor pagination) and grading detail.
"""
import asyncio

import pytest

from examgrader.errors import ForbiddenError, GradingValidationError, NotFoundError
from examgrader.services.submissions import get_submission_detail, list_submissions

from conftest import ts


def _page(repo, **kwargs):
    return asyncio.run(list_submissions(repo, "exam_1", **kwargs))


def _ids(page):
    return [s["submission_id"] for s in page["submissions"]]


class TestListSubmissions:
    def test_newest_first_with_cursor(self, repo, seed):
        seed.exam()
        for sid in ("s1", "s2", "s3", "s4", "s5"):
            seed.submission(sid)

        first = _page(repo, limit=2)
        assert _ids(first) == ["s5", "s4"]
        assert first["next_cursor"] == "s4"

        second = _page(repo, limit=2, cursor=first["next_cursor"])
        assert _ids(second) == ["s3", "s2"]

        third = _page(repo, limit=2, cursor=second["next_cursor"])
        assert _ids(third) == ["s1"]
        assert third["next_cursor"] is None

    def test_equal_timestamps_are_not_skipped(self, repo, seed):
        seed.exam()
        for sid in ("s_a", "s_b", "s_c"):
            seed.submission(sid, created_at=ts(30))
        seed.submission("s_old", created_at=ts(1))

        first = _page(repo, limit=2)
        second = _page(repo, limit=2, cursor=first["next_cursor"])
        assert _ids(first) + _ids(second) == ["s_c", "s_b", "s_a", "s_old"]

    def test_other_exams_are_excluded(self, repo, seed):
        seed.exam()
        seed.exam(exam_id="exam_2", questions=())
        seed.submission("s1")
        seed.submission("x1", exam_id="exam_2")
        assert _ids(_page(repo)) == ["s1"]

    def test_serialized_timestamps(self, repo, seed):
        seed.exam()
        seed.submission("s1")
        assert isinstance(_page(repo)["submissions"][0]["created_at"], str)

    @pytest.mark.parametrize("limit", [0, 51])
    def test_limit_bounds(self, repo, seed, limit):
        seed.exam()
        with pytest.raises(GradingValidationError):
            _page(repo, limit=limit)

    def test_other_owner(self, repo, seed):
        seed.exam()
        with pytest.raises(ForbiddenError):
            _page(repo, owner_uid="prof_2")


class TestSubmissionDetail:
    def test_both_tracks_per_question(self, repo, seed):
        seed.exam()
        seed.submission("s1", answers={"q1": "Answer one"}, grade_state="GRADED_DRAFT")
        seed.grade("s1", manual_total_points=4.0, ai_total_points=3.0)
        seed.answer_grade("s1", "q1", manual_points=4.0, ai_suggested_points=3.0)

        detail = asyncio.run(get_submission_detail(repo, "exam_1", "s1", owner_uid="prof_1"))

        assert detail["exam"] == {"exam_id": "exam_1", "title": "Biology midterm", "state": "PUBLISHED"}
        assert detail["submission"]["submission_id"] == "s1"
        assert detail["grade"]["manual_total_points"] == 4.0
        assert [q["question"]["question_id"] for q in detail["questions"]] == ["q1", "q2"]
        q1, q2 = detail["questions"]
        assert q1["answer_text"] == "Answer one"
        assert (q1["answer_grade"]["manual_points"], q1["answer_grade"]["ai_suggested_points"]) == (4.0, 3.0)
        assert q2["answer_text"] == ""
        assert q2["answer_grade"] is None

    def test_submission_of_another_exam(self, repo, seed):
        seed.exam()
        seed.exam(exam_id="exam_2", questions=())
        seed.submission("x1", exam_id="exam_2")
        with pytest.raises(NotFoundError):
            asyncio.run(get_submission_detail(repo, "exam_1", "x1"))
