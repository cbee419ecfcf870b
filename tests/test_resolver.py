"""
Test: definitive source resolution and explicit source selection.
"""
import asyncio

import pytest

from examgrader.errors import (
    ConflictError,
    ForbiddenError,
    GradingValidationError,
    InvalidStateError,
    NotFoundError,
)
from examgrader.models import Grade, Submission
from examgrader.repository import GRADES, SUBMISSIONS
from examgrader.services.resolver import DefinitiveSourceResolver, resolve_final


def _grade(**fields):
    return Grade(submission_id="s1", exam_id="exam_1", **fields)


def _submission(**fields):
    return Submission(submission_id="s1", exam_id="exam_1", **fields)


class TestResolveFinal:
    def test_explicit_choice_wins(self):
        grade = _grade(manual_total_points=7, ai_total_points=6, definitive_source="AI")
        assert resolve_final(grade, _submission()) == ("AI", 6)

    def test_explicit_choice_without_total_falls_back(self):
        grade = _grade(manual_total_points=7, definitive_source="AI")
        assert resolve_final(grade, _submission()) == ("MANUAL", 7)

    def test_manual_before_ai(self):
        grade = _grade(manual_total_points=7, ai_total_points=6)
        assert resolve_final(grade, _submission()) == ("MANUAL", 7)

    def test_ai_only(self):
        assert resolve_final(_grade(ai_total_points=8), _submission()) == ("AI", 8)

    def test_zero_is_a_real_total(self):
        assert resolve_final(_grade(manual_total_points=0.0, ai_total_points=4), _submission()) == ("MANUAL", 0.0)

    def test_legacy_total(self):
        assert resolve_final(_grade(), _submission(total_points=5)) == (None, 5)
        assert resolve_final(None, _submission(total_points=5)) == (None, 5)

    def test_nothing(self):
        assert resolve_final(None, _submission()) == (None, None)


class TestSetSource:
    def _setup(self, seed, **grade_fields):
        seed.exam()
        seed.submission("s1", grade_state="GRADED_DRAFT", total_points=7.0, definitive_source="MANUAL")
        seed.grade("s1", **grade_fields)

    def test_choose_ai(self, repo, seed):
        self._setup(seed, manual_total_points=7.0, ai_total_points=6.0, definitive_source="MANUAL")
        resolver = DefinitiveSourceResolver(repo)
        updated = asyncio.run(resolver.set_source("exam_1", "s1", "AI", owner_uid="prof_1"))

        assert updated.definitive_source == "AI"
        assert updated.total_points == 6.0
        assert repo.doc(GRADES, submission_id="s1")["definitive_source"] == "AI"
        submission = repo.doc(SUBMISSIONS, submission_id="s1")
        assert (submission["definitive_source"], submission["total_points"]) == ("AI", 6.0)
        # totals are untouched
        assert repo.doc(GRADES, submission_id="s1")["manual_total_points"] == 7.0

    def test_promotes_ungraded(self, repo, seed):
        seed.exam()
        seed.submission("s1")
        seed.grade("s1", ai_total_points=4.0)
        asyncio.run(DefinitiveSourceResolver(repo).set_source("exam_1", "s1", "AI"))
        assert repo.doc(SUBMISSIONS, submission_id="s1")["grade_state"] == "GRADED_DRAFT"

    def test_invalid_source(self, repo, seed):
        self._setup(seed, manual_total_points=7.0)
        with pytest.raises(GradingValidationError):
            asyncio.run(DefinitiveSourceResolver(repo).set_source("exam_1", "s1", "BOTH"))

    def test_source_without_total(self, repo, seed):
        self._setup(seed, manual_total_points=7.0)
        with pytest.raises(InvalidStateError):
            asyncio.run(DefinitiveSourceResolver(repo).set_source("exam_1", "s1", "AI"))
        assert repo.doc(SUBMISSIONS, submission_id="s1")["definitive_source"] == "MANUAL"

    def test_missing_grade(self, repo, seed):
        seed.exam()
        seed.submission("s1")
        with pytest.raises(NotFoundError):
            asyncio.run(DefinitiveSourceResolver(repo).set_source("exam_1", "s1", "MANUAL"))

    def test_submission_from_another_exam(self, repo, seed):
        self._setup(seed, manual_total_points=7.0)
        seed.exam(exam_id="exam_2", questions=())
        with pytest.raises(NotFoundError):
            asyncio.run(DefinitiveSourceResolver(repo).set_source("exam_2", "s1", "MANUAL"))

    def test_final_submission_is_locked(self, repo, seed):
        seed.exam()
        seed.submission("s1", grade_state="GRADED_FINAL")
        seed.grade("s1", manual_total_points=7.0, ai_total_points=6.0)
        with pytest.raises(ConflictError):
            asyncio.run(DefinitiveSourceResolver(repo).set_source("exam_1", "s1", "AI"))

    def test_evaluated_exam_is_locked(self, repo, seed):
        seed.exam(state="EVALUATED")
        seed.submission("s1", grade_state="GRADED_DRAFT")
        seed.grade("s1", manual_total_points=7.0, ai_total_points=6.0)
        with pytest.raises(ConflictError) as excinfo:
            asyncio.run(DefinitiveSourceResolver(repo).set_source("exam_1", "s1", "AI"))
        assert excinfo.value.code == "EXAM_EVALUATED"

    def test_other_owner(self, repo, seed):
        self._setup(seed, manual_total_points=7.0, ai_total_points=6.0)
        with pytest.raises(ForbiddenError):
            asyncio.run(DefinitiveSourceResolver(repo).set_source("exam_1", "s1", "AI", owner_uid="prof_2"))
