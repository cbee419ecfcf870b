"""
Shared test fixtures for the exam grader.
An in-memory repository stands in for MongoDB; the model provider and the
e-mail provider are replaced by scripted fakes. Zero network calls.
"""
import copy
from collections import defaultdict
from datetime import datetime, timedelta, timezone

import pytest

from examgrader.config import GradingConfig
from examgrader.repository import (
    GradingRepository,
    ANSWERS,
    ANSWER_GRADES,
    EXAMS,
    GRADES,
    QUESTIONS,
    SUBMISSIONS,
    USER_SETTINGS,
)
from examgrader.services.llm import CompletionBackend, CompletionResult
from examgrader.services.notifications import NotificationSender

BASE_TIME = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def ts(minutes=0):
    """ISO timestamp `minutes` after the fixture base time."""
    return (BASE_TIME + timedelta(minutes=minutes)).isoformat()


# ============== IN-MEMORY REPOSITORY ==============

def _compare(op, value, operand):
    if op == "$lt":
        return value is not None and value < operand
    if op == "$lte":
        return value is not None and value <= operand
    if op == "$in":
        return value in operand
    if op == "$ne":
        return value != operand
    raise NotImplementedError(op)


def matches(doc, query):
    """Subset of the MongoDB query language: equality (None matches missing), $lt, $lte, $in, $ne, $or."""
    for key, condition in query.items():
        if key == "$or":
            if not any(matches(doc, sub) for sub in condition):
                return False
            continue
        value = doc.get(key)
        if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
            if not all(_compare(op, value, operand) for op, operand in condition.items()):
                return False
        elif value != condition:
            return False
    return True


def _sort_docs(docs, sort):
    for field, direction in reversed(sort or []):
        docs = sorted(
            docs,
            key=lambda d: (d.get(field) is not None, d.get(field) if d.get(field) is not None else 0),
            reverse=direction < 0,
        )
    return docs


class InMemoryRepository(GradingRepository):
    """GradingRepository over plain dicts. Batches are applied all-or-nothing."""

    def __init__(self):
        self.collections = defaultdict(list)
        self.commits = 0
        # (collection, key) pairs whose writes make commit() fail
        self.failing_keys = []

    def docs(self, collection, **query):
        return [copy.deepcopy(d) for d in self.collections[collection] if matches(d, query)]

    def doc(self, collection, **query):
        found = self.docs(collection, **query)
        return found[0] if found else None

    async def find_one(self, collection, query):
        for d in self.collections[collection]:
            if matches(d, query):
                return copy.deepcopy(d)
        return None

    async def find(self, collection, query, sort=None, limit=None):
        found = [copy.deepcopy(d) for d in self.collections[collection] if matches(d, query)]
        found = _sort_docs(found, sort)
        return found[:limit] if limit else found

    async def insert(self, collection, doc):
        self.collections[collection].append(copy.deepcopy(doc))

    async def update(self, collection, query, fields):
        count = 0
        for d in self.collections[collection]:
            if matches(d, query):
                d.update(copy.deepcopy(fields))
                count += 1
        return count

    async def find_one_and_update(self, collection, query, fields, sort=None):
        candidates = _sort_docs([d for d in self.collections[collection] if matches(d, query)], sort)
        if not candidates:
            return None
        candidates[0].update(copy.deepcopy(fields))
        return copy.deepcopy(candidates[0])

    async def commit(self, batch):
        for op in batch.operations:
            if (op.collection, op.key) in self.failing_keys:
                raise RuntimeError(f"write to {op.collection} {op.key} failed")

        staged = copy.deepcopy(self.collections)
        for op in batch.operations:
            target = next((d for d in staged[op.collection] if matches(d, op.key)), None)
            if target is not None:
                target.update(copy.deepcopy(op.fields))
            elif op.upsert:
                staged[op.collection].append({**op.key, **copy.deepcopy(op.fields)})
        self.collections = staged
        self.commits += 1


class Seeder:
    """Synchronous helpers that put fixture documents straight into the repository."""

    def __init__(self, repo):
        self.repo = repo
        self._minute = 0

    def exam(self, exam_id="exam_1", owner_uid="prof_1", state="PUBLISHED", title="Biology midterm",
             questions=(("q1", 5), ("q2", 5))):
        self.repo.collections[EXAMS].append({
            "exam_id": exam_id,
            "owner_uid": owner_uid,
            "title": title,
            "state": state,
            "created_at": ts(),
        })
        for order, (question_id, max_points) in enumerate(questions):
            self.repo.collections[QUESTIONS].append({
                "question_id": question_id,
                "exam_id": exam_id,
                "order": order,
                "text": f"Question {question_id}",
                "max_points": max_points,
                "rubric_text": f"Rubric for {question_id}",
            })

    def submission(self, submission_id, exam_id="exam_1", answers=None, created_at=None, **fields):
        self._minute += 1
        doc = {
            "submission_id": submission_id,
            "exam_id": exam_id,
            "respondent_email": f"{submission_id}@students.example.com",
            "respondent_name": f"Student {submission_id}",
            "created_at": created_at or ts(self._minute),
            "grade_state": "UNGRADED",
        }
        doc.update(fields)
        self.repo.collections[SUBMISSIONS].append(doc)
        for question_id, text in (answers or {}).items():
            self.repo.collections[ANSWERS].append({
                "submission_id": submission_id,
                "question_id": question_id,
                "text": text,
            })

    def grade(self, submission_id, exam_id="exam_1", **fields):
        self.repo.collections[GRADES].append({
            "submission_id": submission_id,
            "exam_id": exam_id,
            "state": "GRADED_DRAFT",
            **fields,
        })

    def answer_grade(self, submission_id, question_id, **fields):
        self.repo.collections[ANSWER_GRADES].append({
            "submission_id": submission_id,
            "question_id": question_id,
            **fields,
        })

    def api_key(self, user_id="prof_1", api_key="user-key"):
        self.repo.collections[USER_SETTINGS].append({"user_id": user_id, "gemini_api_key": api_key})


# ============== PROVIDER FAKES ==============

class ScriptedBackend(CompletionBackend):
    """
    Returns queued responses in order, then `default`. A response may be a
    string, a CompletionResult, an exception to raise, or a callable taking the
    user prompt and returning any of those.
    """

    def __init__(self, responses=None, default=None):
        self.responses = list(responses or [])
        self.default = default
        self.calls = []

    async def complete(self, system_prompt, user_prompt, api_key, max_output_tokens):
        self.calls.append({
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "api_key": api_key,
            "max_output_tokens": max_output_tokens,
        })
        item = self.responses.pop(0) if self.responses else self.default
        if callable(item) and not isinstance(item, BaseException):
            item = item(user_prompt)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, str):
            return CompletionResult(text=item)
        return item


class RecordingSender(NotificationSender):
    def __init__(self, fail_for=(), reject_for=()):
        self.sent = []
        self.fail_for = set(fail_for)
        self.reject_for = set(reject_for)

    async def send(self, to, subject, html_body):
        if to in self.fail_for:
            raise ConnectionError("SMTP relay unreachable")
        if to in self.reject_for:
            return False
        self.sent.append({"to": to, "subject": subject, "html": html_body})
        return True


# ============== FIXTURES ==============

@pytest.fixture
def repo():
    return InMemoryRepository()


@pytest.fixture
def seed(repo):
    return Seeder(repo)


@pytest.fixture
def config():
    """Grading config with retries but no real backoff delay."""
    return GradingConfig(retry_base_delay=0, retry_max_delay=0)


@pytest.fixture
def sender():
    return RecordingSender()
