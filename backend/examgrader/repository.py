"""
Persistence layer - grading repository interface and its MongoDB (Motor) implementation.

Services only talk to GradingRepository. Multi-document writes go through a
WriteBatch and are applied all-or-nothing by commit().
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from pymongo import ASCENDING, DESCENDING, ReturnDocument

from .config import logger
from .models import Exam, Question, Submission, Answer, Grade, AnswerGrade, GradingJob

# Collection names
EXAMS = "exams"
QUESTIONS = "questions"
SUBMISSIONS = "submissions"
ANSWERS = "answers"
ANSWER_GRADES = "answer_grades"
GRADES = "grades"
GRADING_JOBS = "grading_jobs"
OPERATIONS = "operations"
USER_SETTINGS = "user_settings"
NOTIFICATIONS = "notifications"

Sort = List[Tuple[str, int]]


@dataclass
class WriteOp:
    """A single `$set` on the document matching `key`."""
    collection: str
    key: Dict
    fields: Dict
    upsert: bool = False


@dataclass
class WriteBatch:
    operations: List[WriteOp] = field(default_factory=list)

    def set(self, collection: str, key: Dict, fields: Dict, upsert: bool = False) -> "WriteBatch":
        self.operations.append(WriteOp(collection, dict(key), dict(fields), upsert))
        return self

    def __len__(self):
        return len(self.operations)


class GradingRepository(ABC):
    """
    Storage interface. Implementations provide the generic primitives below;
    the typed helpers are built on top of them.
    """

    @abstractmethod
    async def find_one(self, collection: str, query: Dict) -> Optional[Dict]:
        ...

    @abstractmethod
    async def find(self, collection: str, query: Dict, sort: Optional[Sort] = None,
                   limit: Optional[int] = None) -> List[Dict]:
        ...

    @abstractmethod
    async def insert(self, collection: str, doc: Dict) -> None:
        ...

    @abstractmethod
    async def update(self, collection: str, query: Dict, fields: Dict) -> int:
        """`$set` fields on every matching document; returns the modified count."""

    @abstractmethod
    async def find_one_and_update(self, collection: str, query: Dict, fields: Dict,
                                  sort: Optional[Sort] = None) -> Optional[Dict]:
        """Atomically `$set` fields on the first match and return the updated document."""

    @abstractmethod
    async def commit(self, batch: WriteBatch) -> None:
        """Apply every operation of the batch or none of them."""

    # ============== TYPED HELPERS ==============

    async def get_exam(self, exam_id: str) -> Optional[Exam]:
        doc = await self.find_one(EXAMS, {"exam_id": exam_id})
        return Exam(**doc) if doc else None

    async def list_questions(self, exam_id: str) -> List[Question]:
        docs = await self.find(QUESTIONS, {"exam_id": exam_id}, sort=[("order", ASCENDING)])
        return [Question(**d) for d in docs]

    async def get_submission(self, submission_id: str) -> Optional[Submission]:
        doc = await self.find_one(SUBMISSIONS, {"submission_id": submission_id})
        return Submission(**doc) if doc else None

    async def list_submissions(self, exam_id: str, **filters) -> List[Submission]:
        query = {"exam_id": exam_id, **filters}
        docs = await self.find(SUBMISSIONS, query, sort=[("created_at", ASCENDING)])
        return [Submission(**d) for d in docs]

    async def list_answers(self, submission_id: str) -> List[Answer]:
        docs = await self.find(ANSWERS, {"submission_id": submission_id})
        return [Answer(**d) for d in docs]

    async def get_grade(self, submission_id: str) -> Optional[Grade]:
        doc = await self.find_one(GRADES, {"submission_id": submission_id})
        return Grade(**doc) if doc else None

    async def list_answer_grades(self, submission_id: str) -> List[AnswerGrade]:
        docs = await self.find(ANSWER_GRADES, {"submission_id": submission_id})
        return [AnswerGrade(**d) for d in docs]

    async def get_user_api_key(self, user_id: str) -> Optional[str]:
        doc = await self.find_one(USER_SETTINGS, {"user_id": user_id})
        if not doc:
            return None
        return (doc.get("gemini_api_key") or "").strip() or None

    async def set_user_api_key(self, user_id: str, api_key: Optional[str], updated_at: str) -> None:
        await self.commit(WriteBatch().set(
            USER_SETTINGS, {"user_id": user_id},
            {"gemini_api_key": api_key, "updated_at": updated_at}, upsert=True,
        ))

    async def get_job(self, job_id: str) -> Optional[GradingJob]:
        doc = await self.find_one(GRADING_JOBS, {"job_id": job_id})
        return GradingJob(**doc) if doc else None

    async def update_job(self, job_id: str, fields: Dict) -> None:
        await self.update(GRADING_JOBS, {"job_id": job_id}, fields)

    async def claim_next_job(self, started_at: str) -> Optional[GradingJob]:
        """Move the oldest PENDING job to PROCESSING. Two workers never claim the same job."""
        doc = await self.find_one_and_update(
            GRADING_JOBS,
            {"status": "PENDING"},
            {"status": "PROCESSING", "started_at": started_at},
            sort=[("created_at", ASCENDING)],
        )
        return GradingJob(**doc) if doc else None


class MongoGradingRepository(GradingRepository):
    """GradingRepository over a Motor database handle."""

    def __init__(self, db):
        self.db = db

    async def find_one(self, collection, query):
        return await self.db[collection].find_one(query, {"_id": 0})

    async def find(self, collection, query, sort=None, limit=None):
        cursor = self.db[collection].find(query, {"_id": 0})
        if sort:
            cursor = cursor.sort(sort)
        if limit:
            cursor = cursor.limit(limit)
        return await cursor.to_list(length=limit)

    async def insert(self, collection, doc):
        # insert_one mutates its argument with an ObjectId
        await self.db[collection].insert_one(dict(doc))

    async def update(self, collection, query, fields):
        result = await self.db[collection].update_many(query, {"$set": fields})
        return result.modified_count

    async def find_one_and_update(self, collection, query, fields, sort=None):
        return await self.db[collection].find_one_and_update(
            query,
            {"$set": fields},
            projection={"_id": 0},
            sort=sort,
            return_document=ReturnDocument.AFTER,
        )

    async def commit(self, batch):
        if not batch:
            return
        client = self.db.client
        async with await client.start_session() as session:
            async with session.start_transaction():
                for op in batch.operations:
                    await self.db[op.collection].update_one(
                        op.key, {"$set": op.fields}, upsert=op.upsert, session=session
                    )
        logger.debug(f"Committed batch of {len(batch)} writes")

    async def ensure_indexes(self):
        """Create the lookup indexes used by the grading flows."""
        await self.db[EXAMS].create_index("exam_id", unique=True)
        await self.db[QUESTIONS].create_index([("exam_id", ASCENDING), ("order", ASCENDING)])
        await self.db[SUBMISSIONS].create_index("submission_id", unique=True)
        await self.db[SUBMISSIONS].create_index([("exam_id", ASCENDING), ("created_at", DESCENDING)])
        await self.db[ANSWERS].create_index([("submission_id", ASCENDING), ("question_id", ASCENDING)], unique=True)
        await self.db[ANSWER_GRADES].create_index([("submission_id", ASCENDING), ("question_id", ASCENDING)], unique=True)
        await self.db[GRADES].create_index("submission_id", unique=True)
        await self.db[GRADING_JOBS].create_index([("status", ASCENDING), ("created_at", ASCENDING)])
        await self.db[OPERATIONS].create_index("key", unique=True)
        logger.info("✅ MongoDB indexes ensured")

