"""
AI grading jobs - creation and processing.

A job grades every non-final submission of an exam that has no AI total yet, with two
nested bounded pools: submissions within the job and answers within each
submission.
"""

import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from examgrader.config import logger, GradingConfig
from examgrader.errors import (
    AIGradingError,
    CREDENTIAL_ERRORS,
    GradingError,
    MissingApiKeyError,
)
from examgrader.models import GradingJob, GradingRequest, Question, Submission
from examgrader.repository import GradingRepository, WriteBatch, ANSWER_GRADES, GRADING_JOBS
from examgrader.services.ai_grading import AIGradingClient
from examgrader.services.aggregation import GradingAggregator, sum_points
from examgrader.services.exams import load_exam, assert_exam_mutable
from examgrader.services.notifications import create_notification
from examgrader.utils.concurrency import run_with_concurrency


async def create_grading_job(repo: GradingRepository, exam_id: str, owner_uid: str,
                             mode: str = "NEUTRAL") -> GradingJob:
    """Schedule AI suggestions for an exam. The worker picks the job up."""
    exam = await load_exam(repo, exam_id, owner_uid)
    assert_exam_mutable(exam)

    job_id = f"job_{uuid.uuid4().hex[:12]}"
    job_record = {
        "job_id": job_id,
        "exam_id": exam_id,
        "owner_uid": owner_uid,
        "status": "PENDING",
        "mode": mode,
        "created_at": datetime.now(timezone.utc).isoformat(),
        "graded_submissions": 0,
        "failed_submissions": [],
    }
    await repo.insert(GRADING_JOBS, job_record)
    logger.info(f"Grading job {job_id} scheduled for exam {exam_id} by user {owner_uid} ({mode})")
    return GradingJob(**job_record)


class _JobRun:
    """State shared by all tasks of one job run."""

    def __init__(self, job: GradingJob, api_key: str, questions: List[Question]):
        self.job = job
        self.api_key = api_key
        self.questions = questions
        # First credential failure seen; later tasks stop calling the provider
        self.credential_error: Optional[AIGradingError] = None


class GradingJobProcessor:

    def __init__(self, repo: GradingRepository, client: AIGradingClient, config: GradingConfig,
                 system_api_key: Optional[str] = None):
        self.repo = repo
        self.client = client
        self.config = config
        self.system_api_key = system_api_key
        self.aggregator = GradingAggregator(repo)

    async def process(self, job: GradingJob) -> GradingJob:
        """Run a job to COMPLETED or FAILED. Never raises for grading failures."""
        try:
            api_key = await self.repo.get_user_api_key(job.owner_uid) or self.system_api_key
            if not api_key:
                return await self._fail(job, MissingApiKeyError(
                    "No model API key found. Configure your API key in settings."
                ))

            # Already PROCESSING when claimed by the worker
            started_at = job.started_at.isoformat() if job.started_at else datetime.now(timezone.utc).isoformat()
            await self.repo.update_job(job.job_id, {"status": "PROCESSING", "started_at": started_at})

            exam = await load_exam(self.repo, job.exam_id)
            assert_exam_mutable(exam)

            questions = await self.repo.list_questions(job.exam_id)
            submissions = await self.repo.list_submissions(
                job.exam_id, ai_total_points=None, grade_state={"$ne": "GRADED_FINAL"}
            )
            if not submissions:
                logger.info(f"No new submissions to grade for job {job.job_id}")
                return await self._complete(job, 0, [])

            logger.info(
                f"🤖 Job {job.job_id}: grading {len(submissions)} submissions "
                f"(submission concurrency {self.config.submission_concurrency})"
            )
            run = _JobRun(job, api_key, questions)
            tasks = [(lambda s=s: self._grade_submission(run, s)) for s in submissions]
            results = await run_with_concurrency(tasks, self.config.submission_concurrency)

            if run.credential_error is not None:
                return await self._fail(job, run.credential_error)

            failed = [
                {"submission_id": s.submission_id, "error": str(r.error)}
                for s, r in zip(submissions, results) if not r.ok
            ]
            return await self._complete(job, len(submissions) - len(failed), failed)

        except GradingError as e:
            return await self._fail(job, e)
        except Exception as e:
            logger.error(f"Failed to process grading job {job.job_id} for exam {job.exam_id}: {e}", exc_info=True)
            return await self._fail(job, e)

    async def _grade_submission(self, run: _JobRun, submission: Submission) -> Optional[float]:
        submission_id = submission.submission_id
        answers = {a.question_id: a.text for a in await self.repo.list_answers(submission_id)}
        graded_questions = [q for q in run.questions if q.question_id in answers]

        tasks = [
            (lambda q=q: self._grade_answer(run, submission, q, answers[q.question_id]))
            for q in graded_questions
        ]
        results = await run_with_concurrency(tasks, self.config.answer_concurrency)

        if run.credential_error is not None:
            raise run.credential_error

        points = []
        overall_comments = []
        errors = []
        for question, result in zip(graded_questions, results):
            if result.ok:
                answer_points, overall = result.value
                points.append(answer_points)
                if overall:
                    overall_comments.append(overall)
            else:
                # a failed answer contributes no points rather than a zero
                points.append(None)
                errors.append(result.error)
                logger.error(f"AI grading failed for {submission_id}/{question.question_id}: {result.error}")

        ai_total = sum_points(points)
        await self.aggregator.apply_ai_total(
            run.job.exam_id,
            submission_id,
            ai_total,
            "\n\n".join(overall_comments) if overall_comments else None,
        )
        if ai_total is None and errors:
            raise errors[0]
        return ai_total

    async def _grade_answer(self, run: _JobRun, submission: Submission, question: Question,
                            answer_text: str):
        """Grade one answer and write its AI track. Returns (points, overall_comment)."""
        key = {"submission_id": submission.submission_id, "question_id": question.question_id}

        if not answer_text.strip():
            logger.info(f"Skipping empty answer {submission.submission_id}/{question.question_id}")
            await self.repo.commit(WriteBatch().set(ANSWER_GRADES, key, {
                "ai_suggested_points": 0.0,
                "ai_suggested_comment": "",
                "ai_inline_comments": [],
            }, upsert=True))
            return 0.0, None

        if run.credential_error is not None:
            raise run.credential_error

        try:
            response = await self.client.grade(GradingRequest(
                student_label=submission.respondent_name or "Anonymous",
                rubric_text=question.rubric_text,
                question_text=question.text,
                max_points=question.max_points,
                answer_text=answer_text,
                mode=run.job.mode,
                api_key=run.api_key,
            ))
        except CREDENTIAL_ERRORS as e:
            if run.credential_error is None:
                run.credential_error = e
                logger.error(f"Credential error for job {run.job.job_id} (owner {run.job.owner_uid}): {e.code}")
            raise

        now = datetime.now(timezone.utc).isoformat()
        await self.repo.commit(WriteBatch().set(ANSWER_GRADES, key, {
            "ai_suggested_points": response.points_awarded,
            "ai_suggested_comment": response.comment,
            "ai_inline_comments": [
                {**ic.model_dump(), "source": "AI", "created_at": now}
                for ic in response.inline_comments
            ],
        }, upsert=True))

        logger.info(
            f"AI graded {submission.submission_id}/{question.question_id}: "
            f"{response.points_awarded}/{question.max_points}"
        )
        return response.points_awarded, response.overall_comment

    async def _complete(self, job: GradingJob, graded: int, failed: List[Dict]) -> GradingJob:
        fields = {
            "status": "COMPLETED",
            "completed_at": datetime.now(timezone.utc).isoformat(),
            "graded_submissions": graded,
            "failed_submissions": failed,
        }
        await self.repo.update_job(job.job_id, fields)
        logger.info(f"✅ Job {job.job_id} completed: {graded} graded, {len(failed)} failed")
        await create_notification(
            self.repo, job.owner_uid, "ai_suggestions_ready",
            "AI suggestions generated",
            f"AI suggestions were generated for {graded} submissions.",
            f"/exams/{job.exam_id}/submissions",
        )
        return job.model_copy(update={**fields, "completed_at": datetime.fromisoformat(fields["completed_at"])})

    async def _fail(self, job: GradingJob, error: Exception) -> GradingJob:
        fields = {
            "status": "FAILED",
            "completed_at": datetime.now(timezone.utc).isoformat(),
            "error": getattr(error, "message", None) or str(error),
            "error_code": getattr(error, "code", None),
        }
        await self.repo.update_job(job.job_id, fields)
        logger.error(f"❌ Job {job.job_id} failed: [{fields['error_code']}] {fields['error']}")
        await create_notification(
            self.repo, job.owner_uid, "ai_suggestions_failed",
            "AI grading failed",
            fields["error"],
            f"/exams/{job.exam_id}/submissions",
        )
        return job.model_copy(update={**fields, "completed_at": datetime.fromisoformat(fields["completed_at"])})
