"""
Finalization - locks every draft grade of an exam, notifies students and moves
the exam to EVALUATED.

Grade durability comes before notification: a submission's final state is
committed before its e-mail is attempted, and an e-mail failure never rolls it
back or stops the other submissions.
"""

from datetime import datetime, timezone
from typing import List, Optional

from examgrader.config import logger, GradingConfig
from examgrader.errors import ConflictError, FinalizationError
from examgrader.models import Exam, FinalizeResult, Question, Submission
from examgrader.repository import GradingRepository, WriteBatch, EXAMS, GRADES, SUBMISSIONS
from examgrader.services.exams import load_exam
from examgrader.services.idempotency import IdempotencyLedger
from examgrader.services.notifications import NotificationSender, build_result_email
from examgrader.services.resolver import resolve_final
from examgrader.utils.concurrency import run_with_concurrency


class FinalizationService:

    def __init__(self, repo: GradingRepository, sender: NotificationSender, config: GradingConfig):
        self.repo = repo
        self.sender = sender
        self.config = config
        self.ledger = IdempotencyLedger(repo)

    async def finalize(self, exam_id: str, request_id: Optional[str] = None,
                       owner_uid: Optional[str] = None) -> FinalizeResult:
        exam = await load_exam(self.repo, exam_id, owner_uid)

        operation = f"finalize:{exam_id}"
        if request_id:
            already_completed, stored = await self.ledger.begin(operation, request_id)
            if already_completed:
                return FinalizeResult(**stored)

        if exam.state != "PUBLISHED":
            raise ConflictError(f"Only PUBLISHED exams can be finalized (exam is {exam.state})")

        drafts = await self.repo.list_submissions(exam_id, grade_state="GRADED_DRAFT")
        questions = await self.repo.list_questions(exam_id)
        logger.info(f"🔒 Finalizing exam {exam_id}: {len(drafts)} draft submissions")

        tasks = [
            (lambda s=submission: self._finalize_submission(exam, s, questions))
            for submission in drafts
        ]
        results = await run_with_concurrency(tasks, self.config.notification_concurrency)

        failed = [(s.submission_id, r.error) for s, r in zip(drafts, results) if not r.ok]
        if failed:
            for submission_id, error in failed:
                logger.error(f"Could not finalize submission {submission_id}: {error}")
            raise FinalizationError(
                f"{len(failed)} of {len(drafts)} submissions could not be finalized; "
                f"exam left PUBLISHED, run finalize again"
            )

        sent = sum(1 for r in results if r.value)
        skipped = len(results) - sent

        await self.repo.commit(WriteBatch().set(EXAMS, {"exam_id": exam_id}, {
            "state": "EVALUATED",
            "finalized_at": datetime.now(timezone.utc).isoformat(),
        }))
        logger.info(f"✅ Exam {exam_id} EVALUATED. Sent: {sent}, Skipped: {skipped}")

        if drafts:
            result = FinalizeResult(success=True, message="Finalization complete.", sent=sent, skipped=skipped)
        else:
            result = FinalizeResult(success=True, message="No submissions in draft state to finalize.")

        if request_id:
            await self.ledger.complete(operation, request_id, result.model_dump())
        return result

    async def _finalize_submission(self, exam: Exam, submission: Submission,
                                   questions: List[Question]) -> bool:
        """Commit the final grade, then try the e-mail. True when the e-mail was sent."""
        submission_id = submission.submission_id
        grade = await self.repo.get_grade(submission_id)
        source, points = resolve_final(grade, submission)

        batch = WriteBatch()
        batch.set(SUBMISSIONS, {"submission_id": submission_id}, {
            "grade_state": "GRADED_FINAL",
            "definitive_source": source,
            "total_points": points,
        })
        batch.set(GRADES, {"submission_id": submission_id}, {
            "exam_id": exam.exam_id,
            "state": "GRADED_FINAL",
            "finalized_at": datetime.now(timezone.utc).isoformat(),
            "definitive_source": source,
        }, upsert=True)
        await self.repo.commit(batch)

        if not submission.respondent_email or points is None:
            logger.warning(f"Skipping e-mail for submission {submission_id}: missing e-mail or final points")
            return False

        try:
            answers = {a.question_id: a.text for a in await self.repo.list_answers(submission_id)}
            answer_grades = {ag.question_id: ag for ag in await self.repo.list_answer_grades(submission_id)}
            detailed_answers = [
                {
                    "question_text": q.text,
                    "max_points": q.max_points,
                    "answer_text": answers.get(q.question_id, ""),
                    "grade": answer_grades.get(q.question_id),
                }
                for q in questions
            ]
            if grade is None:
                comments_overall = None
            elif source == "AI":
                comments_overall = grade.ai_comments_overall
            else:
                comments_overall = grade.manual_comments_overall

            html_body = build_result_email(
                name_or_email=submission.respondent_name or submission.respondent_email,
                exam_title=exam.title,
                total_points=points,
                comments_overall=comments_overall,
                detailed_answers=detailed_answers,
                definitive_source=source,
            )
            return await self.sender.send(
                submission.respondent_email, f"Exam results: {exam.title}", html_body
            )
        except Exception as e:
            logger.error(f"Failed to send result e-mail to {submission.respondent_email}: {e}", exc_info=True)
            return False
