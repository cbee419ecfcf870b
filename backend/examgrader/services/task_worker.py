"""
Background task worker - polls for pending grading jobs and processes them.
"""

import asyncio
from datetime import datetime, timedelta, timezone

from examgrader.config import logger
from examgrader.repository import GradingRepository, GRADING_JOBS
from examgrader.services.grading_jobs import GradingJobProcessor

POLL_INTERVAL_SECONDS = 5.0
STUCK_JOB_TIMEOUT = timedelta(hours=1)


async def process_next_job(repo: GradingRepository, processor: GradingJobProcessor) -> bool:
    """Claim the oldest PENDING job and run it. False when the queue is empty."""
    job = await repo.claim_next_job(datetime.now(timezone.utc).isoformat())
    if job is None:
        return False
    logger.info(f"📥 Claimed grading job {job.job_id} for exam {job.exam_id}")
    await processor.process(job)
    return True


async def cleanup_stuck_jobs(repo: GradingRepository, timeout: timedelta = STUCK_JOB_TIMEOUT) -> int:
    """Fail jobs left PROCESSING longer than `timeout` (e.g. after a crash)."""
    now = datetime.now(timezone.utc)
    cutoff = (now - timeout).isoformat()
    count = await repo.update(
        GRADING_JOBS,
        {"status": "PROCESSING", "started_at": {"$lt": cutoff}},
        {
            "status": "FAILED",
            "error": "Job timed out - worker stopped while processing",
            "error_code": "JOB_TIMEOUT",
            "completed_at": now.isoformat(),
        },
    )
    if count:
        logger.warning(f"⚠️ Marked {count} stuck grading jobs as FAILED")
    return count


async def worker_loop(repo: GradingRepository, processor: GradingJobProcessor,
                      poll_interval: float = POLL_INTERVAL_SECONDS):
    """
    Main worker loop. Runs indefinitely, one job at a time; sleeps while the
    queue is empty.
    """
    logger.info("🔄 Task worker loop started")
    while True:
        try:
            processed = await process_next_job(repo, processor)
        except Exception as e:
            logger.error(f"Task worker error: {e}", exc_info=True)
            processed = False
        if not processed:
            await asyncio.sleep(poll_interval)
