"""
Background worker service - started from the FastAPI lifespan.
"""

from examgrader.config import logger
from examgrader.deps import get_repository, build_job_processor
from examgrader.services.task_worker import cleanup_stuck_jobs, worker_loop


async def run_background_worker():
    """Integrated background worker - processes grading jobs."""
    logger.info("🔄 Background worker started")
    logger.info("=" * 60)

    repo = get_repository()

    try:
        # Run cleanup once on startup
        await cleanup_stuck_jobs(repo)
        await worker_loop(repo, build_job_processor(repo))  # runs forever, handles polling internally
    except Exception as e:
        logger.error(f"Background worker error: {e}", exc_info=True)
        raise
