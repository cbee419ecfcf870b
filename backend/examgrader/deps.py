"""
FastAPI dependencies - caller identity and service wiring.
"""

from typing import Optional

from fastapi import Header, HTTPException

from .config import settings, GradingConfig
from .database import get_db
from .errors import GradingError
from .repository import GradingRepository, MongoGradingRepository
from .services.ai_grading import AIGradingClient
from .services.grading_jobs import GradingJobProcessor
from .services.llm import GeminiCompletionBackend
from .services.notifications import NotificationSender, ResendNotificationSender


async def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Caller uid, set by the upstream auth gateway after token verification."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Not authenticated")
    return x_user_id.strip()


def grading_http_error(e: GradingError) -> HTTPException:
    """Categorized HTTP error; the client picks remediation copy from `code`."""
    return HTTPException(status_code=e.status_code, detail=e.to_dict())


def get_grading_config() -> GradingConfig:
    return settings.grading_config()


def get_repository() -> GradingRepository:
    return MongoGradingRepository(get_db())


def get_notification_sender() -> NotificationSender:
    return ResendNotificationSender()


def build_job_processor(repo: GradingRepository, config: Optional[GradingConfig] = None) -> GradingJobProcessor:
    config = config or get_grading_config()
    client = AIGradingClient(config, GeminiCompletionBackend(config))
    return GradingJobProcessor(repo, client, config, system_api_key=settings.GEMINI_API_KEY)

