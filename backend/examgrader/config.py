"""
Configuration - env vars, logging, grading defaults.
"""

import os
import logging
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

ROOT_DIR = Path(__file__).parent.parent
load_dotenv(ROOT_DIR / '.env')

# Logging
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("examgrader")


class GradingConfig(BaseModel):
    """Tunables for the AI grading client, the schedulers and finalization."""

    model_name: str = "gemini-2.5-flash"
    temperature: float = 0.0
    max_output_tokens: int = 1500
    # Token budget for the shortened prompt used after a truncated response
    fallback_max_output_tokens: int = 2000
    timeout_seconds: float = 45.0
    max_retries: int = 2
    retry_base_delay: float = 1.0
    retry_max_delay: float = 8.0

    answer_concurrency: int = Field(default=8, ge=1)
    submission_concurrency: int = Field(default=25, ge=1)
    notification_concurrency: int = Field(default=5, ge=1)

    max_comment_length: int = 4000
    max_inline_text_length: int = 1000
    max_quote_length: int = 400
    quote_tolerance: int = 300
    drop_unmatched_quotes: bool = True


class Settings:
    """Application settings loaded from environment."""

    # Database
    MONGO_URL: str = os.environ.get("MONGO_URL", "mongodb://localhost:27017")
    DB_NAME: str = os.environ.get("DB_NAME", "examgrader")

    # System-wide fallback credential for the language model
    GEMINI_API_KEY: Optional[str] = os.environ.get("GEMINI_API_KEY")
    GEMINI_MODEL: str = os.environ.get("GEMINI_MODEL", "gemini-2.5-flash")

    # E-mail
    RESEND_API_KEY: Optional[str] = os.environ.get("RESEND_API_KEY")
    RESEND_FROM_EMAIL: str = os.environ.get("RESEND_FROM_EMAIL", "Exam Grader <noreply@exam-grader.es>")

    # AI grading
    AI_ANSWER_CONCURRENCY: int = int(os.environ.get("AI_ANSWER_CONCURRENCY", 8))
    AI_SUBMISSION_CONCURRENCY: int = int(os.environ.get("AI_SUBMISSION_CONCURRENCY", 25))
    NOTIFICATION_CONCURRENCY: int = int(os.environ.get("NOTIFICATION_CONCURRENCY", 5))
    AI_MAX_OUTPUT_TOKENS: int = int(os.environ.get("AI_MAX_OUTPUT_TOKENS", 1500))
    AI_TIMEOUT_SECONDS: float = float(os.environ.get("AI_TIMEOUT_SECONDS", 45))
    AI_MAX_RETRIES: int = int(os.environ.get("AI_MAX_RETRIES", 2))

    # Server
    CORS_ORIGINS: List[str] = [
        origin.strip() for origin in os.environ.get("CORS_ORIGINS", "").split(",") if origin.strip()
    ] or ["http://localhost:3000", "http://127.0.0.1:3000"]

    def grading_config(self) -> GradingConfig:
        """Build the explicit grading configuration from environment values."""
        return GradingConfig(
            model_name=self.GEMINI_MODEL,
            max_output_tokens=self.AI_MAX_OUTPUT_TOKENS,
            timeout_seconds=self.AI_TIMEOUT_SECONDS,
            max_retries=self.AI_MAX_RETRIES,
            answer_concurrency=self.AI_ANSWER_CONCURRENCY,
            submission_concurrency=self.AI_SUBMISSION_CONCURRENCY,
            notification_concurrency=self.NOTIFICATION_CONCURRENCY,
        )


# Global settings instance
settings = Settings()

if not settings.GEMINI_API_KEY:
    logger.warning("⚠️ No GEMINI_API_KEY found - AI grading needs a per-user key")
