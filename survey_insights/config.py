"""
Configuration module — loads and validates all environment variables.
The application refuses to start if a variable has an invalid value.
"""
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    """All environment configuration for the Survey Insights service."""

    # AWS Core
    AWS_REGION: str = Field(default="us-east-1")
    AWS_ACCESS_KEY_ID: Optional[str] = Field(default=None)
    AWS_SECRET_ACCESS_KEY: Optional[str] = Field(default=None)

    # AWS Bedrock (summarization backend)
    BEDROCK_REGION: str = Field(default="us-east-1")
    BEDROCK_MODEL_SUMMARY: str = Field(default="anthropic.claude-haiku-4-5-20251001")
    SUMMARY_TEMPERATURE: float = Field(default=0.5, ge=0.0, le=1.0)
    SUMMARY_TOP_P: float = Field(default=1.0, gt=0.0, le=1.0)
    SUMMARY_MAX_TOKENS: int = Field(default=800, gt=0)
    SUMMARY_TIMEOUT_SECONDS: int = Field(default=60, gt=0)

    # AWS DynamoDB Tables
    DYNAMO_TABLE_SURVEYS: str = Field(default="survey-insights-surveys")
    DYNAMO_TABLE_SUBMISSIONS: str = Field(default="survey-insights-submissions")
    DYNAMO_TABLE_INSIGHTS: str = Field(default="survey-insights-insights")
    DYNAMO_TABLE_COMPLETION_LOGS: str = Field(default="survey-insights-completion-logs")

    # Celery work queue (SQS broker; memory:// under MOCK_AWS)
    CELERY_BROKER_URL: Optional[str] = Field(default=None)
    CELERY_TASK_ALWAYS_EAGER: bool = Field(default=False)
    SQS_QUEUE_PREFIX: str = Field(default="survey-insights-")
    INSIGHT_QUEUE_NAME: str = Field(default="insights")
    INSIGHT_TASK_MAX_RETRY: int = Field(default=10, ge=0)

    # Worker
    WORKER_CONCURRENCY: int = Field(default=5, gt=0)
    WORKER_QUEUES: str = Field(default="insights")
    WORKER_POLL_WAIT_SECONDS: int = Field(default=10, ge=0, le=20)
    # Must outlast the longest retry countdown, or SQS redelivers the held message
    WORKER_VISIBILITY_TIMEOUT_SECONDS: int = Field(default=3900, gt=0)
    RETRY_INITIAL_DELAY_SECONDS: int = Field(default=15, ge=1)
    RETRY_MAX_DELAY_SECONDS: int = Field(default=3600, ge=1)

    # Application
    BATCH_MAX_CHARS: int = Field(default=4000, gt=0)
    LOG_LEVEL: str = Field(default="INFO")
    MOCK_AWS: bool = Field(default=False)
    CORS_ORIGINS: str = Field(default="http://localhost:3000")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.strip().upper()
        if v not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}")
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",")]

    @property
    def worker_queue_list(self) -> list[str]:
        return [q.strip() for q in self.WORKER_QUEUES.split(",") if q.strip()]

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


def get_settings() -> Settings:
    """Load and validate settings. Raises ValidationError on invalid values."""
    return Settings()


# Singleton, set once at startup
settings: Optional[Settings] = None


def init_settings() -> Settings:
    """Initialize settings singleton. Call once at startup."""
    global settings
    settings = get_settings()
    return settings
