"""All Pydantic models (request/response/internal) for the Survey Insights service."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from .enums import ContextType, InsightStatus, QuestionType


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ──────────────────────────────────────────────────
#  Surveys & submissions (read through the stores)
# ──────────────────────────────────────────────────

class QuestionSpecification(BaseModel):
    # TEXTBOX
    max_length: Optional[int] = Field(default=None, gt=0, le=250)
    # MULTIPLE_CHOICE
    options: Optional[List[str]] = Field(default=None, min_length=2, max_length=20)
    # LIKERT
    min: Optional[int] = None
    max: Optional[int] = None
    min_label: Optional[str] = None
    max_label: Optional[str] = None

    @model_validator(mode="after")
    def _check_scale(self) -> "QuestionSpecification":
        if self.min is not None and self.max is not None and self.max <= self.min:
            raise ValueError("max must be greater than min")
        return self


class Question(BaseModel):
    id: str
    text: str
    type: QuestionType
    specification: QuestionSpecification = Field(default_factory=QuestionSpecification)


class Survey(BaseModel):
    survey_id: str
    name: str
    token: str = ""
    questions: List[Question] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class SubmissionResponse(BaseModel):
    question_id: str
    answer: str


class Submission(BaseModel):
    submission_id: str
    survey_id: str
    responses: List[SubmissionResponse] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


# ──────────────────────────────────────────────────
#  Insights
# ──────────────────────────────────────────────────

class InsightBatch(BaseModel):
    batch_number: int = Field(ge=1)
    question: Question
    aggregated_answer: Optional[Dict[str, int]] = None
    textual_answers: Optional[List[str]] = None
    summary: Optional[str] = None
    error_log: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return self.summary is not None or self.error_log is not None

    @property
    def response_count(self) -> int:
        if self.aggregated_answer is not None:
            return sum(self.aggregated_answer.values())
        return len(self.textual_answers or [])


class Insight(BaseModel):
    insight_id: str
    survey_id: str
    context_type: ContextType
    status: InsightStatus = InsightStatus.PENDING
    batches: List[InsightBatch] = Field(default_factory=list)
    analysis: str = ""
    error_log: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    version: int = 0

    @property
    def all_batches_resolved(self) -> bool:
        return all(batch.is_resolved for batch in self.batches)


# ──────────────────────────────────────────────────
#  Summarization backend exchange
# ──────────────────────────────────────────────────

class ChatCompletionMessage(BaseModel):
    role: str
    content: str


class ChatCompletionRequest(BaseModel):
    model: str
    messages: List[ChatCompletionMessage]
    temperature: float = 0.5
    top_p: float = 1.0
    max_tokens: int = 800


class ChatCompletionChoice(BaseModel):
    message: ChatCompletionMessage
    finish_reason: Optional[str] = None


class ChatCompletionResponse(BaseModel):
    choices: List[ChatCompletionChoice] = Field(default_factory=list)
    usage: Dict[str, Any] = Field(default_factory=dict)


class CompletionLog(BaseModel):
    log_id: str
    reference: Optional[str] = None
    request: ChatCompletionRequest
    response: Optional[ChatCompletionResponse] = None
    created_at: datetime = Field(default_factory=utcnow)


# ──────────────────────────────────────────────────
#  Work queue
# ──────────────────────────────────────────────────

class TaskInfo(BaseModel):
    task_id: str
    type: str
    queue: str
    max_retry: int


class ProcessInsightPayload(BaseModel):
    insight_id: str = ""


# ──────────────────────────────────────────────────
#  API Request / Response models
# ──────────────────────────────────────────────────

class CreateInsightRequest(BaseModel):
    survey_id: str = Field(min_length=1)
    context_type: ContextType


class InsightResponse(BaseModel):
    data: Optional[Insight] = None
    error: Optional[str] = None


class InsightListResponse(BaseModel):
    data: List[Insight] = Field(default_factory=list)
    error: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    status: str = "ok"
    dynamo: str = "connected"
    broker: str = "connected"
    task_execution: str = "queued"
