"""
tests/conftest.py

Shared fixtures: in-memory DynamoDB tables behind the real stores, a scripted
summarizer and a recording task queue.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

import pytest

from survey_insights.errors import SummarizationError, TaskQueueError
from survey_insights.models.enums import QuestionType
from survey_insights.models.schemas import (
    ChatCompletionRequest,
    Question,
    QuestionSpecification,
    Submission,
    SubmissionResponse,
    Survey,
    TaskInfo,
)
from survey_insights.orchestrator.insight_orchestrator import InsightOrchestrator
from survey_insights.orchestrator.tasks import TYPE_PROCESS_INSIGHT
from survey_insights.processing.bedrock_client import SummarizationClient
from survey_insights.storage.dynamo_client import InMemoryTable
from survey_insights.storage.repositories import (
    DynamoInsightStore,
    DynamoSubmissionStore,
    DynamoSurveyStore,
)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class ScriptedSummarizer(SummarizationClient):
    """SummarizationClient whose backend answers are scripted per reference.

    ``fail`` decides, per reference, whether the call raises SummarizationError.
    """

    def __init__(self, fail: Optional[Callable[[str], bool]] = None):
        super().__init__(None, model="test-model")
        self.fail = fail or (lambda reference: False)
        self.calls: List[str] = []
        self.requests: List[ChatCompletionRequest] = []

    def summarize(self, request: ChatCompletionRequest, reference: Optional[str] = None) -> str:
        self.calls.append(reference)
        self.requests.append(request)
        if self.fail(reference):
            raise SummarizationError(f"backend unavailable for {reference}")
        return f"summary of {reference}"


class RecordingTaskQueue:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.enqueued: List[str] = []

    def enqueue_process_insight(self, insight_id: str) -> TaskInfo:
        if self.fail:
            raise TaskQueueError("queue is down")
        self.enqueued.append(insight_id)
        return TaskInfo(
            task_id=f"task-{len(self.enqueued)}",
            type=TYPE_PROCESS_INSIGHT,
            queue="insights",
            max_retry=10,
        )


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


def make_survey(survey_id: str = "survey-1") -> Survey:
    """One TEXTBOX question (max length 250) and one MULTIPLE_CHOICE question (A/B)."""
    return Survey(
        survey_id=survey_id,
        name="Course survey",
        token="tok-1",
        questions=[
            Question(
                id="q-text",
                text="What did you think of the course?",
                type=QuestionType.TEXTBOX,
                specification=QuestionSpecification(max_length=250),
            ),
            Question(
                id="q-choice",
                text="Pick one",
                type=QuestionType.MULTIPLE_CHOICE,
                specification=QuestionSpecification(options=["A", "B"]),
            ),
        ],
    )


def make_submission(index: int, answers: Dict[str, str], survey_id: str = "survey-1") -> Submission:
    created = BASE_TIME + timedelta(seconds=index)
    return Submission(
        submission_id=f"sub-{index}",
        survey_id=survey_id,
        responses=[SubmissionResponse(question_id=q, answer=a) for q, a in answers.items()],
        created_at=created,
        updated_at=created,
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def survey_store() -> DynamoSurveyStore:
    return DynamoSurveyStore(InMemoryTable("survey_id"))


@pytest.fixture()
def submission_store() -> DynamoSubmissionStore:
    return DynamoSubmissionStore(InMemoryTable("submission_id"))


@pytest.fixture()
def insight_store() -> DynamoInsightStore:
    return DynamoInsightStore(InMemoryTable("insight_id"))


@pytest.fixture()
def summarizer() -> ScriptedSummarizer:
    return ScriptedSummarizer()


@pytest.fixture()
def task_queue() -> RecordingTaskQueue:
    return RecordingTaskQueue()


@pytest.fixture()
def seeded_survey(survey_store, submission_store) -> Survey:
    """The hello/world/hi survey with three submissions."""
    survey = make_survey()
    survey_store.put(survey)
    for index, (text, choice) in enumerate([("hello", "A"), ("world", "B"), ("hi", "A")]):
        submission_store.put(make_submission(index, {"q-text": text, "q-choice": choice}))
    return survey


@pytest.fixture()
def orchestrator(survey_store, submission_store, insight_store, summarizer, task_queue) -> InsightOrchestrator:
    return InsightOrchestrator(survey_store, submission_store, insight_store, summarizer, task_queue)
