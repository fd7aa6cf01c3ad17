"""Insight lifecycle: creation, background processing, lookup and startup recovery."""

import uuid
from typing import List, Optional, Protocol

import structlog

from survey_insights.errors import (
    BatchSummarizationError,
    ConcurrentUpdateError,
    InvalidRequestError,
)
from survey_insights.models.enums import ContextType, InsightStatus
from survey_insights.models.schemas import Insight, TaskInfo, utcnow
from survey_insights.orchestrator.graph import get_compiled_processing_graph
from survey_insights.storage.repositories import InsightStore, SubmissionStore, SurveyStore
from survey_insights.synthesis.batch_planner import DEFAULT_MAX_CHARS, group_responses, plan_batches
from survey_insights.synthesis.batch_summarizer import Summarizer

logger = structlog.get_logger(__name__)

MAX_PAGE_SIZE = 100

RECLAIMED_ERROR = (
    "Insight was still pending when the worker started; its processing task was lost."
)


class InsightTaskQueue(Protocol):
    def enqueue_process_insight(self, insight_id: str) -> TaskInfo: ...


def parse_context_type(value) -> ContextType:
    try:
        return ContextType(value)
    except ValueError as e:
        allowed = ", ".join(c.value for c in ContextType)
        raise InvalidRequestError(
            f"invalid context type {value!r}", {"allowed": allowed}
        ) from e


class InsightOrchestrator:
    """Owns every state change of an insight."""

    def __init__(
        self,
        surveys: SurveyStore,
        submissions: SubmissionStore,
        insights: InsightStore,
        summarizer: Summarizer,
        tasks: InsightTaskQueue,
        max_batch_chars: int = DEFAULT_MAX_CHARS,
    ):
        self._surveys = surveys
        self._submissions = submissions
        self._insights = insights
        self._tasks = tasks
        self._max_batch_chars = max_batch_chars
        self._graph = get_compiled_processing_graph(insights, summarizer)

    def create_insight(self, survey_id: str, context_type) -> Insight:
        """
        Plan and persist a PENDING insight for a survey, then queue its processing.

        Raises:
            InvalidRequestError: unknown context type; nothing is stored.
            NotFoundError: unknown survey; nothing is stored.
            TaskQueueError: the insight is stored but its task could not be
                queued. It stays PENDING until the next startup sweep.
        """
        context = parse_context_type(context_type)
        survey = self._surveys.get_by_id(survey_id)
        submissions = self._submissions.get_all_by_survey(survey_id)

        batches = plan_batches(survey, group_responses(submissions), self._max_batch_chars)
        insight = Insight(
            insight_id=str(uuid.uuid4()),
            survey_id=survey.survey_id,
            context_type=context,
            status=InsightStatus.PENDING,
            batches=batches,
        )
        self._insights.create(insight)
        logger.info(
            "insight_created",
            insight_id=insight.insight_id,
            survey_id=survey_id,
            submission_count=len(submissions),
            batch_count=len(batches),
        )

        self._tasks.enqueue_process_insight(insight.insight_id)
        return self._insights.get_by_id(insight.insight_id)

    def process_insight(self, insight_id: str) -> None:
        """
        Run (or resume) processing of one insight. Called by the queue worker.

        Batches that already carry a summary are never sent again. Any error
        is raised so the queue's retry policy applies; a run in which some
        batch failed raises BatchSummarizationError after the insight has been
        closed, so the failed batches get another attempt on redelivery.
        """
        logger.info("insight_processing_requested", insight_id=insight_id)
        final_state = self._graph.invoke({"insight_id": insight_id})

        failed = final_state.get("failed_batches", [])
        if failed:
            raise BatchSummarizationError(insight_id, failed)

    def get_insights(
        self,
        offset: int = 0,
        limit: int = 20,
        survey_id: Optional[str] = None,
    ) -> List[Insight]:
        if offset < 0:
            raise InvalidRequestError("offset must not be negative", {"offset": offset})
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise InvalidRequestError(
                f"limit must be between 1 and {MAX_PAGE_SIZE}", {"limit": limit}
            )
        return self._insights.query(offset, limit, survey_id)

    def get_insight(self, insight_id: str) -> Insight:
        return self._insights.get_by_id(insight_id)

    def reclaim_pending_insights(self) -> int:
        """Fail every insight left PENDING by an earlier process. Returns how many were reclaimed."""
        reclaimed = 0
        for insight in self._insights.list_by_status(InsightStatus.PENDING):
            now = utcnow()
            try:
                self._insights.update(
                    insight.insight_id,
                    {
                        "status": InsightStatus.FAILED,
                        "analysis": "",
                        "error_log": RECLAIMED_ERROR,
                        "completed_at": now,
                        "updated_at": now,
                    },
                    expected_version=insight.version,
                )
            except ConcurrentUpdateError:
                logger.warning("insight_reclaim_skipped", insight_id=insight.insight_id)
                continue
            reclaimed += 1
            logger.warning("insight_reclaimed", insight_id=insight.insight_id)

        logger.info("pending_insights_reclaimed", count=reclaimed)
        return reclaimed
