"""Background task definitions and the Celery-backed task queue."""
from typing import Any, Callable

from botocore.exceptions import BotoCoreError, ClientError
from celery import Celery
from kombu.exceptions import OperationalError
from pydantic import ValidationError
import structlog

from survey_insights.errors import NonRetryableError, TaskPayloadError, TaskQueueError
from survey_insights.models.schemas import ProcessInsightPayload, TaskInfo

logger = structlog.get_logger(__name__)

TYPE_PROCESS_INSIGHT = "insight:process"

DEFAULT_QUEUE = "insights"
DEFAULT_MAX_RETRY = 10
DEFAULT_RETRY_BACKOFF = 15
DEFAULT_RETRY_BACKOFF_MAX = 3600


def parse_process_insight_payload(insight_id: Any) -> str:
    """Return the insight id carried by a process task."""
    try:
        payload = ProcessInsightPayload.model_validate({"insight_id": insight_id})
    except ValidationError as e:
        raise TaskPayloadError(f"malformed {TYPE_PROCESS_INSIGHT} payload: {e}") from e
    insight_id = payload.insight_id.strip()
    if not insight_id:
        raise TaskPayloadError(
            f"{TYPE_PROCESS_INSIGHT} payload has no insight_id", {"payload": payload.model_dump()}
        )
    return insight_id


def register_process_insight_task(
    app: Celery,
    process_insight: Callable[[str], None],
    queue: str = DEFAULT_QUEUE,
    max_retries: int = DEFAULT_MAX_RETRY,
    retry_backoff: int = DEFAULT_RETRY_BACKOFF,
    retry_backoff_max: int = DEFAULT_RETRY_BACKOFF_MAX,
):
    """
    Register the insight processing task on ``app`` and return it.

    A failed run is retried after ``retry_backoff * 2**retries`` seconds, capped
    at ``retry_backoff_max``, for at most ``max_retries`` redeliveries. A
    NonRetryableError fails the task at once. A task that fails for good is
    acknowledged (removed from the queue) and logged as archived.
    """

    # shared=False: each app gets its own closure under the same task name
    @app.task(
        name=TYPE_PROCESS_INSIGHT,
        shared=False,
        bind=True,
        ignore_result=True,
        acks_late=True,
        queue=queue,
        max_retries=max_retries,
        autoretry_for=(Exception,),
        dont_autoretry_for=(NonRetryableError,),
        retry_backoff=retry_backoff,
        retry_backoff_max=retry_backoff_max,
        retry_jitter=False,
    )
    def process_insight_task(self, insight_id: str) -> None:
        insight_id = parse_process_insight_payload(insight_id)
        logger.info(
            "task_started",
            task_id=self.request.id,
            insight_id=insight_id,
            attempt=self.request.retries + 1,
        )
        process_insight(insight_id)

    return process_insight_task


class TaskQueue:
    """Puts insight processing tasks on the broker, on the task's own queue."""

    def __init__(self, task):
        self._task = task

    def enqueue_process_insight(self, insight_id: str) -> TaskInfo:
        queue = self._task.queue
        try:
            result = self._task.apply_async(args=[insight_id], queue=queue)
        except (OperationalError, ClientError, BotoCoreError) as e:
            logger.error("task_enqueue_failed", task_type=TYPE_PROCESS_INSIGHT, queue=queue, error=str(e))
            raise TaskQueueError(f"could not enqueue {TYPE_PROCESS_INSIGHT} on {queue}: {e}") from e

        info = TaskInfo(
            task_id=result.id, type=TYPE_PROCESS_INSIGHT, queue=queue, max_retry=self._task.max_retries
        )
        logger.info("task_enqueued", task_id=info.task_id, task_type=info.type, queue=queue)
        return info
