"""
Error taxonomy for the insight pipeline.

Errors are grouped by how the pipeline reacts to them:

- ``NonRetryableError`` and its subclasses are terminal. The worker archives a
  task that raises one instead of scheduling a retry, and the HTTP layer maps
  them to 4xx responses.
- ``SummarizationError`` is a transient backend failure. Inside processing it is
  recorded on the batch (or, for the meta-analysis, on the insight).
- ``PersistenceError`` aborts the current step. Nothing after the last
  successful write is assumed durable, so a queue retry resumes from there.
"""
from typing import Any, Dict, Optional


class InsightPipelineError(Exception):
    """Base class for all pipeline errors."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NonRetryableError(InsightPipelineError):
    """Retrying the operation cannot succeed."""


class NotFoundError(NonRetryableError):
    code = "RESOURCE_NOT_FOUND"

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            f"{resource} {resource_id} not found",
            {"resource": resource, "id": resource_id},
        )
        self.resource = resource
        self.resource_id = resource_id


class InvalidRequestError(NonRetryableError):
    code = "VALIDATION_ERROR"


class TaskPayloadError(NonRetryableError):
    code = "INVALID_TASK_PAYLOAD"


class SummarizationError(InsightPipelineError):
    code = "SERVICE_UPSTREAM_ERROR"


class BatchSummarizationError(InsightPipelineError):
    """One or more batches could not be summarized in this run."""

    code = "BATCH_SUMMARIZATION_FAILED"

    def __init__(self, insight_id: str, failed_batches: list[int]):
        super().__init__(
            f"insight {insight_id}: {len(failed_batches)} batch(es) failed to summarize",
            {"insight_id": insight_id, "failed_batches": failed_batches},
        )
        self.failed_batches = failed_batches


class PersistenceError(InsightPipelineError):
    code = "PERSISTENCE_ERROR"


class ConcurrentUpdateError(PersistenceError):
    code = "RESOURCE_CONFLICT"

    def __init__(self, resource: str, resource_id: str, expected_version: int):
        super().__init__(
            f"{resource} {resource_id} was modified concurrently "
            f"(expected version {expected_version})",
            {"resource": resource, "id": resource_id, "expected_version": expected_version},
        )
        self.expected_version = expected_version


class TaskQueueError(InsightPipelineError):
    """The work queue rejected or could not accept a task."""

    code = "QUEUE_ERROR"
