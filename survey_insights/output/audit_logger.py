"""Completion audit trail: every summarization request and its response."""

import uuid
from typing import Optional

from pydantic_core import to_jsonable_python
import structlog

from survey_insights.models.schemas import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    CompletionLog,
)
from survey_insights.storage.dynamo_client import convert_floats

logger = structlog.get_logger(__name__)


class CompletionAuditLog:
    """Writes CompletionLog records to the completion-logs table.

    Writes are best-effort: a failed write is logged and swallowed so that the
    summarization call it describes is never failed by its own audit trail.
    """

    def __init__(self, table):
        self._table = table

    def record_request(
        self,
        request: ChatCompletionRequest,
        reference: Optional[str] = None,
    ) -> Optional[str]:
        """Store the request before it is sent. Returns the log id, or None if the write failed."""
        entry = CompletionLog(log_id=str(uuid.uuid4()), reference=reference, request=request)
        try:
            self._table.put_item(Item=convert_floats(to_jsonable_python(entry)))
        except Exception as e:
            logger.error("completion_log_insert_failed", reference=reference, error=str(e))
            return None
        return entry.log_id

    def record_response(self, log_id: Optional[str], response: ChatCompletionResponse) -> None:
        if log_id is None:
            return
        try:
            self._table.update_item(
                Key={"log_id": log_id},
                UpdateExpression="SET #r = :r",
                ExpressionAttributeNames={"#r": "response"},
                ExpressionAttributeValues={":r": convert_floats(to_jsonable_python(response))},
            )
        except Exception as e:
            logger.error("completion_log_update_failed", log_id=log_id, error=str(e))
