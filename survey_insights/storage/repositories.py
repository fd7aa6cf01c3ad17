"""Survey, submission and insight stores backed by DynamoDB tables.

The orchestrator only depends on the ``*Store`` protocols, so any object with
the same methods (an in-memory fake in tests) can stand in for a table-backed
store.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import BotoCoreError, ClientError
from pydantic_core import to_jsonable_python
import structlog

from survey_insights.errors import ConcurrentUpdateError, NotFoundError, PersistenceError
from survey_insights.models.enums import InsightStatus
from survey_insights.models.schemas import Insight, Submission, Survey
from survey_insights.storage.dynamo_client import (
    build_set_expression,
    collect_pages,
    convert_decimals,
    convert_floats,
    is_condition_failure,
)

logger = structlog.get_logger(__name__)

SUBMISSIONS_BY_SURVEY_INDEX = "survey_id-index"


class SurveyStore(Protocol):
    def get_by_id(self, survey_id: str) -> Survey: ...


class SubmissionStore(Protocol):
    def get_all_by_survey(self, survey_id: str) -> List[Submission]: ...


class InsightStore(Protocol):
    def create(self, insight: Insight) -> None: ...

    def get_by_id(self, insight_id: str) -> Insight: ...

    def update(self, insight_id: str, changes: Dict[str, Any],
               expected_version: Optional[int] = None) -> int: ...

    def query(self, offset: int, limit: int, survey_id: Optional[str] = None) -> List[Insight]: ...

    def list_by_status(self, status: InsightStatus) -> List[Insight]: ...


def _to_item(value: Any) -> Any:
    return convert_floats(to_jsonable_python(value))


# ──────────────────── Surveys ────────────────────

class DynamoSurveyStore:
    def __init__(self, table):
        self._table = table

    def put(self, survey: Survey) -> None:
        try:
            self._table.put_item(Item=_to_item(survey))
        except (ClientError, BotoCoreError) as e:
            raise PersistenceError(f"survey write failed: {e}") from e

    def get_by_id(self, survey_id: str) -> Survey:
        try:
            response = self._table.get_item(Key={"survey_id": survey_id})
        except (ClientError, BotoCoreError) as e:
            raise PersistenceError(f"survey read failed: {e}") from e
        item = response.get("Item")
        if not item:
            raise NotFoundError("survey", survey_id)
        return Survey.model_validate(convert_decimals(item))


# ──────────────────── Submissions ────────────────────

class DynamoSubmissionStore:
    def __init__(self, table):
        self._table = table

    def put(self, submission: Submission) -> None:
        try:
            self._table.put_item(Item=_to_item(submission))
        except (ClientError, BotoCoreError) as e:
            raise PersistenceError(f"submission write failed: {e}") from e

    def get_all_by_survey(self, survey_id: str) -> List[Submission]:
        """All submissions of a survey, oldest first."""
        try:
            items = collect_pages(
                self._table.query,
                IndexName=SUBMISSIONS_BY_SURVEY_INDEX,
                KeyConditionExpression=Key("survey_id").eq(survey_id),
            )
        except (ClientError, BotoCoreError) as e:
            raise PersistenceError(f"submission query failed: {e}") from e
        submissions = [Submission.model_validate(item) for item in items]
        # Index order is not guaranteed across pages; planning needs a stable one
        submissions.sort(key=lambda s: (s.created_at, s.submission_id))
        return submissions


# ──────────────────── Insights ────────────────────

def _listing_key(insight: Insight) -> tuple:
    """Sort key for listings: in-flight first, then newest completion, update, creation."""
    completed = insight.completed_at
    return (
        completed is None,
        completed or datetime.min,
        insight.updated_at,
        insight.created_at,
    )


class DynamoInsightStore:
    def __init__(self, table):
        self._table = table

    def create(self, insight: Insight) -> None:
        try:
            self._table.put_item(
                Item=_to_item(insight),
                ConditionExpression="attribute_not_exists(#pk)",
                ExpressionAttributeNames={"#pk": "insight_id"},
            )
        except ClientError as e:
            if is_condition_failure(e):
                raise PersistenceError(f"insight {insight.insight_id} already exists") from e
            raise PersistenceError(f"insight write failed: {e}") from e
        except BotoCoreError as e:
            raise PersistenceError(f"insight write failed: {e}") from e

    def get_by_id(self, insight_id: str) -> Insight:
        try:
            response = self._table.get_item(Key={"insight_id": insight_id})
        except (ClientError, BotoCoreError) as e:
            raise PersistenceError(f"insight read failed: {e}") from e
        item = response.get("Item")
        if not item:
            raise NotFoundError("insight", insight_id)
        return Insight.model_validate(convert_decimals(item))

    def update(self, insight_id: str, changes: Dict[str, Any],
               expected_version: Optional[int] = None) -> int:
        """Apply ``changes`` and bump the version. Returns the new version.

        With ``expected_version`` the write only succeeds if nobody else has
        written the insight since that version was read.
        """
        if expected_version is None:
            expected_version = self.get_by_id(insight_id).version
        new_version = expected_version + 1
        expression, names, values = build_set_expression(
            {**to_jsonable_python(changes), "version": new_version}
        )
        names["#pk"] = "insight_id"
        names["#ver"] = "version"
        values[":expected"] = expected_version
        try:
            self._table.update_item(
                Key={"insight_id": insight_id},
                UpdateExpression=expression,
                ConditionExpression="attribute_exists(#pk) AND #ver = :expected",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
            )
        except ClientError as e:
            if is_condition_failure(e):
                # Distinguish a missing insight from a lost race
                self.get_by_id(insight_id)
                raise ConcurrentUpdateError("insight", insight_id, expected_version) from e
            raise PersistenceError(f"insight update failed: {e}") from e
        except BotoCoreError as e:
            raise PersistenceError(f"insight update failed: {e}") from e
        return new_version

    def query(self, offset: int, limit: int, survey_id: Optional[str] = None) -> List[Insight]:
        kwargs: Dict[str, Any] = {}
        if survey_id is not None:
            kwargs["FilterExpression"] = Attr("survey_id").eq(survey_id)
        try:
            items = collect_pages(self._table.scan, **kwargs)
        except (ClientError, BotoCoreError) as e:
            raise PersistenceError(f"insight scan failed: {e}") from e
        insights = [Insight.model_validate(item) for item in items]
        insights.sort(key=_listing_key, reverse=True)
        return insights[offset:offset + limit]

    def list_by_status(self, status: InsightStatus) -> List[Insight]:
        try:
            items = collect_pages(
                self._table.scan, FilterExpression=Attr("status").eq(status.value)
            )
        except (ClientError, BotoCoreError) as e:
            raise PersistenceError(f"insight scan failed: {e}") from e
        return [Insight.model_validate(item) for item in items]
