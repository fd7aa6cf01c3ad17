"""DynamoDB client helpers for the Survey Insights service."""
import copy
import threading
from decimal import Decimal
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import ClientError
import structlog

from survey_insights.config import Settings

logger = structlog.get_logger(__name__)

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"


class InMemoryTable:
    """In-memory DynamoDB table simulator for local development and tests.

    Supports the subset of the Table API the stores use: ``put_item``,
    ``get_item``, ``update_item`` with ``SET`` expressions, ``query``/``scan``
    with a single equality condition, and condition expressions made of
    ``attribute_exists(#a)``, ``attribute_not_exists(#a)`` and ``#a = :v``
    clauses joined by ``AND``.
    """

    def __init__(self, key_name: str):
        self._key_name = key_name
        self._storage: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def load(self) -> None:
        """Table metadata refresh; a no-op in memory."""

    def put_item(self, Item: Dict[str, Any], ConditionExpression: Optional[str] = None,
                 ExpressionAttributeNames: Optional[Dict[str, str]] = None,
                 ExpressionAttributeValues: Optional[Dict[str, Any]] = None) -> None:
        key = Item.get(self._key_name)
        with self._lock:
            self._check_condition(
                self._storage.get(key), ConditionExpression,
                ExpressionAttributeNames or {}, ExpressionAttributeValues or {}, "PutItem",
            )
            self._storage[key] = copy.deepcopy(Item)

    def get_item(self, Key: Dict[str, Any]) -> Dict[str, Any]:
        key_value = Key.get(self._key_name)
        with self._lock:
            item = self._storage.get(key_value)
            return {"Item": copy.deepcopy(item)} if item else {}

    def update_item(self, Key: Dict[str, Any], UpdateExpression: str,
                    ExpressionAttributeNames: Dict[str, str],
                    ExpressionAttributeValues: Dict[str, Any],
                    ConditionExpression: Optional[str] = None) -> None:
        key_value = Key.get(self._key_name)
        with self._lock:
            current = self._storage.get(key_value)
            self._check_condition(
                current, ConditionExpression,
                ExpressionAttributeNames, ExpressionAttributeValues, "UpdateItem",
            )
            item = dict(current) if current else {self._key_name: key_value}
            # Simple parser for SET expressions
            if UpdateExpression.startswith("SET "):
                for part in UpdateExpression[4:].split(", "):
                    alias, val_alias = part.split(" = ")
                    attr_name = ExpressionAttributeNames.get(alias, alias.lstrip("#"))
                    item[attr_name] = copy.deepcopy(ExpressionAttributeValues.get(val_alias))
            self._storage[key_value] = item

    def query(self, IndexName: Optional[str] = None, KeyConditionExpression: Any = None,
              **kwargs) -> Dict[str, Any]:
        # No secondary indexes in memory, a filtered scan gives the same items
        return self.scan(FilterExpression=KeyConditionExpression, **kwargs)

    def scan(self, FilterExpression: Any = None, **kwargs) -> Dict[str, Any]:
        with self._lock:
            items = copy.deepcopy(list(self._storage.values()))
        if FilterExpression is not None:
            expression = FilterExpression.get_expression()
            if expression["operator"] != "=":
                raise NotImplementedError(f"in-memory filter {expression['operator']!r}")
            attribute, value = expression["values"]
            items = [item for item in items if item.get(attribute.name) == value]
        return {"Items": items}

    def _check_condition(self, item: Optional[Dict[str, Any]], condition: Optional[str],
                         names: Dict[str, str], values: Dict[str, Any], operation: str) -> None:
        if not condition:
            return
        for clause in condition.split(" AND "):
            clause = clause.strip()
            if clause.startswith("attribute_exists("):
                attr = names.get(clause[len("attribute_exists("):-1])
                ok = item is not None and attr in item
            elif clause.startswith("attribute_not_exists("):
                attr = names.get(clause[len("attribute_not_exists("):-1])
                ok = item is None or attr not in item
            else:
                alias, val_alias = clause.split(" = ")
                attr = names.get(alias, alias.lstrip("#"))
                ok = item is not None and item.get(attr) == values.get(val_alias)
            if not ok:
                raise ClientError(
                    {"Error": {"Code": CONDITIONAL_CHECK_FAILED,
                               "Message": "The conditional request failed"}},
                    operation,
                )


class InMemoryResource:
    """In-memory DynamoDB resource simulator."""

    def __init__(self, key_names: Dict[str, str]):
        self._tables = {name: InMemoryTable(key) for name, key in key_names.items()}

    def Table(self, table_name: str) -> InMemoryTable:
        return self._tables[table_name]


_in_memory_resource: Optional[InMemoryResource] = None


def table_key_names(cfg: Settings) -> Dict[str, str]:
    """Partition key attribute of every table the service uses."""
    return {
        cfg.DYNAMO_TABLE_SURVEYS: "survey_id",
        cfg.DYNAMO_TABLE_SUBMISSIONS: "submission_id",
        cfg.DYNAMO_TABLE_INSIGHTS: "insight_id",
        cfg.DYNAMO_TABLE_COMPLETION_LOGS: "log_id",
    }


def get_dynamo_resource(cfg: Settings):
    """Get DynamoDB resource, using in-memory storage if MOCK_AWS."""
    global _in_memory_resource
    if cfg.MOCK_AWS:
        if _in_memory_resource is None:
            logger.debug("using_in_memory_dynamo")
            _in_memory_resource = InMemoryResource(table_key_names(cfg))
        return _in_memory_resource
    return boto3.resource(
        "dynamodb",
        region_name=cfg.AWS_REGION,
        aws_access_key_id=cfg.AWS_ACCESS_KEY_ID,
        aws_secret_access_key=cfg.AWS_SECRET_ACCESS_KEY,
    )


def convert_floats(obj: Any) -> Any:
    """Convert float values to Decimal for DynamoDB compatibility."""
    if isinstance(obj, float):
        return Decimal(str(obj))
    if isinstance(obj, dict):
        return {k: convert_floats(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [convert_floats(i) for i in obj]
    return obj


def convert_decimals(obj: Any) -> Any:
    """Convert Decimal values from DynamoDB responses back to int or float."""
    if isinstance(obj, Decimal):
        return int(obj) if obj == obj.to_integral_value() else float(obj)
    if isinstance(obj, dict):
        return {k: convert_decimals(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [convert_decimals(i) for i in obj]
    return obj


def is_condition_failure(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") == CONDITIONAL_CHECK_FAILED


def collect_pages(operation, **kwargs) -> List[Dict[str, Any]]:
    """Run a query or scan to exhaustion, following LastEvaluatedKey."""
    items: List[Dict[str, Any]] = []
    while True:
        response = operation(**kwargs)
        items.extend(convert_decimals(item) for item in response.get("Items", []))
        last_key = response.get("LastEvaluatedKey")
        if not last_key:
            return items
        kwargs["ExclusiveStartKey"] = last_key


def build_set_expression(changes: Dict[str, Any]) -> tuple[str, Dict[str, str], Dict[str, Any]]:
    """Build a ``SET`` update expression with aliased names and values."""
    parts = []
    names: Dict[str, str] = {}
    values: Dict[str, Any] = {}
    for i, (k, v) in enumerate(changes.items()):
        alias = f"#a{i}"
        val_alias = f":v{i}"
        parts.append(f"{alias} = {val_alias}")
        names[alias] = k
        values[val_alias] = convert_floats(v)
    return "SET " + ", ".join(parts), names, values
