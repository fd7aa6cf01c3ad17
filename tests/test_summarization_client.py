"""
tests/test_summarization_client.py

Tests for the Bedrock-backed summarization client: request translation,
first-candidate extraction, error wrapping, mock mode and the best-effort
completion audit log.
"""

from __future__ import annotations

from typing import Any, Dict, List

import pytest
from botocore.exceptions import ClientError, ReadTimeoutError

from survey_insights.config import Settings
from survey_insights.errors import SummarizationError
from survey_insights.models.enums import ContextType, QuestionType
from survey_insights.models.schemas import ChatCompletionMessage, InsightBatch, Question
from survey_insights.output.audit_logger import CompletionAuditLog
from survey_insights.processing.bedrock_client import (
    MOCK_SUMMARY_PREFIX,
    SummarizationClient,
    get_bedrock_runtime_client,
    to_converse_kwargs,
)
from survey_insights.storage.dynamo_client import InMemoryTable
from survey_insights.synthesis.batch_summarizer import summarize_batch


class FakeRuntime:
    """Stands in for a bedrock-runtime client."""

    def __init__(self, response: Dict[str, Any] | None = None, error: Exception | None = None):
        self.response = response
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def converse(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response


def _answer(text: str) -> Dict[str, Any]:
    return {
        "output": {"message": {"role": "assistant", "content": [{"text": text}]}},
        "stopReason": "end_turn",
        "usage": {"inputTokens": 10, "outputTokens": 5, "totalTokens": 15},
    }


def _messages() -> List[ChatCompletionMessage]:
    return [
        ChatCompletionMessage(role="system", content="You are a helpful assistant."),
        ChatCompletionMessage(role="user", content="Answers:\n- hello"),
    ]


class BrokenTable:
    def put_item(self, **kwargs):
        raise RuntimeError("table gone")

    def update_item(self, **kwargs):
        raise RuntimeError("table gone")


# ---------------------------------------------------------------------------
# Request translation
# ---------------------------------------------------------------------------


class TestConverseRequest:
    def test_system_messages_are_split_out(self) -> None:
        client = SummarizationClient(None, model="m-1", temperature=0.5, top_p=1.0, max_tokens=800)
        kwargs = to_converse_kwargs(client.new_request(_messages()))

        assert kwargs["modelId"] == "m-1"
        assert kwargs["system"] == [{"text": "You are a helpful assistant."}]
        assert kwargs["messages"] == [{"role": "user", "content": [{"text": "Answers:\n- hello"}]}]
        assert kwargs["inferenceConfig"] == {"maxTokens": 800, "temperature": 0.5, "topP": 1.0}

    def test_mock_mode_has_no_runtime_client(self) -> None:
        assert get_bedrock_runtime_client(Settings(MOCK_AWS=True)) is None


# ---------------------------------------------------------------------------
# summarize
# ---------------------------------------------------------------------------


class TestSummarize:
    def test_returns_first_candidate_text(self) -> None:
        runtime = FakeRuntime(_answer("People liked it."))
        client = SummarizationClient(runtime)
        assert client.summarize(client.new_request(_messages()), "insight:x batch:1") == "People liked it."
        assert len(runtime.calls) == 1

    def test_empty_output_is_an_error(self) -> None:
        runtime = FakeRuntime({"output": {"message": {"role": "assistant", "content": []}}})
        client = SummarizationClient(runtime)
        with pytest.raises(SummarizationError, match="no choices returned"):
            client.summarize(client.new_request(_messages()))

    @pytest.mark.parametrize("text", ["", "   \n"])
    def test_blank_completion_is_an_error(self, text) -> None:
        client = SummarizationClient(FakeRuntime(_answer(text)))
        with pytest.raises(SummarizationError, match="empty completion returned"):
            client.summarize(client.new_request(_messages()), "insight:x batch:1")

    def test_error_response_is_wrapped(self) -> None:
        error = ClientError({"Error": {"Code": "ThrottlingException", "Message": "slow down"}}, "Converse")
        client = SummarizationClient(FakeRuntime(error=error))
        with pytest.raises(SummarizationError) as excinfo:
            client.summarize(client.new_request(_messages()), "insight:x meta")
        assert excinfo.value.details["code"] == "ThrottlingException"

    def test_timeout_is_wrapped(self) -> None:
        client = SummarizationClient(FakeRuntime(error=ReadTimeoutError(endpoint_url="https://bedrock")))
        with pytest.raises(SummarizationError):
            client.summarize(client.new_request(_messages()))

    def test_mock_mode_is_deterministic(self) -> None:
        client = SummarizationClient(None)
        request = client.new_request(_messages())
        first = client.summarize(request)
        assert first.startswith(MOCK_SUMMARY_PREFIX)
        assert first == client.summarize(request)


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------


class TestAuditLog:
    def test_request_and_response_are_recorded(self) -> None:
        table = InMemoryTable("log_id")
        client = SummarizationClient(FakeRuntime(_answer("ok")), audit_log=CompletionAuditLog(table))
        client.summarize(client.new_request(_messages()), "insight:x batch:2")

        (entry,) = table.scan()["Items"]
        assert entry["reference"] == "insight:x batch:2"
        assert entry["request"]["messages"][1]["content"] == "Answers:\n- hello"
        assert entry["response"]["choices"][0]["message"]["content"] == "ok"

    def test_failed_call_keeps_request_without_response(self) -> None:
        table = InMemoryTable("log_id")
        error = ClientError({"Error": {"Code": "ValidationException", "Message": "bad"}}, "Converse")
        client = SummarizationClient(FakeRuntime(error=error), audit_log=CompletionAuditLog(table))
        with pytest.raises(SummarizationError):
            client.summarize(client.new_request(_messages()), "insight:x meta")

        (entry,) = table.scan()["Items"]
        assert entry["reference"] == "insight:x meta"
        assert entry["response"] is None

    def test_audit_failure_never_fails_the_call(self) -> None:
        client = SummarizationClient(FakeRuntime(_answer("fine")), audit_log=CompletionAuditLog(BrokenTable()))
        assert client.summarize(client.new_request(_messages()), "insight:x batch:1") == "fine"


# ---------------------------------------------------------------------------
# Batch resolution
# ---------------------------------------------------------------------------


class TestBlankBatchSummary:
    def test_blank_completion_leaves_batch_errored(self) -> None:
        batch = InsightBatch(
            batch_number=1,
            question=Question(id="q1", text="Why?", type=QuestionType.TEXTBOX),
            textual_answers=["because"],
        )
        client = SummarizationClient(FakeRuntime(_answer("  ")))

        resolved = summarize_batch(client, "x", ContextType.COURSE_FEEDBACK, batch)

        assert resolved.summary is None
        assert "empty completion returned" in resolved.error_log
