"""Summarization client over the AWS Bedrock Converse API."""
from typing import Any, Dict, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from survey_insights.config import Settings
from survey_insights.errors import SummarizationError
from survey_insights.models.schemas import (
    ChatCompletionChoice,
    ChatCompletionMessage,
    ChatCompletionRequest,
    ChatCompletionResponse,
)
from survey_insights.output.audit_logger import CompletionAuditLog
from survey_insights.utils.logger import get_logger

logger = get_logger("bedrock_client")

MOCK_SUMMARY_PREFIX = "[mock summary]"


def get_bedrock_runtime_client(cfg: Settings):
    """Get the Bedrock Runtime client, or None in mock mode.

    Retries are left to the work queue, so botocore's own retry loop is off and
    a single read is bounded by SUMMARY_TIMEOUT_SECONDS.
    """
    if cfg.MOCK_AWS:
        return None
    return boto3.client(
        "bedrock-runtime",
        region_name=cfg.BEDROCK_REGION,
        aws_access_key_id=cfg.AWS_ACCESS_KEY_ID,
        aws_secret_access_key=cfg.AWS_SECRET_ACCESS_KEY,
        config=Config(
            read_timeout=cfg.SUMMARY_TIMEOUT_SECONDS,
            connect_timeout=cfg.SUMMARY_TIMEOUT_SECONDS,
            retries={"max_attempts": 0},
        ),
    )


def to_converse_kwargs(request: ChatCompletionRequest) -> Dict[str, Any]:
    """Translate a role-tagged chat request into Converse API arguments."""
    system: List[Dict[str, str]] = []
    messages: List[Dict[str, Any]] = []
    for message in request.messages:
        if message.role == "system":
            system.append({"text": message.content})
        else:
            messages.append({"role": message.role, "content": [{"text": message.content}]})

    kwargs: Dict[str, Any] = {
        "modelId": request.model,
        "messages": messages,
        "inferenceConfig": {
            "maxTokens": request.max_tokens,
            "temperature": request.temperature,
            "topP": request.top_p,
        },
    }
    if system:
        kwargs["system"] = system
    return kwargs


def from_converse_response(response: Dict[str, Any]) -> ChatCompletionResponse:
    output = response.get("output", {})
    message = output.get("message", {})
    content_blocks = message.get("content", [])

    result_text = ""
    for block in content_blocks:
        if "text" in block:
            result_text += block["text"]

    choices = []
    if content_blocks:
        choices.append(ChatCompletionChoice(
            message=ChatCompletionMessage(role=message.get("role", "assistant"), content=result_text),
            finish_reason=response.get("stopReason"),
        ))
    return ChatCompletionResponse(choices=choices, usage=response.get("usage", {}))


def mock_completion(request: ChatCompletionRequest) -> ChatCompletionResponse:
    """Deterministic stand-in answer used when MOCK_AWS is enabled."""
    user_text = next((m.content for m in reversed(request.messages) if m.role == "user"), "")
    first_line = user_text.strip().splitlines()[0] if user_text.strip() else "no input"
    content = f"{MOCK_SUMMARY_PREFIX} {first_line[:120]}"
    return ChatCompletionResponse(
        choices=[ChatCompletionChoice(
            message=ChatCompletionMessage(role="assistant", content=content),
            finish_reason="end_turn",
        )],
    )


class SummarizationClient:
    """Sends chat requests to the text-generation backend and returns the first answer."""

    def __init__(
        self,
        runtime_client,
        audit_log: Optional[CompletionAuditLog] = None,
        model: str = "anthropic.claude-haiku-4-5-20251001",
        temperature: float = 0.5,
        top_p: float = 1.0,
        max_tokens: int = 800,
    ):
        self._client = runtime_client
        self._audit_log = audit_log
        self.model = model
        self.temperature = temperature
        self.top_p = top_p
        self.max_tokens = max_tokens

    def new_request(self, messages: List[ChatCompletionMessage]) -> ChatCompletionRequest:
        """Build a request carrying the client's model and generation parameters."""
        return ChatCompletionRequest(
            model=self.model,
            messages=messages,
            temperature=self.temperature,
            top_p=self.top_p,
            max_tokens=self.max_tokens,
        )

    def summarize(self, request: ChatCompletionRequest, reference: Optional[str] = None) -> str:
        """
        Send ``request`` and return the text of the first candidate.

        Args:
            request: Role-tagged messages plus generation parameters.
            reference: Free-form tag stored with the audit record
                (``insight:<id> batch:<n>``).

        Raises:
            SummarizationError: on timeout, transport failure, an error
                response, or a response without candidates.
        """
        log_id = self._audit_log.record_request(request, reference) if self._audit_log else None

        if self._client is None:
            logger.warning("bedrock_mock_mode", reference=reference)
            response = mock_completion(request)
        else:
            try:
                raw = self._client.converse(**to_converse_kwargs(request))
            except ClientError as e:
                code = e.response.get("Error", {}).get("Code", "Unknown")
                logger.error("summarization_request_failed", reference=reference, code=code)
                raise SummarizationError(
                    f"summarization request failed: {code}: {e}",
                    {"reference": reference, "code": code},
                ) from e
            except BotoCoreError as e:
                logger.error("summarization_transport_failed", reference=reference, error=str(e))
                raise SummarizationError(
                    f"summarization transport failed: {e}", {"reference": reference}
                ) from e
            response = from_converse_response(raw)

        if self._audit_log:
            self._audit_log.record_response(log_id, response)

        if not response.choices:
            raise SummarizationError("no choices returned", {"reference": reference})

        content = response.choices[0].message.content
        if not content.strip():
            raise SummarizationError("empty completion returned", {"reference": reference})
        logger.info("summarization_complete", reference=reference, length=len(content))
        return content
