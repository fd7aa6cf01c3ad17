"""Stage 1 — Per-batch summaries of survey answers."""

import json
from typing import List, Protocol

import structlog

from survey_insights.errors import SummarizationError
from survey_insights.models.enums import ContextType, QuestionType
from survey_insights.models.schemas import (
    ChatCompletionMessage,
    ChatCompletionRequest,
    InsightBatch,
)

logger = structlog.get_logger(__name__)


class Summarizer(Protocol):
    def new_request(self, messages: List[ChatCompletionMessage]) -> ChatCompletionRequest: ...

    def summarize(self, request: ChatCompletionRequest, reference: str | None = None) -> str: ...


BATCH_SYSTEM_PROMPT = (
    "You are a helpful assistant. Summarize the following survey responses "
    "in the context of {context}."
)

BATCH_USER_PROMPT = """Batch {batch_number}:
Question: {question}
Question type: {question_type}
{answers}

Please generate a concise summary."""


def batch_reference(insight_id: str, batch_number: int) -> str:
    return f"insight:{insight_id} batch:{batch_number}"


def format_batch_answers(batch: InsightBatch) -> str:
    """Render the batch payload: a JSON tally for choice/scale questions, bullets for text."""
    if batch.aggregated_answer is not None:
        tally = json.dumps(batch.aggregated_answer, sort_keys=True, ensure_ascii=False)
        if batch.question.type is QuestionType.LIKERT:
            return f"Likert scale distribution: {tally}"
        return f"Aggregated answers: {tally}"

    answers = batch.textual_answers or []
    if not answers:
        return "Answers: none"
    return "Answers:\n" + "\n".join(f"- {answer}" for answer in answers)


def build_batch_messages(batch: InsightBatch, context_type: ContextType) -> List[ChatCompletionMessage]:
    return [
        ChatCompletionMessage(
            role="system",
            content=BATCH_SYSTEM_PROMPT.format(context=context_type.label),
        ),
        ChatCompletionMessage(
            role="user",
            content=BATCH_USER_PROMPT.format(
                batch_number=batch.batch_number,
                question=batch.question.text,
                question_type=batch.question.type.value,
                answers=format_batch_answers(batch),
            ),
        ),
    ]


def summarize_batch(
    summarizer: Summarizer,
    insight_id: str,
    context_type: ContextType,
    batch: InsightBatch,
) -> InsightBatch:
    """Summarize one batch. Returns a resolved copy; the input batch is left untouched.

    A backend failure is recorded on the copy's ``error_log`` instead of being
    raised, so sibling batches still get their turn.
    """
    request = summarizer.new_request(build_batch_messages(batch, context_type))
    try:
        summary = summarizer.summarize(request, batch_reference(insight_id, batch.batch_number))
    except SummarizationError as e:
        logger.error(
            "batch_summary_error",
            insight_id=insight_id,
            batch_number=batch.batch_number,
            error=str(e),
        )
        return batch.model_copy(update={"error_log": str(e)})

    logger.info(
        "batch_summary_complete",
        insight_id=insight_id,
        batch_number=batch.batch_number,
        summary_length=len(summary),
    )
    return batch.model_copy(update={"summary": summary.strip(), "error_log": None})
