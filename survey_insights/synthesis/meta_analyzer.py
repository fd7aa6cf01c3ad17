"""Stage 2 — Cross-question meta-analysis over the batch summaries."""

import json
from typing import List, Sequence

import structlog

from survey_insights.errors import SummarizationError
from survey_insights.models.enums import ContextType
from survey_insights.models.schemas import ChatCompletionMessage, InsightBatch
from survey_insights.synthesis.batch_summarizer import Summarizer

logger = structlog.get_logger(__name__)


META_SYSTEM_PROMPT = (
    "You are a helpful assistant. Analyze survey responses in the context of {context}."
)

META_PROMPT_HEADER = "Here are the summaries of different batches of answers:"

META_PROMPT_FOOTER = (
    "Write an overall analysis of the survey that connects the findings across "
    "questions, highlights the main themes, and notes where data was missing or "
    "could not be summarized."
)


def meta_reference(insight_id: str) -> str:
    return f"insight:{insight_id} meta"


def _describe_batch(batch: InsightBatch) -> str:
    count = batch.response_count
    header = (
        f"Batch {batch.batch_number} (Question: {batch.question.text}; "
        f"Type: {batch.question.type.value}; Responses: {count})"
    )
    if batch.summary is not None:
        body = batch.summary
    else:
        # No summary: pass the raw data along so the question is not lost
        lines = []
        if batch.aggregated_answer is not None and count:
            tally = json.dumps(batch.aggregated_answer, sort_keys=True, ensure_ascii=False)
            lines.append(f"Aggregated answers: {tally}")
        elif count:
            lines.append(f"Text answers: {count}")
        lines.append(f"Error: {batch.error_log}" if batch.error_log is not None else "Not summarized.")
        body = "\n".join(lines)
    if count == 0:
        body = f"No responses. {body}"
    return f"{header}:\n{body}"


def build_meta_prompt(batches: Sequence[InsightBatch]) -> str:
    """Fold every batch, in batch order, into one prompt."""
    parts = [META_PROMPT_HEADER]
    parts.extend(_describe_batch(batch) for batch in batches)
    parts.append(META_PROMPT_FOOTER)
    return "\n\n".join(parts)


def build_meta_messages(
    batches: Sequence[InsightBatch],
    context_type: ContextType,
) -> List[ChatCompletionMessage]:
    return [
        ChatCompletionMessage(role="system", content=META_SYSTEM_PROMPT.format(context=context_type.label)),
        ChatCompletionMessage(role="user", content=build_meta_prompt(batches)),
    ]


def generate_meta_analysis(
    summarizer: Summarizer,
    insight_id: str,
    context_type: ContextType,
    batches: Sequence[InsightBatch],
) -> str:
    """Produce the overall analysis. Raises SummarizationError on backend failure."""
    request = summarizer.new_request(build_meta_messages(batches, context_type))
    analysis = summarizer.summarize(request, meta_reference(insight_id)).strip()
    if not analysis:
        raise SummarizationError("empty analysis returned", {"insight_id": insight_id})

    logger.info(
        "meta_analysis_complete",
        insight_id=insight_id,
        batch_count=len(batches),
        analysis_length=len(analysis),
    )
    return analysis
