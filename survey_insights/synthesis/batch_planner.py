"""Partition a survey's responses into bounded summarization batches."""

from typing import Dict, Iterable, List, Mapping, Sequence

import structlog

from survey_insights.models.schemas import InsightBatch, Question, Submission, Survey

logger = structlog.get_logger(__name__)

DEFAULT_MAX_CHARS = 4000


def group_responses(submissions: Iterable[Submission]) -> Dict[str, List[str]]:
    """Collect answers per question id, in submission order then response order."""
    grouped: Dict[str, List[str]] = {}
    for submission in submissions:
        for response in submission.responses:
            grouped.setdefault(response.question_id, []).append(response.answer)
    return grouped


def _tally(answers: Sequence[str]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for answer in answers:
        counts[answer] = counts.get(answer, 0) + 1
    return counts


def _split_textual(answers: Sequence[str], max_chars: int) -> List[List[str]]:
    """Greedy split of free-text answers; a single oversized answer is never split."""
    chunks: List[List[str]] = [[]]
    running = 0
    for answer in answers:
        if chunks[-1] and running + len(answer) > max_chars:
            chunks.append([])
            running = 0
        chunks[-1].append(answer)
        running += len(answer)
    return chunks


def plan_batches(
    survey: Survey,
    responses_by_question: Mapping[str, Sequence[str]],
    max_chars: int = DEFAULT_MAX_CHARS,
) -> List[InsightBatch]:
    """
    Build the ordered batch list for an insight.

    Questions are walked in survey order and batch numbers run 1..N across
    all of them. Choice and scale questions get exactly one tally batch;
    TEXTBOX answers are packed into batches of at most ``max_chars`` characters
    (unless one answer alone is longer). Answers to question ids the survey
    does not define are ignored, and a question nobody answered still yields
    one empty batch.
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")

    batches: List[InsightBatch] = []
    next_number = 1

    for question in survey.questions:
        answers = list(responses_by_question.get(question.id, []))
        for batch in _batches_for_question(question, answers, max_chars, next_number):
            batches.append(batch)
            next_number += 1

    logger.info(
        "batches_planned",
        survey_id=survey.survey_id,
        question_count=len(survey.questions),
        batch_count=len(batches),
    )
    return batches


def _batches_for_question(
    question: Question,
    answers: List[str],
    max_chars: int,
    first_number: int,
) -> List[InsightBatch]:
    if question.type.is_aggregated:
        return [InsightBatch(
            batch_number=first_number,
            question=question.model_copy(deep=True),
            aggregated_answer=_tally(answers),
        )]

    return [
        InsightBatch(
            batch_number=first_number + offset,
            question=question.model_copy(deep=True),
            textual_answers=chunk,
        )
        for offset, chunk in enumerate(_split_textual(answers, max_chars))
    ]
