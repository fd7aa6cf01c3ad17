"""Synthesis layer: batch planning, per-batch summaries and the meta-analysis."""

from survey_insights.synthesis.batch_planner import group_responses, plan_batches
from survey_insights.synthesis.batch_summarizer import (
    Summarizer,
    build_batch_messages,
    summarize_batch,
)
from survey_insights.synthesis.meta_analyzer import (
    build_meta_messages,
    build_meta_prompt,
    generate_meta_analysis,
)

__all__ = [
    "Summarizer",
    "group_responses",
    "plan_batches",
    "build_batch_messages",
    "summarize_batch",
    "build_meta_messages",
    "build_meta_prompt",
    "generate_meta_analysis",
]
