"""LangGraph state definition for one ProcessInsight run."""

from typing import TypedDict

from survey_insights.models.schemas import Insight


class ProcessingState(TypedDict, total=False):
    """The state that flows through the processing graph.

    ``insight`` is the in-memory snapshot matching ``version`` in the store;
    every node that writes returns both so the next write can be checked
    against the version it was derived from.
    """
    # ─── Inputs ───
    insight_id: str

    # ─── Persisted snapshot ───
    insight: Insight
    version: int

    # ─── Run bookkeeping ───
    summarized_batches: list[int]
    failed_batches: list[int]
    current_phase: str
