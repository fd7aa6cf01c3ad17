"""LangGraph StateGraph for processing one insight.

Nodes:
  start_processing → summarize_batches → [all batches resolved?] → meta_analysis

Every node persists its result before returning, so a run that dies between
nodes resumes from the last write on the next delivery of the task.
"""

from typing import Any, Callable

import structlog
from langgraph.graph import END, StateGraph

from survey_insights.errors import SummarizationError
from survey_insights.models.enums import InsightStatus
from survey_insights.models.schemas import utcnow
from survey_insights.orchestrator.state import ProcessingState
from survey_insights.storage.repositories import InsightStore
from survey_insights.synthesis.batch_summarizer import Summarizer, summarize_batch
from survey_insights.synthesis.meta_analyzer import generate_meta_analysis

logger = structlog.get_logger(__name__)

Node = Callable[[ProcessingState], dict[str, Any]]


# ─────────────────────────── Node Functions ───────────────────────────


def make_start_processing_node(insights: InsightStore) -> Node:
    def start_processing(state: ProcessingState) -> dict[str, Any]:
        """Load the insight and move it to PROCESSING, clearing any earlier outcome."""
        insight = insights.get_by_id(state["insight_id"])
        changes = {
            "status": InsightStatus.PROCESSING,
            "completed_at": None,
            "analysis": "",
            "error_log": None,
            "updated_at": utcnow(),
        }
        version = insights.update(insight.insight_id, changes, expected_version=insight.version)
        insight = insight.model_copy(update={**changes, "version": version})

        logger.info(
            "insight_processing_started",
            insight_id=insight.insight_id,
            batch_count=len(insight.batches),
            pending_batches=sum(1 for b in insight.batches if b.summary is None),
        )
        return {"insight": insight, "version": version, "current_phase": "start_processing"}

    return start_processing


def make_summarize_batches_node(insights: InsightStore, summarizer: Summarizer) -> Node:
    def summarize_batches(state: ProcessingState) -> dict[str, Any]:
        """Summarize every batch without a summary, persisting the batch list after each one."""
        insight = state["insight"]
        version = state["version"]
        summarized: list[int] = []
        failed: list[int] = []

        batches = list(insight.batches)
        for index, batch in enumerate(batches):
            if batch.summary is not None:
                continue

            resolved = summarize_batch(summarizer, insight.insight_id, insight.context_type, batch)
            batches[index] = resolved
            if resolved.summary is not None:
                summarized.append(batch.batch_number)
            else:
                failed.append(batch.batch_number)

            changes = {"batches": list(batches), "updated_at": utcnow()}
            version = insights.update(insight.insight_id, changes, expected_version=version)
            insight = insight.model_copy(update={**changes, "version": version})

        logger.info(
            "insight_batches_processed",
            insight_id=insight.insight_id,
            summarized=len(summarized),
            failed=len(failed),
        )
        return {
            "insight": insight,
            "version": version,
            "summarized_batches": summarized,
            "failed_batches": failed,
            "current_phase": "summarize_batches",
        }

    return summarize_batches


def make_meta_analysis_node(insights: InsightStore, summarizer: Summarizer) -> Node:
    def meta_analysis(state: ProcessingState) -> dict[str, Any]:
        """Fold the batches into the overall analysis and close the insight."""
        insight = state["insight"]
        try:
            analysis = generate_meta_analysis(
                summarizer, insight.insight_id, insight.context_type, insight.batches
            )
        except SummarizationError as e:
            now = utcnow()
            changes = {
                "status": InsightStatus.FAILED,
                "analysis": "",
                "error_log": str(e),
                "completed_at": now,
                "updated_at": now,
            }
            insights.update(insight.insight_id, changes, expected_version=state["version"])
            logger.error("meta_analysis_error", insight_id=insight.insight_id, error=str(e))
            raise

        now = utcnow()
        changes = {
            "status": InsightStatus.COMPLETED,
            "analysis": analysis,
            "error_log": None,
            "completed_at": now,
            "updated_at": now,
        }
        version = insights.update(insight.insight_id, changes, expected_version=state["version"])
        logger.info("insight_completed", insight_id=insight.insight_id)
        return {
            "insight": insight.model_copy(update={**changes, "version": version}),
            "version": version,
            "current_phase": "meta_analysis",
        }

    return meta_analysis


def route_after_batches(state: ProcessingState) -> str:
    """Meta-analysis only runs once every batch carries a summary or an error."""
    insight = state["insight"]
    if insight.all_batches_resolved:
        return "meta_analysis"
    logger.warning("insight_batches_unresolved", insight_id=insight.insight_id)
    return END


# ─────────────────────────── Build the Graph ───────────────────────────


def build_processing_graph(insights: InsightStore, summarizer: Summarizer) -> StateGraph:
    """Build the LangGraph StateGraph for processing one insight."""
    graph = StateGraph(ProcessingState)

    graph.add_node("start_processing", make_start_processing_node(insights))
    graph.add_node("summarize_batches", make_summarize_batches_node(insights, summarizer))
    graph.add_node("meta_analysis", make_meta_analysis_node(insights, summarizer))

    graph.set_entry_point("start_processing")
    graph.add_edge("start_processing", "summarize_batches")
    graph.add_conditional_edges(
        "summarize_batches",
        route_after_batches,
        {"meta_analysis": "meta_analysis", END: END},
    )
    graph.add_edge("meta_analysis", END)

    return graph


def get_compiled_processing_graph(insights: InsightStore, summarizer: Summarizer):
    """Get a compiled, ready-to-invoke processing graph."""
    return build_processing_graph(insights, summarizer).compile()
