"""Orchestrator layer — insight lifecycle, LangGraph processing pipeline and Celery tasks."""

from survey_insights.orchestrator.celery_app import create_celery_app
from survey_insights.orchestrator.graph import build_processing_graph, get_compiled_processing_graph
from survey_insights.orchestrator.insight_orchestrator import InsightOrchestrator
from survey_insights.orchestrator.state import ProcessingState
from survey_insights.orchestrator.tasks import (
    TYPE_PROCESS_INSIGHT,
    TaskQueue,
    parse_process_insight_payload,
    register_process_insight_task,
)

__all__ = [
    "InsightOrchestrator",
    "ProcessingState",
    "TYPE_PROCESS_INSIGHT",
    "TaskQueue",
    "build_processing_graph",
    "create_celery_app",
    "get_compiled_processing_graph",
    "parse_process_insight_payload",
    "register_process_insight_task",
]
