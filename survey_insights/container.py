"""Composition root: wires stores, summarizer, Celery app and task, and the orchestrator."""
from dataclasses import dataclass
from typing import Any, Optional

from celery import Celery

from survey_insights.config import Settings
from survey_insights.orchestrator.celery_app import create_celery_app
from survey_insights.orchestrator.insight_orchestrator import InsightOrchestrator
from survey_insights.orchestrator.tasks import TaskQueue, register_process_insight_task
from survey_insights.output.audit_logger import CompletionAuditLog
from survey_insights.processing.bedrock_client import SummarizationClient, get_bedrock_runtime_client
from survey_insights.storage.dynamo_client import get_dynamo_resource
from survey_insights.storage.repositories import (
    DynamoInsightStore,
    DynamoSubmissionStore,
    DynamoSurveyStore,
)
from survey_insights.utils.logger import get_logger

logger = get_logger("container")


@dataclass
class Services:
    settings: Settings
    surveys: DynamoSurveyStore
    submissions: DynamoSubmissionStore
    insights: DynamoInsightStore
    insights_table: Any
    summarizer: SummarizationClient
    celery_app: Celery
    process_insight_task: Any
    task_queue: TaskQueue
    orchestrator: InsightOrchestrator


def build_services(cfg: Settings, summarizer: Optional[SummarizationClient] = None) -> Services:
    """Build every collaborator from settings. ``summarizer`` overrides the Bedrock client."""
    dynamo = get_dynamo_resource(cfg)
    insights_table = dynamo.Table(cfg.DYNAMO_TABLE_INSIGHTS)

    surveys = DynamoSurveyStore(dynamo.Table(cfg.DYNAMO_TABLE_SURVEYS))
    submissions = DynamoSubmissionStore(dynamo.Table(cfg.DYNAMO_TABLE_SUBMISSIONS))
    insights = DynamoInsightStore(insights_table)

    if summarizer is None:
        summarizer = SummarizationClient(
            get_bedrock_runtime_client(cfg),
            audit_log=CompletionAuditLog(dynamo.Table(cfg.DYNAMO_TABLE_COMPLETION_LOGS)),
            model=cfg.BEDROCK_MODEL_SUMMARY,
            temperature=cfg.SUMMARY_TEMPERATURE,
            top_p=cfg.SUMMARY_TOP_P,
            max_tokens=cfg.SUMMARY_MAX_TOKENS,
        )

    celery_app = create_celery_app(cfg)

    def process_insight(insight_id: str) -> None:
        orchestrator.process_insight(insight_id)

    process_insight_task = register_process_insight_task(
        celery_app,
        process_insight,
        queue=cfg.INSIGHT_QUEUE_NAME,
        max_retries=cfg.INSIGHT_TASK_MAX_RETRY,
        retry_backoff=cfg.RETRY_INITIAL_DELAY_SECONDS,
        retry_backoff_max=cfg.RETRY_MAX_DELAY_SECONDS,
    )
    task_queue = TaskQueue(process_insight_task)

    orchestrator = InsightOrchestrator(
        surveys,
        submissions,
        insights,
        summarizer,
        task_queue,
        max_batch_chars=cfg.BATCH_MAX_CHARS,
    )

    logger.info("services_built", mock_aws=cfg.MOCK_AWS, model=summarizer.model)
    return Services(
        settings=cfg,
        surveys=surveys,
        submissions=submissions,
        insights=insights,
        insights_table=insights_table,
        summarizer=summarizer,
        celery_app=celery_app,
        process_insight_task=process_insight_task,
        task_queue=task_queue,
        orchestrator=orchestrator,
    )


def worker_argv(cfg: Settings) -> list[str]:
    return [
        "worker",
        f"--loglevel={cfg.LOG_LEVEL}",
        "--pool=threads",
        f"--concurrency={cfg.WORKER_CONCURRENCY}",
        f"--queues={','.join(cfg.worker_queue_list)}",
    ]


def run_worker(services: Services) -> None:
    """Reclaim stale PENDING insights, then consume the insight queues until shutdown."""
    cfg = services.settings
    reclaimed = services.orchestrator.reclaim_pending_insights()
    logger.info(
        "worker_starting",
        queues=cfg.worker_queue_list,
        concurrency=cfg.WORKER_CONCURRENCY,
        reclaimed=reclaimed,
    )
    services.celery_app.worker_main(worker_argv(cfg))
