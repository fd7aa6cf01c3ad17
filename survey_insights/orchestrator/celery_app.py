"""Celery application for the insight work queue: SQS broker, structlog logging, task lifecycle logs."""
from urllib.parse import quote

import structlog
from celery import Celery, signals

from survey_insights import config
from survey_insights.config import Settings, get_settings
from survey_insights.utils.logger import setup_logging

logger = structlog.get_logger(__name__)


def broker_url(cfg: Settings) -> str:
    """An explicit CELERY_BROKER_URL wins; MOCK_AWS uses the in-memory transport; otherwise SQS."""
    if cfg.CELERY_BROKER_URL:
        return cfg.CELERY_BROKER_URL
    if cfg.MOCK_AWS:
        return "memory://"
    if cfg.AWS_ACCESS_KEY_ID and cfg.AWS_SECRET_ACCESS_KEY:
        key = quote(cfg.AWS_ACCESS_KEY_ID, safe="")
        secret = quote(cfg.AWS_SECRET_ACCESS_KEY, safe="")
        return f"sqs://{key}:{secret}@"
    # Credentials from boto3's default chain
    return "sqs://"


def create_celery_app(cfg: Settings) -> Celery:
    app = Celery("survey_insights", broker=broker_url(cfg))
    app.conf.update(
        task_default_queue=cfg.INSIGHT_QUEUE_NAME,
        task_always_eager=cfg.CELERY_TASK_ALWAYS_EAGER,
        task_ignore_result=True,
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,
        worker_concurrency=cfg.WORKER_CONCURRENCY,
        worker_pool="threads",
        worker_hijack_root_logger=False,
        broker_connection_retry_on_startup=True,
        broker_transport_options={
            "region": cfg.AWS_REGION,
            "queue_name_prefix": cfg.SQS_QUEUE_PREFIX,
            "visibility_timeout": cfg.WORKER_VISIBILITY_TIMEOUT_SECONDS,
            "wait_time_seconds": cfg.WORKER_POLL_WAIT_SECONDS,
            "polling_interval": 1,
        },
    )
    logger.debug("celery_app_created", transport=app.conf.broker_url.split("://")[0])
    return app


@signals.setup_logging.connect
def receiver_setup_logging(loglevel=None, logfile=None, format=None, colorize=None, **kwargs) -> None:
    # Connecting here stops Celery from installing its own handlers
    setup_logging((config.settings or get_settings()).LOG_LEVEL)


@signals.task_retry.connect
def on_task_retry(sender=None, request=None, reason=None, **kwargs) -> None:
    logger.warning(
        "task_failed_will_retry",
        task_name=getattr(sender, "name", None),
        task_id=getattr(request, "id", None),
        attempt=getattr(request, "retries", 0) + 1,
        error=str(reason),
    )


@signals.task_failure.connect
def on_task_failure(sender=None, task_id=None, exception=None, args=None, **kwargs) -> None:
    # The late ack that follows removes the message; this entry is its only record
    logger.error(
        "task_archived",
        task_name=getattr(sender, "name", None),
        task_id=task_id,
        args=args,
        error=str(exception),
        error_code=getattr(exception, "code", None),
    )
