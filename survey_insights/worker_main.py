"""Standalone queue worker: ``python -m survey_insights.worker_main``."""
import structlog

from survey_insights.config import init_settings
from survey_insights.container import build_services, run_worker
from survey_insights.utils.logger import setup_logging

logger = structlog.get_logger(__name__)


def main() -> None:
    cfg = init_settings()
    setup_logging(cfg.LOG_LEVEL)

    if cfg.MOCK_AWS and not cfg.CELERY_BROKER_URL:
        # memory:// only reaches tasks enqueued by this same process
        logger.warning("worker_in_memory_broker")

    # Celery installs its own SIGTERM/SIGINT handling for a warm shutdown
    run_worker(build_services(cfg))


if __name__ == "__main__":
    main()
