"""FastAPI router for /insights endpoints."""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from survey_insights.models.schemas import (
    CreateInsightRequest,
    ErrorResponse,
    HealthResponse,
    InsightListResponse,
    InsightResponse,
)
from survey_insights.orchestrator.insight_orchestrator import MAX_PAGE_SIZE, InsightOrchestrator
from survey_insights.utils.logger import get_logger

logger = get_logger("api")

router = APIRouter(prefix="/api/v1", tags=["insights"])


def get_orchestrator(request: Request) -> InsightOrchestrator:
    return request.app.state.services.orchestrator


@router.post(
    "/insights",
    status_code=201,
    response_model=InsightResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def create_insight(
    body: CreateInsightRequest,
    orchestrator: InsightOrchestrator = Depends(get_orchestrator),
):
    """Create an insight for a survey and queue it for processing."""
    insight = orchestrator.create_insight(body.survey_id, body.context_type)
    return InsightResponse(data=insight)


@router.get("/insights", response_model=InsightListResponse, responses={400: {"model": ErrorResponse}})
def list_insights(
    offset: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    survey_id: Optional[str] = Query(None),
    orchestrator: InsightOrchestrator = Depends(get_orchestrator),
):
    """Newest insights first; insights still in flight come before completed ones."""
    return InsightListResponse(data=orchestrator.get_insights(offset, limit, survey_id))


@router.get("/insights/{insight_id}", response_model=InsightResponse, responses={404: {"model": ErrorResponse}})
def get_insight(insight_id: str, orchestrator: InsightOrchestrator = Depends(get_orchestrator)):
    return InsightResponse(data=orchestrator.get_insight(insight_id))


@router.get("/health", response_model=HealthResponse)
def health_check(request: Request):
    """Return service health status."""
    services = request.app.state.services
    health = HealthResponse()

    try:
        services.insights_table.load()
    except Exception as e:
        logger.warning("health_dynamo_unavailable", error=str(e))
        health.dynamo = "unavailable"

    if services.celery_app.conf.task_always_eager:
        health.task_execution = "eager"
        health.broker = "unused"
    else:
        try:
            with services.celery_app.connection_for_write() as conn:
                conn.ensure_connection(max_retries=1)
        except Exception as e:
            logger.warning("health_broker_unavailable", error=str(e))
            health.broker = "unavailable"

    if "unavailable" in (health.dynamo, health.broker):
        health.status = "degraded"
    return health
