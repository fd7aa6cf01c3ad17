"""Survey Insights Service — FastAPI Application.

All routes under /api/v1.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from survey_insights.api.router import router as insights_router
from survey_insights.config import Settings, get_settings
from survey_insights.container import Services, build_services
from survey_insights.errors import InsightPipelineError, InvalidRequestError, NotFoundError
from survey_insights.utils.logger import setup_logging

logger = structlog.get_logger(__name__)

VERSION = "1.0.0"


def _error_body(code: str, message: str, details: Optional[dict] = None) -> dict:
    return {"error": code, "message": message, "details": details or {}}


def create_app(
    services: Optional[Services] = None,
    cfg: Optional[Settings] = None,
) -> FastAPI:
    """Build the application. Passing ``services`` skips building them from settings."""
    cfg = cfg or (services.settings if services else get_settings())
    setup_logging(cfg.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.services = services or build_services(cfg)
        logger.info(
            "application_startup",
            version=VERSION,
            mock_aws=cfg.MOCK_AWS,
            eager_tasks=cfg.CELERY_TASK_ALWAYS_EAGER,
        )
        yield
        logger.info("application_shutdown")

    app = FastAPI(
        title="Survey Insights Service",
        description="Batch summarization and meta-analysis of survey responses",
        version=VERSION,
        lifespan=lifespan,
    )

    # ─── CORS ───
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization"],
    )

    app.include_router(insights_router)

    # ─── Error Handlers ───
    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content=_error_body(exc.code, exc.message, exc.details))

    @app.exception_handler(InvalidRequestError)
    async def invalid_request_handler(request: Request, exc: InvalidRequestError):
        return JSONResponse(status_code=400, content=_error_body(exc.code, exc.message, exc.details))

    @app.exception_handler(InsightPipelineError)
    async def pipeline_error_handler(request: Request, exc: InsightPipelineError):
        logger.error("pipeline_error", path=request.url.path, error=str(exc), error_code=exc.code)
        return JSONResponse(status_code=500, content=_error_body(exc.code, exc.message, exc.details))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content=_error_body(
                "VALIDATION_ERROR",
                "Request validation failed",
                {"errors": jsonable_errors(exc)},
            ),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body("REQUEST_FAILED", str(exc.detail)),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error("unhandled_exception", error=str(exc))
        return JSONResponse(
            status_code=500,
            content=_error_body("INTERNAL_ERROR", "An unexpected error occurred"),
        )

    return app


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


app = create_app()
