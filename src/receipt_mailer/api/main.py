"""FastAPI application for the receipt mailer service."""

from contextlib import asynccontextmanager
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from receipt_mailer.config import config
from receipt_mailer.errors import ReceiptMailerError, is_user_error
from receipt_mailer.logging import configure_logging, logging_context
from receipt_mailer.parsing import SpreadsheetParser
from receipt_mailer.pipeline import BatchPipeline
from receipt_mailer.reporting import FanoutReporter, LogReporter, PrometheusReporter
from receipt_mailer.storage import LocalFileStorage

from .config import get_settings
from .routes.health import router as health_router
from .routes.settings import router as settings_router
from .routes.upload import router as upload_router

logger = structlog.get_logger(__name__)

# Registered on the default registry once per process
metrics_reporter = PrometheusReporter()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the pipeline at startup, close its database pool at shutdown."""
    settings = get_settings()
    configure_logging(json_output=settings.LOG_JSON)

    missing = config.validate()
    if missing:
        logger.warning("lifespan.config_incomplete", missing=missing)

    logger.info("lifespan.startup", max_parallel=config.MAX_PARALLEL_SENDS)

    pipeline = await BatchPipeline.from_config(
        reporter=FanoutReporter(LogReporter(), metrics_reporter)
    )

    # Store on app.state for request handlers
    app.state.pipeline = pipeline
    app.state.postgres = pipeline.postgres_client
    app.state.settings_store = pipeline.settings_store
    app.state.history_store = pipeline.history_store
    app.state.mapping_parser = SpreadsheetParser()
    app.state.mapping_storage = LocalFileStorage(config.TMP_DIR, uploads_subdir="emails")

    logger.info("lifespan.ready")
    yield

    logger.info("lifespan.shutdown")
    await pipeline.close()


app = FastAPI(
    title="receipt-mailer",
    description="Generates payment receipts from a payers spreadsheet and e-mails them to payers",
    lifespan=lifespan,
)


REQUEST_ID_HEADER = "X-Request-ID"


async def request_id_middleware(request: Request, call_next):
    """Tag every log line of a request with its trace id and echo it back."""
    trace_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
    with logging_context(trace_id=trace_id):
        response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = trace_id
    return response


app.middleware("http")(request_id_middleware)


@app.exception_handler(ReceiptMailerError)
async def receipt_mailer_error_handler(request: Request, exc: ReceiptMailerError):
    """User-kind errors are the caller's to fix (400); everything else is ours (500)."""
    if is_user_error(exc):
        logger.warning("api.user_error", path=request.url.path, error=exc.message)
        return JSONResponse(status_code=400, content={"error": exc.message})

    logger.error(
        "api.internal_error",
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    return JSONResponse(status_code=500, content={"error": "internal server error"})


app.include_router(health_router)
app.include_router(upload_router)
app.include_router(settings_router)
app.mount("/metrics", make_asgi_app())
