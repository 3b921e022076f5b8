import uuid
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from starlette.middleware.cors import CORSMiddleware

from streamvault.api.main import api_router
from streamvault.core.config import settings
from streamvault.core.db import close_mongodb_connection, connect_to_mongodb
from streamvault.core.exceptions import BaseAppException
from streamvault.core.http_utils import app_exception_handler
from streamvault.core.logger import clear_context, get_logger, set_correlation_id
from streamvault.services.cache import RedisService
from streamvault.services.factory import PipelineFactory
from streamvault.services.jobs import LocalJobRunner, QueueJobRunner

logger = get_logger(__name__)


def custom_generate_unique_id(route: APIRoute) -> str:
    return f"{route.tags[0]}-{route.name}"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    await connect_to_mongodb()

    redis_service = RedisService(settings.REDIS_URL)
    await redis_service.connect()

    runner = PipelineFactory.create_job_runner()
    app.state.orchestrator = PipelineFactory.create_orchestrator(redis_service.client, runner)
    logger.info(f"Pipeline jobs run on the '{settings.JOB_BACKEND}' backend")

    yield

    if isinstance(runner, LocalJobRunner):
        await runner.shutdown()
    elif isinstance(runner, QueueJobRunner):
        await runner.close()
    await redis_service.disconnect()
    await close_mongodb_connection()


if settings.SENTRY_DSN and settings.ENVIRONMENT != "local":
    sentry_sdk.init(dsn=str(settings.SENTRY_DSN), enable_tracing=True)

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    generate_unique_id_function=custom_generate_unique_id,
    lifespan=lifespan,
)


# Signed cookies only travel on credentialed cross-origin requests
if settings.all_cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.all_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.middleware("http")
async def correlation_id_middleware(request: Request, call_next):
    correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
    set_correlation_id(correlation_id)
    try:
        response = await call_next(request)
    finally:
        clear_context()
    response.headers["X-Correlation-ID"] = correlation_id
    return response


app.add_exception_handler(BaseAppException, app_exception_handler)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors with a flat field -> message map."""
    errors = exc.errors()
    field_errors = {}
    for error in errors:
        field = ".".join(str(loc) for loc in error["loc"] if loc != "body")
        field_errors[field] = error["msg"]

    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": "Invalid request",
            "error_code": "VALIDATION_ERROR",
            "field_errors": field_errors,
        },
    )


app.include_router(api_router, prefix=settings.API_V1_STR)
