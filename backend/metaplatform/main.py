"""
Meta Platform Backend - FastAPI Main Application

Serve `metaplatform.main:asgi_app` to get the REST API and the Socket.IO
chat server on one port.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from prometheus_client import make_asgi_app
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import socketio

# Sentry must be initialised before the app is created
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.redis import RedisIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from metaplatform.config import settings

if settings.sentry_dsn:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        release=f"metaplatform@{settings.app_version}",
        traces_sample_rate=settings.sentry_traces_sample_rate,
        profiles_sample_rate=settings.sentry_profiles_sample_rate,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            RedisIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        send_default_pii=False,
        attach_stacktrace=True,
    )

from metaplatform.utils.errors import (
    AppError,
    ErrorCategory,
    classify_error,
    classify_http_status,
    format_error_response,
)
from metaplatform.database import check_db_connection, SessionLocal
from metaplatform.websocket.chat_server import chat_server, create_response_relay, sio

if settings.log_format == "json":
    logging.basicConfig(
        level=settings.log_level,
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}',
    )
else:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: create tables, seed the admin account, start the chat relay
    Shutdown: stop the chat relay
    """
    logger.info("Starting Meta Platform Backend...")

    try:
        from metaplatform.init_db import init_database, seed_sample_data

        db = SessionLocal()
        try:
            init_database(db)
            seed_sample_data(db)
        finally:
            db.close()

        logger.info("Database initialized successfully")
    except Exception as e:
        logger.warning(f"Database initialization skipped: {e}")

    relay = None
    if settings.chat_relay_enabled:
        relay = create_response_relay(chat_server)
        await relay.start()

    yield

    logger.info("Shutting down Meta Platform Backend...")
    if relay is not None:
        await relay.stop()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Low-code meta platform: data models, generated apps and tool-using bots",
    lifespan=lifespan,
)

# ========== Middleware (last added runs first) ==========

if settings.metrics_enabled:
    from metaplatform.middleware.metrics import MetricsMiddleware

    app.add_middleware(MetricsMiddleware)
    logger.info("Metrics middleware enabled")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)
logger.info(f"CORS middleware enabled for origins: {settings.cors_origins_list}")

metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


# ========== Exception handlers ==========


def add_cors_headers(response: JSONResponse, request: Request) -> JSONResponse:
    """
    Add CORS headers to error responses

    Responses built by exception handlers can bypass CORSMiddleware, which
    makes a 500 show up in the browser as a CORS failure.
    """
    origin = request.headers.get("origin", "")
    if origin and origin in settings.cors_origins_list:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
        response.headers["Access-Control-Allow-Methods"] = "*"
        response.headers["Access-Control-Allow-Headers"] = "*"
    return response


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Domain errors map onto their own status code"""
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__}: {exc.message}")

    user_error = classify_error(exc)
    response = JSONResponse(
        status_code=exc.status_code,
        content=format_error_response(user_error, details=exc.details),
    )
    return add_cors_headers(response, request)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if isinstance(exc.detail, dict):
        response = JSONResponse(status_code=exc.status_code, content=exc.detail)
        return add_cors_headers(response, request)

    user_error = classify_http_status(exc.status_code, exc.detail)
    response = JSONResponse(
        status_code=exc.status_code,
        content=format_error_response(user_error),
    )
    return add_cors_headers(response, request)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Pydantic request validation errors"""
    error_details = []
    for error in exc.errors():
        loc = " -> ".join(str(part) for part in error["loc"])
        error_details.append(f"{loc}: {error['msg']}")

    response = JSONResponse(
        status_code=422,
        content={
            "error": {
                "category": ErrorCategory.VALIDATION.value,
                "message": "Invalid input data.",
                "suggestion": "Please check your request data.",
                "details": error_details,
                "retryable": False,
            }
        },
    )
    return add_cors_headers(response, request)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Unexpected errors"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    user_error = classify_error(exc)
    response = JSONResponse(
        status_code=user_error.http_status,
        content=format_error_response(user_error, include_technical=settings.environment == "development"),
    )
    return add_cors_headers(response, request)


@app.get("/")
async def root():
    return {
        "app": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "status": "ok",
    }


@app.get("/health")
async def health_check():
    """Database and Redis checks"""
    from metaplatform.services.queue_service import QueueService

    db_status = "ok" if check_db_connection() else "error"
    redis_status = "ok" if QueueService.is_available() else "unavailable"

    overall = "healthy"
    if db_status != "ok":
        overall = "unhealthy"
    elif redis_status != "ok":
        overall = "degraded"

    return {
        "status": overall,
        "checks": {
            "database": db_status,
            "redis": redis_status,
        }
    }


@app.get("/api/v1/info")
async def api_info():
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "llm_model": settings.default_llm_model,
        "environment": settings.environment,
        "queues": [
            settings.app_builds_queue,
            settings.bot_messages_queue,
            settings.bot_responses_queue,
            settings.bot_errors_queue,
        ],
    }


# ========== Routers ==========

from metaplatform.routers import (  # noqa: E402
    applications,
    bot_execution,
    bot_tools,
    bots,
    entities,
    features,
    prompts,
    relationships,
    schemas,
    users,
    workflows,
)

app.include_router(users.router, prefix="/api/v1/users", tags=["users"])
app.include_router(schemas.router, prefix="/api/v1/schemas", tags=["schemas"])
app.include_router(relationships.router, prefix="/api/v1/relationships", tags=["relationships"])
app.include_router(entities.router, prefix="/api/v1/entities", tags=["entities"])
app.include_router(applications.router, prefix="/api/v1/applications", tags=["applications"])
app.include_router(features.router, prefix="/api/v1/features", tags=["features"])
app.include_router(prompts.router, prefix="/api/v1/prompts", tags=["prompts"])
app.include_router(workflows.router, prefix="/api/v1/workflows", tags=["workflows"])
app.include_router(bots.router, prefix="/api/v1/bots", tags=["bots"])
app.include_router(bot_tools.router, prefix="/api/v1/bots", tags=["bot-tools"])
app.include_router(bot_tools.tools_router, prefix="/api/v1/tools", tags=["bot-tools"])
app.include_router(bot_execution.router, prefix="/api/v1/bot-execution", tags=["bot-execution"])

# Socket.IO in front of the FastAPI app
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "metaplatform.main:asgi_app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
    )
