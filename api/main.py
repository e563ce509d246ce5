import sys
import time
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic_core import _pydantic_core
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request

from chat.exceptions import ChatPipelineException
from chat.models import PromptTemplate
from chat.prompts import DEFAULT_TEMPLATE_TEXT
from core.logging_config import setup_logging
from core.settings import SETTINGS
from di.container import ApplicationContainer as DependencyContainer

setup_logging(
    log_level=SETTINGS.APP.LOG_LEVEL,
    json_logs=SETTINGS.APP.JSON_LOGS,
    service_name=SETTINGS.APP.SERVICE_NAME,
    environment=SETTINGS.APP.ENVIRONMENT,
)

logger = structlog.get_logger("chat.api")


class CustomFastAPI(FastAPI):
    container: DependencyContainer


@asynccontextmanager
async def lifespan(_app: CustomFastAPI):
    logger.info("app.startup.begin")
    start_time = time.time()
    infrastructure = _app.container.infrastructure

    try:
        redis_start = time.time()
        redis_resource = infrastructure.redis_db()
        await redis_resource.init()
        await redis_resource.connect()
        logger.info(
            "app.startup.redis_ready",
            elapsed_seconds=round(time.time() - redis_start, 3),
        )

        await infrastructure.http_client().init()
        await infrastructure.model_client().init()

        # First deployment has no template yet; never overwrite an edited one
        seeded = await _app.container.services.template_gateway().ensure_default(
            PromptTemplate(
                name=SETTINGS.CONVERSATION.PROMPT_TEMPLATE_NAME,
                text=DEFAULT_TEMPLATE_TEXT,
            )
        )
        logger.info(
            "app.startup.complete",
            template_seeded=seeded,
            elapsed_seconds=round(time.time() - start_time, 3),
        )
    except Exception as e:
        logger.exception("app.startup.failed", error=str(e))
        raise

    yield

    try:
        await infrastructure.model_client().shutdown()
        await infrastructure.http_client().shutdown()
        await infrastructure.redis_db().shutdown()
        logger.info("app.shutdown.complete")
    except Exception as e:
        logger.exception("app.shutdown.error", error=str(e))


def create_fastapi_app() -> CustomFastAPI:
    origins = {
        "http://localhost",
        "http://localhost:3000",
        "http://localhost:8000",
    }

    _app = CustomFastAPI(
        title="LINE Chat API",
        description="Webhook ingress and prompt template administration for the LINE chat bot",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    _app.container = DependencyContainer()
    _app.container.infrastructure.config.from_dict(SETTINGS.model_dump())
    _app.container.wire(modules=[sys.modules[__name__]])
    _app.container.init_resources()

    _app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from api.features.templates.router import router as templates_router
    from api.features.webhook.router import router as webhook_router

    _app.include_router(webhook_router, prefix="/api/v1/webhook", tags=["Webhook"])
    _app.include_router(
        templates_router, prefix="/api/v1/templates", tags=["Templates"]
    )

    return _app


app = create_fastapi_app()


@app.get("/")
async def root():
    return {"message": "LINE Chat API is running", "status": "ok"}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/ready")
async def ready():
    redis_resource = app.container.infrastructure.redis_db()
    try:
        await redis_resource.connect()
    except Exception as e:
        logger.warning("app.ready.redis_unavailable", error=str(e))
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "dependencies": {"redis": "down"}},
        )
    return {"status": "ok", "dependencies": {"redis": "up"}}


@app.exception_handler(404)
async def not_found_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=404,
        content={
            "error": "Not Found",
            "detail": f"{exc.detail} : {request.url}",
            "status_code": 404,
        },
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"error": "Validation Error", "detail": str(exc), "status_code": 422},
    )


@app.exception_handler(_pydantic_core.ValidationError)
async def pydantic_validation_handler(
    request: Request, exc: _pydantic_core.ValidationError
):
    return JSONResponse(
        status_code=422,
        content={"error": "Validation Error", "detail": str(exc), "status_code": 422},
    )


@app.exception_handler(ChatPipelineException)
async def chat_pipeline_exception_handler(request: Request, exc: ChatPipelineException):
    logger.error(
        "app.pipeline_error",
        error_code=exc.error_code,
        error=exc.message,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=503,
        content={
            "error": exc.error_code,
            "detail": exc.message,
            "status_code": 503,
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.exception("app.unhandled_exception", error=str(exc))
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "detail": "An unexpected error occurred",
            "status_code": 500,
        },
    )
