"""
FastAPI application factory.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import get_settings
from .core.database import init_db, close_db
from .api.router import router
from .orchestrator.params import AssistantNotFound, ConversationNotFound

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting Pilot (env=%s)", settings.env)

    # Create database tables
    await init_db()

    # Register tools
    from .tools.registry import get_tool_names, init_tools
    init_tools()

    from .core.flags import get_flags
    flags = get_flags()
    logger.info(
        "Flags: auth=%s tenant_ai_providers=%s",
        flags.use_auth, flags.use_tenant_ai_providers,
    )
    logger.info("Tools: %s", ", ".join(get_tool_names()))
    logger.info("Pilot is ready")

    yield

    # Let queued history/usage writes land before the engine goes away
    from .services.background import drain
    from .services.llm import close_client
    await drain()
    await close_client()
    await close_db()
    logger.info("Pilot shut down")


def _install_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.errors())
        return JSONResponse(status_code=400, content={"detail": "Invalid request"})

    @app.exception_handler(ConversationNotFound)
    @app.exception_handler(AssistantNotFound)
    async def _not_found(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(Exception)
    async def _internal_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="Pilot",
        description="AI prompt orchestration for projects and templates",
        version="1.0.0",
        docs_url="/docs" if settings.env == "development" else None,
        redoc_url="/redoc" if settings.env == "development" else None,
        lifespan=lifespan,
    )

    # ── CORS ─────────────────────────────────────────────────────
    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Errors ───────────────────────────────────────────────────
    _install_exception_handlers(app)

    # ── Routes ───────────────────────────────────────────────────
    app.include_router(router)

    return app
