"""FastAPI application entry point.

Startup sequence: init DB → init LLM adapter → build pipeline and chat services.
"""

import os
import time
from collections import defaultdict
from contextlib import asynccontextmanager

import structlog
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse

from toolfix.api.auth import get_caller_id
from toolfix.api.routes import router
from toolfix.chat.followup import FollowUpChat
from toolfix.core.archive import ResultArchive
from toolfix.core.database import init_db
from toolfix.core.errors import ToolFixError
from toolfix.core.llm_adapter import CompletionService, LLMAdapter
from toolfix.core.session_store import SessionStore
from toolfix.pipeline.diagnosis import DiagnosisPipeline

load_dotenv()

logger = structlog.get_logger(__name__)

RATE_LIMITED_PATHS = ("/diagnose", "/chat")


def _error_body(code: str, message: str) -> dict:
    return {"success": False, "error": {"status": code, "message": message}}


def create_app(completion: CompletionService | None = None, database_url: str | None = None) -> FastAPI:
    """Build the API.

    Args:
        completion: Completion service to use instead of the LLM adapter.
        database_url: SQLAlchemy URL overriding DATABASE_URL.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        logger.info("startup.begin")

        init_db(database_url)
        logger.info("startup.db_initialized")

        service = completion
        app.state.llm_adapter = None
        if service is None:
            try:
                service = LLMAdapter()
                app.state.llm_adapter = service
                logger.info("startup.llm_initialized", healthy=service.is_healthy())
            except Exception as e:
                logger.error("startup.llm_failed", error=str(e),
                             hint="Set CEREBRAS_API_KEY or GROQ_API_KEY in .env")

        sessions = SessionStore()
        app.state.archive = ResultArchive()
        if service is not None:
            app.state.pipeline = DiagnosisPipeline(service, sessions=sessions, archive=app.state.archive)
            app.state.chat = FollowUpChat(service, sessions=sessions)
        else:
            app.state.pipeline = None
            app.state.chat = None

        logger.info("startup.complete")
        yield
        logger.info("shutdown.complete")

    app = FastAPI(
        title="ToolFix API",
        description="Repair diagnosis pipeline and follow-up chat",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Per-caller throttling: each diagnosis costs five completion calls
    rate_limit = int(os.environ.get("RATE_LIMIT_PER_MIN", "10"))
    rate_buckets: dict[str, list[float]] = defaultdict(list)

    @app.middleware("http")
    async def rate_limit_middleware(request: Request, call_next):
        """Enforce per-caller rate limiting on /diagnose and /chat."""
        if request.method != "POST" or request.url.path not in RATE_LIMITED_PATHS:
            return await call_next(request)

        caller = get_caller_id(request) or (request.client.host if request.client else "anonymous")
        now = time.monotonic()

        # Prune timestamps older than 60s
        window = [t for t in rate_buckets[caller] if now - t < 60]
        rate_buckets[caller] = window

        if len(window) >= rate_limit:
            logger.warning("rate_limit.exceeded", caller=caller, path=request.url.path)
            return JSONResponse(
                status_code=429,
                content=_error_body("resource-exhausted", "Too many requests. Please wait a moment."),
            )

        window.append(now)
        return await call_next(request)

    @app.middleware("http")
    async def require_services(request: Request, call_next):
        if request.url.path in RATE_LIMITED_PATHS or request.url.path.startswith("/sessions"):
            if getattr(request.app.state, "pipeline", None) is None:
                return JSONResponse(
                    status_code=503,
                    content=_error_body("unavailable", "Service not available. Configure LLM API keys and restart."),
                )
        return await call_next(request)

    @app.exception_handler(ToolFixError)
    async def toolfix_error_handler(request: Request, exc: ToolFixError):
        logger.info("request.rejected", path=request.url.path, code=exc.code)
        return JSONResponse(status_code=exc.http_status, content=_error_body(exc.code, exc.message))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request.") if errors else "Invalid request."
        return JSONResponse(status_code=400, content=_error_body("invalid-argument", message))

    app.include_router(router)
    return app


app = create_app()
