"""VoiceDesk API - application entry point.

Multi-tenant management layer for a hosted voice-agent platform: bots,
phone numbers, knowledge bases, call lifecycle webhooks and live tool calls.
"""

import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from voicedesk import __version__
from voicedesk.config import get_settings
from voicedesk.database.session import close_db, init_db
from voicedesk.errors import VoiceDeskError

# Import routers
from voicedesk.bookings.routes import router as bookings_router
from voicedesk.bots.routes import router as bots_router
from voicedesk.calls.routes import router as calls_router
from voicedesk.knowledge.routes import router as knowledge_router
from voicedesk.phone_numbers.routes import router as phone_numbers_router
from voicedesk.retell.routes import router as platform_router
from voicedesk.sync.routes import router as sync_router
from voicedesk.tools.routes import router as tools_router
from voicedesk.webhooks.routes import router as webhooks_router

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(message)s",
)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info(
        "Starting VoiceDesk API",
        host=settings.host,
        port=settings.port,
        environment=settings.environment,
    )

    await init_db()
    logger.info("Database initialized")

    yield

    logger.info("Shutting down VoiceDesk API")
    await close_db()


app = FastAPI(
    title="VoiceDesk API",
    description="""
    Tenant management for voice AI agents.

    ## Features

    - **Bots**: Provision agents and their LLMs on the voice platform
    - **Phone numbers**: Purchase, import and bind numbers to bots
    - **Knowledge bases**: Create and attach retrieval sources to bots
    - **Calls**: Lifecycle webhooks, analytics, orders and reservations

    ## Authentication

    Endpoints require an API key in the `X-API-Key` header.
    """,
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(VoiceDeskError)
async def voicedesk_exception_handler(request: Request, exc: VoiceDeskError):
    """Render domain errors with their own status code."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "Request failed",
        error=exc.message,
        error_type=type(exc).__name__,
        status_code=exc.status_code,
        path=request.url.path,
        method=request.method,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are 400s with field-level detail."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "Invalid input",
            "details": {"errors": jsonable_errors(exc)},
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(
        "Unhandled exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str


@app.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check():
    """Health check endpoint."""
    return HealthResponse(status="healthy", service=settings.service_name, version=__version__)


@app.get("/", tags=["health"])
async def root():
    return {"service": "VoiceDesk API", "version": __version__, "docs": "/docs"}


# Static sync paths before the parameterised bot and phone number routes
app.include_router(sync_router, prefix="/api/v1")
app.include_router(bots_router, prefix="/api/v1")
app.include_router(phone_numbers_router, prefix="/api/v1")
app.include_router(knowledge_router, prefix="/api/v1")
app.include_router(calls_router, prefix="/api/v1")
app.include_router(bookings_router, prefix="/api/v1")
app.include_router(platform_router, prefix="/api/v1")
app.include_router(tools_router, prefix="/api/v1")
app.include_router(webhooks_router, prefix="/api/v1")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "voicedesk.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
