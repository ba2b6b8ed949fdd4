"""
Datenassistent Application Entry Point

FastAPI application exposing the chat tools over HTTP:
- Tools: /api/v1/tools (definitions) and /api/v1/tools/{tool_name}
- Audit: /api/v1/audit-logs (persisted audit trail)
- Health: /health and /health/detailed
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from datenassistent import __version__
from datenassistent.api.dependencies import Dispatcher
from datenassistent.api.router import router as api_router
from datenassistent.cache.redis_client import close_redis, init_redis
from datenassistent.config.settings import settings
from datenassistent.db.session import check_db_connection, close_db, init_db
from datenassistent.middleware.error_handler import setup_exception_handlers
from datenassistent.middleware.logging import LoggingMiddleware
from datenassistent.schemas.common import DetailedHealthResponse, HealthResponse


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan events."""
    await init_db()
    if settings.RATE_LIMIT_ENABLED:
        await init_redis()
    yield
    await close_redis()
    await close_db()


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Tabellenzugriff für den Büro-Datenassistenten.\n\n"
            "- **Tools**: Funktionen für das Sprachmodell (Abfragen, Anlegen, "
            "Ändern, Löschen, Statistiken)\n"
            "- **Audit**: Protokollierte Schreibvorgänge je Tabelle\n"
            "- **Health**: Betriebsstatus und Datenbankverbindung"
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_middleware(LoggingMiddleware)

    setup_exception_handlers(application)

    application.include_router(api_router, prefix="/api/v1")

    @application.get("/health", tags=["Health"], response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Liveness check."""
        return HealthResponse(service=settings.APP_NAME, version=__version__)

    @application.get("/health/detailed", tags=["Health"], response_model=DetailedHealthResponse)
    async def detailed_health_check(dispatcher: Dispatcher) -> DetailedHealthResponse:
        """Readiness check including a database ping."""
        database_ok = await check_db_connection(dispatcher.service.backend.engine)
        return DetailedHealthResponse(
            status="healthy" if database_ok else "degraded",
            service=settings.APP_NAME,
            version=__version__,
            checks={"database": "healthy" if database_ok else "unreachable"},
        )

    return application


app = create_application()
