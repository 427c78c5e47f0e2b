# app/main.py
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.router import api_router
from app.core.config import settings
from app.core.error_handlers import register_error_handlers
from app.core.logging import setup_logging
from app.core.middleware import RequestIdMiddleware
from app.db.base import Base
from app.db.session import engine
from app.services.container import ServiceContainer, build_services

setup_logging()
logger = logging.getLogger(__name__)


def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the application. Tests pass a prebuilt container of fakes; otherwise
    the real collaborators are created at startup and closed at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("🚀 Server starting...")
        if settings.AUTO_CREATE_TABLES:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("🗄️ Tables created")
        owned = services is None
        app.state.services = services or build_services(settings)
        yield
        if owned:
            await app.state.services.aclose()
        logger.info("👋 Server stopping...")

    app = FastAPI(title="SOS Divorce Funnel API", version="1.0.0", lifespan=lifespan)
    if services is not None:
        app.state.services = services

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    # Health check (no /api/v1 prefix)
    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "timestamp": time.time()}

    app.include_router(api_router, prefix="/api/v1")
    return app


app = create_app()
logger.info("✅ Application configured")
