from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.router import api_router
from app.background.scheduler import shutdown_scheduler, start_scheduler
from app.core.config import get_settings
from app.core.db import init_database
from app.core.logging import setup_logging
from app.core.tenancy import get_tenant_registry

settings = get_settings()
setup_logging(settings.log_level, settings.log_json)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    logger.info("Starting application", extra={"environment": settings.environment})
    await init_database()

    try:
        start_scheduler()
    except Exception as e:
        logger.warning(f"Error starting scheduler: {e}")

    yield

    shutdown_scheduler()
    await get_tenant_registry().dispose()
    logger.info("Application stopped")


app = FastAPI(title=settings.project_name, lifespan=lifespan)

if settings.backend_cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.backend_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(api_router, prefix="/api")


@app.get("/")
async def root():
    return {
        "status": "ok",
        "service": settings.project_name,
        "tenants": get_tenant_registry().slugs(),
        "github_app_configured": settings.get_github_app() is not None,
    }
