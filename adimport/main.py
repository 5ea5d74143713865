"""
Month-by-month ad data import service
Main FastAPI application
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from adimport.config import get_settings
from adimport.utils.logger import log
from adimport import __version__

from adimport.api import health, imports

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    log.info(f"Starting {settings.app_name} v{__version__}")
    log.info(f"Environment: {settings.environment}")

    try:
        from adimport.models.base import init_db
        init_db()
        log.info("Database initialized")
    except Exception as e:
        log.error(f"Database initialization error: {str(e)}")

    from adimport.scheduler import start_scheduler, stop_scheduler
    start_scheduler()

    yield

    stop_scheduler()
    log.info("Shutting down application")


app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="""
    Backfills each project's ad history one calendar month per request.

    - POST /imports/month imports a single month and can chain to the next
    - Month status is persisted per project and month, with retry and resume
    - Progress and per-status counts for the dashboard
    """,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, tags=["health"])
app.include_router(imports.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("adimport.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
