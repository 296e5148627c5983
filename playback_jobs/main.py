# main.py
import os
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from . import config
from .db.connection import get_database, close_connection
from .db.init_collections import init_collections
from .http_api.logging_middleware import LoggingMiddleware
from .http_api.router import router as api_router
from .jobs.runner import run_job
from .jobs.scheduler import DEFAULT_SCHEDULES, JobScheduler

config.load_env()

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(name)s - %(message)s')
logger = logging.getLogger(__name__)


def init_database():
    """Create job collection indexes; the API still starts if this fails"""
    try:
        logger.info("🗄️  Initializing database...")
        init_collections(get_database(), test_mode=config.default_test_mode())
    except Exception as e:
        logger.error(f"❌ Database initialization failed: {e}")
        logger.warning("⚠️  Server starting without database initialization")


def build_scheduler() -> JobScheduler:
    scheduler = JobScheduler()
    test_mode = config.default_test_mode()

    for name, default_schedule in DEFAULT_SCHEDULES.items():
        env_name = f"SCHEDULE_{name.upper().replace('-', '_')}"
        schedule = os.getenv(env_name, default_schedule)

        async def job(name=name):
            await run_job(name, get_database(), test_mode=test_mode, triggered_by="scheduler")

        scheduler.add_job(name, schedule, job)

    return scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_database()

    scheduler = None
    if config.get_bool("SCHEDULER_ENABLED"):
        scheduler = build_scheduler()
        scheduler.start()

    logger.info("🚀 Server startup complete!")
    yield

    if scheduler:
        scheduler.stop()
    close_connection()


app = FastAPI(
    title="Playback Jobs API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(LoggingMiddleware)

app.include_router(api_router, prefix="/api/v1", tags=["API v1"])


def serve(host: str = "0.0.0.0", port: int = 5000):
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    serve()
