from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from scm_backend.app.api.errors import register_exception_handlers
from scm_backend.app.api.v1.router import router as v1_router
from scm_backend.app.core.config import settings
from scm_backend.app.core.logging import setup_logging
from scm_backend.app.tasks import start_background_tasks, stop_background_tasks

setup_logging()
logger = logging.getLogger("scm_backend")


@asynccontextmanager
async def lifespan(app: FastAPI):
    tasks = []
    if settings.SCHEDULER_ENABLED:
        tasks = start_background_tasks()
        logger.info("Background tasks started")
    yield
    if tasks:
        await stop_background_tasks(tasks)


app = FastAPI(title="SCM Backend", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_exception_handlers(app)
app.include_router(v1_router, prefix="/v1")
