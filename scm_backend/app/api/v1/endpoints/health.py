from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from scm_backend.app.api.deps import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health")


@router.get("")
def health():
    return {"status": "UP"}


@router.get("/db")
def health_db(db: Session = Depends(get_db)):
    started = time.perf_counter()
    try:
        db.execute(text("SELECT 1"))
        status, error = "UP", None
    except SQLAlchemyError as e:
        logger.error("Database health check failed: %s", e)
        status, error = "DOWN", str(e)
    duration_ms = round((time.perf_counter() - started) * 1000, 2)

    body = {"status": status, "database": db.get_bind().dialect.name, "duration_ms": duration_ms}
    if error:
        body["error"] = error
    return body
