from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from scm_backend.app.api.deps import get_db, require_roles
from scm_backend.app.db.models.core_types import RoleCode
from scm_backend.app.db.models.models_v1 import User
from scm_backend.services import temperature

router = APIRouter(prefix="/temperature")

R = RoleCode
readers = require_roles(R.store_manager, R.inventory_staff)


@router.get("/alerts")
def alerts(db: Session = Depends(get_db), _: User = Depends(readers)):
    return temperature.batches_with_alerts(db)


@router.get("/logs")
def logs(
    batch_id: int | None = None,
    alerts_only: bool = False,
    db: Session = Depends(get_db),
    _: User = Depends(readers),
):
    rows = temperature.list_temperature_logs(db, batch_id=batch_id, alerts_only=alerts_only)
    return [
        {
            "id": r.id,
            "batch_id": r.batch_id,
            "temperature": r.temperature,
            "recorded_at": r.recorded_at,
            "is_alert": r.is_alert,
        }
        for r in rows
    ]


@router.post("/check")
def check(db: Session = Depends(get_db), _: User = Depends(require_roles())):
    critical = temperature.monitor.check(db)
    return {"critical_batch_ids": critical, "alerts": temperature.batches_with_alerts(db)}
