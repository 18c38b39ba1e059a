from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from scm_backend.app.api.deps import get_db, require_roles
from scm_backend.app.db.models.core_types import RoleCode
from scm_backend.app.db.models.models_v1 import User
from scm_backend.app.tasks import run_auto_replenish

router = APIRouter(prefix="/tasks")


@router.post("/auto-replenish/trigger")
def trigger_auto_replenish(
    db: Session = Depends(get_db),
    _: User = Depends(require_roles(RoleCode.procurement_staff)),
):
    results = run_auto_replenish(db)
    return {"triggered": True, "created": len(results), "results": results}
