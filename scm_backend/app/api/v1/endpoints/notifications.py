from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from scm_backend.app.api.deps import get_current_user, get_db
from scm_backend.app.db.models.models_v1 import User
from scm_backend.services.notifications import notifications_for

router = APIRouter(prefix="/notifications")


@router.get("")
def list_notifications(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return notifications_for(db, user.role.code if user.role else "")
