from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from scm_backend.app.api.deps import get_db, require_roles
from scm_backend.app.core.time_utils import to_naive_utc
from scm_backend.app.db.models.core_types import RoleCode
from scm_backend.app.db.models.models_v1 import User
from scm_backend.services import reports

router = APIRouter(prefix="/reports")

R = RoleCode


@router.get("/dashboard")
def dashboard(db: Session = Depends(get_db), _: User = Depends(require_roles(R.store_manager, R.procurement_staff))):
    return reports.dashboard(db)


@router.get("/inventory")
def inventory_report(db: Session = Depends(get_db), _: User = Depends(require_roles(R.store_manager, R.inventory_staff))):
    return reports.inventory_report(db)


@router.get("/procurement")
def procurement_report(db: Session = Depends(get_db), _: User = Depends(require_roles(R.store_manager, R.procurement_staff))):
    return reports.procurement_report(db)


@router.get("/sales")
def sales_report(store_id: int | None = None, db: Session = Depends(get_db), _: User = Depends(require_roles(R.store_manager))):
    return reports.sales_report(db, store_id)


@router.get("/low-stock-alerts")
def low_stock_alerts(db: Session = Depends(get_db), _: User = Depends(require_roles(R.store_manager, R.inventory_staff))):
    return reports.low_stock_alerts(db)


@router.get("/gross-profit")
def gross_profit(
    store_id: int | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    db: Session = Depends(get_db),
    _: User = Depends(require_roles(R.store_manager)),
):
    return reports.gross_profit_report(
        db,
        store_id=store_id,
        start=to_naive_utc(start_date),
        end=to_naive_utc(end_date),
    )


@router.get("/expired-items")
def expired_items(
    days_threshold: int = Query(default=7, ge=0, le=365),
    db: Session = Depends(get_db),
    _: User = Depends(require_roles(R.store_manager, R.inventory_staff)),
):
    return reports.expired_items_report(db, days_threshold)
