from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import TypeVar

from sqlalchemy.orm import Session

from scm_backend.services.errors import NotFoundError

T = TypeVar("T")

CENT = Decimal("0.01")


def money(value) -> Decimal:
    """Arrondi monétaire à 2 décimales (half-up)."""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def get_alive(db: Session, model: type[T], obj_id: int, label: str) -> T:
    """db.get() qui ignore les lignes soft-deleted."""
    obj = db.get(model, obj_id)
    if obj is None or getattr(obj, "deleted_at", None) is not None:
        raise NotFoundError(f"{label} {obj_id} not found")
    return obj
