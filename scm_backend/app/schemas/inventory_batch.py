from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel

from scm_backend.app.db.models.core_types import BatchStatus


class InventoryBatchRead(BaseModel):
    id: int
    item_id: int
    store_id: int
    batch_no: str
    expiry_date: date

    quantity_on_hand: int
    unit_cost: Decimal | None = None
    temperature: float | None = None  # dernière lecture (capteur ou saisie)
    status: BatchStatus  # recalculé à chaque mouvement, jamais saisi
    created_at: datetime

    class Config:
        from_attributes = True
