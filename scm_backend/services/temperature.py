"""
Température des lots : simulation capteurs + surveillance des dérives.

Les deux maps (overrides manuels, dérives en cours) sont en mémoire,
par processus.
"""
from __future__ import annotations

import logging
import random
import threading
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from scm_backend.app.core.time_utils import utcnow
from scm_backend.app.db.models.models_v1 import Item, InventoryBatch, TemperatureLog
from scm_backend.app.db.models.core_types import StorageType
from scm_backend.services.common import get_alive
from scm_backend.services.errors import ServiceError

logger = logging.getLogger(__name__)

DEFAULT_RANGES = {
    StorageType.frozen: (-18.0, -15.0),
    StorageType.cold: (2.0, 8.0),
}
MIN_SETTABLE = -30.0
MAX_SETTABLE = 50.0
OVERRIDE_HOLD = timedelta(minutes=1)
CRITICAL_AFTER = timedelta(minutes=5)
EXCURSION_PROBABILITY = 0.05


def temperature_range(item: Item) -> tuple[float, float]:
    default_min, default_max = DEFAULT_RANGES.get(item.storage_type, DEFAULT_RANGES[StorageType.cold])
    t_min = item.min_temperature if item.min_temperature is not None else default_min
    t_max = item.max_temperature if item.max_temperature is not None else default_max
    return float(t_min), float(t_max)


def is_out_of_range(item: Item, temperature: float | None) -> bool:
    if temperature is None:
        return False
    t_min, t_max = temperature_range(item)
    return temperature < t_min or temperature > t_max


def _monitored_batches(db: Session) -> list[InventoryBatch]:
    return list(
        db.execute(
            select(InventoryBatch)
            .where(InventoryBatch.deleted_at.is_(None))
            .where(InventoryBatch.quantity_on_hand >= 1)
            .order_by(InventoryBatch.id.asc())
        ).scalars()
    )


class TemperatureSimulator:
    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()
        self._overrides: dict[int, datetime] = {}
        self._lock = threading.Lock()

    def mark_manual_override(self, batch_id: int, at: datetime | None = None) -> None:
        with self._lock:
            self._overrides[batch_id] = at or utcnow()

    def is_overridden(self, batch_id: int, now: datetime) -> bool:
        with self._lock:
            since = self._overrides.get(batch_id)
            if since is None:
                return False
            if now - since < OVERRIDE_HOLD:
                return True
            del self._overrides[batch_id]
            return False

    def next_reading(self, item: Item) -> float:
        t_min, t_max = temperature_range(item)
        if self.rng.random() < EXCURSION_PROBABILITY:
            offset = self.rng.uniform(1.0, 6.0)
            value = t_max + offset if self.rng.random() < 0.5 else t_min - offset
        else:
            centre = (t_min + t_max) / 2
            value = centre + self.rng.uniform(-2.0, 2.0)
            value = max(t_min - 2.0, min(t_max + 2.0, value))
        return round(value, 1)

    def simulate(self, db: Session, now: datetime | None = None) -> int:
        """Une lecture par lot ; retourne le nombre de lots mis à jour."""
        now = now or utcnow()
        updated = 0
        for batch in _monitored_batches(db):
            if self.is_overridden(batch.id, now):
                continue
            item = batch.item
            if item is None:
                continue

            value = self.next_reading(item)
            alert = is_out_of_range(item, value)
            batch.temperature = value
            db.add(TemperatureLog(batch_id=batch.id, temperature=value, recorded_at=now, is_alert=alert))
            updated += 1

            if alert:
                t_min, t_max = temperature_range(item)
                logger.warning(
                    "Temperature alert: batch %s (%s) at %.1f°C, expected %.1f..%.1f",
                    batch.batch_no, item.item_name, value, t_min, t_max,
                )
        db.flush()
        return updated


class TemperatureMonitor:
    def __init__(self):
        self._abnormal_since: dict[int, datetime] = {}
        self._lock = threading.Lock()

    def abnormal_batches(self) -> dict[int, datetime]:
        with self._lock:
            return dict(self._abnormal_since)

    def check(self, db: Session, now: datetime | None = None) -> list[int]:
        """Retourne les lots hors plage depuis plus de CRITICAL_AFTER."""
        now = now or utcnow()
        critical: list[int] = []
        with self._lock:
            for batch in _monitored_batches(db):
                item = batch.item
                if item is None or batch.temperature is None:
                    continue

                if is_out_of_range(item, batch.temperature):
                    since = self._abnormal_since.get(batch.id)
                    if since is None:
                        self._abnormal_since[batch.id] = now
                        logger.warning("Batch %s temperature excursion started (%.1f°C)", batch.batch_no, batch.temperature)
                    elif now - since > CRITICAL_AFTER:
                        minutes = int((now - since).total_seconds() // 60)
                        logger.error(
                            "CRITICAL: batch %s out of range for %d min (%.1f°C)",
                            batch.batch_no, minutes, batch.temperature,
                        )
                        critical.append(batch.id)
                elif batch.id in self._abnormal_since:
                    since = self._abnormal_since.pop(batch.id)
                    seconds = int((now - since).total_seconds())
                    logger.info("Batch %s temperature back to normal after %ds", batch.batch_no, seconds)
        return critical


simulator = TemperatureSimulator()
monitor = TemperatureMonitor()


def set_batch_temperature(
    db: Session,
    batch_id: int,
    temperature: float,
    sim: TemperatureSimulator | None = None,
) -> InventoryBatch:
    if temperature < MIN_SETTABLE or temperature > MAX_SETTABLE:
        raise ServiceError(f"Temperature must be between {MIN_SETTABLE:g} and {MAX_SETTABLE:g}")

    batch = get_alive(db, InventoryBatch, batch_id, "Batch")
    batch.temperature = round(float(temperature), 1)
    alert = is_out_of_range(batch.item, batch.temperature)
    db.add(TemperatureLog(batch_id=batch.id, temperature=batch.temperature, recorded_at=utcnow(), is_alert=alert))
    db.flush()

    (sim or simulator).mark_manual_override(batch.id)
    logger.info("Batch %s temperature set manually to %.1f°C", batch.batch_no, batch.temperature)
    return batch


def batches_with_alerts(db: Session) -> list[dict]:
    rows = []
    for batch in _monitored_batches(db):
        item = batch.item
        if item is None or not is_out_of_range(item, batch.temperature):
            continue
        t_min, t_max = temperature_range(item)
        rows.append(
            {
                "batch_id": batch.id,
                "batch_no": batch.batch_no,
                "item_id": item.id,
                "item_name": item.item_name,
                "store_id": batch.store_id,
                "temperature": batch.temperature,
                "min_temperature": t_min,
                "max_temperature": t_max,
            }
        )
    return rows


def list_temperature_logs(
    db: Session,
    *,
    batch_id: int | None = None,
    alerts_only: bool = False,
    limit: int = 200,
) -> list[TemperatureLog]:
    stmt = select(TemperatureLog)
    if batch_id is not None:
        stmt = stmt.where(TemperatureLog.batch_id == batch_id)
    if alerts_only:
        stmt = stmt.where(TemperatureLog.is_alert.is_(True))
    stmt = stmt.order_by(TemperatureLog.recorded_at.desc(), TemperatureLog.id.desc()).limit(limit)
    return list(db.execute(stmt).scalars())
