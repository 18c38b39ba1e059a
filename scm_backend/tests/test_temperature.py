from datetime import timedelta

import pytest

from scm_backend.app.core.time_utils import utcnow
from scm_backend.app.db.models.core_types import StorageType
from scm_backend.services.errors import ServiceError
from scm_backend.services.temperature import (
    TemperatureMonitor,
    TemperatureSimulator,
    batches_with_alerts,
    is_out_of_range,
    list_temperature_logs,
    set_batch_temperature,
    temperature_range,
)


class FixedRng:
    """Rejoue des valeurs fixées pour random() / uniform()."""

    def __init__(self, randoms, uniforms):
        self._randoms = iter(randoms)
        self._uniforms = iter(uniforms)

    def random(self):
        return next(self._randoms)

    def uniform(self, a, b):
        return next(self._uniforms)


def test_default_ranges_by_storage_type(make_item):
    assert temperature_range(make_item(storage_type=StorageType.cold)) == (2.0, 8.0)
    assert temperature_range(make_item(storage_type=StorageType.frozen)) == (-18.0, -15.0)
    assert temperature_range(make_item(min_temperature=0.0, max_temperature=4.0)) == (0.0, 4.0)


def test_is_out_of_range(make_item):
    item = make_item(storage_type=StorageType.cold)
    assert not is_out_of_range(item, 5.0)
    assert not is_out_of_range(item, None)
    assert is_out_of_range(item, 8.5)
    assert is_out_of_range(item, 1.9)


def test_simulation_normal_reading(db_session, store, make_item, make_batch):
    item = make_item(storage_type=StorageType.cold)
    batch = make_batch(item, store, 10)
    sim = TemperatureSimulator(rng=FixedRng(randoms=[0.9], uniforms=[1.0]))

    assert sim.simulate(db_session) == 1

    # centre 5.0 + 1.0
    assert batch.temperature == 6.0
    (log,) = list_temperature_logs(db_session, batch_id=batch.id)
    assert log.temperature == 6.0
    assert log.is_alert is False


def test_simulation_excursion_is_logged_as_alert(db_session, store, make_item, make_batch):
    item = make_item(storage_type=StorageType.frozen)
    batch = make_batch(item, store, 10)
    # excursion (0.01 < 0.05), écart 3.0, côté haut (0.2 < 0.5)
    sim = TemperatureSimulator(rng=FixedRng(randoms=[0.01, 0.2], uniforms=[3.0]))

    sim.simulate(db_session)

    assert batch.temperature == -12.0
    assert list_temperature_logs(db_session, alerts_only=True)[0].batch_id == batch.id


def test_simulation_skips_empty_batches(db_session, store, make_item, make_batch):
    item = make_item()
    batch = make_batch(item, store, 1)
    batch.quantity_on_hand = 0
    db_session.flush()

    sim = TemperatureSimulator(rng=FixedRng(randoms=[], uniforms=[]))
    assert sim.simulate(db_session) == 0


def test_manual_override_pauses_simulation(db_session, store, make_item, make_batch):
    item = make_item(storage_type=StorageType.cold)
    batch = make_batch(item, store, 10)
    sim = TemperatureSimulator(rng=FixedRng(randoms=[0.9], uniforms=[0.0]))

    set_batch_temperature(db_session, batch.id, 12.34, sim=sim)
    assert batch.temperature == 12.3

    # dans la minute : lecture ignorée
    assert sim.simulate(db_session, now=utcnow()) == 0
    assert batch.temperature == 12.3

    # override expiré
    assert sim.simulate(db_session, now=utcnow() + timedelta(minutes=2)) == 1
    assert batch.temperature == 5.0


def test_set_temperature_bounds(db_session, store, make_item, make_batch):
    batch = make_batch(make_item(), store, 10)
    with pytest.raises(ServiceError):
        set_batch_temperature(db_session, batch.id, 51, sim=TemperatureSimulator())
    with pytest.raises(ServiceError):
        set_batch_temperature(db_session, batch.id, -31, sim=TemperatureSimulator())


def test_monitor_escalates_after_five_minutes(db_session, store, make_item, make_batch):
    """
    GIVEN
    - un lot froid à 12 °C

    THEN
    - 1er passage : dérive enregistrée, pas encore critique
    - après 6 min : critique
    - retour dans la plage : dérive oubliée
    """
    item = make_item(storage_type=StorageType.cold)
    batch = make_batch(item, store, 10, temperature=12.0)
    monitor = TemperatureMonitor()
    t0 = utcnow()

    assert monitor.check(db_session, now=t0) == []
    assert batch.id in monitor.abnormal_batches()

    assert monitor.check(db_session, now=t0 + timedelta(minutes=3)) == []
    assert monitor.check(db_session, now=t0 + timedelta(minutes=6)) == [batch.id]

    batch.temperature = 5.0
    db_session.flush()
    assert monitor.check(db_session, now=t0 + timedelta(minutes=7)) == []
    assert monitor.abnormal_batches() == {}


def test_batches_with_alerts(db_session, store, make_item, make_batch):
    item = make_item(storage_type=StorageType.frozen)
    hot = make_batch(item, store, 10, temperature=-10.0)
    make_batch(item, store, 10, temperature=-16.0)

    rows = batches_with_alerts(db_session)

    assert [r["batch_id"] for r in rows] == [hot.id]
    assert rows[0]["min_temperature"] == -18.0
    assert rows[0]["max_temperature"] == -15.0
