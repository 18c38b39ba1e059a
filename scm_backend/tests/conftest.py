from datetime import timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from scm_backend.app.api.deps import get_db
from scm_backend.app.core.time_utils import today
from scm_backend.app.db.base import Base
from scm_backend.app.db.models import models_v1  # noqa: F401  (enregistre les tables)
from scm_backend.app.db.models.models_v1 import (
    Item,
    Role,
    Store,
    Supplier,
    SupplierItem,
    User,
)
from scm_backend.app.db.models.core_types import RoleCode
from scm_backend.services.auth import issue_token
from scm_backend.services.inventory import create_batch


@pytest.fixture(scope="function")
def engine():
    """
    Base SQLite en mémoire, neuve pour chaque test.

    StaticPool : une seule connexion, partagée avec le thread du TestClient.
    """
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite : BEGIN explicite, sinon les SAVEPOINT ne marchent pas
    @event.listens_for(eng, "connect")
    def _no_implicit_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(eng, "begin")
    def _explicit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        Base.metadata.drop_all(bind=eng)
        eng.dispose()


@pytest.fixture(scope="function")
def db_session(engine) -> Session:
    session = Session(bind=engine, autoflush=False)
    try:
        yield session
    finally:
        session.close()


# ---------- DONNÉES DE BASE ----------
@pytest.fixture
def roles(db_session) -> dict:
    out = {}
    for code in RoleCode:
        role = Role(code=code.value, name=code.name.replace("_", " ").title())
        db_session.add(role)
        out[code] = role
    db_session.flush()
    return out


@pytest.fixture
def store(db_session) -> Store:
    s = Store(code="HCM-01", name="Main store", location="Ho Chi Minh City", is_active=True)
    db_session.add(s)
    db_session.flush()
    return s


@pytest.fixture
def users(db_session, roles, store) -> dict:
    """Un utilisateur par rôle. Hash factice : on passe par issue_token."""
    out = {}
    for code, role in roles.items():
        user = User(
            username=code.value.lower(),
            password_hash="not-a-bcrypt-hash",
            full_name=code.name,
            role_id=role.id,
            store_id=store.id,
            is_active=True,
        )
        db_session.add(user)
        out[code] = user
    db_session.flush()
    return out


@pytest.fixture
def auth_headers(db_session, users):
    def _headers(role: RoleCode) -> dict:
        token = issue_token(db_session, users[role])
        db_session.commit()
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def client(db_session):
    from scm_backend.app.main import app

    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    try:
        # pas de "with" : le lifespan (jobs de fond) ne démarre pas
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


# ---------- FABRIQUES ----------
@pytest.fixture
def make_item(db_session):
    counter = {"n": 0}

    def _make(**fields) -> Item:
        counter["n"] += 1
        data = {
            "item_name": f"Item {counter['n']}",
            "sku": f"SKU-{counter['n']:03d}",
            "unit": "box",
            "min_stock_level": 10,
            "max_stock_level": 100,
        }
        data.update(fields)
        item = Item(**data)
        db_session.add(item)
        db_session.flush()
        return item

    return _make


@pytest.fixture
def make_supplier(db_session):
    counter = {"n": 0}

    def _make(**fields) -> Supplier:
        counter["n"] += 1
        data = {"name": f"Supplier {counter['n']}", "lead_time_days": 0, "reliability_score": 90}
        data.update(fields)
        supplier = Supplier(**data)
        db_session.add(supplier)
        db_session.flush()
        return supplier

    return _make


@pytest.fixture
def make_mapping(db_session):
    def _make(supplier: Supplier, item: Item, unit_price="10.00", **fields) -> SupplierItem:
        mapping = SupplierItem(
            supplier_id=supplier.id,
            item_id=item.id,
            unit_price=Decimal(unit_price),
            **fields,
        )
        db_session.add(mapping)
        db_session.flush()
        return mapping

    return _make


@pytest.fixture
def make_batch(db_session):
    counter = {"n": 0}

    def _make(item: Item, store: Store, quantity: int, *, days_to_expiry: int = 30, unit_cost=None, **fields):
        counter["n"] += 1
        return create_batch(
            db_session,
            item_id=item.id,
            store_id=store.id,
            batch_no=fields.pop("batch_no", f"B-{counter['n']:03d}"),
            expiry_date=today() + timedelta(days=days_to_expiry),
            quantity=quantity,
            unit_cost=Decimal(unit_cost) if unit_cost is not None else None,
            **fields,
        )

    return _make
