from __future__ import annotations

import logging
import os

from sqlalchemy import select

from scm_backend.app.core.config import settings
from scm_backend.app.core.logging import setup_logging
from scm_backend.app.core.security import hash_password
from scm_backend.app.db.session import SessionLocal
from scm_backend.app.db.models.models_v1 import Role, Store, User
from scm_backend.app.db.models.core_types import RoleCode

logger = logging.getLogger(__name__)

ROLE_NAMES = {
    RoleCode.admin: "Administrator",
    RoleCode.store_manager: "Store manager",
    RoleCode.procurement_staff: "Procurement staff",
    RoleCode.inventory_staff: "Inventory staff",
}


def run_seed():
    db = SessionLocal()
    try:
        # 1) Rôles
        for code, name in ROLE_NAMES.items():
            if not db.scalar(select(Role).where(Role.code == code.value)):
                db.add(Role(code=code.value, name=name))
        db.flush()

        # 2) Magasin par défaut
        store = db.scalar(select(Store).where(Store.code == "HCM-01"))
        if not store:
            store = Store(code="HCM-01", name="Main store", location="Ho Chi Minh City", is_active=True)
            db.add(store)
            db.flush()

        # 3) Admin (mot de passe via ADMIN_PASSWORD, sinon mot de passe par défaut)
        admin_role = db.scalar(select(Role).where(Role.code == RoleCode.admin.value))
        user = db.scalar(select(User).where(User.username == "admin"))
        if not user:
            db.add(
                User(
                    username="admin",
                    password_hash=hash_password(os.getenv("ADMIN_PASSWORD", settings.DEFAULT_USER_PASSWORD)),
                    full_name="Administrator",
                    role_id=admin_role.id,
                    store_id=store.id,
                    is_active=True,
                )
            )

        db.commit()
        logger.info("SEED OK: roles=%d, store=%s, user=admin", len(ROLE_NAMES), store.code)
    finally:
        db.close()


if __name__ == "__main__":
    setup_logging()
    run_seed()
