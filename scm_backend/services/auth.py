from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from scm_backend.app.core.config import settings
from scm_backend.app.core.security import hash_token, new_token, verify_password
from scm_backend.app.core.time_utils import utcnow
from scm_backend.app.db.models.models_v1 import User

logger = logging.getLogger(__name__)


def authenticate(db: Session, username: str, password: str) -> User | None:
    user = db.execute(
        select(User).where(User.username == username).where(User.deleted_at.is_(None))
    ).scalar_one_or_none()
    if user is None or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def issue_token(db: Session, user: User) -> str:
    """Un seul token actif par utilisateur ; seul son hash est stocké."""
    token = new_token()
    user.token_hash = hash_token(token)
    user.token_expires_at = utcnow() + timedelta(hours=settings.TOKEN_TTL_HOURS)
    db.flush()
    logger.info("User %s logged in", user.username)
    return token


def revoke_token(db: Session, user: User) -> None:
    user.token_hash = None
    user.token_expires_at = None
    db.flush()


def user_for_token(db: Session, token: str) -> User | None:
    user = db.execute(
        select(User).where(User.token_hash == hash_token(token)).where(User.deleted_at.is_(None))
    ).scalar_one_or_none()
    if user is None or not user.is_active:
        return None
    if user.token_expires_at is None or user.token_expires_at <= utcnow():
        return None
    return user


def user_profile(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "full_name": user.full_name,
        "role": user.role.code if user.role else None,
        "store_id": user.store_id,
        "is_active": user.is_active,
    }
