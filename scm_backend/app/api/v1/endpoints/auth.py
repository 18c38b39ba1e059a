from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from scm_backend.app.api.deps import get_current_user, get_db
from scm_backend.app.db.models.models_v1 import User
from scm_backend.services.auth import authenticate, issue_token, revoke_token, user_profile

router = APIRouter(prefix="/auth")


class LoginIn(BaseModel):
    username: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1)


@router.post("/login")
def login(payload: LoginIn, db: Session = Depends(get_db)):
    user = authenticate(db, payload.username, payload.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    token = issue_token(db, user)
    db.commit()
    return {"access_token": token, "token_type": "bearer", "user": user_profile(user)}


@router.get("/profile")
def profile(user: User = Depends(get_current_user)):
    return user_profile(user)


@router.post("/logout")
def logout(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    revoke_token(db, user)
    db.commit()
    return {"success": True}
