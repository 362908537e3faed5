"""
Current user profile.

The identity provider issues the token; the User row is created here on
first sign-in.
"""
import logging
from typing import Dict
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.auth import get_current_user, get_token_claims
from core.database import get_db
from models import User
from schemas import UserResponse, UserUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/me", tags=["me"])


def _placeholder_email(user_id: UUID) -> str:
    return f"user_{user_id.hex}@couchproof.app"


def get_or_create_user(db: Session, claims: Dict) -> User:
    user_id = UUID(claims["sub"])
    user = db.query(User).filter(User.id == user_id).first()
    if user is not None:
        return user

    email = (claims.get("email") or "").strip().lower()
    if not email or db.query(User.id).filter(User.email == email).first():
        email = _placeholder_email(user_id)

    user = User(id=user_id, email=email, name=claims.get("name"))
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Created user {user.id} on first sign-in")
    return user


@router.get("")
def get_me(claims: Dict = Depends(get_token_claims), db: Session = Depends(get_db)):
    user = get_or_create_user(db, claims)
    return {"user": UserResponse.model_validate(user)}


@router.patch("")
def update_me(
    update: UserUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    for field, value in update.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(current_user, field, value)
    db.commit()
    db.refresh(current_user)
    return {"user": UserResponse.model_validate(current_user)}
