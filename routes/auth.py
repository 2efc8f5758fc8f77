import logging

from fastapi import APIRouter, Depends, HTTPException, status, Header
from sqlalchemy.orm import Session
from typing import Optional

import jwt

from core.db import get_db
from models.user import User
from schemas.auth import (
    RegisterRequest,
    LoginRequest,
    Token,
    ChangePasswordRequest,
    ProfileUpdateRequest,
)
from schemas.users import UserOut
from security.password import hash_password, verify_and_rehash, verify_password
from security import jwt as jwt_utils

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    return authorization.split(" ", 1)[1]


def _user_from_token(db: Session, token: str) -> User:
    try:
        payload = jwt_utils.decode_access(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User no longer exists")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User account is deactivated")
    return user


def get_current_user(
    db: Session = Depends(get_db), authorization: Optional[str] = Header(default=None, alias="Authorization")
) -> User:
    token = _bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication token required")
    return _user_from_token(db, token)


def get_optional_user(
    db: Session = Depends(get_db), authorization: Optional[str] = Header(default=None, alias="Authorization")
) -> Optional[User]:
    token = _bearer_token(authorization)
    return _user_from_token(db, token) if token else None


def require_staff(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role not in ("admin", "staff"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Staff access required")
    return current_user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return current_user


@router.post("/register", response_model=UserOut, status_code=201)
def register(
    data: RegisterRequest,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    """Create a staff account. The first account bootstraps as admin; later ones need an admin."""
    has_users = db.query(User.id).first() is not None
    if has_users and (current_user is None or not current_user.is_admin):
        raise HTTPException(status_code=403, detail="Admin access required")

    existing = db.query(User).filter(User.email == data.email.lower()).one_or_none()
    if existing:
        raise HTTPException(status_code=400, detail="Email already registered")
    user = User(
        full_name=data.full_name.strip(),
        email=data.email.lower(),
        password_hash=hash_password(data.password),
        role=data.role if has_users else "admin",
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered %s account %s", user.role, user.email)
    return user


@router.post("/login", response_model=Token)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == data.email.lower()).one_or_none()
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    valid, new_hash = verify_and_rehash(data.password, user.password_hash)
    if not valid:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="User account is deactivated")
    if new_hash:
        user.password_hash = new_hash
        db.commit()
    return Token(access_token=jwt_utils.create_access_token(str(user.id), user.role))


@router.get("/me", response_model=UserOut)
def me(current_user: User = Depends(get_current_user)):
    return current_user


@router.post("/change-password")
def change_password(
    data: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not verify_password(data.old_password, current_user.password_hash):
        raise HTTPException(status_code=400, detail="Old password is incorrect")
    current_user.password_hash = hash_password(data.new_password)
    db.commit()
    return {"detail": "Password changed"}


@router.put("/profile", response_model=UserOut)
def update_profile(
    data: ProfileUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not data.full_name and not data.email:
        raise HTTPException(status_code=400, detail="No fields to update")
    if data.email:
        email = data.email.lower()
        clash = db.query(User).filter(User.email == email, User.id != current_user.id).first()
        if clash:
            raise HTTPException(status_code=400, detail="Email already in use")
        current_user.email = email
    if data.full_name:
        current_user.full_name = data.full_name.strip()
    db.commit()
    db.refresh(current_user)
    logger.info("User %s updated their profile", current_user.id)
    return current_user
