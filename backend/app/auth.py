"""Bearer-token authentication and the actor context handed to services."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from . import models
from .config import get_settings
from .database import get_db

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    """Already-authenticated actor; every core operation takes one explicitly."""

    actor_id: UUID
    role: str
    department_code: str | None = None
    is_head_of_department: bool = False

    @classmethod
    def from_user(cls, user: models.User) -> "AuthContext":
        return cls(
            actor_id=user.id,
            role=user.user_type,
            department_code=user.department_code,
            is_head_of_department=bool(user.is_head_of_department),
        )


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    # credentials are issued by the institution's identity provider; this is for tooling and tests
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.jwt_algorithm)


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> models.User:
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise unauthorized
    settings = get_settings()
    try:
        payload = jwt.decode(
            credentials.credentials, settings.secret_key, algorithms=[settings.jwt_algorithm]
        )
    except JWTError:
        logger.debug("rejected bearer token", exc_info=True)
        raise unauthorized
    email = payload.get("sub")
    if not email:
        raise unauthorized
    user = db.query(models.User).filter(models.User.email == email).first()
    if user is None or not user.is_active:
        raise unauthorized
    return user


def get_auth_context(user: models.User = Depends(get_current_user)) -> AuthContext:
    return AuthContext.from_user(user)
