from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from championship.database import get_db
from championship.models import User
from championship.security import InvalidToken, decode_access_token
from championship.services import is_admin, is_token_revoked


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


@dataclass(frozen=True)
class Identity:
    user: User
    is_admin: bool
    claims: dict[str, Any]


def _resolve_identity(db: Session, token: str) -> Identity:
    try:
        claims = decode_access_token(token)
        user_id = int(claims["sub"])
    except (InvalidToken, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")

    if is_token_revoked(db, claims["jti"]):
        raise HTTPException(status_code=401, detail="Token has been revoked")

    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return Identity(user=user, is_admin=is_admin(db, user.id), claims=claims)


def get_optional_identity(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> Optional[Identity]:
    if not token:
        return None
    return _resolve_identity(db, token)


def get_current_identity(
    identity: Optional[Identity] = Depends(get_optional_identity),
) -> Identity:
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity


def require_admin(identity: Identity = Depends(get_current_identity)) -> Identity:
    if not identity.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return identity
