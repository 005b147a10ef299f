from typing import Generator, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from pydantic import ValidationError
from sqlalchemy.orm import Session

from dropshare import crud, models, schemas
from dropshare.core.config import settings
from dropshare.db.session import SessionLocal
from dropshare.services import storage as storage_service

reusable_oauth2 = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/login/access-token")
optional_oauth2 = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/login/access-token", auto_error=False)


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_storage() -> storage_service.StorageBackend:
    return storage_service.get_storage()


def _decode_token(token: str) -> schemas.TokenPayload:
    payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    return schemas.TokenPayload(**payload)


def _user_from_token(db: Session, token: str) -> Optional[models.User]:
    try:
        token_data = _decode_token(token)
    except (JWTError, ValidationError):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Could not validate credentials",
        )
    if token_data.sub is None:
        return None
    return crud.user.get(db, id=int(token_data.sub))


def get_current_user(
    db: Session = Depends(get_db), token: str = Depends(reusable_oauth2)
) -> models.User:
    user = _user_from_token(db, token)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if not crud.user.is_active(user):
        raise HTTPException(status_code=400, detail="Inactive user")
    return user


def get_current_user_optional(
    db: Session = Depends(get_db), token: Optional[str] = Depends(optional_oauth2)
) -> Optional[models.User]:
    """
    Anonymous visitors of a share link get ``None`` instead of a 401. A stale
    or malformed token is treated the same as no token.
    """
    if not token:
        return None
    try:
        token_data = _decode_token(token)
    except (JWTError, ValidationError):
        return None
    if token_data.sub is None:
        return None
    user = crud.user.get(db, id=int(token_data.sub))
    if user is None or not crud.user.is_active(user):
        return None
    return user


def get_current_admin(
    current_user: models.User = Depends(get_current_user),
) -> models.User:
    if not crud.user.is_admin(current_user):
        raise HTTPException(status_code=400, detail="The user doesn't have enough privileges")
    return current_user


def get_client_ip(request: Request) -> Optional[str]:
    """
    The connecting peer's address. ``X-Forwarded-For`` is only read when the
    peer is a configured trusted proxy; the nearest hop that is not itself a
    trusted proxy is the client.
    """
    peer = request.client.host if request.client else None
    trusted = settings.TRUSTED_PROXIES
    forwarded = request.headers.get("X-Forwarded-For")
    if not forwarded or peer not in trusted:
        return peer

    hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
    for hop in reversed(hops):
        if hop not in trusted:
            return hop
    return hops[0] if hops else peer
