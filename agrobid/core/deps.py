from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from agrobid.db.models import User
from agrobid.db.session import get_db
from agrobid.utils.permissions import can_place_bid
from agrobid.utils.security import decode_access_token

bearer_scheme = HTTPBearer(auto_error=False)


def resolve_user(db: Session, token: str) -> Optional[User]:
    """Look up the user a bearer token was issued for."""
    subject = decode_access_token(token)
    if not subject:
        return None
    try:
        user_id = UUID(subject)
    except ValueError:
        return None
    return db.query(User).filter(User.id == user_id).first()


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db)
) -> User:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"}
        )
    user = resolve_user(db, credentials.credentials)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"}
        )
    return user


def get_current_buyer(current_user: User = Depends(get_current_user)) -> User:
    if not can_place_bid(current_user):
        raise HTTPException(status_code=403, detail="Only buyers can place bids")
    return current_user
