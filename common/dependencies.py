"""Reusable FastAPI dependencies for auth and database access."""
from typing import Callable

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader, OAuth2PasswordBearer
from sqlalchemy.orm import Session

from .auth import decode_token
from .config import get_settings
from .database import get_db
from .models import Member, RoleEnum

settings = get_settings()
oauth_scheme = OAuth2PasswordBearer(tokenUrl="/users/login")
service_api_key_header = APIKeyHeader(name="X-Service-Key", auto_error=False)


def get_current_member(token: str = Depends(oauth_scheme), db: Session = Depends(get_db)) -> Member:
    payload = decode_token(token)
    username: str | None = payload.get("sub")
    if username is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing subject in token")
    member = db.query(Member).filter(Member.username == username).first()
    if not member:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found")
    return member


def get_current_active_member(current_member: Member = Depends(get_current_member)) -> Member:
    if not current_member.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Member account is inactive")
    return current_member


def allow_roles(*roles: RoleEnum) -> Callable[[Member], Member]:
    def dependency(current_member: Member = Depends(get_current_active_member)) -> Member:
        if current_member.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return current_member

    return dependency


def require_service_key(api_key: str = Security(service_api_key_header)) -> None:
    if not api_key or api_key != settings.service_api_key:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid service key")
