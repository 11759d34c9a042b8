from fastapi import Depends, Security
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session
from datetime import datetime, timedelta, timezone
from jose import JWTError, jwt
from typing import Optional
from uuid import UUID

from app.config import settings
from app.database import get_db
from app.errors import AuthenticationError
from app.models import User
from app.services.user_service import UserService

bearer_scheme = HTTPBearer(auto_error=False)
api_key_scheme = APIKeyHeader(name=settings.api_key_header, auto_error=False)


def create_access_token(user_id: UUID) -> str:
    expire = datetime.now(timezone.utc) + timedelta(days=settings.jwt_expire_days)
    to_encode = {"sub": str(user_id), "exp": expire}
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db)
) -> User:
    """Web client identity, from a bearer token."""
    if credentials is None:
        raise AuthenticationError("Access token required")

    payload = decode_access_token(credentials.credentials)
    if payload is None or payload.get("sub") is None:
        raise AuthenticationError("Invalid or expired token")

    try:
        user_id = UUID(payload["sub"])
    except ValueError:
        raise AuthenticationError("Invalid or expired token")

    user = UserService(db).get(user_id)
    if user is None:
        raise AuthenticationError("User not found")
    return user


def get_api_key_user(
    api_key: Optional[str] = Security(api_key_scheme),
    db: Session = Depends(get_db)
) -> User:
    """Device agent identity, from the API key header."""
    if not api_key:
        raise AuthenticationError("API key required")

    user = UserService(db).get_by_api_key(api_key)
    if user is None:
        raise AuthenticationError("Invalid API key")
    return user
