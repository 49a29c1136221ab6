from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from fastapi import Depends, Request
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.database import get_db
from app.config import get_settings
from app.errors import Unauthenticated
from app.models.user import User
from app.services.messaging import MessagingService

settings = get_settings()

TOKEN_COOKIE_NAME = "session"


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def _token_from_request(request: Request) -> Optional[str]:
    token = request.cookies.get(TOKEN_COOKIE_NAME)
    if token:
        return token
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip()
    return None


async def user_from_token(token: Optional[str], db: AsyncSession) -> User:
    if not token:
        raise Unauthenticated("Not authenticated")

    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        user_id = UUID(payload.get("sub") or "")
    except (JWTError, ValueError):
        raise Unauthenticated("Invalid token")
    # Purpose tokens (email verification) are not sessions
    if payload.get("type"):
        raise Unauthenticated("Invalid token")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise Unauthenticated("User not found")
    return user


async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> User:
    """Get current user from the session cookie or a bearer token"""
    return await user_from_token(_token_from_request(request), db)


async def get_messaging_service(db: AsyncSession = Depends(get_db)) -> MessagingService:
    return MessagingService(db)
