import asyncio
import logging
from datetime import timedelta
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse
from jose import JWTError, jwt
from pydantic import EmailStr
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.database import get_db
from app.dependencies import create_access_token, get_current_user
from app.models.user import User
from app.schemas.messages import CamelModel
from app.services.email_service import email_service
from app.services.identity import IdentityService, display_name

logger = logging.getLogger(__name__)

router = APIRouter()
settings = get_settings()

EMAIL_VERIFY_TOKEN_TYPE = "email_verify"
REMINDER_DELAYS = (30, 60, 180)
DEFAULT_REMINDER_DELAY = 60


class EmailVerificationRequest(CamelModel):
    email: EmailStr


class ReminderSettingsRequest(CamelModel):
    unread_reminder_enabled: Optional[bool] = None
    unread_reminder_delay_min: Optional[int] = None


class UserSettingsDto(CamelModel):
    email: str
    email_verified: bool = False
    unread_reminder_enabled: bool = False
    unread_reminder_delay_min: int = DEFAULT_REMINDER_DELAY


class MeDto(UserSettingsDto):
    id: UUID
    name: str
    is_support_desk: bool = False


def create_email_verification_token(user_id: UUID, email: str) -> str:
    payload = {"sub": str(user_id), "email": email, "type": EMAIL_VERIFY_TOKEN_TYPE}
    return create_access_token(payload, expires_delta=timedelta(hours=24))


def _settings_dto(user: User) -> UserSettingsDto:
    return UserSettingsDto(
        email=user.email,
        email_verified=bool(user.email_verified),
        unread_reminder_enabled=bool(user.unread_reminder_enabled),
        unread_reminder_delay_min=user.unread_reminder_delay_min or DEFAULT_REMINDER_DELAY,
    )


@router.get("/me", response_model=MeDto)
async def get_current_user_info(user: User = Depends(get_current_user)):
    return MeDto(
        id=user.id,
        name=display_name(user),
        is_support_desk=bool(user.is_support_desk),
        **_settings_dto(user).model_dump(by_alias=False),
    )


@router.get("/settings", response_model=UserSettingsDto)
async def get_user_settings(user: User = Depends(get_current_user)):
    return _settings_dto(user)


@router.post("/settings", response_model=UserSettingsDto)
async def update_user_settings(
    body: ReminderSettingsRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Unread message reminder preferences"""
    if body.unread_reminder_delay_min is not None:
        if body.unread_reminder_delay_min not in REMINDER_DELAYS:
            raise HTTPException(status_code=400, detail="unreadReminderDelayMin must be one of: 30, 60, 180")
        user.unread_reminder_delay_min = body.unread_reminder_delay_min

    if body.unread_reminder_enabled is not None:
        user.unread_reminder_enabled = body.unread_reminder_enabled

    await db.commit()
    return _settings_dto(user)


@router.post("/email/start-verification")
async def start_email_verification(
    body: EmailVerificationRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not email_service.is_configured():
        raise HTTPException(status_code=503, detail="Email notifications are not configured")

    token = create_email_verification_token(user.id, body.email)
    verify_url = f"{settings.web_app_url}/api/v1/user/email/verify?token={token}"
    text = (
        f"Hi {display_name(user)},\n\n"
        "Please verify your email to get notified about new and unread messages.\n"
        f"Verify link: {verify_url}\n\n"
        "If you did not request this, you can ignore this message."
    )

    try:
        await asyncio.to_thread(email_service.send_email, body.email, "Verify your email", text)
    except RuntimeError as exc:
        raise HTTPException(status_code=500, detail=f"Failed to send verification email: {exc}")

    user.email = body.email
    user.email_verified = False
    await db.commit()
    logger.info(f"Verification email sent for user {user.id}")
    return {"success": True, "message": "Verification email sent"}


@router.get("/email/verify")
async def verify_email(token: str, db: AsyncSession = Depends(get_db)):
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        user_id = UUID(payload.get("sub") or "")
    except (JWTError, ValueError):
        raise HTTPException(status_code=400, detail="Invalid or expired token")

    if payload.get("type") != EMAIL_VERIFY_TOKEN_TYPE or not payload.get("email"):
        raise HTTPException(status_code=400, detail="Invalid token payload")

    user = await IdentityService(db).get_user(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if user.email != payload["email"]:
        raise HTTPException(status_code=400, detail="Email does not match current user email")

    user.email_verified = True
    if user.unread_reminder_delay_min is None:
        user.unread_reminder_delay_min = DEFAULT_REMINDER_DELAY
    await db.commit()

    return RedirectResponse(url=f"{settings.web_app_url}/messages?verified=1", status_code=302)
