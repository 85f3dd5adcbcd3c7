from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy.orm import Session
from datetime import datetime, timedelta, timezone
from typing import Optional
import jwt
from config import get_settings
from database import get_db, User
from logger import get_logger

logger = get_logger(__name__)

auth_router = APIRouter()
authorization_header = APIKeyHeader(name="Authorization", auto_error=False)


class AuthUser(BaseModel):
    """Identity carried by a verified token."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    display_name: Optional[str] = Field(default=None, alias="displayName")
    email: Optional[str] = None
    picture: Optional[str] = None


def create_access_token(data: dict, expires_minutes: Optional[int] = None):
    settings = get_settings()
    to_encode = data.copy()
    minutes = expires_minutes if expires_minutes is not None else settings.jwt_expires_minutes
    now = datetime.now(timezone.utc)
    to_encode.update({"iat": now, "exp": now + timedelta(minutes=minutes)})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_token(token: str) -> AuthUser:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except jwt.InvalidTokenError:
        raise _unauthorized("Invalid or expired token")

    if not payload.get("id"):
        raise _unauthorized("Invalid or expired token")
    try:
        return AuthUser.model_validate(payload)
    except ValidationError:
        logger.info("token_payload_rejected")
        raise _unauthorized("Invalid or expired token")


async def get_current_user(
    authorization: Optional[str] = Depends(authorization_header),
) -> AuthUser:
    if not authorization:
        raise _unauthorized("Authorization header is required")

    parts = authorization.split(" ")
    token = parts[1].strip() if len(parts) > 1 else ""
    if not token:
        raise _unauthorized("Token is required")

    return decode_token(token)


async def get_current_member(
    current_user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> User:
    member = db.query(User).filter(User.auth_id == current_user.id).first()
    if member is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is not registered to a couple",
        )
    return member


@auth_router.get("/status")
async def auth_status(authorization: Optional[str] = Depends(authorization_header)):
    if not authorization:
        return {"authenticated": False}
    try:
        user = await get_current_user(authorization)
    except HTTPException as exc:
        logger.info("auth_status_rejected", reason=exc.detail)
        return {"authenticated": False}
    return {"authenticated": True, "user": user.model_dump(by_alias=True)}


@auth_router.get("/logout")
async def logout():
    # tokens are stateless; the client discards its copy
    return {"success": True}
