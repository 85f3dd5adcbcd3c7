from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List
from database import get_db, Couple, User, utcnow
from schemas import (
    ApiResponse,
    CoupleCreate,
    CoupleResponse,
    UserCreate,
    UserFromAuth,
    UserResponse,
    UserUpdate,
)
from auth import AuthUser, get_current_user
from settlement import ROLES
from logger import get_logger


household_router = APIRouter()
logger = get_logger(__name__)


def _require_name(name, detail: str) -> str:
    if not name or not name.strip():
        raise HTTPException(status_code=400, detail=detail)
    return name.strip()


def _get_couple(db: Session, couple_id: str) -> Couple:
    couple = db.query(Couple).filter(Couple.id == couple_id).first()
    if not couple:
        raise HTTPException(status_code=404, detail="Couple not found")
    return couple


def _get_user(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _create_couple(db: Session, payload: CoupleCreate) -> Couple:
    name = _require_name(payload.name, "Couple name is required")
    couple = Couple(name=name)
    db.add(couple)
    db.commit()
    db.refresh(couple)
    logger.info("couple_created", couple_id=couple.id)
    return couple


def _create_member(db: Session, name: str, role, couple_id, **extra) -> User:
    if not role or not couple_id:
        raise HTTPException(status_code=400, detail="Role and coupleId are required")
    if role not in ROLES:
        raise HTTPException(
            status_code=400, detail="Role must be either husband or wife"
        )

    couple = _get_couple(db, couple_id)
    if any(m.role == role for m in couple.members):
        raise HTTPException(
            status_code=400, detail="Role already taken in this couple"
        )

    user = User(name=name, role=role, couple=couple, **extra)
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("member_created", user_id=user.id, couple_id=couple.id, role=role)
    return user


# Couples


@household_router.post(
    "/couples/anonymous",
    response_model=ApiResponse[CoupleResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_couple_anonymous(
    payload: CoupleCreate, db: Session = Depends(get_db)
):
    couple = _create_couple(db, payload)
    return ApiResponse(data=CoupleResponse.model_validate(couple))


@household_router.post(
    "/couples",
    response_model=ApiResponse[CoupleResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_couple(
    payload: CoupleCreate,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
):
    couple = _create_couple(db, payload)
    return ApiResponse(data=CoupleResponse.model_validate(couple))


@household_router.get("/couples/{couple_id}", response_model=ApiResponse[CoupleResponse])
async def get_couple(
    couple_id: str,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
):
    return ApiResponse(data=CoupleResponse.model_validate(_get_couple(db, couple_id)))


@household_router.put("/couples/{couple_id}", response_model=ApiResponse[CoupleResponse])
async def update_couple(
    couple_id: str,
    payload: CoupleCreate,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
):
    name = _require_name(payload.name, "Couple name is required")
    couple = _get_couple(db, couple_id)
    couple.name = name
    couple.updated_at = utcnow()
    db.commit()
    db.refresh(couple)
    return ApiResponse(data=CoupleResponse.model_validate(couple))


@household_router.delete("/couples/{couple_id}", response_model=ApiResponse)
async def delete_couple(
    couple_id: str,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
):
    couple = _get_couple(db, couple_id)
    db.delete(couple)
    db.commit()
    logger.info("couple_deleted", couple_id=couple_id)
    return ApiResponse(message="Couple deleted successfully")


# Members


@household_router.post(
    "/users",
    response_model=ApiResponse[UserResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
):
    name = _require_name(payload.name, "Name is required")
    user = _create_member(db, name, payload.role, payload.couple_id)
    return ApiResponse(data=UserResponse.model_validate(user))


@household_router.post(
    "/users/from-auth",
    response_model=ApiResponse[UserResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_user_from_auth(
    payload: UserFromAuth,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
):
    if not payload.role or not payload.couple_id:
        raise HTTPException(status_code=400, detail="Role and coupleId are required")

    name = _require_name(
        current_user.display_name, "Display name not found in authentication token"
    )
    if db.query(User).filter(User.auth_id == current_user.id).first():
        raise HTTPException(
            status_code=400,
            detail="This account is already linked to a household member",
        )

    user = _create_member(
        db,
        name,
        payload.role,
        payload.couple_id,
        auth_id=current_user.id,
        email=current_user.email,
    )
    return ApiResponse(data=UserResponse.model_validate(user))


@household_router.get("/users/couple/{couple_id}", response_model=ApiResponse[List[UserResponse]])
async def get_users_by_couple(
    couple_id: str,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
):
    _get_couple(db, couple_id)
    users = (
        db.query(User)
        .filter(User.couple_id == couple_id)
        .order_by(User.created_at.asc())
        .all()
    )
    return ApiResponse(data=[UserResponse.model_validate(u) for u in users])


@household_router.get("/users/{user_id}", response_model=ApiResponse[UserResponse])
async def get_user(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
):
    return ApiResponse(data=UserResponse.model_validate(_get_user(db, user_id)))


@household_router.put("/users/{user_id}", response_model=ApiResponse[UserResponse])
async def update_user(
    user_id: str,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
):
    name = _require_name(payload.name, "Name is required")
    user = _get_user(db, user_id)
    user.name = name
    user.updated_at = utcnow()
    db.commit()
    db.refresh(user)
    return ApiResponse(data=UserResponse.model_validate(user))


@household_router.delete("/users/{user_id}", response_model=ApiResponse)
async def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
):
    user = _get_user(db, user_id)
    db.delete(user)
    db.commit()
    logger.info("member_deleted", user_id=user_id)
    return ApiResponse(message="User deleted successfully")
