import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func

from app.api.deps import SessionDep, CurrentUser, AdminUser, PaginationParams, PaginatedResponse
from app.core.security import get_password_hash, verify_password
from app.models.user import User
from app.schemas.user import UserResponse, UserCreateRequest, UserUpdateRequest, UserPasswordUpdateRequest

router = APIRouter()
logger = logging.getLogger(__name__)


def _user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "is_active": bool(user.is_active),
        "is_superuser": bool(user.is_superuser),
        "created_at": user.created_at,
        "last_login": user.last_login,
    }


def _email_taken(db, email: str, exclude_id: Optional[int] = None) -> bool:
    query = db.query(User.id).filter(User.email == email)
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    return query.first() is not None


# --- SELF SERVICE ---

@router.get("/me", response_model=UserResponse, name="me")
async def get_me(current_user: CurrentUser):
    return _user_to_dict(current_user)


@router.put("/me/password", name="update_password")
async def update_password(
    payload: UserPasswordUpdateRequest,
    db: SessionDep,
    current_user: CurrentUser
):
    """
    Allow a logged-in user to change their own password.
    """
    # 1. Verify the old password matches
    if not verify_password(payload.current_password, current_user.hashed_password):
        raise HTTPException(status_code=400, detail="Incorrect current password")

    # 2. Save the new hash
    current_user.hashed_password = get_password_hash(payload.new_password)
    db.add(current_user)
    db.commit()

    logger.info(f"User {current_user.email} changed their password")
    return {"status": "success", "message": "Password updated successfully"}


# --- ADMIN ---

@router.get("/", response_model=PaginatedResponse, tags=["admin"], name="list")
async def list_users(
        db: SessionDep,
        admin: AdminUser,
        params: Annotated[PaginationParams, Depends()],
        q: Annotated[Optional[str], Query(description="Part of an email address")] = None,
):
    query = db.query(User)
    if q and q.strip():
        query = query.filter(func.lower(User.email).contains(q.strip().lower(), autoescape=True))

    total = query.count()
    users = query.order_by(User.id.desc()).offset(params.skip).limit(params.size).all()

    return {
        "total": total,
        "page": params.page,
        "size": params.size,
        "items": [_user_to_dict(u) for u in users]
    }


@router.post("/", response_model=UserResponse, status_code=status.HTTP_201_CREATED, tags=["admin"], name="create")
async def create_user(
        user_in: UserCreateRequest,
        db: SessionDep,
        admin: AdminUser
):
    if _email_taken(db, user_in.email):
        raise HTTPException(status_code=409, detail="User already exists with this email")

    user = User(
        email=user_in.email,
        hashed_password=get_password_hash(user_in.password),
        is_superuser=user_in.is_superuser,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info(f"Admin {admin.email} created user {user.email}")
    return _user_to_dict(user)


@router.patch("/{user_id}", response_model=UserResponse, tags=["admin"], name="update")
async def update_user(
        user_id: int,
        updates: UserUpdateRequest,
        db: SessionDep,
        admin: AdminUser
):
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    if user.id == admin.id and (updates.is_superuser is False or updates.is_active is False):
        raise HTTPException(status_code=400, detail="Cannot demote or deactivate yourself")

    if updates.email is not None and updates.email != user.email:
        if _email_taken(db, updates.email, exclude_id=user.id):
            raise HTTPException(status_code=409, detail="User already exists with this email")
        user.email = updates.email
    if updates.password is not None:
        user.hashed_password = get_password_hash(updates.password)
    if updates.is_superuser is not None:
        user.is_superuser = updates.is_superuser
    if updates.is_active is not None:
        user.is_active = updates.is_active

    db.commit()
    db.refresh(user)
    return _user_to_dict(user)


@router.delete("/{user_id}", tags=["admin"], name="delete")
async def delete_user(
        user_id: int,
        db: SessionDep,
        admin: AdminUser
):
    if user_id == admin.id:
        raise HTTPException(status_code=400, detail="Cannot delete yourself")

    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    db.delete(user)
    db.commit()

    logger.info(f"Admin {admin.email} deleted user {user_id}")
    return {"message": "User deleted"}
