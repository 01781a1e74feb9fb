"""User management routes"""

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session
from typing import List, Optional

from app.core.database import get_db
from app.schemas.auth import MessageResponse
from app.schemas.user import ProfileUpdate, UserResponse, UserRole
from app.services.user_service import user_service
from app.api.deps import get_current_user, require_roles, clear_refresh_cookie
from app.models.user import User

router = APIRouter()


@router.get("/profile", response_model=UserResponse)
def get_profile(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Get current user profile

    Args:
        current_user: Current authenticated user

    Returns:
        User profile
    """
    return user_service.get_profile(db, current_user.id)


@router.put("/profile", response_model=UserResponse)
def update_profile(
    data: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return user_service.update_profile(db, current_user.id, data)


@router.delete("/account", response_model=MessageResponse)
def delete_account(
    response: Response,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Deactivate the current account

    Every refresh token of the user is revoked and the cookie is cleared.
    """
    user_service.deactivate_account(db, current_user.id)
    clear_refresh_cookie(response)
    return MessageResponse(message="Account deactivated successfully")


@router.get("/", response_model=List[UserResponse])
def get_all_users(
    role: Optional[str] = None,
    current_user: User = Depends(require_roles(UserRole.ADMIN, UserRole.MODERATOR)),
    db: Session = Depends(get_db)
):
    """
    Get all users (admins and moderators)

    Args:
        role: Optional role filter
        current_user: Current admin or moderator
        db: Database session

    Returns:
        List of users
    """
    return user_service.list_users(db, role)
