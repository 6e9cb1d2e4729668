"""User management routes"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from trackyr.api.deps import get_current_user, get_password_hasher
from trackyr.core.database import get_db
from trackyr.core.security import PasswordHasher
from trackyr.schemas.response import APIResponse
from trackyr.schemas.user import UserCreate, UserResponse, UserUpdate
from trackyr.services.user_service import user_service

router = APIRouter(dependencies=[Depends(get_current_user)])


@router.post("/", response_model=APIResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    user_data: UserCreate,
    db: Session = Depends(get_db),
    hasher: PasswordHasher = Depends(get_password_hasher),
):
    """
    Create new user

    Args:
        user_data: User creation data
        db: Database session

    Returns:
        Created user
    """
    user = user_service.create_user(db, user_data, hasher)
    return APIResponse(message="User created successfully", data=user.model_dump(mode="json"))


@router.get("/", response_model=APIResponse)
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """
    Get one page of users, newest first
    """
    result = user_service.list_users(db, page, limit)
    return APIResponse(data=result.model_dump(mode="json"))


@router.get("/{user_id}", response_model=APIResponse)
def get_user(user_id: str, db: Session = Depends(get_db)):
    """Get a single user"""
    user = user_service.get_user(db, user_id)
    return APIResponse(data=user.model_dump(mode="json"))


@router.patch("/{user_id}", response_model=APIResponse)
def update_user(
    user_id: str,
    data: UserUpdate,
    db: Session = Depends(get_db),
):
    """
    Update first/last name or email
    """
    user = user_service.update_user(db, user_id, data)
    return APIResponse(message="User updated successfully", data=user.model_dump(mode="json"))


@router.delete("/{user_id}", response_model=APIResponse, status_code=status.HTTP_200_OK)
def delete_user(user_id: str, db: Session = Depends(get_db)):
    """
    Delete user

    Args:
        user_id: User ID to delete
        db: Database session

    Returns:
        Success message
    """
    user_service.delete_user(db, user_id)
    return APIResponse(message="User deleted successfully")
