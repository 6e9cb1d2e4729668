"""User service - handles user management"""

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging
import math

from trackyr.core.exceptions import ConflictError, NotFoundError
from trackyr.core.security import PasswordHasher
from trackyr.models.user import User
from trackyr.schemas.user import UserCreate, UserListResponse, UserResponse, UserUpdate

logger = logging.getLogger(__name__)


class UserService:
    """Service for user management"""

    @staticmethod
    def _get_or_404(db: Session, user_id: str) -> User:
        user = db.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    @staticmethod
    def create_user(db: Session, user_data: UserCreate, hasher: PasswordHasher) -> UserResponse:
        """
        Create new user

        Args:
            db: Database session
            user_data: User creation data (email already normalised)
            hasher: Password hasher

        Returns:
            Created user
        """
        existing = db.execute(select(User).where(User.email == user_data.email)).scalar_one_or_none()
        if existing:
            raise ConflictError("User with this email already exists")

        user = User(
            email=user_data.email,
            password_hash=hasher.hash(user_data.password),
            first_name=user_data.first_name,
            last_name=user_data.last_name,
        )
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError("User with this email already exists")
        db.refresh(user)

        logger.info(f"Created user: {user.id}")
        return UserResponse.model_validate(user)

    @staticmethod
    def get_user(db: Session, user_id: str) -> UserResponse:
        """Get user by ID"""
        return UserResponse.model_validate(UserService._get_or_404(db, user_id))

    @staticmethod
    def list_users(db: Session, page: int = 1, limit: int = 10) -> UserListResponse:
        """
        Get one page of users, newest first

        Args:
            db: Database session
            page: 1-based page number
            limit: Page size

        Returns:
            Page of users with totals
        """
        total = db.execute(select(func.count()).select_from(User)).scalar_one()
        users = db.execute(
            select(User)
            .order_by(User.created_at.desc(), User.id)
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()

        return UserListResponse(
            users=[UserResponse.model_validate(user) for user in users],
            total=total,
            page=page,
            total_pages=math.ceil(total / limit) if limit else 0,
        )

    @staticmethod
    def update_user(db: Session, user_id: str, data: UserUpdate) -> UserResponse:
        """
        Update profile fields; a changed email must not belong to another user
        """
        user = UserService._get_or_404(db, user_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)

        new_email = changes.get("email")
        if new_email and new_email != user.email:
            taken = db.execute(select(User).where(User.email == new_email)).scalar_one_or_none()
            if taken:
                raise ConflictError("Email already in use")

        for field, value in changes.items():
            setattr(user, field, value)

        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError("Email already in use")
        db.refresh(user)

        logger.info(f"Updated user: {user.id} ({', '.join(sorted(changes)) or 'no changes'})")
        return UserResponse.model_validate(user)

    @staticmethod
    def delete_user(db: Session, user_id: str) -> None:
        """
        Delete user and, by cascade, their refresh tokens

        Args:
            db: Database session
            user_id: User ID
        """
        user = UserService._get_or_404(db, user_id)
        db.delete(user)
        db.commit()

        logger.info(f"Deleted user: {user_id}")


# Singleton instance
user_service = UserService()
