"""
User management API router
Platform accounts; passwords are hashed on write and never returned
"""
import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from metaplatform.database import get_db
from metaplatform.models import User
from metaplatform.repositories import BaseRepository
from metaplatform.schemas.user import UserCreate, UserResponse, UserUpdate
from metaplatform.utils.decorators import handle_service_errors
from metaplatform.utils.errors import ConflictError, NotFoundError
from metaplatform.utils.password import get_password_hash

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_user(db: Session, user_id: UUID) -> User:
    user = BaseRepository(db, User).get_by_id(user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
@handle_service_errors(resource="user", operation="create")
async def create_user(
    request: UserCreate,
    db: Session = Depends(get_db),
):
    """Create an account; the email must be unique"""
    email = request.email.lower()
    if db.query(User).filter(User.email == email).first():
        raise ConflictError("User with this email already exists")

    user = User(
        email=email,
        password=get_password_hash(request.password),
        first_name=request.first_name,
        last_name=request.last_name,
        role=request.role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info(f"Created user {user.email} ({user.id})")
    return user


@router.get("", response_model=List[UserResponse])
async def list_users(
    skip: int = Query(0, ge=0, description="Records to skip"),
    limit: int = Query(50, ge=1, le=100, description="Records to return"),
    search: Optional[str] = Query(None, description="Email/name search"),
    db: Session = Depends(get_db),
):
    query = db.query(User)

    if search:
        search_term = f"%{search.lower()}%"
        query = query.filter(
            (User.email.ilike(search_term)) |
            (User.first_name.ilike(search_term)) |
            (User.last_name.ilike(search_term))
        )

    return query.order_by(User.created_at.desc()).offset(skip).limit(limit).all()


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: UUID,
    db: Session = Depends(get_db),
):
    return _get_user(db, user_id)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: UUID,
    request: UserUpdate,
    db: Session = Depends(get_db),
):
    user = _get_user(db, user_id)

    for key, value in request.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(user, key, value)

    db.commit()
    db.refresh(user)
    return user


@router.delete("/{user_id}")
async def delete_user(
    user_id: UUID,
    db: Session = Depends(get_db),
):
    """
    Delete an account

    Everything the user owns (schemas, entities, bots, prompts...) is removed with it.
    """
    user = _get_user(db, user_id)
    db.delete(user)
    db.commit()

    logger.info(f"Deleted user {user_id}")
    return {"message": "User deleted successfully"}
