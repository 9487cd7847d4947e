"""
Base Repository
Common CRUD for all repositories
"""
from typing import Generic, List, Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

from metaplatform.utils.errors import raise_not_found

T = TypeVar('T')


class BaseRepository(Generic[T]):
    """
    Base repository
    Owner-scoped lookups assume the model has a `user_id` column.
    """

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model

    def get_by_id(self, id: UUID) -> Optional[T]:
        return self.db.query(self.model).filter(
            self.model.id == id  # type: ignore
        ).first()

    def get_by_id_or_404(self, id: UUID) -> T:
        resource = self.get_by_id(id)
        if not resource:
            raise_not_found(self.model.__name__, id)
        return resource

    def get_owned(self, id: UUID, user_id: UUID) -> Optional[T]:
        """ID lookup restricted to the owner"""
        return self.db.query(self.model).filter(
            self.model.id == id,  # type: ignore
            self.model.user_id == user_id,  # type: ignore
        ).first()

    def get_all(self, skip: int = 0, limit: int = 100) -> List[T]:
        return self.db.query(self.model).offset(skip).limit(limit).all()

    def list_owned(self, user_id: Optional[UUID], skip: int = 0, limit: int = 100) -> List[T]:
        """Newest first; user_id None lists every row"""
        query = self.db.query(self.model)
        if user_id is not None:
            query = query.filter(self.model.user_id == user_id)  # type: ignore
        return (
            query.order_by(self.model.created_at.desc())  # type: ignore
            .offset(skip)
            .limit(limit)
            .all()
        )

    def count_owned(self, user_id: Optional[UUID]) -> int:
        query = self.db.query(self.model)
        if user_id is not None:
            query = query.filter(self.model.user_id == user_id)  # type: ignore
        return query.count()

    def create(self, obj: T) -> T:
        self.db.add(obj)
        self.db.flush()
        return obj

    def update(self, obj: T) -> T:
        self.db.add(obj)
        self.db.flush()
        return obj

    def delete(self, obj: T):
        self.db.delete(obj)
        self.db.flush()
