"""
Base repository class for data access operations
"""
from sqlalchemy.orm import Session
from typing import Generic, TypeVar, Type, Optional, List
from origination.database.models.base import BaseModel

ModelType = TypeVar("ModelType", bound=BaseModel)


class BaseRepository(Generic[ModelType]):
    """
    Base repository class for database operations.
    Repositories only flush; committing is left to the caller's unit of work
    (see database.session.atomic) so several writes land together.
    """

    model: Type[ModelType]

    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, id: int) -> Optional[ModelType]:
        """Find a record by ID"""
        return self.db.get(self.model, id)

    def find_by(self, **filters) -> List[ModelType]:
        """Find records by filters"""
        return self.db.query(self.model).filter_by(**filters).all()

    def find_one_by(self, **filters) -> Optional[ModelType]:
        """Find a single record by filters"""
        return self.db.query(self.model).filter_by(**filters).first()

    def create(self, **kwargs) -> ModelType:
        """Create a new record"""
        db_obj = self.model(**kwargs)
        self.db.add(db_obj)
        self.db.flush()
        return db_obj

    def update(self, db_obj: ModelType, **kwargs) -> ModelType:
        """Update an existing record"""
        for key, value in kwargs.items():
            setattr(db_obj, key, value)
        self.db.flush()
        return db_obj
