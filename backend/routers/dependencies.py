"""
Shared FastAPI dependencies for the workspace routers.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from database import get_db
from repository import SqlAlchemyRepository


def get_repository(db: Session = Depends(get_db)) -> SqlAlchemyRepository:
    """Repository bound to the request's database session."""
    return SqlAlchemyRepository(db)
