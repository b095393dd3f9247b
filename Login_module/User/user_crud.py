from sqlalchemy.orm import Session
from typing import Optional
from .user_model import User


def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
    """
    Retrieve user by ID.
    """
    return db.query(User).filter(User.id == user_id).first()
