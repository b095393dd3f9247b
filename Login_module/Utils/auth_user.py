from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from Login_module.Utils import security
from Login_module.User.user_crud import get_user_by_id
from Login_module.User.user_model import User
from deps import get_db

security_scheme = HTTPBearer()

INSTRUCTOR_ROLES = {"instructor", "admin"}


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security_scheme),
    db: Session = Depends(get_db)
) -> User:
    """
    Validates JWT token and returns the current authenticated user.
    """
    payload = security.decode_access_token(credentials.credentials)

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token does not contain user info"
        )

    try:
        user = get_user_by_id(db, int(user_id))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid user ID format in token"
        )

    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive"
        )

    return user


def require_instructor(current_user: User = Depends(get_current_user)) -> User:
    """Allow only instructors and admins through."""
    if current_user.role not in INSTRUCTOR_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Instructor or admin access required"
        )
    return current_user


def is_admin(user: User) -> bool:
    return user.role == "admin"
