from typing import Annotated, Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.database import get_db
from app.core.errors import ForbiddenError, UnauthorizedError
from app.models.user import User
from app.services.security import decode_user_id


settings = get_settings()

# auto_error=False: the session cookie is checked when the header is absent
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def get_current_user(
    request: Request,
    token: Annotated[Optional[str], Depends(oauth2_scheme)],
    db: Annotated[Session, Depends(get_db)],
) -> User:
    token = token or request.cookies.get(settings.AUTH_COOKIE_NAME)
    if not token:
        raise UnauthorizedError("Not authenticated")

    user_id = decode_user_id(token, settings.JWT_SECRET_KEY)
    if user_id is None:
        raise UnauthorizedError("Could not validate credentials")

    user = db.query(User).filter(User.id == user_id).first()
    if user is None or user.status != "active":
        raise UnauthorizedError("Could not validate credentials")

    return user


def get_current_admin(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    if not current_user.is_admin:
        raise ForbiddenError("Admin access required")
    return current_user
