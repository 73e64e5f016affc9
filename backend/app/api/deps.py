"""FastAPI dependencies for the API layer."""

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from app.core.errors import UnauthorizedError
from app.core.security import decode_access_token
from app.database import get_db
from app.models import User

CREDENTIALS_DETAIL = "Could not validate credentials"

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Retrieve the current user from the JWT token."""

    return get_user_from_token(token, db)


def get_optional_user(
    token: str | None = Depends(optional_oauth2_scheme),
    db: Session = Depends(get_db),
) -> User | None:
    """Resolve the caller when a bearer token is supplied, otherwise ``None``."""

    if not token:
        return None
    return get_user_from_token(token, db)


def get_user_from_token(token: str, db: Session) -> User:
    """Resolve an active user from a JWT token or raise a 401 error."""

    payload = decode_access_token(token)
    sub = payload.get("sub")
    if sub is None:
        raise UnauthorizedError(CREDENTIALS_DETAIL)

    try:
        user_id = int(sub)
    except (TypeError, ValueError):
        raise UnauthorizedError(CREDENTIALS_DETAIL) from None

    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise UnauthorizedError(CREDENTIALS_DETAIL)
    return user
