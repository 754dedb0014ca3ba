"""Password hashing, session tokens and the authorization guard.

Tokens are self-contained HS256 JWTs carrying the caller's id, email,
username and role. Nothing is stored server-side, so a verified token is the
request's trusted identity; logout is left to the client.

Authorization has two axes:

* role gates (``require_staff``, ``require_admin``, ``require_member``);
  admin passes every one of them.
* permission gates (``require_permission``) for librarians, backed by the
  ``librarian_permissions`` table. Admin always passes. A failed permission
  lookup denies the request.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import models
from auth_schemas import TokenUser
from config import settings
from database import get_db
from exceptions import AuthError, ForbiddenError

logger = logging.getLogger(__name__)

SECRET_KEY = settings.jwt_secret
ALGORITHM = settings.jwt_algorithm
ACCESS_TOKEN_EXPIRE_SECONDS = settings.jwt_expires_in

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.bcrypt_rounds,
)

oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl="auth/login",
    # Missing tokens are reported by get_current_user as an AuthError
    auto_error=False,
)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Generate a password hash."""
    return pwd_context.hash(password)


def create_access_token(user, expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed token for ``user`` (a User row or anything with the same attributes)."""
    if expires_delta is None:
        expires_delta = timedelta(seconds=ACCESS_TOKEN_EXPIRE_SECONDS)
    to_encode = {
        "sub": str(user.id),
        "id": user.id,
        "email": user.email,
        "username": user.username,
        "role": user.role,
        "exp": datetime.utcnow() + expires_delta,
    }
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: Optional[str]) -> TokenUser:
    """Return the identity embedded in ``token`` or raise AuthError."""
    if not token:
        raise AuthError("Access token required")
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        identity = TokenUser(**payload)
    except (JWTError, PydanticValidationError, TypeError) as exc:
        logger.info("Rejected token: %s", exc)
        raise AuthError("Invalid or expired token")
    if identity.role not in models.ROLES:
        raise AuthError("Invalid or expired token")
    return identity


def get_current_user(token: Optional[str] = Depends(oauth2_scheme)) -> TokenUser:
    return verify_token(token)


def has_permission(db: Session, user_id: int, permission: str) -> bool:
    """Return True if the librarian ``user_id`` holds ``permission``.

    Store errors are logged and answered with False.
    """
    try:
        grant = (
            db.query(models.LibrarianPermission.id)
            .filter(
                models.LibrarianPermission.user_id == user_id,
                models.LibrarianPermission.permission == permission,
            )
            .first()
        )
    except SQLAlchemyError:
        logger.exception("Permission lookup failed for user %s", user_id)
        return False
    return grant is not None


def require_permission(permission: str):
    """Dependency factory gating an endpoint on a librarian permission.

    Usage: Depends(require_permission("manage_books"))
    """
    def permission_checker(
        current_user: TokenUser = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> TokenUser:
        if current_user.role == "admin":
            return current_user
        if current_user.role == "librarian" and has_permission(db, current_user.id, permission):
            return current_user
        logger.warning("User %s denied permission %s", current_user.id, permission)
        raise ForbiddenError(f"Access denied. Required permission: {permission}")
    return permission_checker


def require_staff(current_user: TokenUser = Depends(get_current_user)) -> TokenUser:
    if current_user.role in ("admin", "librarian"):
        return current_user
    raise ForbiddenError("Staff access required")


def require_admin(current_user: TokenUser = Depends(get_current_user)) -> TokenUser:
    if current_user.role == "admin":
        return current_user
    raise ForbiddenError("Admin access required")


def require_member(current_user: TokenUser = Depends(get_current_user)) -> TokenUser:
    if current_user.role in ("admin", "member"):
        return current_user
    raise ForbiddenError("Member access only")
