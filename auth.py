import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

import auth_schemas, auth_utils, crud
from database import get_db
from exceptions import AuthError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _client_ip(request: Request):
    return request.client.host if request.client else None


@router.post("/register", response_model=auth_schemas.AuthResponse, status_code=status.HTTP_201_CREATED)
def register(user: auth_schemas.UserCreate, db: Session = Depends(get_db)):
    db_user = crud.register_user(user.username, user.email, user.password, db)
    return {
        "message": "Registered successfully",
        "user": db_user,
        "token": auth_utils.create_access_token(db_user),
    }


@router.post("/login", response_model=auth_schemas.AuthResponse)
def login(request: Request, login_data: auth_schemas.UserLogin, db: Session = Depends(get_db)):
    if not login_data.email or not login_data.password:
        raise ValidationError("Email and password required")

    user = crud.authenticate_user(login_data.email, login_data.password, db)
    if user is None:
        # Same answer for unknown email and wrong password
        logger.warning("Failed login for %s from %s", login_data.email, _client_ip(request))
        raise AuthError("Invalid credentials")

    logger.info("User %s logged in from %s", user.id, _client_ip(request))
    return {
        "message": "Login successful",
        "user": user,
        "token": auth_utils.create_access_token(user),
    }


@router.get("/me")
def read_users_me(
    current_user: auth_schemas.TokenUser = Depends(auth_utils.get_current_user),
    db: Session = Depends(get_db),
):
    user = crud.get_user_by_id(current_user.id, db)
    if user is None:
        raise NotFoundError("User not found")
    profile = auth_schemas.UserProfile(
        id=user.id,
        username=user.username,
        email=user.email,
        role=user.role,
        created_at=user.created_at,
        permissions=sorted(user.permissions) if user.role == "librarian" else [],
    )
    return {"user": profile}


@router.post("/logout")
def logout():
    # Tokens are stateless; the client discards its copy
    return {"message": "Successfully logged out"}
