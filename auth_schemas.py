from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class UserCreate(BaseModel):
    # Presence and length are checked in the handler so the client gets one readable message
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class UserLogin(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class UserOut(BaseModel):
    id: int
    username: str
    email: str
    role: str
    model_config = ConfigDict(from_attributes=True)


class UserProfile(UserOut):
    permissions: List[str] = []
    created_at: Optional[datetime] = None


class AuthResponse(BaseModel):
    message: str
    user: UserOut
    token: str


class TokenUser(BaseModel):
    """Identity claims carried by a verified session token."""

    id: int
    email: str
    username: str
    role: str
