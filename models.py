from datetime import datetime, date
from enum import Enum

from sqlalchemy import Column, Integer, String, Text, Date, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base


class Permission(str, Enum):
    MANAGE_BOOKS = "manage_books"
    MANAGE_MEMBERS = "manage_members"
    ISSUE_BOOKS = "issue_books"
    VIEW_REPORTS = "view_reports"


ROLES = ("admin", "librarian", "member")
PERMISSIONS = tuple(p.value for p in Permission)
MEMBERSHIP_TYPES = ("standard", "premium", "student")
MEMBER_STATUSES = ("active", "inactive", "suspended")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), nullable=False)
    email = Column(String(100), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="member", index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    permission_grants = relationship(
        "LibrarianPermission",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    @property
    def permissions(self) -> set:
        return {grant.permission for grant in self.permission_grants}


class LibrarianPermission(Base):
    __tablename__ = "librarian_permissions"
    __table_args__ = (UniqueConstraint("user_id", "permission", name="unique_user_permission"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    permission = Column(String(50), nullable=False)
    granted_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="permission_grants")


class Book(Base):
    __tablename__ = "books"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False, index=True)
    author = Column(String(255), nullable=False, index=True)
    isbn = Column(String(20), unique=True, index=True, nullable=True)
    category = Column(String(100), nullable=True, index=True)
    total_copies = Column(Integer, nullable=False, default=1)
    available_copies = Column(Integer, nullable=False, default=1)
    publication_year = Column(Integer, nullable=True)
    publisher = Column(String(200), nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Member(Base):
    __tablename__ = "members"

    id = Column(Integer, primary_key=True, index=True)
    member_id = Column(String(50), unique=True, index=True, nullable=False)
    name = Column(String(200), nullable=False)
    email = Column(String(100), unique=True, index=True, nullable=False)
    phone = Column(String(20), nullable=True)
    address = Column(Text, nullable=True)
    membership_type = Column(String(20), nullable=False, default="standard")
    membership_start = Column(Date, nullable=False, default=date.today)
    membership_end = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default="active", index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
