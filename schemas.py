from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


# --- Books ---
class BookCreate(BaseModel):
    title: Optional[str] = None
    author: Optional[str] = None
    isbn: Optional[str] = None
    category: Optional[str] = None
    total_copies: Optional[int] = None
    publication_year: Optional[int] = None
    publisher: Optional[str] = None
    description: Optional[str] = None


class BookUpdate(BookCreate):
    # Only the keys the client actually sent are applied (model_dump(exclude_unset=True))
    pass


class BookOut(BaseModel):
    id: int
    title: str
    author: str
    isbn: Optional[str] = None
    category: Optional[str] = None
    total_copies: int
    available_copies: int
    publication_year: Optional[int] = None
    publisher: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class BookResponse(BaseModel):
    message: Optional[str] = None
    book: BookOut


class BookList(BaseModel):
    books: List[BookOut]
    pagination: Pagination


class BookStats(BaseModel):
    total_books: int
    total_copies: int
    available_copies: int
    total_categories: int


# --- Members ---
class MemberCreate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    membership_type: Optional[str] = None


class MemberUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    membership_type: Optional[str] = None
    membership_end: Optional[date] = None
    status: Optional[str] = None


class MemberRenew(BaseModel):
    months: Optional[int] = None


class MemberOut(BaseModel):
    id: int
    member_id: str
    name: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None
    membership_type: str
    membership_start: date
    membership_end: date
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class MemberResponse(BaseModel):
    message: Optional[str] = None
    member: MemberOut


class MemberList(BaseModel):
    members: List[MemberOut]
    pagination: Pagination


class MemberStats(BaseModel):
    total_members: int
    active_members: int
    inactive_members: int
    suspended_members: int
    standard_members: int
    premium_members: int
    student_members: int


# --- Dashboard ---
class DashboardStats(BaseModel):
    totalBooks: int
    totalMembers: int
    booksIssued: int
    overdueBooks: int
    availableBooks: int
    activeMembers: int


class Activity(BaseModel):
    id: str
    date: date
    activity: str
    user: str = Field("System")
