from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from models import Permission


PERMISSION_CATALOG = [
    {"id": Permission.MANAGE_BOOKS.value, "name": "Manage Books", "description": "Add, edit, and delete books"},
    {"id": Permission.MANAGE_MEMBERS.value, "name": "Manage Members", "description": "Add, edit, and manage library members"},
    {"id": Permission.ISSUE_BOOKS.value, "name": "Issue Books", "description": "Issue and return books"},
    {"id": Permission.VIEW_REPORTS.value, "name": "View Reports", "description": "View library reports and statistics"},
]


# Librarian management
class LibrarianCreate(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    # Plain strings so unknown names are reported by name instead of as an enum error
    permissions: List[str] = []


class LibrarianUpdate(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    permissions: Optional[List[str]] = None


class LibrarianResponse(BaseModel):
    id: int
    username: str
    email: str
    created_at: Optional[datetime] = None
    permissions: List[str] = []


class PermissionInfo(BaseModel):
    id: str
    name: str
    description: str
