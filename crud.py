import calendar
import logging
from datetime import date, timedelta
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

import auth_utils
from exceptions import ConflictError, NotFoundError, ValidationError
from listing import ListParams, paginate
from loans import LoanRegistry
from models import Book, LibrarianPermission, Member, User
from validators import (
    ensure_valid,
    invalid_permissions,
    is_valid_email,
    normalize_email,
    validate_book,
    validate_member,
)

logger = logging.getLogger(__name__)

BOOK_SEARCH_COLUMNS = (Book.title, Book.author, Book.isbn)
BOOK_SORTABLE = ("id", "title", "author", "isbn", "category", "total_copies", "available_copies",
                 "publication_year", "publisher", "created_at", "updated_at")
BOOK_UPDATABLE = ("title", "author", "isbn", "category", "total_copies", "publication_year",
                  "publisher", "description")

MEMBER_SEARCH_COLUMNS = (Member.name, Member.email, Member.member_id, Member.phone)
MEMBER_SORTABLE = ("id", "member_id", "name", "email", "phone", "membership_type", "membership_start",
                   "membership_end", "status", "created_at", "updated_at")
MEMBER_UPDATABLE = ("name", "email", "phone", "address", "membership_type", "membership_end", "status")

# Membership length per type, in months
MEMBERSHIP_TERMS = {"standard": 12, "premium": 24, "student": 12}
MEMBER_ID_ATTEMPTS = 5


def _none_if_blank(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


def add_months(start: date, months: int) -> date:
    """Shift ``start`` by whole calendar months, clamping to the last day of the month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


# --- Users ---
def get_user_by_email(email: str, db: Session) -> Optional[User]:
    return db.query(User).filter(func.lower(User.email) == normalize_email(email)).first()


def get_user_by_id(user_id: int, db: Session) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def email_taken(email: str, db: Session, exclude_id: Optional[int] = None) -> bool:
    query = db.query(User.id).filter(func.lower(User.email) == normalize_email(email))
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    return query.first() is not None


def register_user(username: Optional[str], email: Optional[str], password: Optional[str], db: Session) -> User:
    """Create a self-registered account. Self-registration always yields role ``member``."""
    if not username or not email or not password:
        raise ValidationError("All fields required")
    if len(password) < 6:
        raise ValidationError("Password must be at least 6 characters")
    if not is_valid_email(email):
        raise ValidationError("Invalid email format")
    if email_taken(email, db):
        raise ConflictError("Email already registered")

    user = User(
        username=username,
        email=normalize_email(email),
        password_hash=auth_utils.get_password_hash(password),
        role="member",
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Email already registered")
    db.refresh(user)
    logger.info("Registered user %s (%s)", user.id, user.email)
    return user


def authenticate_user(email: str, password: str, db: Session) -> Optional[User]:
    """Return the user for a correct email/password pair, else None."""
    user = get_user_by_email(email, db)
    if user is None or not auth_utils.verify_password(password, user.password_hash):
        return None
    return user


# --- Librarians ---
def librarian_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "created_at": user.created_at,
        "permissions": sorted(user.permissions),
    }


def _check_permissions(permissions: List[str]) -> None:
    invalid = invalid_permissions(permissions)
    if invalid:
        raise ValidationError(f"Invalid permissions: {', '.join(invalid)}")


def list_librarians(db: Session) -> List[User]:
    return (
        db.query(User)
        .options(selectinload(User.permission_grants))
        .filter(User.role == "librarian")
        .order_by(User.created_at.desc(), User.id.desc())
        .all()
    )


def get_librarian(librarian_id: int, db: Session) -> User:
    user = (
        db.query(User)
        .options(selectinload(User.permission_grants))
        .filter(User.id == librarian_id, User.role == "librarian")
        .first()
    )
    if user is None:
        raise NotFoundError("Librarian not found")
    return user


def create_librarian(data, db: Session) -> User:
    if not data.username or not data.email or not data.password:
        raise ValidationError("Username, email, and password are required")
    if len(data.password) < 6:
        raise ValidationError("Password must be at least 6 characters")
    if not is_valid_email(data.email):
        raise ValidationError("Invalid email format")
    permissions = data.permissions or []
    _check_permissions(permissions)
    if email_taken(data.email, db):
        raise ConflictError("Email already registered")

    user = User(
        username=data.username,
        email=normalize_email(data.email),
        password_hash=auth_utils.get_password_hash(data.password),
        role="librarian",
    )
    user.permission_grants = [LibrarianPermission(permission=p) for p in sorted(set(permissions))]
    db.add(user)
    # user row and grants land in one transaction
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Email already registered")
    except Exception:
        db.rollback()
        raise
    db.refresh(user)
    logger.info("Created librarian %s with permissions %s", user.id, sorted(user.permissions))
    return user


def update_librarian(librarian_id: int, data, db: Session) -> User:
    user = get_librarian(librarian_id, db)
    if data.email and not is_valid_email(data.email):
        raise ValidationError("Invalid email format")
    if data.permissions is not None:
        _check_permissions(data.permissions)
    if data.email and email_taken(data.email, db, exclude_id=user.id):
        raise ConflictError("Email already in use")

    try:
        if data.username:
            user.username = data.username
        if data.email:
            user.email = normalize_email(data.email)
        if data.permissions is not None:
            # Clear first so re-granted names do not collide with the rows being removed
            user.permission_grants.clear()
            db.flush()
            user.permission_grants.extend(
                LibrarianPermission(permission=p) for p in sorted(set(data.permissions))
            )
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Email already in use")
    except Exception:
        db.rollback()
        raise
    db.refresh(user)
    return user


def delete_librarian(librarian_id: int, db: Session) -> None:
    user = get_librarian(librarian_id, db)
    try:
        db.delete(user)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Deleted librarian %s", librarian_id)


# --- Book CRUD ---
def list_books(db: Session, params: ListParams, category: Optional[str] = None):
    return paginate(
        db,
        Book,
        params,
        search_columns=BOOK_SEARCH_COLUMNS,
        sortable=BOOK_SORTABLE,
        filters={Book.category: category},
    )


def get_book_by_id(book_id: int, db: Session) -> Book:
    book = db.query(Book).filter(Book.id == book_id).first()
    if book is None:
        raise NotFoundError("Book not found")
    return book


def isbn_taken(isbn: str, db: Session, exclude_id: Optional[int] = None) -> bool:
    query = db.query(Book.id).filter(Book.isbn == isbn)
    if exclude_id is not None:
        query = query.filter(Book.id != exclude_id)
    return query.first() is not None


def add_book(book_data: dict, db: Session) -> Book:
    ensure_valid(validate_book(book_data))
    isbn = _none_if_blank(book_data.get("isbn"))
    # Guard against duplicates before hitting DB constraints
    if isbn and isbn_taken(isbn, db):
        raise ConflictError("ISBN already exists")

    total_copies = book_data.get("total_copies") or 1
    new_book = Book(
        title=book_data["title"].strip(),
        author=book_data["author"].strip(),
        isbn=isbn,
        category=_none_if_blank(book_data.get("category")),
        total_copies=total_copies,
        available_copies=total_copies,
        publication_year=book_data.get("publication_year"),
        publisher=_none_if_blank(book_data.get("publisher")),
        description=_none_if_blank(book_data.get("description")),
    )
    db.add(new_book)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("ISBN already exists")
    db.refresh(new_book)
    logger.info("Added book %s (%s)", new_book.id, new_book.title)
    return new_book


def update_book(book_id: int, book_data: dict, db: Session) -> Book:
    updates = {k: v for k, v in book_data.items() if k in BOOK_UPDATABLE}
    if not updates:
        raise ValidationError("No valid fields to update")

    book = get_book_by_id(book_id, db)
    ensure_valid(validate_book(updates, partial=True))

    for key in ("isbn", "category", "publisher", "description"):
        if key in updates:
            updates[key] = _none_if_blank(updates[key])
    if updates.get("isbn") and isbn_taken(updates["isbn"], db, exclude_id=book.id):
        raise ConflictError("ISBN already exists")

    if "total_copies" in updates:
        issued = book.total_copies - book.available_copies
        if updates["total_copies"] < issued:
            raise ValidationError(f"Cannot reduce total copies below {issued} (currently issued)")
        updates["available_copies"] = updates["total_copies"] - issued

    for key, value in updates.items():
        setattr(book, key, value)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("ISBN already exists")
    db.refresh(book)
    return book


def delete_book(book_id: int, db: Session, loans: LoanRegistry) -> None:
    book = get_book_by_id(book_id, db)
    if loans.active_loans_for_book(book.id) > 0:
        raise ValidationError("Cannot delete book with active transactions")
    db.delete(book)
    db.commit()
    logger.info("Deleted book %s", book_id)


def book_categories(db: Session) -> List[str]:
    rows = (
        db.query(Book.category)
        .filter(Book.category.isnot(None))
        .distinct()
        .order_by(Book.category)
        .all()
    )
    return [r.category for r in rows]


def books_stats(db: Session) -> dict:
    """Return aggregated book counts for the catalog summary."""
    row = db.query(
        func.count(Book.id).label("total_books"),
        func.coalesce(func.sum(Book.total_copies), 0).label("total_copies"),
        func.coalesce(func.sum(Book.available_copies), 0).label("available_copies"),
        func.count(func.distinct(Book.category)).label("total_categories"),
    ).one()
    return {
        "total_books": row.total_books,
        "total_copies": int(row.total_copies),
        "available_copies": int(row.available_copies),
        "total_categories": row.total_categories,
    }


# --- Member CRUD ---
def generate_member_id(db: Session, year: Optional[int] = None) -> str:
    """Next ``MEM<year><seq>`` id, one past the highest sequence used this year."""
    prefix = f"MEM{year or date.today().year}"
    last = (
        db.query(Member.member_id)
        .filter(Member.member_id.like(f"{prefix}%"))
        # longest first so MEM20251000 sorts above MEM2025999
        .order_by(func.length(Member.member_id).desc(), Member.member_id.desc())
        .first()
    )
    if last is None:
        return f"{prefix}001"
    return f"{prefix}{int(last.member_id[len(prefix):]) + 1:03d}"


def member_email_taken(email: str, db: Session, exclude_id: Optional[int] = None) -> bool:
    query = db.query(Member.id).filter(func.lower(Member.email) == normalize_email(email))
    if exclude_id is not None:
        query = query.filter(Member.id != exclude_id)
    return query.first() is not None


def list_members(
    db: Session,
    params: ListParams,
    status: Optional[str] = None,
    membership_type: Optional[str] = None,
):
    return paginate(
        db,
        Member,
        params,
        search_columns=MEMBER_SEARCH_COLUMNS,
        sortable=MEMBER_SORTABLE,
        filters={Member.status: status, Member.membership_type: membership_type},
    )


def get_member_by_id(member_id: int, db: Session) -> Member:
    member = db.query(Member).filter(Member.id == member_id).first()
    if member is None:
        raise NotFoundError("Member not found")
    return member


def add_member(member_data: dict, db: Session) -> Member:
    """Create a member with a generated member ID and a membership term.

    Two concurrent creations can compute the same member ID; the loser's
    insert fails on the unique constraint and is retried with a fresh ID.
    """
    data = dict(member_data)
    data["membership_type"] = data.get("membership_type") or "standard"
    ensure_valid(validate_member(data))
    email = normalize_email(data["email"])
    if member_email_taken(email, db):
        raise ConflictError("Email already registered")

    start = date.today()
    end = add_months(start, MEMBERSHIP_TERMS[data["membership_type"]])

    for attempt in range(1, MEMBER_ID_ATTEMPTS + 1):
        new_member = Member(
            member_id=generate_member_id(db),
            name=data["name"].strip(),
            email=email,
            phone=_none_if_blank(data.get("phone")),
            address=_none_if_blank(data.get("address")),
            membership_type=data["membership_type"],
            membership_start=start,
            membership_end=end,
            status="active",
        )
        db.add(new_member)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            if member_email_taken(email, db):
                raise ConflictError("Email already registered")
            logger.warning("Member ID %s already taken (attempt %s)", new_member.member_id, attempt)
            continue
        db.refresh(new_member)
        logger.info("Added member %s", new_member.member_id)
        return new_member

    raise ConflictError("Could not allocate a member ID, please retry")


def update_member(member_id: int, member_data: dict, db: Session) -> Member:
    updates = {k: v for k, v in member_data.items() if k in MEMBER_UPDATABLE}
    if not updates:
        raise ValidationError("No valid fields to update")

    member = get_member_by_id(member_id, db)
    ensure_valid(validate_member(updates, partial=True))

    for key in ("phone", "address"):
        if key in updates:
            updates[key] = _none_if_blank(updates[key])
    if "email" in updates:
        updates["email"] = normalize_email(updates["email"])
        if member_email_taken(updates["email"], db, exclude_id=member.id):
            raise ConflictError("Email already exists")

    for key, value in updates.items():
        setattr(member, key, value)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Email already exists")
    db.refresh(member)
    return member


def deactivate_member(member_id: int, db: Session, loans: LoanRegistry) -> Member:
    """Soft delete: the row stays, its status becomes ``inactive``."""
    member = get_member_by_id(member_id, db)
    if loans.active_loans_for_member(member.id) > 0:
        raise ValidationError("Cannot delete member with active book loans")
    member.status = "inactive"
    db.commit()
    db.refresh(member)
    logger.info("Deactivated member %s", member.member_id)
    return member


def renew_membership(member_id: int, months: Optional[int], db: Session) -> Member:
    """Extend membership_end by ``months`` from its current value and reactivate."""
    if not months or months < 1 or months > 24:
        raise ValidationError("Invalid renewal period (1-24 months)")
    member = get_member_by_id(member_id, db)
    member.membership_end = add_months(member.membership_end, months)
    member.status = "active"
    db.commit()
    db.refresh(member)
    return member


def members_stats(db: Session) -> dict:
    by_status = dict(db.query(Member.status, func.count(Member.id)).group_by(Member.status).all())
    by_type = dict(
        db.query(Member.membership_type, func.count(Member.id)).group_by(Member.membership_type).all()
    )
    return {
        "total_members": sum(by_status.values()),
        "active_members": by_status.get("active", 0),
        "inactive_members": by_status.get("inactive", 0),
        "suspended_members": by_status.get("suspended", 0),
        "standard_members": by_type.get("standard", 0),
        "premium_members": by_type.get("premium", 0),
        "student_members": by_type.get("student", 0),
    }


def expiring_members(db: Session, days: int = 30) -> List[Member]:
    today = date.today()
    return (
        db.query(Member)
        .filter(Member.status == "active")
        .filter(Member.membership_end.between(today, today + timedelta(days=days)))
        .order_by(Member.membership_end.asc(), Member.id.asc())
        .all()
    )


# --- Dashboard ---
def dashboard_stats(db: Session, loans: LoanRegistry) -> dict:
    total_books, available_books = db.query(
        func.count(Book.id), func.coalesce(func.sum(Book.available_copies), 0)
    ).one()
    total_members = db.query(func.count(Member.id)).scalar()
    active_members = db.query(func.count(Member.id)).filter(Member.status == "active").scalar()
    return {
        "totalBooks": total_books,
        "totalMembers": total_members,
        "booksIssued": loans.issued_count(),
        "overdueBooks": loans.overdue_count(),
        "availableBooks": int(available_books),
        "activeMembers": active_members,
    }


def recent_activity(db: Session, per_source: int = 5, limit: int = 10) -> List[dict]:
    """Newest book additions and member registrations, merged newest first."""
    books = db.query(Book).order_by(Book.created_at.desc(), Book.id.desc()).limit(per_source).all()
    members = db.query(Member).order_by(Member.created_at.desc(), Member.id.desc()).limit(per_source).all()

    events = [
        (b.created_at, {"id": f"book_{b.id}", "activity": f"Book Added: {b.title}"}) for b in books
    ] + [
        (m.created_at, {"id": f"member_{m.id}", "activity": f"Member Registered: {m.name}"}) for m in members
    ]
    events.sort(key=lambda e: e[0], reverse=True)

    results = []
    for created_at, event in events[:limit]:
        event["date"] = created_at.date()
        event["user"] = "System"
        results.append(event)
    return results
