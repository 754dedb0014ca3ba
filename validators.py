import re
from datetime import date
from typing import List, Optional

from email_validator import validate_email as _check_email, EmailNotValidError

from exceptions import ValidationError
from models import MEMBERSHIP_TYPES, MEMBER_STATUSES, PERMISSIONS

_ISBN10 = re.compile(r"^[0-9]{9}[0-9X]$")
_ISBN13 = re.compile(r"^[0-9]{13}$")
_PHONE = re.compile(r"^\+?[0-9]{10,15}$")


def is_valid_isbn(isbn: Optional[str]) -> bool:
    """ISBN-10 or ISBN-13, ignoring hyphens and spaces. Empty values pass."""
    if not isbn:
        return True
    clean = re.sub(r"[-\s]", "", isbn)
    if len(clean) == 10:
        return bool(_ISBN10.match(clean))
    if len(clean) == 13:
        return bool(_ISBN13.match(clean))
    return False


def is_valid_email(email: Optional[str]) -> bool:
    if not email:
        return False
    try:
        _check_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def normalize_email(email: str) -> str:
    """Emails are stored and compared trimmed and lowercased."""
    return email.strip().lower()


def is_valid_phone(phone: Optional[str]) -> bool:
    if not phone:
        return True
    clean = re.sub(r"[\s\-\(\)]", "", phone)
    return bool(_PHONE.match(clean))


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_book(data: dict, partial: bool = False) -> List[str]:
    """Return the list of problems with a book payload.

    With ``partial`` only the keys present in ``data`` are checked, which is
    what updates need.
    """
    errors = []

    if not partial or "title" in data:
        if _blank(data.get("title")):
            errors.append("Title is required")
        elif len(data["title"]) > 255:
            errors.append("Title too long (max 255 characters)")

    if not partial or "author" in data:
        if _blank(data.get("author")):
            errors.append("Author is required")
        elif len(data["author"]) > 255:
            errors.append("Author name too long (max 255 characters)")

    if data.get("total_copies") is not None and data["total_copies"] < 1:
        errors.append("Total copies must be at least 1")
    elif partial and "total_copies" in data and data["total_copies"] is None:
        errors.append("Total copies must be at least 1")

    year = data.get("publication_year")
    if year is not None and (year < 1000 or year > date.today().year + 1):
        errors.append("Invalid publication year")

    if data.get("isbn") and not is_valid_isbn(data["isbn"]):
        errors.append("Invalid ISBN format")

    return errors


def validate_member(data: dict, partial: bool = False) -> List[str]:
    errors = []

    if not partial or "name" in data:
        if _blank(data.get("name")):
            errors.append("Name is required")
        elif len(data["name"]) > 200:
            errors.append("Name too long (max 200 characters)")

    if not partial or "email" in data:
        email = data.get("email")
        if _blank(email):
            errors.append("Email is required")
        elif len(email) > 100:
            errors.append("Email too long (max 100 characters)")
        elif not is_valid_email(email):
            errors.append("Invalid email format")

    if data.get("phone") and not is_valid_phone(data["phone"]):
        errors.append("Invalid phone format")

    if "membership_type" in data and data["membership_type"] not in MEMBERSHIP_TYPES:
        errors.append("Invalid membership type")

    if "status" in data and data["status"] not in MEMBER_STATUSES:
        errors.append("Invalid status")

    if partial and "membership_end" in data and data["membership_end"] is None:
        errors.append("Membership end date is required")

    return errors


def invalid_permissions(permissions) -> List[str]:
    return [p for p in permissions if p not in PERMISSIONS]


def ensure_valid(errors: List[str]) -> None:
    """Raise a single ValidationError carrying every message."""
    if errors:
        raise ValidationError(", ".join(errors))
