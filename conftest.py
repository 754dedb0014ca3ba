import os

# Settings are read at import time, so the test environment goes in first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["DEFAULT_ADMIN_PASSWORD"] = ""

import pytest
from fastapi.testclient import TestClient

import auth_utils
import main
from database import Base, SessionLocal, engine
from models import Book, LibrarianPermission, User


@pytest.fixture(autouse=True)
def tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    main.app.dependency_overrides.clear()
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def make_user(db, role, email, permissions=(), username=None, password="secret123"):
    user = User(
        username=username or email.split("@")[0],
        email=email,
        password_hash=auth_utils.get_password_hash(password),
        role=role,
    )
    user.permission_grants = [LibrarianPermission(permission=p) for p in permissions]
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def bearer(user):
    return {"Authorization": f"Bearer {auth_utils.create_access_token(user)}"}


@pytest.fixture
def admin_headers(db):
    return bearer(make_user(db, "admin", "admin@library.com"))


@pytest.fixture
def member_headers(db):
    return bearer(make_user(db, "member", "reader@example.com"))


@pytest.fixture
def librarian_factory(db):
    """Build auth headers for a librarian holding the given permissions."""
    created = []

    def factory(*permissions):
        email = f"librarian{len(created) + 1}@library.com"
        user = make_user(db, "librarian", email, permissions=permissions)
        created.append(user)
        return bearer(user)

    return factory


@pytest.fixture
def make_book(db):
    def factory(**fields):
        fields.setdefault("title", "Untitled")
        fields.setdefault("author", "Anonymous")
        fields.setdefault("total_copies", 1)
        fields.setdefault("available_copies", fields["total_copies"])
        book = Book(**fields)
        db.add(book)
        db.commit()
        db.refresh(book)
        return book

    return factory
