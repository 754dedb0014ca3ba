"""End-to-end walk through the main flows, the way a frontend would drive them."""
from datetime import date

from sqlalchemy.orm import Session

import main
from database import engine


def login(client, email, password):
    resp = client.post("/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['token']}"}


def test_default_admin_is_seeded_once(monkeypatch):
    monkeypatch.setattr(main.settings, "default_admin_password", "bootstrap-pw")
    with Session(engine) as db:
        main.ensure_default_admin(db)
        main.ensure_default_admin(db)
        admins = db.query(main.models.User).filter(main.models.User.role == "admin").all()
    assert [a.email for a in admins] == [main.settings.default_admin_email]


def test_library_workflow(client, monkeypatch):
    monkeypatch.setattr(main.settings, "default_admin_password", "bootstrap-pw")
    with Session(engine) as db:
        main.ensure_default_admin(db)
    admin = login(client, main.settings.default_admin_email, "bootstrap-pw")

    # admin hires a librarian who can manage books and members
    resp = client.post(
        "/librarians",
        json={
            "username": "desk",
            "email": "desk@library.com",
            "password": "desk-pass",
            "permissions": ["manage_books", "manage_members"],
        },
        headers=admin,
    )
    assert resp.status_code == 201
    desk = login(client, "desk@library.com", "desk-pass")

    book = client.post(
        "/books",
        json={"title": "The Hobbit", "author": "J.R.R. Tolkien", "isbn": "978-0-261-10295-6",
              "category": "Fantasy", "total_copies": 2},
        headers=desk,
    )
    assert book.status_code == 201

    member = client.post("/members", json={"name": "Bilbo", "email": "bilbo@shire.org"}, headers=desk)
    assert member.status_code == 201
    assert member.json()["member"]["member_id"] == f"MEM{date.today().year}001"

    # a self-registered reader can browse but not edit
    reg = client.post("/auth/register", json={"username": "reader", "email": "reader@shire.org", "password": "hobbit"})
    reader = {"Authorization": f"Bearer {reg.json()['token']}"}
    listing = client.get("/books?search=hobbit", headers=reader)
    assert [b["title"] for b in listing.json()["books"]] == ["The Hobbit"]
    assert client.put(f"/books/{book.json()['book']['id']}", json={"title": "x"}, headers=reader).status_code == 403

    stats = client.get("/dashboard/stats", headers=reader).json()
    assert stats["totalBooks"] == 1
    assert stats["availableBooks"] == 2
    assert stats["activeMembers"] == 1
