from loans import NoLoanRegistry, get_loan_registry
from models import Book


class BusyLoans(NoLoanRegistry):
    def active_loans_for_book(self, book_id):
        return 1


def test_create_book_sets_available_copies(client, admin_headers):
    resp = client.post("/books", json={"title": "X", "author": "Y", "total_copies": 3}, headers=admin_headers)
    assert resp.status_code == 201
    book = resp.json()["book"]
    assert book["total_copies"] == 3
    assert book["available_copies"] == 3


def test_create_book_defaults_to_one_copy(client, admin_headers):
    book = client.post("/books", json={"title": "X", "author": "Y"}, headers=admin_headers).json()["book"]
    assert book["total_copies"] == book["available_copies"] == 1


def test_create_book_reports_every_validation_problem(client, admin_headers):
    resp = client.post("/books", json={"total_copies": 0, "isbn": "12-34"}, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == (
        "Title is required, Author is required, Total copies must be at least 1, Invalid ISBN format"
    )


def test_create_book_with_wrong_field_type(client, admin_headers):
    resp = client.post("/books", json={"title": "X", "author": "Y", "total_copies": "many"}, headers=admin_headers)
    assert resp.status_code == 400
    assert "total_copies" in resp.json()["error"]


def test_duplicate_isbn_is_conflict(client, admin_headers):
    payload = {"title": "1984", "author": "George Orwell", "isbn": "978-0-452-28423-4"}
    assert client.post("/books", json=payload, headers=admin_headers).status_code == 201
    resp = client.post("/books", json=dict(payload, title="Nineteen"), headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "ISBN already exists"


def test_update_isbn_uniqueness_excludes_self(client, admin_headers, make_book):
    book = make_book(isbn="0451524934")
    other = make_book(isbn="9780061120084")

    same = client.put(f"/books/{book.id}", json={"isbn": "0451524934"}, headers=admin_headers)
    assert same.status_code == 200

    clash = client.put(f"/books/{other.id}", json={"isbn": "0451524934"}, headers=admin_headers)
    assert clash.status_code == 400
    assert clash.json()["error"] == "ISBN already exists"


def test_reducing_copies_below_issued_is_rejected(client, admin_headers, db):
    book = client.post("/books", json={"title": "X", "author": "Y", "total_copies": 3}, headers=admin_headers).json()["book"]
    row = db.get(Book, book["id"])
    row.available_copies = 1  # two copies out on loan
    db.commit()

    resp = client.put(f"/books/{book['id']}", json={"total_copies": 1}, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Cannot reduce total copies below 2 (currently issued)"

    resp = client.put(f"/books/{book['id']}", json={"total_copies": 2}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["book"]["total_copies"] == 2
    assert resp.json()["book"]["available_copies"] == 0


def test_increasing_copies_keeps_issued_count(client, admin_headers, make_book):
    book = make_book(total_copies=3, available_copies=1)
    resp = client.put(f"/books/{book.id}", json={"total_copies": 5}, headers=admin_headers)
    assert resp.json()["book"]["available_copies"] == 3


def test_update_without_known_fields(client, admin_headers, make_book):
    book = make_book()
    resp = client.put(f"/books/{book.id}", json={"shelf": "A1"}, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "No valid fields to update"


def test_update_missing_book(client, admin_headers):
    resp = client.put("/books/999", json={"title": "Nope"}, headers=admin_headers)
    assert resp.status_code == 404


def test_get_book(client, member_headers, make_book):
    book = make_book(title="Emma")
    assert client.get(f"/books/{book.id}", headers=member_headers).json()["book"]["title"] == "Emma"
    assert client.get("/books/999", headers=member_headers).status_code == 404


def test_delete_book_is_admin_only(client, admin_headers, librarian_factory, make_book):
    book_id = make_book().id
    librarian_headers = librarian_factory("manage_books")
    resp = client.delete(f"/books/{book_id}", headers=librarian_headers)
    assert resp.status_code == 403
    assert resp.json()["error"] == "Only admins can delete books"

    assert client.delete(f"/books/{book_id}", headers=admin_headers).status_code == 200
    assert client.get(f"/books/{book_id}", headers=admin_headers).status_code == 404
    assert client.delete(f"/books/{book_id}", headers=admin_headers).status_code == 404


def test_delete_book_with_active_loans(client, admin_headers, make_book):
    book = make_book()
    client.app.dependency_overrides[get_loan_registry] = BusyLoans
    resp = client.delete(f"/books/{book.id}", headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Cannot delete book with active transactions"


def test_categories_are_distinct_and_sorted(client, member_headers, make_book):
    make_book(category="Fiction")
    make_book(category="Biography")
    make_book(category="Fiction")
    make_book(category=None)
    resp = client.get("/books/categories/list", headers=member_headers)
    assert resp.json() == {"categories": ["Biography", "Fiction"]}


def test_book_stats(client, admin_headers, make_book):
    make_book(category="Fiction", total_copies=4, available_copies=3)
    make_book(category="History", total_copies=2, available_copies=2)
    stats = client.get("/books/stats/summary", headers=admin_headers).json()["stats"]
    assert stats == {"total_books": 2, "total_copies": 6, "available_copies": 5, "total_categories": 2}
