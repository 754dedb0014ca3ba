import pytest

from exceptions import ValidationError
from listing import ListParams, build_conditions, pagination_meta, resolve_sort_column
from models import Book, Member


@pytest.fixture
def catalog(make_book):
    for n in range(1, 26):
        make_book(
            title=f"Book {n:02d}",
            author="Jane Austen" if n % 5 == 0 else "Somebody Else",
            category="Fiction" if n % 2 else "History",
        )


def titles(resp):
    return [b["title"] for b in resp.json()["books"]]


def test_second_page_of_25_rows(client, member_headers, catalog):
    resp = client.get("/books?page=2&limit=10&sortBy=title&sortOrder=asc", headers=member_headers)
    assert resp.status_code == 200
    assert titles(resp) == [f"Book {n:02d}" for n in range(11, 21)]
    assert resp.json()["pagination"] == {"page": 2, "limit": 10, "total": 25, "pages": 3}


def test_default_listing_is_newest_first(client, member_headers, catalog):
    resp = client.get("/books", headers=member_headers)
    assert resp.json()["pagination"]["limit"] == 10
    assert titles(resp)[0] == "Book 25"


def test_empty_search_matches_no_search(client, member_headers, catalog):
    plain = client.get("/books?limit=100", headers=member_headers)
    empty = client.get("/books?limit=100&search=", headers=member_headers)
    assert titles(plain) == titles(empty)
    assert empty.json()["pagination"]["total"] == 25


def test_search_is_case_insensitive_across_columns(client, member_headers, catalog):
    resp = client.get("/books?search=AUSTEN&limit=100", headers=member_headers)
    assert resp.json()["pagination"]["total"] == 5


def test_search_combines_with_category(client, member_headers, catalog):
    resp = client.get("/books?search=austen&category=Fiction&limit=100", headers=member_headers)
    # n in {5, 15, 25}
    assert resp.json()["pagination"]["total"] == 3
    assert resp.json()["pagination"]["pages"] == 1


def test_empty_category_is_ignored(client, member_headers, catalog):
    resp = client.get("/books?category=", headers=member_headers)
    assert resp.json()["pagination"]["total"] == 25


def test_wildcards_in_search_match_literally(client, member_headers, make_book):
    make_book(title="100% Cotton")
    make_book(title="1000 Places")
    resp = client.get("/books?search=100%25", headers=member_headers)
    assert titles(resp) == ["100% Cotton"]


def test_unknown_sort_column_is_rejected(client, member_headers):
    resp = client.get("/books?sortBy=password_hash", headers=member_headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid sort field: password_hash"


def test_out_of_range_paging_is_rejected(client, member_headers):
    assert client.get("/books?page=0", headers=member_headers).status_code == 400
    assert client.get("/books?limit=1000", headers=member_headers).status_code == 400


def test_pagination_meta_rounds_up():
    assert pagination_meta(ListParams(page=1, limit=10), 0)["pages"] == 0
    assert pagination_meta(ListParams(page=1, limit=10), 10)["pages"] == 1
    assert pagination_meta(ListParams(page=1, limit=10), 11)["pages"] == 2


def test_build_conditions_skips_empty_values():
    assert build_conditions([Book.title], "", {Book.category: ""}) == []
    assert len(build_conditions([Book.title], None, {Book.category: "Fiction", Book.publisher: None})) == 1


def test_search_values_are_bound_parameters():
    condition = build_conditions([Member.name, Member.email], "x' OR 1=1 --", {})[0]
    compiled = condition.compile()
    assert "1=1" not in str(compiled)
    assert "%x' OR 1=1 --%" in compiled.params.values()


def test_sort_column_allow_list():
    assert resolve_sort_column(Book, "title", ("title",)) is Book.title
    with pytest.raises(ValidationError):
        resolve_sort_column(Book, "title; DROP TABLE books", ("title",))


def test_offset_and_direction():
    params = ListParams(page=3, limit=20, sort_order="asc")
    assert params.offset == 40
    assert not params.descending
    assert ListParams(sort_order="sideways").descending
