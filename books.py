from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

import auth_utils, crud
from auth_schemas import TokenUser
from database import get_db
from exceptions import ForbiddenError
from listing import ListParams, list_params, pagination_meta
from loans import LoanRegistry, get_loan_registry
from schemas import BookCreate, BookList, BookResponse, BookStats, BookUpdate

router = APIRouter(prefix="/books", tags=["Books"])


@router.get("", response_model=BookList)
def list_books(
    params: ListParams = Depends(list_params),
    category: Optional[str] = None,
    db: Session = Depends(get_db),
    _user: TokenUser = Depends(auth_utils.get_current_user),
):
    """
    Page through the catalog.
    - **search**: substring of title, author or ISBN (case-insensitive)
    - **category**: exact category match
    - **sortBy** / **sortOrder**: column name and `asc` or `desc`
    """
    books, total = crud.list_books(db, params, category=category)
    return {"books": books, "pagination": pagination_meta(params, total)}


# Fixed paths are declared before /{book_id}
@router.get("/categories/list")
def list_categories(db: Session = Depends(get_db), _user: TokenUser = Depends(auth_utils.get_current_user)):
    return {"categories": crud.book_categories(db)}


@router.get("/stats/summary")
def books_summary(db: Session = Depends(get_db), _staff: TokenUser = Depends(auth_utils.require_staff)):
    """Return inventory aggregated statistics for the dashboard."""
    return {"stats": BookStats(**crud.books_stats(db))}


@router.get("/{book_id}", response_model=BookResponse)
def retrieve_book(book_id: int, db: Session = Depends(get_db), _user: TokenUser = Depends(auth_utils.get_current_user)):
    return {"book": crud.get_book_by_id(book_id, db)}


@router.post("", response_model=BookResponse, status_code=status.HTTP_201_CREATED)
def create_book(
    book: BookCreate,
    db: Session = Depends(get_db),
    _user: TokenUser = Depends(auth_utils.require_permission("manage_books")),
):
    new_book = crud.add_book(book.model_dump(), db)
    return {"message": "Book added successfully", "book": new_book}


@router.put("/{book_id}", response_model=BookResponse)
def modify_book(
    book_id: int,
    book: BookUpdate,
    db: Session = Depends(get_db),
    _user: TokenUser = Depends(auth_utils.require_permission("manage_books")),
):
    updated = crud.update_book(book_id, book.model_dump(exclude_unset=True), db)
    return {"message": "Book updated successfully", "book": updated}


@router.delete("/{book_id}")
def remove_book(
    book_id: int,
    db: Session = Depends(get_db),
    current_user: TokenUser = Depends(auth_utils.get_current_user),
    loans: LoanRegistry = Depends(get_loan_registry),
):
    if current_user.role != "admin":
        raise ForbiddenError("Only admins can delete books")
    crud.delete_book(book_id, db, loans)
    return {"message": "Book deleted successfully"}
