from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

import auth_utils, crud
from admin_schemas import LibrarianCreate, LibrarianResponse, LibrarianUpdate, PermissionInfo, PERMISSION_CATALOG
from database import get_db

router = APIRouter(
    prefix="/librarians",
    tags=["Librarians"],
    dependencies=[Depends(auth_utils.require_admin)],
    responses={404: {"description": "Not found"}},
)


# Declared before /{librarian_id}
@router.get("/permissions/list")
def list_permissions():
    return {"permissions": [PermissionInfo(**p) for p in PERMISSION_CATALOG]}


@router.get("")
def read_librarians(db: Session = Depends(get_db)):
    return {"librarians": [LibrarianResponse(**crud.librarian_to_dict(u)) for u in crud.list_librarians(db)]}


@router.get("/{librarian_id}")
def read_librarian(librarian_id: int, db: Session = Depends(get_db)):
    return {"librarian": LibrarianResponse(**crud.librarian_to_dict(crud.get_librarian(librarian_id, db)))}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_librarian(librarian: LibrarianCreate, db: Session = Depends(get_db)):
    user = crud.create_librarian(librarian, db)
    return {"message": "Librarian created successfully", "librarian": LibrarianResponse(**crud.librarian_to_dict(user))}


@router.put("/{librarian_id}")
def update_librarian(librarian_id: int, librarian: LibrarianUpdate, db: Session = Depends(get_db)):
    user = crud.update_librarian(librarian_id, librarian, db)
    return {"message": "Librarian updated successfully", "librarian": LibrarianResponse(**crud.librarian_to_dict(user))}


@router.delete("/{librarian_id}")
def delete_librarian(librarian_id: int, db: Session = Depends(get_db)):
    crud.delete_librarian(librarian_id, db)
    return {"message": "Librarian deleted successfully"}
