from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import auth_utils, crud
from auth_schemas import TokenUser
from database import get_db
from loans import LoanRegistry, get_loan_registry
from schemas import Activity, DashboardStats

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


@router.get("/stats", response_model=DashboardStats)
def stats(
    db: Session = Depends(get_db),
    loans: LoanRegistry = Depends(get_loan_registry),
    _user: TokenUser = Depends(auth_utils.get_current_user),
):
    return crud.dashboard_stats(db, loans)


@router.get("/activity")
def activity(db: Session = Depends(get_db), _user: TokenUser = Depends(auth_utils.get_current_user)):
    return {"activities": [Activity(**a) for a in crud.recent_activity(db)]}
