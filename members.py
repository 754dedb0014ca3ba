from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

import auth_utils, crud
from auth_schemas import TokenUser
from database import get_db
from listing import ListParams, list_params, pagination_meta
from loans import LoanRegistry, get_loan_registry
from schemas import MemberCreate, MemberList, MemberOut, MemberRenew, MemberResponse, MemberStats, MemberUpdate

router = APIRouter(prefix="/members", tags=["Members"])

manage_members = auth_utils.require_permission("manage_members")


@router.get("", response_model=MemberList)
def list_members(
    params: ListParams = Depends(list_params),
    status: Optional[str] = None,
    membership_type: Optional[str] = None,
    db: Session = Depends(get_db),
    _staff: TokenUser = Depends(auth_utils.require_staff),
):
    """List members with pagination, search over name/email/member ID/phone and status/type filters."""
    members, total = crud.list_members(db, params, status=status, membership_type=membership_type)
    return {"members": members, "pagination": pagination_meta(params, total)}


@router.get("/stats/summary")
def members_summary(db: Session = Depends(get_db), _staff: TokenUser = Depends(auth_utils.require_staff)):
    return {"stats": MemberStats(**crud.members_stats(db))}


@router.get("/expiring/list")
def expiring_memberships(
    days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db),
    _staff: TokenUser = Depends(auth_utils.require_staff),
):
    return {"members": [MemberOut.model_validate(m) for m in crud.expiring_members(db, days)]}


@router.get("/{member_id}", response_model=MemberResponse)
def retrieve_member(member_id: int, db: Session = Depends(get_db), _staff: TokenUser = Depends(auth_utils.require_staff)):
    return {"member": crud.get_member_by_id(member_id, db)}


@router.post("", response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
def create_member(member: MemberCreate, db: Session = Depends(get_db), _user: TokenUser = Depends(manage_members)):
    new_member = crud.add_member(member.model_dump(), db)
    return {"message": "Member added successfully", "member": new_member}


@router.put("/{member_id}", response_model=MemberResponse)
def modify_member(
    member_id: int,
    member: MemberUpdate,
    db: Session = Depends(get_db),
    _user: TokenUser = Depends(manage_members),
):
    updated = crud.update_member(member_id, member.model_dump(exclude_unset=True), db)
    return {"message": "Member updated successfully", "member": updated}


@router.delete("/{member_id}")
def remove_member(
    member_id: int,
    db: Session = Depends(get_db),
    _user: TokenUser = Depends(manage_members),
    loans: LoanRegistry = Depends(get_loan_registry),
):
    crud.deactivate_member(member_id, db, loans)
    return {"message": "Member deactivated successfully"}


@router.post("/{member_id}/renew", response_model=MemberResponse)
def renew_member(
    member_id: int,
    payload: MemberRenew,
    db: Session = Depends(get_db),
    _user: TokenUser = Depends(manage_members),
):
    member = crud.renew_membership(member_id, payload.months, db)
    return {"message": f"Membership renewed for {payload.months} months", "member": member}
