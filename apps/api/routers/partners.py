"""Training-partner finder endpoints."""
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.database import get_db
from models import User
from schemas import TIME_SLOT_PATTERN, PartnerSlotCreate, PartnerSlotResponse
from services import partner_matching

router = APIRouter(prefix="/v1/partners", tags=["partners"])


@router.post("/slots", response_model=PartnerSlotResponse, status_code=status.HTTP_201_CREATED)
def create_slot(
    payload: PartnerSlotCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Open a training slot; the creator is its first participant."""
    return partner_matching.create_slot(db, current_user, payload)


@router.get("/slots", response_model=List[PartnerSlotResponse])
def list_slots(
    gym_id: str = Query(min_length=1),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return partner_matching.list_slots(db, gym_id)


@router.post("/slots/{slot_id}/join", response_model=PartnerSlotResponse)
def join_slot(
    slot_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return partner_matching.join_slot(db, current_user, slot_id)


@router.post("/slots/{slot_id}/leave")
def leave_slot(
    slot_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    deleted = partner_matching.leave_slot(db, current_user, slot_id)
    return {"success": True, "slot_deleted": deleted}


@router.get("/matches", response_model=List[PartnerSlotResponse])
def match_partners(
    gym_id: str = Query(min_length=1),
    time_slot: str = Query(pattern=TIME_SLOT_PATTERN),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Slots at the same gym within an hour of `time_slot` that the caller isn't in."""
    return partner_matching.match_slots(db, current_user, gym_id, time_slot)
