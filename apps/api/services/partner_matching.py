"""Training-partner slots: create/join/leave and same-gym time matching."""

from typing import List
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from core.exceptions import BadRequestError, ConflictError, NotFoundError
from models import PartnerSlot, User
from schemas import PartnerSlotCreate

logger = logging.getLogger(__name__)

MATCH_WINDOW_HOURS = 1


def _slot_hour(time_slot: str) -> int:
    return int(time_slot.split(":", 1)[0])


def _load_slot(db: Session, slot_id: UUID, *, lock: bool = False) -> PartnerSlot:
    query = db.query(PartnerSlot).filter(PartnerSlot.id == slot_id)
    if lock:
        query = query.with_for_update()
    slot = query.first()
    if slot is None:
        raise NotFoundError("Slot", str(slot_id))
    return slot


def create_slot(db: Session, user: User, payload: PartnerSlotCreate) -> PartnerSlot:
    slot = PartnerSlot(
        user_id=user.id,
        username=user.username or "REPZ User",
        gym_id=payload.gym_id,
        gym_name=payload.gym_name,
        time_slot=payload.time_slot,
        participants=[str(user.id)],
        note=payload.note,
        avatar=payload.avatar,
        tier=user.tier,
    )
    db.add(slot)
    db.commit()
    db.refresh(slot)
    return slot


def list_slots(db: Session, gym_id: str) -> List[PartnerSlot]:
    return (
        db.query(PartnerSlot)
        .filter(PartnerSlot.gym_id == gym_id)
        .order_by(PartnerSlot.time_slot.asc())
        .all()
    )


def join_slot(db: Session, user: User, slot_id: UUID) -> PartnerSlot:
    slot = _load_slot(db, slot_id, lock=True)
    uid = str(user.id)
    if uid in (slot.participants or []):
        raise ConflictError("User already joined this slot")

    slot.participants = [*slot.participants, uid]
    db.commit()
    db.refresh(slot)
    return slot


def leave_slot(db: Session, user: User, slot_id: UUID) -> bool:
    """Remove the caller from a slot. Returns True when the slot was deleted."""
    slot = _load_slot(db, slot_id, lock=True)
    uid = str(user.id)
    if uid not in (slot.participants or []):
        raise BadRequestError("User is not part of this slot")

    remaining = [p for p in slot.participants if p != uid]
    if not remaining:
        db.delete(slot)
        db.commit()
        logger.info(f"Partner slot {slot_id} deleted after last participant left")
        return True

    slot.participants = remaining
    db.commit()
    return False


def match_slots(db: Session, user: User, gym_id: str, time_slot: str) -> List[PartnerSlot]:
    """Slots at the same gym within an hour of `time_slot`, excluding the caller's own."""
    uid = str(user.id)
    wanted = _slot_hour(time_slot)
    matches = []
    for slot in list_slots(db, gym_id):
        if slot.user_id == user.id or uid in (slot.participants or []):
            continue
        if abs(_slot_hour(slot.time_slot) - wanted) <= MATCH_WINDOW_HOURS:
            matches.append(slot)
    return matches
