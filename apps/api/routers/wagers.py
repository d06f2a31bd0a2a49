"""
Wager challenge endpoints.

All state transitions live in services.wager_service; this router only
resolves the caller and the form analyzer.
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from core.auth import get_current_user, is_admin
from core.database import get_db
from core.exceptions import ForbiddenError
from models import User
from schemas import (
    BattleStatsResponse,
    VoteTallyResponse,
    WagerCreate,
    WagerResponse,
    WagerSubmissionResponse,
    WagerSubmit,
    WagerVoteRequest,
)
from services import wager_service
from services.battle_stats import get_battle_stats
from services.form_analysis import FormAnalyzer, get_optional_form_analyzer

router = APIRouter(prefix="/v1/wagers", tags=["wagers"])


@router.post("", response_model=WagerResponse, status_code=status.HTTP_201_CREATED)
def create_wager(
    payload: WagerCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return wager_service.create_challenge(db, current_user, payload)


@router.get("", response_model=List[WagerResponse])
def list_my_wagers(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return wager_service.list_user_challenges(db, current_user, status=status_filter)


@router.get("/battle-stats/{user_id}", response_model=BattleStatsResponse)
def battle_stats(
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_battle_stats(db, user_id)


@router.get("/{challenge_id}", response_model=WagerResponse)
def get_wager(
    challenge_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return wager_service.get_challenge(db, challenge_id)


@router.post("/{challenge_id}/accept", response_model=WagerResponse)
def accept_wager(
    challenge_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return wager_service.accept_challenge(db, current_user, challenge_id)


@router.post("/{challenge_id}/submit", response_model=WagerSubmissionResponse)
def submit_wager_result(
    challenge_id: UUID,
    payload: WagerSubmit,
    current_user: User = Depends(get_current_user),
    analyzer: Optional[FormAnalyzer] = Depends(get_optional_form_analyzer),
    db: Session = Depends(get_db),
):
    """Attach a result video. Pro/Elite submissions are checked by the form analyzer."""
    return wager_service.submit_result(db, current_user, challenge_id, payload, analyzer)


@router.post("/{challenge_id}/resolve", response_model=WagerResponse)
def resolve_wager(
    challenge_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    challenge = wager_service.get_challenge(db, challenge_id)
    if str(current_user.id) not in (challenge.participants or []) and not is_admin(current_user):
        raise ForbiddenError("Only participants can resolve this challenge")
    return wager_service.resolve_challenge(db, challenge_id)


@router.post("/{challenge_id}/vote", response_model=VoteTallyResponse)
def vote_on_wager(
    challenge_id: UUID,
    payload: WagerVoteRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return wager_service.cast_vote(db, current_user, challenge_id, payload.voted_for)


@router.get("/{challenge_id}/votes", response_model=VoteTallyResponse)
def get_wager_votes(
    challenge_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    challenge = wager_service.get_challenge(db, challenge_id)
    return wager_service.vote_tally(db, challenge.id)
