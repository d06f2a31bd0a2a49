"""
Wager Challenge Service

Peer challenges where each participant stakes the same amount of XP.

Lifecycle:
    create  -> pending   (creator staked, opponents invited)
    accept  -> active    (opponent staked and joined)
    submit  -> per-user result attached (AI-verified for Pro/Elite)
    resolve -> resolved | no_winner | unresolved   (only after expiry)
    settle  -> resolved | no_winner   (admin, unresolved only)

Removing a challenge that still holds a pot refunds every stake.

Concurrency: accept/submit/resolve read the challenge row FOR UPDATE and
the model carries a version column, so a write based on a stale read
fails with ConflictError (409) instead of silently losing an update.
"""

from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Dict, Iterator, List, Optional, Set
from uuid import UUID
import logging
import uuid

from sqlalchemy import Text, cast, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from core.config import settings
from core.exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from models import PAID_TIERS, User, WagerChallenge, WagerSubmission, WagerVote
from schemas import WagerCreate, WagerSubmit
from services.battle_stats import update_battle_stats
from services.form_analysis import FormAnalyzer, evaluate_video_url
from services.time_utils import as_utc, utcnow
from services.xp_ledger import adjust_xp

logger = logging.getLogger(__name__)

MIN_WAGER_XP = settings.WAGER_MIN_XP
MAX_WAGER_XP = settings.WAGER_MAX_XP

OPEN_STATUSES = ("pending", "active")
POT_HELD_STATUSES = OPEN_STATUSES + ("unresolved",)
TERMINAL_STATUSES = ("resolved", "no_winner", "unresolved")
VOTING_CLOSED_STATUSES = ("resolved", "no_winner")

FREE_TIER_FEEDBACK = "AI analysis requires Pro or Elite tier."
VERDICT_FEEDBACK = {
    "pass": "Form verified by AI.",
    "fail": "AI could not verify form in this video.",
    "flagged": "Submission flagged for manual review.",
}


def _load_challenge(db: Session, challenge_id: UUID, *, lock: bool = False) -> WagerChallenge:
    query = db.query(WagerChallenge).filter(WagerChallenge.id == challenge_id)
    if lock:
        # Refresh from the locked row even if the session already holds it
        query = query.with_for_update().populate_existing()
    challenge = query.first()
    if challenge is None or challenge.removed:
        raise NotFoundError("Challenge", str(challenge_id))
    return challenge


def _is_expired(challenge: WagerChallenge, now: Optional[datetime] = None) -> bool:
    return as_utc(challenge.expires_at) <= (now or utcnow())


@contextmanager
def _versioned_write(db: Session) -> Iterator[None]:
    """Run a challenge mutation and commit it; a version mismatch becomes a 409."""
    try:
        yield
        db.commit()
    except StaleDataError:
        db.rollback()
        raise ConflictError("Challenge was modified concurrently, please retry")


def _existing_user_ids(db: Session, user_ids: List[str]) -> Set[str]:
    """Participant ids that still have an account; deleted users keep their id in the JSON lists."""
    if not user_ids:
        return set()
    rows = db.query(User.id).filter(User.id.in_([UUID(u) for u in user_ids])).all()
    return {str(row.id) for row in rows}


def _refund_stakes(db: Session, challenge: WagerChallenge) -> List[str]:
    """Return each remaining participant's stake and empty the pot. Does not commit."""
    participants = list(challenge.participants or [])
    existing = _existing_user_ids(db, participants)
    refunded = [pid for pid in participants if pid in existing]
    for pid in refunded:
        adjust_xp(db, UUID(pid), challenge.wager_xp, "challenge_refund", challenge_id=challenge.id)

    if len(refunded) < len(participants):
        logger.warning(
            "Stake not refunded for deleted participants",
            extra={"extra_fields": {"challenge_id": str(challenge.id), "skipped": len(participants) - len(refunded)}},
        )
    challenge.xp_pot = 0
    return refunded


def get_challenge(db: Session, challenge_id: UUID) -> WagerChallenge:
    return _load_challenge(db, challenge_id)


def list_user_challenges(db: Session, user: User, status: Optional[str] = None) -> List[WagerChallenge]:
    """Challenges the user created, joined, or was invited to."""
    uid = str(user.id)
    query = db.query(WagerChallenge).filter(
        WagerChallenge.removed.is_(False),
        or_(
            WagerChallenge.creator_id == user.id,
            cast(WagerChallenge.participants, Text).contains(uid),
            cast(WagerChallenge.opponents, Text).contains(uid),
        ),
    )
    if status:
        query = query.filter(WagerChallenge.status == status)
    return query.order_by(WagerChallenge.created_at.desc()).limit(100).all()


def create_challenge(db: Session, creator: User, payload: WagerCreate) -> WagerChallenge:
    wager = payload.wager_xp
    if wager < MIN_WAGER_XP or wager > MAX_WAGER_XP:
        raise BadRequestError(f"Wager must be between {MIN_WAGER_XP} and {MAX_WAGER_XP} XP")

    creator_id = str(creator.id)
    opponents: List[str] = []
    for opponent_id in payload.opponents:
        oid = str(opponent_id)
        if oid != creator_id and oid not in opponents:
            opponents.append(oid)
    if not opponents:
        raise BadRequestError("At least one opponent other than yourself is required")

    found = db.query(User.id).filter(User.id.in_([UUID(o) for o in opponents])).count()
    if found != len(opponents):
        raise NotFoundError("Opponent")

    challenge_id = uuid.uuid4()
    # Debit first: raises 400 before anything is written if the creator can't cover the stake.
    adjust_xp(db, creator.id, -wager, "challenge_entry", challenge_id=challenge_id)

    duration = payload.duration_hours or settings.WAGER_DEFAULT_DURATION_HOURS
    challenge = WagerChallenge(
        id=challenge_id,
        creator_id=creator.id,
        type=payload.type,
        exercise=payload.exercise.strip(),
        rules=payload.rules,
        gym=payload.gym,
        wager_xp=wager,
        xp_pot=wager,
        winner_takes_all=payload.winner_takes_all,
        participants=[creator_id],
        opponents=opponents,
        status="pending",
        expires_at=utcnow() + timedelta(hours=duration),
    )
    db.add(challenge)
    db.commit()
    db.refresh(challenge)

    logger.info(
        "Wager challenge created",
        extra={"extra_fields": {"challenge_id": str(challenge.id), "creator_id": creator_id, "wager_xp": wager}},
    )
    return challenge


def accept_challenge(db: Session, user: User, challenge_id: UUID) -> WagerChallenge:
    challenge = _load_challenge(db, challenge_id, lock=True)
    uid = str(user.id)

    if uid not in (challenge.opponents or []):
        raise ForbiddenError("You were not invited to this challenge")
    if uid in (challenge.participants or []):
        raise BadRequestError("You have already joined this challenge")
    if challenge.status not in OPEN_STATUSES or _is_expired(challenge):
        raise BadRequestError("Challenge is no longer open")

    with _versioned_write(db):
        adjust_xp(db, user.id, -challenge.wager_xp, "challenge_entry", challenge_id=challenge.id)

        # Reassign (not append) so the JSON column change is tracked
        challenge.participants = [*challenge.participants, uid]
        challenge.xp_pot = challenge.xp_pot + challenge.wager_xp
        challenge.status = "active"
    db.refresh(challenge)

    logger.info(
        "Wager challenge accepted",
        extra={"extra_fields": {"challenge_id": str(challenge.id), "user_id": uid, "xp_pot": challenge.xp_pot}},
    )
    return challenge


def _check_can_submit(challenge: WagerChallenge, uid: str) -> None:
    if uid not in (challenge.participants or []):
        raise ForbiddenError("You are not a participant in this challenge")
    if challenge.status in TERMINAL_STATUSES:
        raise BadRequestError("Challenge has already been resolved")
    if _is_expired(challenge):
        raise BadRequestError("Challenge has expired")


def submit_result(
    db: Session,
    user: User,
    challenge_id: UUID,
    payload: WagerSubmit,
    analyzer: Optional[FormAnalyzer] = None,
) -> WagerSubmission:
    uid = str(user.id)
    _check_can_submit(_load_challenge(db, challenge_id), uid)

    # Video analysis is slow; run it before taking the row lock.
    verdict: Optional[str] = None
    if user.tier in PAID_TIERS:
        verdict = evaluate_video_url(payload.video_url, analyzer)
        feedback = VERDICT_FEEDBACK[verdict]
    else:
        feedback = FREE_TIER_FEEDBACK

    challenge = _load_challenge(db, challenge_id, lock=True)
    _check_can_submit(challenge, uid)

    with _versioned_write(db):
        submission = (
            db.query(WagerSubmission)
            .filter(WagerSubmission.challenge_id == challenge.id, WagerSubmission.user_id == user.id)
            .first()
        )
        if submission is None:
            submission = WagerSubmission(challenge_id=challenge.id, user_id=user.id)
            db.add(submission)

        submission.video_url = payload.video_url
        submission.notes = payload.notes
        submission.verdict = verdict
        submission.verified_by_ai = verdict == "pass"
        submission.feedback = feedback
        submission.submitted_at = utcnow()

        if verdict == "flagged":
            challenge.flagged = True
    db.refresh(submission)

    logger.info(
        "Wager result submitted",
        extra={"extra_fields": {"challenge_id": str(challenge.id), "user_id": uid, "verdict": verdict}},
    )
    return submission


def _payouts(challenge: WagerChallenge, winner_id: str, verified_ids: List[str]) -> Dict[str, int]:
    pot = challenge.xp_pot
    if challenge.winner_takes_all or len(verified_ids) <= 1:
        return {winner_id: pot}

    share = pot // len(verified_ids)
    payouts = {pid: share for pid in verified_ids}
    payouts[winner_id] += pot - share * len(verified_ids)
    return payouts


def _award(
    db: Session,
    challenge: WagerChallenge,
    winner_id: str,
    winning: Optional[WagerSubmission],
    payouts: Dict[str, int],
) -> None:
    """Mark the winner, pay out the pot and record wins/losses. Does not commit."""
    challenge.status = "resolved"
    challenge.winner_id = UUID(winner_id)
    if winning is not None:
        challenge.winning_details = {
            "video_url": winning.video_url,
            "feedback": winning.feedback,
            "verified_by_ai": winning.verified_by_ai,
            "verdict": winning.verdict,
        }
    challenge.xp_pot = 0

    participants = list(challenge.participants or [])
    existing = _existing_user_ids(db, participants)
    for pid in participants:
        if pid in existing:
            update_battle_stats(db, UUID(pid), won=pid == winner_id)
    for pid, amount in payouts.items():
        if amount > 0:
            adjust_xp(db, UUID(pid), amount, "challenge_win", challenge_id=challenge.id)


def resolve_challenge(db: Session, challenge_id: UUID, now: Optional[datetime] = None) -> WagerChallenge:
    """
    Settle an expired challenge.

    Participants are scanned in join order; the first with an AI-verified
    submission wins. No submissions refunds every stake; submissions with
    no AI verification leave the pot held for manual review.
    """
    now = now or utcnow()
    challenge = _load_challenge(db, challenge_id, lock=True)

    if challenge.status in TERMINAL_STATUSES:
        raise ConflictError("Challenge has already been resolved")
    if not _is_expired(challenge, now):
        raise BadRequestError("Challenge has not expired yet")

    participants = list(challenge.participants or [])
    existing = _existing_user_ids(db, participants)
    submissions = {str(s.user_id): s for s in challenge.submissions if str(s.user_id) in existing}
    pot = challenge.xp_pot

    with _versioned_write(db):
        if not submissions:
            challenge.status = "no_winner"
            challenge.resolved_at = now
            _refund_stakes(db, challenge)
        else:
            verified_ids = [pid for pid in participants if pid in submissions and submissions[pid].verified_by_ai]
            if verified_ids:
                winner_id = verified_ids[0]
                _award(db, challenge, winner_id, submissions[winner_id], _payouts(challenge, winner_id, verified_ids))
                challenge.resolved_at = now
            else:
                challenge.status = "unresolved"
                challenge.resolved_at = now
                logger.warning(
                    "Wager challenge has submissions but none AI-verified",
                    extra={"extra_fields": {"challenge_id": str(challenge.id), "pot": pot}},
                )
    db.refresh(challenge)

    logger.info(
        "Wager challenge resolved",
        extra={
            "extra_fields": {
                "challenge_id": str(challenge.id),
                "status": challenge.status,
                "winner_id": str(challenge.winner_id) if challenge.winner_id else None,
            }
        },
    )
    return challenge


def resolve_expired_challenges(db: Session, now: Optional[datetime] = None) -> Dict[str, int]:
    """Resolve every open challenge past its expiry, one transaction each."""
    now = now or utcnow()
    ids = [
        row.id
        for row in db.query(WagerChallenge.id).filter(
            WagerChallenge.status.in_(OPEN_STATUSES),
            WagerChallenge.removed.is_(False),
            WagerChallenge.expires_at <= now,
        )
    ]

    counts = {"checked": len(ids), "resolved": 0, "failed": 0}
    for challenge_id in ids:
        try:
            resolve_challenge(db, challenge_id, now=now)
            counts["resolved"] += 1
        except Exception as e:
            db.rollback()
            counts["failed"] += 1
            logger.error(f"Failed to resolve challenge {challenge_id}: {e}", exc_info=True)
    return counts


def settle_unresolved(
    db: Session,
    challenge_id: UUID,
    winner_id: Optional[UUID] = None,
    now: Optional[datetime] = None,
) -> WagerChallenge:
    """
    Manually close an `unresolved` challenge.

    With no winner every stake is refunded (`no_winner`); otherwise the
    whole pot goes to the chosen participant (`resolved`). The caller
    commits, so an audit row can join the same transaction.
    """
    challenge = _load_challenge(db, challenge_id, lock=True)
    if challenge.status != "unresolved":
        raise BadRequestError("Only unresolved challenges can be settled")

    if winner_id is None:
        challenge.status = "no_winner"
        _refund_stakes(db, challenge)
    else:
        wid = str(winner_id)
        if wid not in (challenge.participants or []):
            raise BadRequestError("Winner must be a participant in this challenge")
        if wid not in _existing_user_ids(db, [wid]):
            raise BadRequestError("Winner no longer has an account")
        winning = next((s for s in challenge.submissions if str(s.user_id) == wid), None)
        _award(db, challenge, wid, winning, {wid: challenge.xp_pot})
    challenge.resolved_at = now or utcnow()

    logger.info(
        "Wager challenge settled",
        extra={
            "extra_fields": {
                "challenge_id": str(challenge.id),
                "status": challenge.status,
                "winner_id": str(winner_id) if winner_id else None,
            }
        },
    )
    return challenge


def remove_challenge(db: Session, challenge_id: UUID) -> WagerChallenge:
    """
    Hide a challenge from every listing.

    Stakes still held in the pot (open or unresolved challenges) are
    refunded and the challenge closes as `no_winner`. Already removed
    challenges are returned as they are. The caller commits.
    """
    challenge = (
        db.query(WagerChallenge)
        .filter(WagerChallenge.id == challenge_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if challenge is None:
        raise NotFoundError("Challenge", str(challenge_id))

    if challenge.status in POT_HELD_STATUSES and not challenge.removed:
        challenge.status = "no_winner"
        challenge.resolved_at = utcnow()
        _refund_stakes(db, challenge)

    challenge.removed = True
    challenge.flagged = False
    return challenge


def cast_vote(db: Session, voter: User, challenge_id: UUID, voted_for: UUID) -> Dict:
    challenge = _load_challenge(db, challenge_id)
    participants = challenge.participants or []

    if challenge.status in VOTING_CLOSED_STATUSES:
        raise BadRequestError("Voting is closed for this challenge")
    if str(voter.id) not in participants:
        raise ForbiddenError("Only participants can vote")
    if str(voted_for) not in participants:
        raise BadRequestError("Voted user is not a participant")
    if voter.id == voted_for:
        raise BadRequestError("You cannot vote for yourself")

    db.add(WagerVote(challenge_id=challenge.id, voter_id=voter.id, voted_for_id=voted_for))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("You have already voted in this challenge")

    return vote_tally(db, challenge.id)


def vote_tally(db: Session, challenge_id: UUID) -> Dict:
    votes: Dict[str, int] = {}
    for vote in db.query(WagerVote).filter(WagerVote.challenge_id == challenge_id):
        key = str(vote.voted_for_id)
        votes[key] = votes.get(key, 0) + 1
    return {"challenge_id": challenge_id, "votes": votes, "total": sum(votes.values())}
